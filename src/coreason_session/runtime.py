# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Literal

from pydantic import BaseModel

from coreason_session.models import ExecutionError

OutputCallback = Callable[[str], None]


class SandboxInfo(BaseModel):
    """Live state reported by a sandbox."""

    sandbox_id: str
    status: Literal["running", "paused", "stopped"] = "running"
    started_at: datetime | None = None
    end_at: datetime | None = None


class CodeContext(BaseModel):
    """A language runtime context living inside a sandbox.

    Variables and imports persist across runs that share the same context.
    """

    id: str
    language: str
    cwd: str


class RunResult(BaseModel):
    """Outcome of running code in a sandbox."""

    text: str = ""
    stdout: str = ""
    stderr: str = ""
    success: bool = True
    exit_code: int = 0
    error: ExecutionError | None = None


class SandboxHandle(ABC):
    """
    A live sandbox. The session layer only orchestrates it.
    Follows the Strategy Pattern.
    """

    @property
    @abstractmethod
    def sandbox_id(self) -> str:
        """Identifier of the sandbox, also used as the session id."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_info(self) -> SandboxInfo:
        """Query the sandbox status and expiration.

        Raises:
            Exception: If the sandbox no longer exists.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def is_running(self) -> bool:
        """Check whether the sandbox is currently live."""
        pass  # pragma: no cover

    @abstractmethod
    async def set_timeout(self, timeout_ms: int) -> None:
        """Reset the sandbox expiration to ``timeout_ms`` from now."""
        pass  # pragma: no cover

    @abstractmethod
    async def beta_pause(self) -> bool:
        """Pause the sandbox.

        Returns:
            bool: False if the sandbox was already paused.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def kill(self) -> None:
        """Destroy the sandbox."""
        pass  # pragma: no cover

    @abstractmethod
    async def write_file(self, path: str, content: str | bytes) -> None:
        """Write a file inside the sandbox."""
        pass  # pragma: no cover

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Read a file from the sandbox as raw bytes.

        Raises:
            FileNotFoundError: If the remote file does not exist.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def run_code(
        self,
        code: str,
        language: str | None = None,
        context: CodeContext | None = None,
        env_vars: dict[str, str] | None = None,
        cwd: str | None = None,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
    ) -> RunResult:
        """Run code and capture output.

        Errors raised by the code itself are reported in the returned
        ``RunResult``. Only infrastructure failures raise.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def create_code_context(self, language: str, cwd: str) -> CodeContext:
        """Create a persistent language context."""
        pass  # pragma: no cover

    @abstractmethod
    async def remove_code_context(self, context: CodeContext) -> None:
        """Tear down a context created by ``create_code_context``."""
        pass  # pragma: no cover


class SandboxProvider(ABC):
    """
    Creates sandboxes and reconnects to existing ones.
    """

    @abstractmethod
    async def create(self, template: str, timeout_ms: int) -> SandboxHandle:
        """Boot a new sandbox that expires after ``timeout_ms``."""
        pass  # pragma: no cover

    @abstractmethod
    async def connect(self, sandbox_id: str, timeout_ms: int | None = None) -> SandboxHandle:
        """Connect to an existing sandbox, resuming it if paused."""
        pass  # pragma: no cover
