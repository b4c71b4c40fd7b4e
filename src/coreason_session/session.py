# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""
High-level, stateful code execution.

Example::

    async with Session() as session:
        step1 = await session.run(
            ExecutionRequest(code="import pandas as pd", packages=["pandas"], keep_alive=True)
        )
        step2 = await session.run(
            ExecutionRequest(
                code="df = pd.read_csv('data.csv'); print(df.describe())",
                files={"data.csv": csv_data},
                session_id=step1.session_id,
                keep_alive=True,
            )
        )
"""

from types import TracebackType

from coreason_session.config import SessionConfig
from coreason_session.executor import SessionExecutor
from coreason_session.factory import SandboxFactory
from coreason_session.models import (
    ExecutionRequest,
    ExecutionResponse,
    SessionInfo,
    SessionRenewalInfo,
    SessionSummary,
)
from coreason_session.registry import SessionRegistry
from coreason_session.runtime import SandboxProvider


class Session:
    """Entry point for stateful code execution.

    Sessions keep their sandbox, language context, uploaded files and
    installed packages between ``run`` calls. The underlying sandbox is
    available through ``ExecutionResponse.sandbox`` and ``SessionInfo.sandbox``
    for operations the session layer does not cover.
    """

    def __init__(
        self,
        provider: SandboxProvider | None = None,
        config: SessionConfig | None = None,
        registry: SessionRegistry | None = None,
    ):
        self.config = config or SessionConfig()
        self.executor = SessionExecutor(
            provider=provider or SandboxFactory.get_provider(self.config),
            registry=registry,
            config=self.config,
        )

    async def run(self, request: ExecutionRequest) -> ExecutionResponse:
        """Execute code, creating or reusing a session."""
        return await self.executor.execute(request)

    async def keep_alive(self, session_id: str, timeout_ms: int | None = None) -> SessionRenewalInfo:
        """Extend a session's timeout.

        Renewal happens automatically when less than two minutes remain, so
        this is only needed ahead of known long operations.
        """
        return await self.executor.keep_alive(session_id, timeout_ms)

    async def get_session(self, session_id: str) -> SessionInfo:
        return await self.executor.get_session(session_id)

    async def list_sessions(self) -> list[SessionSummary]:
        return await self.executor.list_sessions()

    async def pause(self, session_id: str) -> bool:
        """Pause a session. The next ``run`` against it resumes it."""
        return await self.executor.pause(session_id)

    async def close(self, session_id: str) -> None:
        """Close a session. Unknown ids are ignored."""
        await self.executor.close(session_id)

    async def shutdown(self) -> None:
        await self.executor.shutdown()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
