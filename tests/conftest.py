from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from coreason_session.executor import SessionExecutor
from coreason_session.registry import SessionRegistry
from coreason_session.runtime import CodeContext, RunResult, SandboxHandle, SandboxInfo, SandboxProvider


def make_info(
    sandbox_id: str = "sbx-1",
    status: str = "running",
    remaining: timedelta | None = timedelta(minutes=10),
) -> SandboxInfo:
    now = datetime.now(timezone.utc)
    return SandboxInfo(
        sandbox_id=sandbox_id,
        status=status,  # type: ignore[arg-type]
        started_at=now - timedelta(minutes=1),
        end_at=now + remaining if remaining is not None else None,
    )


def make_handle(sandbox_id: str = "sbx-1") -> Any:
    handle = AsyncMock(spec=SandboxHandle)
    handle.sandbox_id = sandbox_id
    handle.get_info.return_value = make_info(sandbox_id)
    handle.is_running.return_value = True
    handle.beta_pause.return_value = True
    handle.read_file.return_value = b"result-bytes"
    handle.create_code_context.return_value = CodeContext(id="ctx-1", language="python", cwd="/workspace")

    async def fake_run_code(
        code: str,
        language: str | None = None,
        context: CodeContext | None = None,
        env_vars: dict[str, str] | None = None,
        cwd: str | None = None,
        on_stdout: Any = None,
        on_stderr: Any = None,
    ) -> RunResult:
        if on_stdout:
            on_stdout("hello\n")
        return RunResult(text="", stdout="hello\n", stderr="", success=True, exit_code=0)

    handle.run_code.side_effect = fake_run_code
    return handle


def install_calls(handle: Any) -> list[str]:
    """Commands sent to the sandbox as bash, i.e. package installs."""
    return [c.args[0] for c in handle.run_code.await_args_list if c.kwargs.get("language") == "bash"]


@pytest.fixture
def mock_handle() -> Any:
    return make_handle()


@pytest.fixture
def mock_provider(mock_handle: Any) -> Any:
    provider = AsyncMock(spec=SandboxProvider)
    provider.create.return_value = mock_handle
    provider.connect.return_value = mock_handle
    return provider


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def executor(mock_provider: Any, registry: SessionRegistry) -> SessionExecutor:
    return SessionExecutor(provider=mock_provider, registry=registry)
