# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import json
from datetime import datetime, timezone
from typing import Any, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import install_calls
from mcp.types import TextContent

from coreason_session.exceptions import SessionNotFoundError
from coreason_session.executor import SessionExecutor
from coreason_session.main import (
    close_session,
    get_session,
    keep_alive,
    list_sessions,
    main,
    pause_session,
    run_code,
)
from coreason_session.models import (
    ExecutionError,
    ExecutionResponse,
    ExecutionTiming,
    SessionInfo,
    SessionRenewalInfo,
    SessionSummary,
)

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_response(**kwargs: object) -> ExecutionResponse:
    timing = ExecutionTiming(total_ms=1234.56, started_at=NOW, completed_at=NOW, stages={}, distribution={})
    fields: dict[str, object] = {
        "text": "hello",
        "stdout": "hello",
        "stderr": "",
        "success": True,
        "exit_code": 0,
        "timing": timing,
    }
    fields.update(kwargs)
    return ExecutionResponse(**fields)  # type: ignore[arg-type]


@pytest.fixture
def mock_session() -> Generator[MagicMock, None, None]:
    with patch("coreason_session.main.session", new_callable=MagicMock) as mock:
        # Configure methods to be awaitable
        mock.run = AsyncMock()
        mock.keep_alive = AsyncMock()
        mock.get_session = AsyncMock()
        mock.list_sessions = AsyncMock()
        mock.pause = AsyncMock()
        mock.close = AsyncMock()
        yield mock


@pytest.mark.asyncio
async def test_run_code_text_only(mock_session: MagicMock) -> None:
    mock_session.run.return_value = make_response(session_id="sbx-1")

    result = await run_code("print('hello')")

    request = mock_session.run.await_args.args[0]
    assert request.code == "print('hello')"
    assert request.language is None
    assert request.keep_alive is True

    assert all(isinstance(item, TextContent) for item in result)
    assert [item.text for item in result] == [
        "STDOUT:\nhello",
        "Exit Code: 0",
        "Duration: 1.2346s",
        "Session: sbx-1",
    ]


@pytest.mark.asyncio
async def test_run_code_with_error(mock_session: MagicMock) -> None:
    error = ExecutionError(
        name="ZeroDivisionError",
        value="division by zero",
        message="ZeroDivisionError: division by zero",
        traceback="tb",
    )
    mock_session.run.return_value = make_response(
        stdout="", stderr="oops", success=False, exit_code=1, error=error
    )

    result = await run_code("1/0", session_id="sbx-1", packages=["numpy"], keep_alive=False)

    request = mock_session.run.await_args.args[0]
    assert request.session_id == "sbx-1"
    assert request.packages == ["numpy"]
    texts = [item.text for item in result]
    assert texts[0] == "STDERR:\noops"
    assert texts[1] == "ERROR: ZeroDivisionError: division by zero\ntb"
    assert texts[2] == "Exit Code: 1"
    assert not any(t.startswith("Session:") for t in texts)


@pytest.mark.asyncio
async def test_run_code_exception(mock_session: MagicMock) -> None:
    mock_session.run.side_effect = SessionNotFoundError("sbx-404")

    result = await run_code("1", session_id="sbx-404")

    assert len(result) == 1
    assert result[0].text == "Error executing code: Session sbx-404 not found"


@pytest.mark.asyncio
async def test_keep_alive(mock_session: MagicMock) -> None:
    mock_session.keep_alive.return_value = SessionRenewalInfo(session_id="sbx-1", new_timeout=600_000, expires_at=NOW)

    assert await keep_alive("sbx-1") == f"Session sbx-1 expires at {NOW.isoformat()}"
    mock_session.keep_alive.assert_awaited_once_with("sbx-1", None)

    mock_session.keep_alive.side_effect = SessionNotFoundError("sbx-2")
    assert await keep_alive("sbx-2") == "Error renewing session: Session sbx-2 not found"


@pytest.mark.asyncio
async def test_get_session(mock_session: MagicMock) -> None:
    mock_session.get_session.return_value = SessionInfo(
        session_id="sbx-1",
        sandbox_id="sbx-1",
        language="python",
        installed_packages=["pandas"],
        uploaded_files=["data.csv"],
        created_at=NOW,
        status="running",
        started_at=NOW,
        sandbox=object(),
    )

    payload = json.loads(await get_session("sbx-1"))

    assert payload["status"] == "running"
    assert payload["installed_packages"] == ["pandas"]
    assert "sandbox" not in payload


@pytest.mark.asyncio
async def test_get_session_error(mock_session: MagicMock) -> None:
    mock_session.get_session.side_effect = SessionNotFoundError("nope")
    assert await get_session("nope") == "Error getting session: Session nope not found"


@pytest.mark.asyncio
async def test_list_sessions(mock_session: MagicMock) -> None:
    mock_session.list_sessions.return_value = [
        SessionSummary(session_id="a", sandbox_id="a", language="python", created_at=NOW),
        SessionSummary(session_id="b", sandbox_id="b", language="r", created_at=NOW),
    ]
    assert await list_sessions() == ["a", "b"]

    mock_session.list_sessions.side_effect = Exception("API down")
    assert await list_sessions() == ["Error listing sessions: API down"]


@pytest.mark.asyncio
async def test_pause_session(mock_session: MagicMock) -> None:
    mock_session.pause.return_value = True
    assert await pause_session("sbx-1") == "Session sbx-1 paused."

    mock_session.pause.return_value = False
    assert await pause_session("sbx-1") == "Session sbx-1 was already paused."

    mock_session.pause.side_effect = SessionNotFoundError("sbx-9")
    assert await pause_session("sbx-9") == "Error pausing session: Session sbx-9 not found"


@pytest.mark.asyncio
async def test_close_session(mock_session: MagicMock) -> None:
    assert await close_session("sbx-1") == "Session sbx-1 closed."
    mock_session.close.assert_awaited_once_with("sbx-1")

    mock_session.close.side_effect = Exception("kill failed")
    assert await close_session("sbx-1") == "Error closing session: kill failed"


@pytest.mark.asyncio
async def test_run_code_reuses_session_language(executor: SessionExecutor, mock_handle: Any) -> None:
    facade = MagicMock()
    facade.run = executor.execute

    with patch("coreason_session.main.session", facade):
        created = await run_code("1", language="r")
        session_id = created[-1].text.removeprefix("Session: ")
        await run_code("library(dplyr)", session_id=session_id, packages=["dplyr"])

    assert session_id == "sbx-1"
    assert install_calls(mock_handle) == ['R -e "install.packages(c(\'dplyr\'))"']
    assert mock_handle.run_code.await_args.kwargs["language"] == "r"


def test_main() -> None:
    with (
        patch("coreason_session.main.mcp.run") as mock_run,
        patch("coreason_session.main.setup_logging") as mock_setup,
    ):
        main()
        mock_setup.assert_called_once()
        mock_run.assert_called_once()
