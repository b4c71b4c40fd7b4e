# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

from coreason_session.models import ExecutionRequest
from coreason_session.session import Session
from coreason_session.utils.logger import setup_logging

# Initialize Session Logic
session = Session()

# Initialize MCP Server
mcp = FastMCP("coreason-session")


@mcp.tool()  # type: ignore[misc]
async def run_code(
    code: str,
    language: str | None = None,
    session_id: str | None = None,
    packages: list[str] | None = None,
    keep_alive: bool = True,
) -> list[TextContent]:
    """
    Execute code in a sandbox session.
    Omit session_id to start a new session; pass it back to reuse the session.
    Omit language to use the session's language.
    """
    try:
        result = await session.run(
            ExecutionRequest(
                code=code,
                language=language,
                session_id=session_id,
                packages=packages,
                keep_alive=keep_alive,
            )
        )
    except Exception as e:
        return [TextContent(type="text", text=f"Error executing code: {e!s}")]

    output: list[TextContent] = []

    if result.stdout:
        output.append(TextContent(type="text", text=f"STDOUT:\n{result.stdout}"))

    if result.stderr:
        output.append(TextContent(type="text", text=f"STDERR:\n{result.stderr}"))

    if result.error:
        error_text = f"ERROR: {result.error.message}"
        if result.error.traceback:
            error_text += f"\n{result.error.traceback}"
        output.append(TextContent(type="text", text=error_text))

    output.append(TextContent(type="text", text=f"Exit Code: {result.exit_code}"))
    output.append(TextContent(type="text", text=f"Duration: {result.timing.total_ms / 1000:.4f}s"))

    if result.session_id:
        output.append(TextContent(type="text", text=f"Session: {result.session_id}"))

    return output


@mcp.tool()  # type: ignore[misc]
async def keep_alive(session_id: str, timeout_ms: int | None = None) -> str:
    """
    Extend a session's timeout.
    """
    try:
        renewal = await session.keep_alive(session_id, timeout_ms)
    except Exception as e:
        return f"Error renewing session: {e!s}"
    return f"Session {renewal.session_id} expires at {renewal.expires_at.isoformat()}"


@mcp.tool()  # type: ignore[misc]
async def get_session(session_id: str) -> str:
    """
    Describe a session: status, expiration, installed packages and uploaded files.
    """
    try:
        info = await session.get_session(session_id)
    except Exception as e:
        return f"Error getting session: {e!s}"
    return info.model_dump_json(exclude={"sandbox"})


@mcp.tool()  # type: ignore[misc]
async def list_sessions() -> list[str]:
    """
    List active session ids.
    """
    try:
        return [summary.session_id for summary in await session.list_sessions()]
    except Exception as e:
        return [f"Error listing sessions: {e!s}"]


@mcp.tool()  # type: ignore[misc]
async def pause_session(session_id: str) -> str:
    """
    Pause a session. It is resumed automatically on the next run.
    """
    try:
        paused = await session.pause(session_id)
    except Exception as e:
        return f"Error pausing session: {e!s}"
    return f"Session {session_id} paused." if paused else f"Session {session_id} was already paused."


@mcp.tool()  # type: ignore[misc]
async def close_session(session_id: str) -> str:
    """
    Close a session and destroy its sandbox.
    """
    try:
        await session.close(session_id)
    except Exception as e:
        return f"Error closing session: {e!s}"
    return f"Session {session_id} closed."


def main() -> None:
    """Entry point for the MCP server."""
    setup_logging()
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
