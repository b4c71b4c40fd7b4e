# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import asyncio
import os
from typing import Any, Callable, Literal

from e2b import CommandExitException
from e2b_code_interpreter import Sandbox as E2BSandbox
from loguru import logger

from coreason_session.models import ExecutionError
from coreason_session.runtime import (
    CodeContext,
    OutputCallback,
    RunResult,
    SandboxHandle,
    SandboxInfo,
    SandboxProvider,
)


# SDK sandbox states; anything else (killed, expired) means the sandbox is gone
_STATUS_BY_STATE: dict[str, Literal["running", "paused"]] = {"running": "running", "paused": "paused"}


def _to_seconds(timeout_ms: int) -> int:
    return max(1, timeout_ms // 1000)


def _forward_to_loop(callback: OutputCallback | None) -> Callable[[Any], None] | None:
    """Wrap a callback so SDK worker threads deliver output on the event loop.

    The SDK invokes callbacks from the thread running the blocking call.
    Scheduling them with ``call_soon_threadsafe`` keeps them ordered and
    before the completion of the awaiting coroutine.
    """
    if callback is None:
        return None

    loop = asyncio.get_running_loop()

    def forward(output: Any) -> None:
        text = output if isinstance(output, str) else getattr(output, "line", str(output))
        loop.call_soon_threadsafe(callback, text)

    return forward


class E2BSandboxHandle(SandboxHandle):
    """E2B Cloud implementation of the SandboxHandle.

    Wraps a synchronous ``e2b_code_interpreter.Sandbox`` and runs every SDK
    call in a worker thread.
    """

    def __init__(self, sandbox: E2BSandbox):
        self.sandbox = sandbox

    @property
    def sandbox_id(self) -> str:
        return str(self.sandbox.sandbox_id)

    async def get_info(self) -> SandboxInfo:
        info = await asyncio.to_thread(self.sandbox.get_info)
        state = getattr(info, "state", None)
        state = str(getattr(state, "value", state) or "running").lower()
        return SandboxInfo(
            sandbox_id=self.sandbox_id,
            status=_STATUS_BY_STATE.get(state, "stopped"),
            started_at=getattr(info, "started_at", None),
            end_at=getattr(info, "end_at", None),
        )

    async def is_running(self) -> bool:
        return bool(await asyncio.to_thread(self.sandbox.is_running))

    async def set_timeout(self, timeout_ms: int) -> None:
        logger.debug(f"Setting E2B sandbox {self.sandbox_id} timeout to {timeout_ms}ms")
        await asyncio.to_thread(self.sandbox.set_timeout, _to_seconds(timeout_ms))

    async def beta_pause(self) -> bool:
        info = await self.get_info()
        if info.status == "paused":
            return False

        logger.info(f"Pausing E2B sandbox: {self.sandbox_id}")
        await asyncio.to_thread(self.sandbox.beta_pause)
        return True

    async def kill(self) -> None:
        logger.info(f"Terminating E2B sandbox: {self.sandbox_id}")
        await asyncio.to_thread(self.sandbox.kill)

    async def write_file(self, path: str, content: str | bytes) -> None:
        try:
            await asyncio.to_thread(self.sandbox.files.write, path, content)
        except Exception as e:
            logger.error(f"E2B upload failed: {e}")
            raise

    async def read_file(self, path: str) -> bytes:
        try:
            content = await asyncio.to_thread(self.sandbox.files.read, path, format="bytes")
        except Exception as e:
            logger.error(f"E2B download failed: {e}")
            raise

        if content is None:
            raise FileNotFoundError(f"Remote file not found: {path}")
        return bytes(content)

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
        if language == "bash":
            workdir = cwd or (context.cwd if context else None)
            return await self._run_command(code, env_vars, workdir, on_stdout, on_stderr)

        kwargs: dict[str, Any] = {
            "envs": env_vars,
            "on_stdout": _forward_to_loop(on_stdout),
            "on_stderr": _forward_to_loop(on_stderr),
        }
        # The SDK accepts either a context or a language, not both. It only
        # reads ``context.id``.
        if context is not None and (language is None or language == context.language):
            kwargs["context"] = context
        else:
            kwargs["language"] = language

        execution = await asyncio.to_thread(self.sandbox.run_code, code, **kwargs)

        stdout = "".join(execution.logs.stdout)
        stderr = "".join(execution.logs.stderr)
        error = None
        if execution.error:
            error = ExecutionError(
                name=execution.error.name,
                value=execution.error.value,
                message=f"{execution.error.name}: {execution.error.value}",
                traceback=execution.error.traceback,
            )

        return RunResult(
            text=execution.text or "",
            stdout=stdout,
            stderr=stderr,
            success=error is None,
            exit_code=1 if error else 0,
            error=error,
        )

    async def _run_command(
        self,
        command: str,
        env_vars: dict[str, str] | None,
        cwd: str | None,
        on_stdout: OutputCallback | None,
        on_stderr: OutputCallback | None,
    ) -> RunResult:
        try:
            result = await asyncio.to_thread(
                self.sandbox.commands.run,
                command,
                envs=env_vars,
                cwd=cwd,
                on_stdout=_forward_to_loop(on_stdout),
                on_stderr=_forward_to_loop(on_stderr),
            )
        except CommandExitException as e:
            return RunResult(
                text=e.stdout,
                stdout=e.stdout,
                stderr=e.stderr,
                success=False,
                exit_code=e.exit_code,
                error=ExecutionError(
                    name="CommandExitError",
                    value=str(e.exit_code),
                    message=e.error or f"Command exited with code {e.exit_code}",
                ),
            )

        return RunResult(
            text=result.stdout,
            stdout=result.stdout,
            stderr=result.stderr,
            success=result.exit_code == 0,
            exit_code=result.exit_code,
        )

    async def create_code_context(self, language: str, cwd: str) -> CodeContext:
        ctx = await asyncio.to_thread(self.sandbox.create_code_context, cwd=cwd, language=language)
        return CodeContext(id=ctx.id, language=ctx.language or language, cwd=ctx.cwd or cwd)

    async def remove_code_context(self, context: CodeContext) -> None:
        await asyncio.to_thread(self.sandbox.remove_code_context, context.id)


class E2BSandboxProvider(SandboxProvider):
    """Creates and reconnects E2B sandboxes."""

    def __init__(self, api_key: str | None = None):
        """Initializes the E2BSandboxProvider.

        Args:
            api_key: E2B API Key. Defaults to E2B_API_KEY env var.
        """
        self.api_key = api_key or os.getenv("E2B_API_KEY")

    async def create(self, template: str, timeout_ms: int) -> SandboxHandle:
        logger.info(f"Starting E2B sandbox (template: {template})")
        try:
            sandbox = await asyncio.to_thread(
                E2BSandbox.create,
                template=template,
                timeout=_to_seconds(timeout_ms),
                api_key=self.api_key,
            )
        except Exception as e:
            logger.error(f"Failed to start E2B sandbox: {e}")
            raise

        logger.info(f"E2B sandbox started: {sandbox.sandbox_id}")
        return E2BSandboxHandle(sandbox)

    async def connect(self, sandbox_id: str, timeout_ms: int | None = None) -> SandboxHandle:
        logger.info(f"Connecting to E2B sandbox: {sandbox_id}")
        kwargs: dict[str, Any] = {"api_key": self.api_key}
        if timeout_ms is not None:
            kwargs["timeout"] = _to_seconds(timeout_ms)
        sandbox = await asyncio.to_thread(E2BSandbox.connect, sandbox_id, **kwargs)
        return E2BSandboxHandle(sandbox)
