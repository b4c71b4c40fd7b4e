# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import posixpath
from datetime import datetime, timedelta, timezone

from loguru import logger

from coreason_session.config import SessionConfig
from coreason_session.exceptions import SessionNotFoundError, UnsupportedLanguageError
from coreason_session.models import (
    ExecutionRequest,
    ExecutionResponse,
    ProgressDetails,
    SessionInfo,
    SessionRenewalInfo,
    SessionStatus,
    SessionSummary,
)
from coreason_session.registry import SessionRegistry, SessionState
from coreason_session.runtime import RunResult, SandboxProvider
from coreason_session.timer import ExecutionTimer

NPM_LANGUAGES = {"javascript", "node", "nodejs", "js", "deno", "typescript", "ts"}
PIP_LANGUAGES = {"python", "python3"}


def resolve_path(path: str, cwd: str) -> str:
    """Resolve a caller supplied path inside the sandbox.

    Absolute paths are returned unchanged; relative paths are joined with
    ``cwd`` and normalized.
    """
    if path.startswith("/"):
        return path
    return posixpath.normpath(posixpath.join("/" + cwd.lstrip("/"), path))


def get_install_command(language: str, packages: list[str]) -> str:
    """Build the shell command installing ``packages`` for ``language``.

    Raises:
        UnsupportedLanguageError: If no package manager is known for the language.
    """
    lang = language.lower()

    if lang in NPM_LANGUAGES:
        return f"npm install {' '.join(packages)}"

    if lang in PIP_LANGUAGES:
        return f"pip install {' '.join(packages)}"

    if lang == "r":
        quoted = ", ".join(f"'{p}'" for p in packages)
        return f'R -e "install.packages(c({quoted}))"'

    raise UnsupportedLanguageError(language)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionExecutor:
    """Runs code against cached sandbox sessions.

    Drives the execution pipeline (connect, upload, install, execute,
    download) and skips work already done in the same session:

    - files are uploaded once per session, keyed by the caller supplied path
    - packages are installed once per session
    - sandboxes close to expiry are renewed, paused sandboxes are resumed

    Calls against the same session are serialized by the session's lock.
    """

    def __init__(
        self,
        provider: SandboxProvider,
        registry: SessionRegistry | None = None,
        config: SessionConfig | None = None,
    ):
        """Initializes the SessionExecutor.

        Args:
            provider: Creates and reconnects sandboxes.
            registry: Session store. A private one is created if omitted.
            config: Optional configuration object. If not provided, defaults are used.
        """
        self.provider = provider
        self.registry = registry if registry is not None else SessionRegistry()
        self.config = config or SessionConfig()

    async def execute(self, request: ExecutionRequest) -> ExecutionResponse:
        """Execute code with automatic lifecycle management.

        Sessions created by a request without ``keep_alive`` are closed once
        the pipeline ends, whether it succeeded or not.

        Args:
            request: The execution request.

        Returns:
            ExecutionResponse: Output, timing statistics and insights. Errors
            raised by the code itself are reported in ``success``/``error``.

        Raises:
            SessionNotFoundError: If ``request.session_id`` is unknown, or the
                session was closed while this request waited for it.
            UnsupportedLanguageError: If packages are requested for a language
                without a known package manager.
            Exception: Any sandbox failure, after entering the ``failed`` stage.
        """
        timer = ExecutionTimer(request.on_progress)
        cwd = request.cwd or self.config.default_cwd
        session: SessionState | None = None
        created = False

        try:
            timer.start_stage("initializing", "Preparing execution environment")
            timer.update_progress(100, "Initialization complete")
            timer.end_stage("initializing")

            timer.start_stage("connecting")
            if request.session_id:
                timer.update_progress(30, "Looking up existing session")
                session = self.registry.get(request.session_id)
                if session is None:
                    raise SessionNotFoundError(request.session_id, "not found or expired")
            else:
                session = await self._create_session(request, cwd, timer)
                created = True

            async with session.lock:
                # Double-check inside lock: a queued close may have won
                if self.registry.get(session.session_id) is not session:
                    raise SessionNotFoundError(session.session_id, "was closed")

                if not created:
                    await self._resume_and_renew(session, request, timer)
                timer.update_progress(100, "Sandbox created" if created else "Session connected")
                timer.end_stage("connecting")

                language = request.language or session.language

                if request.files:
                    timer.start_stage("uploading")
                    await self._smart_upload_files(session, request.files, cwd, timer)
                    timer.end_stage("uploading")

                if request.packages:
                    timer.start_stage("installing")
                    await self._smart_install_packages(session, request.packages, language, timer)
                    timer.end_stage("installing")

                timer.start_stage("executing", "Running your code")
                result = await self._run_user_code(session, request, language, cwd, timer)
                timer.update_progress(100, "Code execution completed")
                timer.end_stage("executing")

                files: dict[str, bytes] = {}
                if request.download_files:
                    timer.start_stage("downloading")
                    files = await self._download_files(session, request.download_files, cwd, timer)
                    timer.end_stage("downloading")

            timer.start_stage("completed", "Execution completed successfully")
            timer.end_stage("completed")

            if not result.success:
                logger.info(
                    "Code raised an error in sandbox",
                    session_id=session.session_id,
                    error=result.error.name if result.error else None,
                )

            return ExecutionResponse(
                text=result.text or result.stdout,
                stdout=result.stdout,
                stderr=result.stderr,
                success=result.success,
                exit_code=result.exit_code,
                error=result.error,
                files=files or None,
                session_id=session.session_id if request.keep_alive else None,
                sandbox=session.sandbox if request.keep_alive else None,
                timing=timer.get_stats(),
                insights=timer.get_insights(),
            )

        except Exception as e:
            timer.start_stage("failed", f"Execution failed: {e}")
            logger.error(f"Execution failed: {e}")
            raise

        finally:
            if created and session is not None and not request.keep_alive:
                await self._close_quietly(session.session_id)

    async def _create_session(self, request: ExecutionRequest, cwd: str, timer: ExecutionTimer) -> SessionState:
        """Create a sandbox with a fresh context and register it."""
        timeout = request.timeout or self.config.default_timeout_ms
        language = request.language or self.config.default_language

        timer.update_progress(20, "Creating new sandbox")
        sandbox = await self.provider.create(self.config.template, timeout)

        timer.update_progress(80, "Creating execution context")
        try:
            context = await sandbox.create_code_context(language=language, cwd=cwd)
        except Exception:
            # Nothing references the sandbox yet
            await sandbox.kill()
            raise

        session = SessionState(
            session_id=sandbox.sandbox_id,
            sandbox=sandbox,
            context=context,
            language=language,
        )
        self.registry.set(session.session_id, session)
        logger.info("Session created", session_id=session.session_id, language=language)
        return session

    async def _resume_and_renew(self, session: SessionState, request: ExecutionRequest, timer: ExecutionTimer) -> None:
        """Resume a paused sandbox, then renew it if it is about to expire."""
        timeout = request.timeout or self.config.default_timeout_ms

        timer.update_progress(60, "Checking session health")
        info = await session.sandbox.get_info()
        if info.status == "paused":
            timer.update_progress(70, "Resuming paused session")
            # Filesystem state survives a pause; in-memory context state may not.
            session.sandbox = await self.provider.connect(session.session_id, timeout)
            timer.update_progress(80, "Session resumed")
            logger.info("Session resumed", session_id=session.session_id)

        await self._auto_renew_if_needed(session, timeout)

    async def _auto_renew_if_needed(self, session: SessionState, timeout_ms: int) -> None:
        """Extend the sandbox timeout when less than the renewal threshold remains.

        Failures are logged and never propagated.
        """
        try:
            info = await session.sandbox.get_info()
            if info.end_at is None:
                return

            remaining_ms = (_as_utc(info.end_at) - _now()).total_seconds() * 1000
            if 0 < remaining_ms < self.config.renewal_threshold_ms:
                await session.sandbox.set_timeout(timeout_ms)
                logger.debug(
                    f"Session {session.session_id} auto-renewed ({remaining_ms:.0f}ms remaining -> +{timeout_ms}ms)"
                )
        except Exception as e:
            logger.warning(f"Auto-renewal failed for session {session.session_id}: {e}")

    async def _smart_upload_files(
        self,
        session: SessionState,
        files: dict[str, str | bytes],
        cwd: str,
        timer: ExecutionTimer,
    ) -> None:
        """Upload files not yet uploaded in this session."""
        total_files = len(files)
        processed = 0
        skipped = 0
        bytes_transferred = 0

        for path, content in files.items():
            if path in session.uploaded_files:
                skipped += 1
            else:
                size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
                timer.update_progress(
                    processed / total_files * 100,
                    f"Uploading {path} ({ExecutionTimer.format_bytes(size)})",
                    ProgressDetails(
                        files_uploaded=processed,
                        total_files=total_files,
                        bytes_transferred=bytes_transferred,
                    ),
                )
                await session.sandbox.write_file(resolve_path(path, cwd), content)
                # Cached by the original path, not the resolved one
                session.uploaded_files.add(path)
                bytes_transferred += size
            processed += 1

        transferred = ExecutionTimer.format_bytes(bytes_transferred)
        if skipped:
            message = f"Uploaded {total_files - skipped} files, skipped {skipped} (cached) - {transferred}"
        else:
            message = f"Uploaded {total_files} files ({transferred})"
        timer.update_progress(100, message)

    async def _smart_install_packages(
        self,
        session: SessionState,
        packages: list[str],
        language: str,
        timer: ExecutionTimer,
    ) -> None:
        """Install packages not yet installed in this session."""
        new_packages = [p for p in dict.fromkeys(packages) if p not in session.installed_packages]

        if not new_packages:
            timer.update_progress(100, f"All {len(packages)} packages already installed (cached)")
            return

        install_cmd = get_install_command(language, new_packages)

        timer.update_progress(
            30,
            f"Installing {len(new_packages)} packages: {', '.join(new_packages)}",
            ProgressDetails(packages_installed=0, total_packages=len(new_packages)),
        )

        install_progress = 30.0

        def on_install_output(output: str) -> None:
            nonlocal install_progress
            install_progress = min(90.0, install_progress + 5)
            timer.update_progress(install_progress, f"Installing: {output.strip()[:50]}...")

        logger.info("Installing packages", session_id=session.session_id, packages=new_packages)
        result = await session.sandbox.run_code(
            install_cmd,
            language="bash",
            context=session.context,
            on_stdout=on_install_output,
        )
        if not result.success:
            logger.warning(f"Package installation reported errors: {result.stderr.strip()[:200]}")

        session.installed_packages.update(packages)

        cached = len(packages) - len(new_packages)
        if cached > 0:
            message = f"Installed {len(new_packages)} packages, {cached} already cached"
        else:
            message = f"Installed {len(new_packages)} packages"
        timer.update_progress(100, message)

    async def _run_user_code(
        self,
        session: SessionState,
        request: ExecutionRequest,
        language: str,
        cwd: str,
        timer: ExecutionTimer,
    ) -> RunResult:
        def on_stdout(output: str) -> None:
            if request.on_stdout:
                request.on_stdout(output)
            timer.update_progress(50, "Executing...", ProgressDetails(output=output[:100]))

        return await session.sandbox.run_code(
            request.code,
            language=language,
            context=session.context,
            env_vars=request.env,
            cwd=cwd,
            on_stdout=on_stdout,
            on_stderr=request.on_stderr,
        )

    async def _download_files(
        self,
        session: SessionState,
        paths: list[str],
        cwd: str,
        timer: ExecutionTimer,
    ) -> dict[str, bytes]:
        files: dict[str, bytes] = {}
        total_files = len(paths)
        bytes_transferred = 0

        for downloaded, path in enumerate(paths):
            timer.update_progress(
                downloaded / total_files * 100,
                f"Downloading {path}",
                ProgressDetails(files_downloaded=downloaded, total_files=total_files),
            )
            content = await session.sandbox.read_file(resolve_path(path, cwd))
            files[path] = content
            bytes_transferred += len(content)

        timer.update_progress(
            100,
            f"Downloaded {total_files} files ({ExecutionTimer.format_bytes(bytes_transferred)})",
        )
        return files

    def _require(self, session_id: str) -> SessionState:
        session = self.registry.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def keep_alive(self, session_id: str, timeout_ms: int | None = None) -> SessionRenewalInfo:
        """Extend the session timeout unconditionally.

        Args:
            session_id: Session identifier.
            timeout_ms: New timeout, defaults to the configured timeout.

        Returns:
            SessionRenewalInfo: The applied timeout and new expiration.

        Raises:
            SessionNotFoundError: If the session is unknown.
        """
        session = self._require(session_id)
        timeout = timeout_ms or self.config.default_timeout_ms

        await session.sandbox.set_timeout(timeout)

        info = await session.sandbox.get_info()
        expires_at = _as_utc(info.end_at) if info.end_at else _now() + timedelta(milliseconds=timeout)

        return SessionRenewalInfo(session_id=session_id, new_timeout=timeout, expires_at=expires_at)

    async def get_session(self, session_id: str) -> SessionInfo:
        """Merge the cached session state with the live sandbox state.

        Raises:
            SessionNotFoundError: If the session is unknown.
        """
        session = self._require(session_id)

        info = await session.sandbox.get_info()
        is_running = await session.sandbox.is_running()

        status: SessionStatus
        if info.status == "paused":
            status = "paused"
        elif is_running:
            status = "running"
        else:
            status = "stopped"

        expires_at = _as_utc(info.end_at) if info.end_at else None
        remaining_time = (expires_at - _now()).total_seconds() * 1000 if expires_at else None

        return SessionInfo(
            session_id=session_id,
            sandbox_id=session.sandbox.sandbox_id,
            language=session.language,
            installed_packages=sorted(session.installed_packages),
            uploaded_files=sorted(session.uploaded_files),
            created_at=session.created_at,
            status=status,
            started_at=_as_utc(info.started_at) if info.started_at else session.created_at,
            expires_at=expires_at,
            remaining_time=remaining_time,
            sandbox=session.sandbox,
        )

    async def list_sessions(self) -> list[SessionSummary]:
        """List live sessions.

        Sessions whose sandbox can no longer be queried are treated as
        expired and dropped from the registry.
        """
        results = []

        for session_id, session in self.registry.items():
            try:
                info = await session.sandbox.get_info()
            except Exception as e:
                logger.info(f"Session {session_id} expired ({e}). Evicting.")
                self.registry.delete(session_id)
                continue

            results.append(
                SessionSummary(
                    session_id=session_id,
                    sandbox_id=session.sandbox.sandbox_id,
                    language=session.language,
                    created_at=session.created_at,
                    expires_at=_as_utc(info.end_at) if info.end_at else None,
                )
            )

        return results

    async def pause(self, session_id: str) -> bool:
        """Pause the session's sandbox.

        The next ``execute`` against the session resumes it.

        Returns:
            bool: False if the sandbox was already paused.

        Raises:
            SessionNotFoundError: If the session is unknown.
        """
        session = self._require(session_id)
        paused = await session.sandbox.beta_pause()
        logger.info(f"Session {session_id} pause requested (transitioned: {paused})")
        return paused

    async def close(self, session_id: str) -> None:
        """Close a session and destroy its sandbox.

        Unknown ids are ignored. The session is removed from the registry
        even if tearing down the context or sandbox fails.
        """
        session = self.registry.get(session_id)
        if session is None:
            return

        async with session.lock:
            try:
                try:
                    await session.sandbox.remove_code_context(session.context)
                finally:
                    await session.sandbox.kill()
            finally:
                self.registry.delete(session_id)
                logger.info("Session closed", session_id=session_id)

    async def _close_quietly(self, session_id: str) -> None:
        try:
            await self.close(session_id)
        except Exception as e:
            logger.error(f"Error closing session {session_id}: {e}")

    async def shutdown(self) -> None:
        """Close every registered session."""
        logger.info(f"Shutting down SessionExecutor. Closing {len(self.registry)} sessions.")

        for session_id, _ in self.registry.items():
            await self._close_quietly(session_id)
