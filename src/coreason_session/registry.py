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
from dataclasses import dataclass, field
from datetime import datetime, timezone

from coreason_session.runtime import CodeContext, SandboxHandle


@dataclass
class SessionState:
    """Cached state of one session.

    ``uploaded_files`` and ``installed_packages`` only ever grow. Files written
    to the sandbox without going through the session layer are not tracked.
    """

    session_id: str
    sandbox: SandboxHandle
    context: CodeContext
    language: str
    uploaded_files: set[str] = field(default_factory=set)
    installed_packages: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionRegistry:
    """In-memory map from session id to SessionState.

    Not shared between processes. Pass one instance to each executor; tests
    can use a fresh registry per case.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}

    def get(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def set(self, session_id: str, state: SessionState) -> None:
        """Register a session.

        Raises:
            ValueError: If a different state is already registered under the id.
        """
        existing = self._sessions.get(session_id)
        if existing is not None and existing is not state:
            raise ValueError(f"Session {session_id} is already registered")
        self._sessions[session_id] = state

    def delete(self, session_id: str) -> SessionState | None:
        return self._sessions.pop(session_id, None)

    def items(self) -> list[tuple[str, SessionState]]:
        # Snapshot so callers can delete while iterating
        return list(self._sessions.items())

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
