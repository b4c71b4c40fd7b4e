# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Errors raised by the session layer.

Failures of the user's code are never raised: they are reported through
``ExecutionResponse.success`` and ``ExecutionResponse.error``. Errors coming
from the sandbox itself propagate unchanged.
"""


class SessionError(Exception):
    """Base class for session layer errors."""


class SessionNotFoundError(SessionError, LookupError):
    """Raised when a session id is not present in the registry."""

    def __init__(self, session_id: str, detail: str = "not found"):
        self.session_id = session_id
        super().__init__(f"Session {session_id} {detail}")


class UnsupportedLanguageError(SessionError, ValueError):
    """Raised when no package manager is known for a language."""

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language for package installation: {language}")
