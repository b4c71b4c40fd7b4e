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
coreason-session
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import SessionConfig
from .exceptions import SessionError, SessionNotFoundError, UnsupportedLanguageError
from .executor import SessionExecutor
from .factory import SandboxFactory
from .models import (
    ExecutionInsights,
    ExecutionRequest,
    ExecutionResponse,
    ExecutionTiming,
    ProgressInfo,
    SessionInfo,
    SessionRenewalInfo,
    SessionSummary,
)
from .registry import SessionRegistry, SessionState
from .runtime import SandboxHandle, SandboxProvider
from .session import Session
from .timer import ExecutionTimer

__all__ = [
    "Session",
    "SessionExecutor",
    "SessionRegistry",
    "SessionState",
    "SessionConfig",
    "SandboxFactory",
    "SandboxHandle",
    "SandboxProvider",
    "ExecutionTimer",
    "ExecutionRequest",
    "ExecutionResponse",
    "ExecutionTiming",
    "ExecutionInsights",
    "ProgressInfo",
    "SessionInfo",
    "SessionSummary",
    "SessionRenewalInfo",
    "SessionError",
    "SessionNotFoundError",
    "UnsupportedLanguageError",
]
