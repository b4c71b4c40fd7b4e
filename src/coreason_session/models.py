# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Data models for session requests, responses and monitoring."""

from datetime import datetime
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

ExecutionStage = Literal[
    "initializing",
    "connecting",
    "uploading",
    "installing",
    "executing",
    "downloading",
    "completed",
    "failed",
]

SessionStatus = Literal["running", "paused", "stopped"]


class ProgressDetails(BaseModel):
    """Optional counters attached to a progress event."""

    files_uploaded: int | None = None
    total_files: int | None = None
    files_downloaded: int | None = None
    packages_installed: int | None = None
    total_packages: int | None = None
    bytes_transferred: int | None = None
    output: str | None = None


class ProgressInfo(BaseModel):
    """A single progress update emitted during an execution.

    Attributes:
        stage: The stage that produced the update.
        percent: Progress within the stage, clamped to 0-100.
        message: Human readable message.
        stage_started_at: When the stage started.
        stage_elapsed_ms: Milliseconds spent in the stage so far.
        total_elapsed_ms: Milliseconds since the execution started.
        details: Optional counters.
    """

    stage: ExecutionStage
    percent: float
    message: str
    stage_started_at: datetime
    stage_elapsed_ms: float
    total_elapsed_ms: float
    details: ProgressDetails | None = None


class ExecutionRequest(BaseModel):
    """Configuration for one execution.

    Relative paths in ``files`` and ``download_files`` are resolved against
    ``cwd``. Absolute paths are used as given.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: str
    language: str | None = None

    files: dict[str, str | bytes] | None = None
    packages: list[str] | None = None
    env: dict[str, str] | None = None
    cwd: str | None = None

    session_id: str | None = None
    keep_alive: bool = False
    timeout: int | None = Field(default=None, description="Sandbox timeout in milliseconds.")

    download_files: list[str] | None = None

    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None
    on_progress: Callable[[ProgressInfo], None] | None = None


class ExecutionError(BaseModel):
    """Error raised by the user's code inside the sandbox."""

    name: str
    value: str
    message: str
    stack: str | None = None
    traceback: str | None = None


class ExecutionTiming(BaseModel):
    """Timing breakdown for one execution, in milliseconds."""

    total_ms: float
    started_at: datetime
    completed_at: datetime
    stages: dict[str, float]
    distribution: dict[str, float]


class ExecutionInsights(BaseModel):
    """Slowest stage and optimization suggestions."""

    bottleneck: ExecutionStage | None = None
    suggestions: list[str] | None = None


class ExecutionResponse(BaseModel):
    """Result of an execution with timing statistics.

    ``session_id`` and ``sandbox`` are only populated when the request asked
    for ``keep_alive``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    text: str
    stdout: str
    stderr: str
    success: bool
    exit_code: int
    error: ExecutionError | None = None

    files: dict[str, bytes] | None = None

    session_id: str | None = None
    sandbox: Any | None = None

    timing: ExecutionTiming
    insights: ExecutionInsights | None = None


class SessionInfo(BaseModel):
    """Session layer cache merged with live sandbox state."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    sandbox_id: str
    language: str

    installed_packages: list[str]
    uploaded_files: list[str]
    created_at: datetime

    status: SessionStatus
    started_at: datetime
    expires_at: datetime | None = None
    remaining_time: float | None = None

    sandbox: Any


class SessionSummary(BaseModel):
    """Entry returned by ``list_sessions``."""

    session_id: str
    sandbox_id: str
    language: str
    created_at: datetime
    expires_at: datetime | None = None


class SessionRenewalInfo(BaseModel):
    """Result of a manual renewal."""

    session_id: str
    new_timeout: int
    expires_at: datetime
