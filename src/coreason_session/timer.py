# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from coreason_session.models import (
    ExecutionInsights,
    ExecutionStage,
    ExecutionTiming,
    ProgressDetails,
    ProgressInfo,
)

BILLABLE_STAGES: tuple[ExecutionStage, ...] = (
    "initializing",
    "connecting",
    "uploading",
    "installing",
    "executing",
    "downloading",
)

DEFAULT_MESSAGES: dict[ExecutionStage, str] = {
    "initializing": "Initializing execution environment",
    "connecting": "Connecting to sandbox",
    "uploading": "Uploading files",
    "installing": "Installing dependencies",
    "executing": "Executing code",
    "downloading": "Downloading results",
    "completed": "Execution completed",
    "failed": "Execution failed",
}

# Bottleneck stage -> (threshold in ms, suggestions)
SUGGESTIONS: dict[ExecutionStage, tuple[float, list[str]]] = {
    "uploading": (
        5_000,
        [
            "Consider reducing file sizes or uploading fewer files",
            "Large files can be uploaded once and reused across executions with keep_alive=True",
        ],
    ),
    "installing": (
        30_000,
        [
            "Dependencies are installed per session - reuse sessions to avoid reinstallation",
            "Consider using a custom template with pre-installed dependencies",
            "Keep sessions alive with keep_alive=True for multi-step workflows",
        ],
    ),
    "executing": (
        60_000,
        [
            "Long execution time detected - consider breaking into smaller steps",
            "Use keep_alive=True to maintain session state for multi-step workflows",
        ],
    ),
    "connecting": (
        10_000,
        [
            "Sandbox creation is slow - consider keeping sessions alive for reuse",
            "Reusing sessions can be 10-100x faster than creating new ones",
        ],
    ),
    "downloading": (
        10_000,
        [
            "Consider downloading only necessary files",
            "Large result files can be read later through the sandbox handle",
        ],
    ),
}


@dataclass
class StageInfo:
    start: float
    end: float | None = None


class ExecutionTimer:
    """Tracks progress and timing across the stages of one execution.

    Stages are opened with ``start_stage`` and closed with ``end_stage``;
    opening a stage closes the previous one. Every transition and update is
    reported to the optional ``on_progress`` callback.

    All durations are in milliseconds.
    """

    def __init__(
        self,
        on_progress: Callable[[ProgressInfo], None] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initializes the ExecutionTimer.

        Args:
            on_progress: Callback receiving every progress update.
            clock: Returns the current time in seconds. Defaults to ``time.time``.
        """
        self._clock = clock or time.time
        self._on_progress = on_progress
        self.start_time = self._now()
        self.stages: dict[ExecutionStage, StageInfo] = {}
        self.current_stage: ExecutionStage | None = None

    def _now(self) -> float:
        return self._clock() * 1000

    def start_stage(self, stage: ExecutionStage, message: str | None = None) -> None:
        """Start a new stage, ending the active one first."""
        if self.current_stage:
            self.end_stage(self.current_stage)

        self.current_stage = stage
        self.stages[stage] = StageInfo(start=self._now())
        self._notify(stage, 0, message or DEFAULT_MESSAGES[stage])

    def update_progress(
        self,
        percent: float,
        message: str | None = None,
        details: ProgressDetails | None = None,
    ) -> None:
        """Report progress for the active stage. Ignored when no stage is active."""
        if not self.current_stage:
            return

        self._notify(
            self.current_stage,
            min(100.0, max(0.0, percent)),
            message or DEFAULT_MESSAGES[self.current_stage],
            details,
        )

    def end_stage(self, stage: ExecutionStage) -> None:
        """Record the end of a stage and report it as 100% complete."""
        info = self.stages.get(stage)
        if info and info.end is None:
            info.end = self._now()
            self._notify(stage, 100, f"{DEFAULT_MESSAGES[stage]} completed")

    def get_stats(self) -> ExecutionTiming:
        """Timing breakdown and percentage distribution across stages."""
        now = self._now()
        total_ms = now - self.start_time

        stages = {
            stage: (info.end if info.end is not None else now) - info.start
            for stage, info in self.stages.items()
        }

        distribution = dict.fromkeys(BILLABLE_STAGES, 0.0)
        if total_ms > 0:
            for stage, duration in stages.items():
                if stage in distribution:
                    distribution[stage] = duration / total_ms * 100

        return ExecutionTiming(
            total_ms=total_ms,
            started_at=_to_datetime(self.start_time),
            completed_at=_to_datetime(now),
            stages=stages,
            distribution=distribution,
        )

    def get_insights(self) -> ExecutionInsights:
        """Identify the slowest stage and suggest optimizations."""
        stages = self.get_stats().stages

        bottleneck: ExecutionStage | None = None
        max_duration = 0.0
        for stage, duration in stages.items():
            if duration > max_duration:
                max_duration = duration
                bottleneck = stage  # type: ignore[assignment]

        suggestions: list[str] = []
        if bottleneck in SUGGESTIONS:
            threshold, hints = SUGGESTIONS[bottleneck]
            if max_duration > threshold:
                suggestions.extend(hints)

        return ExecutionInsights(bottleneck=bottleneck, suggestions=suggestions or None)

    def _notify(
        self,
        stage: ExecutionStage,
        percent: float,
        message: str,
        details: ProgressDetails | None = None,
    ) -> None:
        if not self._on_progress:
            return

        now = self._now()
        info = self.stages.get(stage)
        progress = ProgressInfo(
            stage=stage,
            percent=percent,
            message=message,
            stage_started_at=_to_datetime(info.start if info else now),
            stage_elapsed_ms=now - info.start if info else 0,
            total_elapsed_ms=now - self.start_time,
            details=details,
        )
        try:
            self._on_progress(progress)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    @staticmethod
    def format_bytes(num_bytes: int) -> str:
        """Format a byte count, e.g. ``1.23 MB``."""
        if num_bytes < 1024:
            return f"{num_bytes} B"
        if num_bytes < 1024 * 1024:
            return f"{num_bytes / 1024:.2f} KB"
        return f"{num_bytes / (1024 * 1024):.2f} MB"


def _to_datetime(ms: float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
