# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionConfig(BaseSettings):
    """
    Configuration for the session layer.
    """

    runtime: Literal["e2b"] = "e2b"
    template: str = "code-interpreter-v1"

    default_language: str = "python"
    default_cwd: str = "/workspace"
    default_timeout_ms: int = 600_000  # 10 minutes
    renewal_threshold_ms: int = 120_000  # renew when less than 2 minutes remain

    # E2B Configuration
    e2b_api_key: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="COREASON_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
