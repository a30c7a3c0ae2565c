"""Runtime configuration for doist.

Values come from the environment, with a .env file loaded first when present.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from doist.models import parse_datetime

DEFAULT_API_URL = "https://api.todoist.com/api/v1"
DEFAULT_FILTER = "(today | overdue)"


class Config(BaseModel):
    """Settings shared by every command."""
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    token: str = Field(default="", description="Todoist API token")
    api_url: str = Field(default=DEFAULT_API_URL, min_length=1)
    default_filter: str = Field(default=DEFAULT_FILTER)
    override_time: Optional[datetime] = Field(
        default=None,
        description="Pins 'now' for due-date colouring and task age",
    )
    log_level: str = Field(default="WARNING")

    @field_validator("override_time", mode="before")
    @classmethod
    def parse_override_time(cls, v):
        if isinstance(v, str):
            parsed = parse_datetime(v)
            if parsed is None:
                raise ValueError(f"DOIST_OVERRIDE_TIME is not an ISO timestamp: {v}")
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, token: str | None = None) -> "Config":
        """Build a Config from the environment (and .env)."""
        load_dotenv()
        return cls(
            token=token or os.getenv("TODOIST_API_TOKEN", ""),
            api_url=os.getenv("DOIST_API_URL", DEFAULT_API_URL),
            default_filter=os.getenv("DOIST_DEFAULT_FILTER", DEFAULT_FILTER),
            override_time=os.getenv("DOIST_OVERRIDE_TIME") or None,
            log_level=os.getenv("DOIST_LOG_LEVEL", "WARNING"),
        )

    def now(self) -> datetime:
        return self.override_time or datetime.now(timezone.utc)

    def require_token(self) -> str:
        if not self.token:
            raise ValueError(
                "TODOIST_API_TOKEN is required. "
                "Set it in your .env file or pass --token. "
                "Find your token under Settings > Integrations > Developer in Todoist."
            )
        return self.token
