from __future__ import annotations

import json
import os
from datetime import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from core.errors import ConfigurationError

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DEFAULT_CONFIG_PATH = "config.json"

NOTIFIER_WEBHOOK = "notifier.webhook"
NOTIFIER_NULL = "notifier.null"


class Window(BaseModel):
    """A weekly recording window; ``day_of_week`` follows ``datetime.weekday()``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    day_of_week: int = Field(validation_alias=AliasChoices("dayOfWeek", "day_of_week"), ge=0, le=6)
    start: time = Field(validation_alias=AliasChoices("startTime", "start"))
    end: time = Field(validation_alias=AliasChoices("endTime", "end"))

    @field_validator("day_of_week", mode="before")
    @classmethod
    def _parse_day(cls, value: Union[str, int]) -> int:
        if isinstance(value, str):
            try:
                return WEEKDAYS.index(value.strip().lower())
            except ValueError:
                raise ValueError(f"unknown weekday {value!r}") from None
        return value

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_time(cls, value: Union[str, time]) -> time:
        if isinstance(value, str):
            hours, sep, minutes = value.strip().partition(":")
            if not sep or not hours.isdigit() or not minutes.isdigit():
                raise ValueError(f"expected HH:MM, got {value!r}")
            return time(int(hours), int(minutes))
        return value

    @model_validator(mode="after")
    def _start_before_end(self) -> "Window":
        if self.start >= self.end:
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self

    @property
    def day_name(self) -> str:
        return WEEKDAYS[self.day_of_week].capitalize()


class Source(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    capture_url: str = Field(validation_alias=AliasChoices("captureURL", "url", "capture_url"))
    windows: List[Window] = Field(
        default_factory=list, validation_alias=AliasChoices("windows", "schedule")
    )

    @field_validator("name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        # used verbatim as a directory and file name prefix
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError(f"source name {value!r} is not a valid directory name")
        return value


class RecorderSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tick_seconds: float = Field(5.0, gt=0)
    trigger_tolerance_seconds: float = Field(5.0, gt=0)
    grace_seconds: float = Field(3.0, ge=0)
    attempts: int = Field(3, ge=1)
    ffmpeg_bin: str = "ffmpeg"
    stderr_tail_lines: int = Field(200, ge=1)
    retry_remaining_only: bool = False
    notify_timeout_seconds: float = Field(10.0, gt=0)
    cancel_grace_seconds: float = Field(5.0, ge=0)

    @model_validator(mode="after")
    def _tolerance_covers_tick(self) -> "RecorderSettings":
        # a shorter tolerance would let an opening fall between two ticks
        if self.trigger_tolerance_seconds < self.tick_seconds:
            raise ValueError("trigger_tolerance_seconds must be >= tick_seconds")
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sources: List[Source] = Field(
        default_factory=list, validation_alias=AliasChoices("sources", "shows")
    )
    output_directory: Path = Field(
        Path("recordings"), validation_alias=AliasChoices("outputDirectory", "output_directory")
    )
    webhook_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("webhookUrl", "slackWebhookUrl", "webhook_url")
    )
    recorder: RecorderSettings = Field(default_factory=RecorderSettings)
    plugins: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _unique_names(self) -> "AppConfig":
        seen = set()
        for source in self.sources:
            if source.name in seen:
                raise ValueError(f"duplicate source name {source.name!r}")
            seen.add(source.name)
            # one recording per (source, opening); the output file is named after it
            openings = set()
            for window in source.windows:
                opening = (window.day_of_week, window.start)
                if opening in openings:
                    raise ValueError(
                        f"source {source.name!r} has two windows opening "
                        f"{window.day_name} {window.start:%H:%M}"
                    )
                openings.add(opening)
        return self

    def plugin_target(self, role: str) -> str:
        if role in self.plugins:
            return self.plugins[role]
        if role == "notifier":
            return NOTIFIER_WEBHOOK if self.webhook_url else NOTIFIER_NULL
        raise KeyError(role)


def config_path_from_env() -> Path:
    return Path(os.getenv("SHOWREC_CONFIG", DEFAULT_CONFIG_PATH))


def parse_config(payload: dict) -> AppConfig:
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Read and validate the JSON configuration document.

    Raises :class:`ConfigurationError` for unreadable files, invalid JSON and
    schema violations alike.
    """
    path = Path(path) if path is not None else config_path_from_env()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"configuration {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"configuration {path} must be a JSON object")
    return parse_config(payload)


__all__ = [
    "AppConfig",
    "RecorderSettings",
    "Source",
    "Window",
    "WEEKDAYS",
    "load_config",
    "parse_config",
    "config_path_from_env",
]
