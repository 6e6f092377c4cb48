"""
Configuration management using Pydantic models.

Two layers:
- ``AppConfig``: OAuth client ids and defaults, read from config.yaml.
- ``Preferences``: work hours, saved views and colours, kept as JSON
  documents in a long-lived key/value store.
"""

from __future__ import annotations

import json
import logging
import re
import datetime as dt
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .adapters.storage import KeyValueStore
from .domain.exceptions import ConfigurationError
from .domain.models import Source, ViewMode, WorkWeek

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "Europe/Oslo"

WORKWEEK_KEY = "overlay.workweek"
VIEWS_KEY = "overlay.views"
COLORS_KEY = "overlay.colors"

DEFAULT_COLORS = {Source.MICROSOFT: "#2563eb", Source.GOOGLE: "#16a34a"}

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def local_timezone_name() -> str:
    """Name of the machine's timezone, or the fallback if undetectable."""
    try:
        return pendulum.local_timezone().name
    except (RuntimeError, ValueError):
        return FALLBACK_TIMEZONE


def _clamp_hour(value: int) -> int:
    return max(0, min(23, value))


class DefaultsConfig(BaseModel):
    """Default settings for the availability view."""
    min_gap_minutes: int = 30
    work_start: int = 8
    work_end: int = 17

    @field_validator("min_gap_minutes")
    @classmethod
    def validate_min_gap(cls, value: int) -> int:
        """Ensure the minimum slot length is not negative."""
        if value < 0:
            raise ValueError("min_gap_minutes must not be negative")
        return value

    @field_validator("work_start", "work_end")
    @classmethod
    def clamp_hour(cls, v: int) -> int:
        """Clamp hours into 0-23."""
        return _clamp_hour(v)

    @model_validator(mode="after")
    def snap_hours_order(self) -> "DefaultsConfig":
        """An end before the start snaps onto the start."""
        if self.work_end < self.work_start:
            self.work_end = self.work_start
        return self

    def work_week(self) -> WorkWeek:
        return WorkWeek.uniform(self.work_start, self.work_end)


class MicrosoftConfig(BaseModel):
    client_id: str = ""
    tenant: str = "common"


class GoogleConfig(BaseModel):
    client_id: str = ""
    client_secret: str = ""


class RetryConfig(BaseModel):
    """Backoff settings for throttled requests."""
    base_seconds: float = 1.0
    cap_seconds: float = 8.0
    max_retries: Optional[int] = 10

    @model_validator(mode="after")
    def validate_bounds(self) -> "RetryConfig":
        if self.base_seconds <= 0:
            raise ValueError("retry.base_seconds must be positive")
        if self.cap_seconds < self.base_seconds:
            raise ValueError("retry.cap_seconds must not be below retry.base_seconds")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("retry.max_retries must not be negative")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    microsoft: MicrosoftConfig = Field(default_factory=MicrosoftConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    timezone: str = Field(default_factory=local_timezone_name)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    details_mode: bool = False
    inactivity_timeout_minutes: int = 45
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("inactivity_timeout_minutes")
    @classmethod
    def validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("inactivity_timeout_minutes must be greater than zero")
        return value

    def is_configured(self, source: Source) -> bool:
        if source == Source.MICROSOFT:
            return bool(self.microsoft.client_id)
        return bool(self.google.client_id)

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file is not valid YAML or fails validation
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc


class SavedView(BaseModel):
    """A named snapshot of the view configuration."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    date: dt.date
    view: ViewMode = ViewMode.DAY
    details: bool = False
    min_gap_minutes: int = 30
    work_week: List[Tuple[int, int]] = Field(default_factory=lambda: [(8, 17)] * 7)

    @field_validator("work_week")
    @classmethod
    def validate_work_week(cls, value: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        if len(value) != 7:
            raise ValueError(f"work_week needs 7 entries, got {len(value)}")
        return value

    def to_work_week(self) -> WorkWeek:
        return WorkWeek.from_pairs(self.work_week)


class Preferences:
    """
    User preferences persisted as JSON under fixed keys.

    Unreadable or invalid documents are logged and replaced by defaults;
    they never surface as errors.
    """

    def __init__(self, store: KeyValueStore, defaults: Optional[DefaultsConfig] = None):
        self.store = store
        self.defaults = defaults or DefaultsConfig()

    def _read(self, key: str):
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Malformed preference %s, using defaults: %s", key, exc)
            return None

    def _write(self, key: str, value) -> None:
        self.store.set(key, json.dumps(value))

    # Work hours ---------------------------------------------------------------

    def load_work_week(self) -> WorkWeek:
        data = self._read(WORKWEEK_KEY)
        if data is None:
            return self.defaults.work_week()

        try:
            return WorkWeek.from_pairs([(int(start), int(end)) for start, end in data])
        except (TypeError, ValueError) as exc:
            logger.warning("Invalid work hours preference, using defaults: %s", exc)
            return self.defaults.work_week()

    def save_work_week(self, work_week: WorkWeek) -> None:
        self._write(WORKWEEK_KEY, [[h.start, h.end] for h in work_week.days])

    # Saved views --------------------------------------------------------------

    def list_views(self) -> List[SavedView]:
        data = self._read(VIEWS_KEY)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Saved views preference is not a list, ignoring it")
            return []

        views: List[SavedView] = []
        for entry in data:
            try:
                views.append(SavedView.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid saved view: %s", exc)
        return views

    def save_view(self, view: SavedView) -> SavedView:
        views = [v for v in self.list_views() if v.id != view.id]
        views.append(view)
        self._write(VIEWS_KEY, [v.model_dump(mode="json") for v in views])
        return view

    def delete_view(self, view_id: str) -> bool:
        views = self.list_views()
        remaining = [v for v in views if v.id != view_id]
        if len(remaining) == len(views):
            return False
        self._write(VIEWS_KEY, [v.model_dump(mode="json") for v in remaining])
        return True

    # Colours ------------------------------------------------------------------

    def colors(self) -> Dict[Source, str]:
        colors = dict(DEFAULT_COLORS)
        data = self._read(COLORS_KEY)
        if not isinstance(data, dict):
            return colors

        for source in Source:
            value = data.get(source.value)
            if isinstance(value, str) and _HEX_COLOR.match(value):
                colors[source] = value
        return colors

    def set_color(self, source: Source, color: str) -> None:
        if not _HEX_COLOR.match(color):
            raise ValueError(f"Colour must look like #RRGGBB, got {color}")
        data = self._read(COLORS_KEY)
        if not isinstance(data, dict):
            data = {}
        data[source.value] = color
        self._write(COLORS_KEY, data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
