"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from pathlib import Path
from typing import List, Optional, Sequence

import pendulum
import yaml
from pendulum.tz.exceptions import InvalidTimezone
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import UnknownDayPolicy, parse_weekdays


class SearchDefaults(BaseModel):
    """Default search constraints, overridable per CLI call."""
    open_time: time = time(9, 0)
    close_time: time = time(17, 0)
    duration_minutes: int = 60
    consecutive_days: int = 1
    allowed_weekdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    unknown_day_policy: UnknownDayPolicy = UnknownDayPolicy.FREE
    skip_excluded_weekdays: bool = True
    result_limit: Optional[int] = None
    search_days: int = 14

    @field_validator("duration_minutes", "consecutive_days", "search_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure counts and durations are positive."""
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("open_time", "close_time", mode="before")
    @classmethod
    def validate_clock_time(cls, value):
        # YAML 1.1 reads an unquoted 17:00 as the sexagesimal integer 1020
        if isinstance(value, int) and not isinstance(value, bool):
            hours, minutes = divmod(value, 60)
            if not 0 <= hours <= 23:
                raise ValueError(f"Invalid time of day: {value}")
            return time(hours, minutes)
        return value

    @field_validator("result_limit")
    @classmethod
    def validate_result_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("result_limit must be greater than zero")
        return value

    @field_validator("allowed_weekdays", mode="before")
    @classmethod
    def validate_allowed_weekdays(cls, value) -> List[int]:
        """Accept weekday numbers (0=Monday) or names, deduplicated and sorted."""
        if isinstance(value, (str, int)):
            value = [value]
        weekdays = parse_weekdays(value)
        if not weekdays:
            raise ValueError("allowed_weekdays must not be empty")
        invalid = sorted(day for day in weekdays if day not in range(7))
        if invalid:
            raise ValueError(f"allowed_weekdays must be between 0 and 6, got {invalid}")
        return sorted(weekdays)

    @model_validator(mode="after")
    def validate_window_order(self) -> "SearchDefaults":
        """Ensure the daily window opens before it closes."""
        if self.close_time <= self.open_time:
            raise ValueError("close_time must be later than open_time")
        return self


class FetchConfig(BaseModel):
    """Limits for fetching calendar data."""
    max_concurrency: int = 4
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    page_size: int = 50

    @field_validator("max_concurrency", "page_size")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("timeout_seconds", "backoff_seconds", "max_backoff_seconds")
    @classmethod
    def validate_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries must not be negative")
        return value


class CalendarSource(BaseModel):
    """A calendar that can be searched, addressed by alias or id."""
    name: str  # Used as alias
    calendar_id: str  # Mailbox address, or "me"


class AppConfig(BaseModel):
    """Application configuration."""
    client_id: str = ""
    tenant_id: str = ""
    timezone: str = "Europe/Berlin"
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    calendars: List[CalendarSource] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except (InvalidTimezone, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("calendars")
    @classmethod
    def validate_calendars(cls, value: List[CalendarSource]) -> List[CalendarSource]:
        """Ensure calendar aliases and ids are unique."""
        seen_names: set[str] = set()
        seen_ids: set[str] = set()
        for calendar in value:
            name_key = calendar.name.lower()
            id_key = calendar.calendar_id.lower()
            if name_key in seen_names:
                raise ValueError(f"Duplicate calendar name detected: {calendar.name}")
            if id_key in seen_ids:
                raise ValueError(f"Duplicate calendar id detected: {calendar.calendar_id}")
            seen_names.add(name_key)
            seen_ids.add(id_key)
        return value

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"

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
            ValueError: If config is invalid
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
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def find_calendar(self, identifier: str) -> CalendarSource | None:
        """Find a calendar by alias or id."""
        key = identifier.lower()
        for calendar in self.calendars:
            if calendar.name.lower() == key or calendar.calendar_id.lower() == key:
                return calendar
        return None

    def resolve_calendar(self, identifier: str) -> str:
        """
        Resolve a calendar alias or id to a calendar id.

        Raises:
            ValueError: If identifier cannot be resolved
        """
        calendar = self.find_calendar(identifier)
        if calendar:
            return calendar.calendar_id.lower()
        if "@" in identifier or identifier.lower() == "me":
            return identifier.lower()
        raise ValueError(
            f"Unknown calendar identifier: '{identifier}'. "
            f"Use an email address, 'me' or a configured name."
        )

    def resolve_calendars(self, identifiers: Sequence[str]) -> List[str]:
        """
        Resolve multiple calendar identifiers, ensuring uniqueness.

        Without identifiers every configured calendar is used, or "me" if
        none are configured.

        Raises:
            ValueError: If any identifier is unknown
        """
        if not identifiers:
            return [c.calendar_id.lower() for c in self.calendars] or ["me"]

        resolved: List[str] = []
        unknown: List[str] = []
        for identifier in identifiers:
            try:
                calendar_id = self.resolve_calendar(identifier)
            except ValueError:
                unknown.append(identifier)
                continue
            if calendar_id not in resolved:
                resolved.append(calendar_id)

        if unknown:
            missing = ", ".join(sorted(set(unknown)))
            raise ValueError(
                f"Unknown calendar identifier(s): {missing}. "
                "Ensure they exist in the configuration or provide valid email addresses."
            )

        return resolved


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
