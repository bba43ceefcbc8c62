"""
Request and response contracts around the availability engine.

Field names are camelCase on the wire and snake_case in Python.
"""

from datetime import date, datetime, time
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic.alias_generators import to_camel

from ..domain.models import AvailabilityQuery, AvailabilityResult, DayRun, UnknownDayPolicy, parse_weekdays


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AvailabilityRequest(_CamelModel):
    """Structured scheduling request, as received from a caller."""
    search_range_start: date
    search_range_end: date
    daily_open_time: time
    daily_close_time: time
    min_duration_minutes: int
    required_consecutive_days: int = 1
    allowed_weekdays: List[Union[int, str]] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    timezone: str = "UTC"
    result_limit: Optional[int] = None
    unknown_day_policy: UnknownDayPolicy = UnknownDayPolicy.FREE
    skip_excluded_weekdays: bool = True

    def to_query(self) -> AvailabilityQuery:
        """
        Build the engine query.

        Raises:
            InvalidQuery: If the constraints are malformed
        """
        return AvailabilityQuery(
            search_range_start=self.search_range_start,
            search_range_end=self.search_range_end,
            daily_open_time=self.daily_open_time,
            daily_close_time=self.daily_close_time,
            min_duration_minutes=self.min_duration_minutes,
            required_consecutive_days=self.required_consecutive_days,
            allowed_weekdays=parse_weekdays(self.allowed_weekdays),
            timezone=self.timezone,
            unknown_day_policy=self.unknown_day_policy,
            skip_excluded_weekdays=self.skip_excluded_weekdays,
            result_limit=self.result_limit,
        )


class FreeBlockResponse(_CamelModel):
    date: date
    start: datetime
    end: datetime
    duration_minutes: int


class DayRunResponse(_CamelModel):
    start_date: date
    end_date: date
    total_free_minutes: int
    is_multi_day: bool
    daily_blocks: List[FreeBlockResponse]

    @classmethod
    def from_run(cls, run: DayRun) -> "DayRunResponse":
        return cls(
            start_date=run.start_date,
            end_date=run.end_date,
            total_free_minutes=run.total_free_minutes(),
            is_multi_day=run.is_multi_day,
            daily_blocks=[
                FreeBlockResponse(
                    date=block.date,
                    start=block.start,
                    end=block.end,
                    duration_minutes=block.duration_minutes(),
                )
                for day in run.days
                for block in day.blocks
            ],
        )


class AvailabilityResponse(RootModel[List[DayRunResponse]]):
    """Ordered candidate runs. An empty list means no availability, never an error."""

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityResponse":
        return cls([DayRunResponse.from_run(run) for run in result.runs])

    def to_json_data(self) -> list:
        return self.model_dump(mode="json", by_alias=True)
