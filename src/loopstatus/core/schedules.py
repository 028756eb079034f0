"""
Time-of-day schedules used by the dosing settings.

A schedule is an ordered list of items, each starting at an offset (seconds
since local midnight) and lasting until the next item's offset. The last item
wraps around midnight and also covers any time before the first offset.
"""
from __future__ import annotations

import bisect
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from loopstatus.core.units import GlucoseUnit

SECONDS_PER_DAY = 24 * 60 * 60

T = TypeVar("T")


def _as_number(value: Any, name: str) -> float:
    # bool is an int subclass and never a valid reading here
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"{name} must be a number, got {type(value).__name__}")
    return float(value)


@dataclass(frozen=True)
class DoubleRange:
    """Inclusive numeric interval."""
    min_value: float
    max_value: float

    def __post_init__(self) -> None:
        if self.min_value > self.max_value:
            raise ValueError(f"min_value {self.min_value} exceeds max_value {self.max_value}")

    def converted(self, from_unit: GlucoseUnit, to_unit: GlucoseUnit) -> "DoubleRange":
        return DoubleRange(
            from_unit.convert(self.min_value, to_unit),
            from_unit.convert(self.max_value, to_unit),
        )

    def to_raw(self) -> List[float]:
        return [self.min_value, self.max_value]

    @classmethod
    def from_raw(cls, raw: Any) -> "DoubleRange":
        if not isinstance(raw, (list, tuple)) or len(raw) != 2:
            raise TypeError("range raw value must be a [min, max] pair")
        return cls(_as_number(raw[0], "min"), _as_number(raw[1], "max"))


@dataclass(frozen=True)
class ScheduleItem(Generic[T]):
    start_time: float  # seconds since local midnight
    value: T


@dataclass(frozen=True)
class RepeatingSchedule(Generic[T]):
    """Daily repeating schedule of values (basal rates, carb ratios, sensitivities...)."""
    items: Tuple[ScheduleItem[T], ...]
    time_zone: int = 0  # seconds from GMT
    unit: Optional[str] = None

    def __post_init__(self) -> None:
        items = tuple(self.items)
        object.__setattr__(self, "items", items)
        if not items:
            raise ValueError("schedule needs at least one item")
        previous = None
        for item in items:
            if not 0 <= item.start_time < SECONDS_PER_DAY:
                raise ValueError(f"start_time {item.start_time} outside of a day")
            if previous is not None and item.start_time <= previous:
                raise ValueError("schedule offsets must be strictly increasing")
            previous = item.start_time

    @property
    def tzinfo(self) -> tzinfo:
        return timezone(timedelta(seconds=self.time_zone))

    def time_of_day(self, date: datetime) -> float:
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        local = date.astimezone(self.tzinfo)
        return local.hour * 3600 + local.minute * 60 + local.second + local.microsecond / 1e6

    def item_at(self, offset: float) -> ScheduleItem[T]:
        offset = offset % SECONDS_PER_DAY
        starts = [item.start_time for item in self.items]
        index = bisect.bisect_right(starts, offset) - 1
        # before the first offset: still inside yesterday's last item
        return self.items[index] if index >= 0 else self.items[-1]

    def lookup(self, offset: float) -> T:
        return self.item_at(offset).value

    def value_at(self, date: datetime) -> T:
        return self.lookup(self.time_of_day(date))

    def map_values(self, transform: Callable[[T], Any]) -> "RepeatingSchedule":
        return RepeatingSchedule(
            items=tuple(ScheduleItem(item.start_time, transform(item.value)) for item in self.items),
            time_zone=self.time_zone,
            unit=self.unit,
        )

    def to_raw(self, encode: Callable[[T], Any] = lambda value: value) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "items": [{"startTime": item.start_time, "value": encode(item.value)} for item in self.items],
            "timeZone": self.time_zone,
        }
        if self.unit is not None:
            raw["unit"] = self.unit
        return raw

    @classmethod
    def from_raw(
        cls,
        raw: Dict[str, Any],
        decode: Callable[[Any], Any] = lambda value: _as_number(value, "value"),
    ) -> "RepeatingSchedule":
        if not isinstance(raw, dict):
            raise TypeError("schedule raw value must be a mapping")
        raw_items = raw["items"]
        if not isinstance(raw_items, list):
            raise TypeError("schedule items must be a list")
        items = tuple(
            ScheduleItem(_as_number(entry["startTime"], "startTime"), decode(entry["value"]))
            for entry in raw_items
        )
        time_zone = int(_as_number(raw.get("timeZone", 0), "timeZone"))
        unit = raw.get("unit")
        return cls(items=items, time_zone=time_zone, unit=unit if isinstance(unit, str) else None)


@dataclass(frozen=True)
class RangeSchedule:
    """Target glucose ranges by time of day, in a single glucose unit."""
    unit: GlucoseUnit
    schedule: RepeatingSchedule[DoubleRange]

    @classmethod
    def from_ranges(
        cls,
        unit: GlucoseUnit,
        entries: Sequence[Tuple[float, float, float]],
        time_zone: int = 0,
    ) -> "RangeSchedule":
        items = tuple(ScheduleItem(offset, DoubleRange(low, high)) for offset, low, high in entries)
        return cls(unit=unit, schedule=RepeatingSchedule(items=items, time_zone=time_zone))

    @property
    def items(self) -> Tuple[ScheduleItem[DoubleRange], ...]:
        return self.schedule.items

    @property
    def time_zone(self) -> int:
        return self.schedule.time_zone

    def lookup(self, offset: float) -> DoubleRange:
        return self.schedule.lookup(offset)

    def value_at(self, date: datetime) -> DoubleRange:
        return self.schedule.value_at(date)

    def replacing_ranges(self, target_range: DoubleRange, unit: GlucoseUnit) -> "RangeSchedule":
        """Every slot gets ``target_range`` (expressed in ``unit``)."""
        converted = target_range.converted(unit, self.unit)
        return RangeSchedule(unit=self.unit, schedule=self.schedule.map_values(lambda _: converted))

    def to_raw(self) -> Dict[str, Any]:
        raw = self.schedule.to_raw(lambda value: value.to_raw())
        raw["unit"] = self.unit.value
        return raw

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "RangeSchedule":
        if not isinstance(raw, dict):
            raise TypeError("range schedule raw value must be a mapping")
        unit = GlucoseUnit.from_string(raw.get("unit"))
        if unit is None:
            raise ValueError(f"unknown glucose unit {raw.get('unit')!r}")
        schedule = RepeatingSchedule.from_raw(
            {key: value for key, value in raw.items() if key != "unit"},
            decode=DoubleRange.from_raw,
        )
        return cls(unit=unit, schedule=schedule)


@dataclass(frozen=True)
class GlucoseThreshold:
    value: float
    unit: GlucoseUnit = field(default=GlucoseUnit.MG_DL)

    def value_in(self, unit: GlucoseUnit) -> float:
        return self.unit.convert(self.value, unit)

    def to_raw(self) -> Dict[str, Any]:
        return {"value": self.value, "unit": self.unit.value}

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "GlucoseThreshold":
        if not isinstance(raw, dict):
            raise TypeError("threshold raw value must be a mapping")
        unit = GlucoseUnit.from_string(raw.get("unit"))
        if unit is None:
            raise ValueError(f"unknown glucose unit {raw.get('unit')!r}")
        return cls(value=_as_number(raw["value"], "value"), unit=unit)
