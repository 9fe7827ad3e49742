"""Schedule data model and schedule.json loading."""

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

# Weekday tokens understood by the trigger expressions
WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_TIME_RE = re.compile(r"(\d{2}):(\d{2})")


class ScheduleFileError(Exception):
    """The schedule file is missing or structurally malformed."""


class ScheduleError(ValueError):
    """A single schedule, day or event has invalid content."""


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD calendar date."""
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise ScheduleError(f"Invalid date (expected YYYY-MM-DD): {value!r}")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as e:
        raise ScheduleError(f"Invalid date: {value!r}: {e}") from None


def parse_time(value: str) -> tuple[int, int]:
    """Parse an HH:MM 24-hour time into (hour, minute)."""
    match = _TIME_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise ScheduleError(f"Invalid time (expected HH:MM): {value!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23:
        raise ScheduleError(f"Could not parse hour: {match.group(1)}")
    if minute > 59:
        raise ScheduleError(f"Could not parse minute: {match.group(2)}")
    return hour, minute


def weekday_token(name: str) -> str:
    """Return the three-letter weekday token for a day name ("Monday" -> "MON")."""
    token = name[:3].upper()
    if token not in WEEKDAYS:
        raise ScheduleError(f"Invalid weekday name: {name!r}")
    return token


@dataclass(frozen=True)
class Event:
    """A sound played at a time of day."""
    time: str
    sound: str

    def hour_minute(self) -> tuple[int, int]:
        return parse_time(self.time)


@dataclass(frozen=True)
class Day:
    """Events for one weekday."""
    name: str
    events: tuple[Event, ...] = ()

    @property
    def token(self) -> str:
        return weekday_token(self.name)


@dataclass(frozen=True)
class Schedule:
    """
    A named campaign active inside [starts, ends].

    Dates stay as the raw strings from the file; they are parsed during
    compilation so a bad date only disables this schedule.
    """
    name: str
    starts: str
    ends: str
    days: tuple[Day, ...] = field(default_factory=tuple)

    def window(self) -> tuple[date, date]:
        try:
            starts = parse_date(self.starts)
        except ScheduleError as e:
            raise ScheduleError(f"Could not parse start date: {e}") from None
        try:
            ends = parse_date(self.ends)
        except ScheduleError as e:
            raise ScheduleError(f"Could not parse end date: {e}") from None
        return starts, ends

    def is_active(self, now: datetime) -> bool:
        """True if now falls on or between the start and end dates (both inclusive)."""
        starts, ends = self.window()
        return starts <= now.date() <= ends


def _require(obj: dict, key: str, kind: type, where: str):
    if not isinstance(obj, dict):
        raise ScheduleFileError(f"{where} must be an object")
    if key not in obj:
        raise ScheduleFileError(f"{where} is missing '{key}'")
    value = obj[key]
    if not isinstance(value, kind):
        raise ScheduleFileError(f"{where}.{key} must be a {kind.__name__}")
    return value


def schedules_from_data(data) -> list[Schedule]:
    """Build Schedule objects from decoded schedule.json content."""
    if not isinstance(data, list):
        raise ScheduleFileError("schedule.json must contain a list of schedules")

    schedules = []
    for i, raw in enumerate(data):
        where = f"schedule[{i}]"
        days = []
        for j, raw_day in enumerate(_require(raw, "days", list, where)):
            day_where = f"{where}.days[{j}]"
            events = tuple(
                Event(
                    time=_require(raw_event, "time", str, f"{day_where}.events[{k}]"),
                    sound=_require(raw_event, "sound", str, f"{day_where}.events[{k}]"),
                )
                for k, raw_event in enumerate(_require(raw_day, "events", list, day_where))
            )
            days.append(Day(name=_require(raw_day, "name", str, day_where), events=events))

        schedules.append(Schedule(
            name=_require(raw, "name", str, where),
            starts=_require(raw, "starts", str, where),
            ends=_require(raw, "ends", str, where),
            days=tuple(days),
        ))
    return schedules


def load_schedules(path: Path) -> list[Schedule]:
    """Load schedule.json. Raises ScheduleFileError if unreadable or malformed."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except OSError as e:
        raise ScheduleFileError(f"Could not open {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ScheduleFileError(f"Could not parse {path}: {e}") from e

    return schedules_from_data(data)
