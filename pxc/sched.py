"""Snapshot schedule intervals, their text forms and policy tags."""

from __future__ import annotations

import calendar
import math
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

import yaml

SCHEDULE_SEPARATOR = ";"
NON_YAML_TYPE_SEPARATOR = "="
DAILY_TYPE = "daily"
MONTHLY_TYPE = "monthly"
WEEKLY_TYPE = "weekly"
PERIODIC_TYPE = "periodic"
RETAIN_SEPARATOR = ","
MONTHLY_RETAIN = 12
WEEKLY_RETAIN = 5
DAILY_RETAIN = 7

POLICY_TAG = "policy"
POLICY_STR_SEPARATOR = "="
POLICY_NAME_SEPARATOR = ","

_WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
_MICROSECOND = timedelta(microseconds=1)
_NANOS_PER_SECOND = 10**9
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1
_UINT32_MAX = 2**32 - 1
_POLICY_NAME = re.compile(r"[A-Za-z0-9_]+")
_SIGNED_DIGITS = re.compile(r"[+-]?[0-9]+")
_DIGITS = re.compile(r"[0-9]+")

# When set, retained intervals advance by one minute (used by tests).
_speed_up_enabled = False


def speed_up() -> None:
    """Make retained intervals advance the clock by one minute at a time."""
    global _speed_up_enabled
    _speed_up_enabled = True


def _in_speed_up() -> bool:
    return _speed_up_enabled


def _atoi(text: str) -> int:
    """Parse a signed decimal integer that fits in 64 bits."""
    if not _SIGNED_DIGITS.fullmatch(text):
        raise ValueError(f"invalid integer {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of range {text!r}")
    return value


def _with_fraction(value: int, prec: int) -> str:
    if prec == 0:
        return str(value)
    whole, frac = divmod(value, 10**prec)
    digits = f"{frac:0{prec}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def _format_nanos(ns: int) -> str:
    """Format nanoseconds the way durations are shown, e.g. ``1h0m0s``."""
    sign = "-" if ns < 0 else ""
    u = abs(ns)
    if u == 0:
        return "0s"
    if u < _NANOS_PER_SECOND:
        if u < 1000:
            text = _with_fraction(u, 0) + "ns"
        elif u < 1_000_000:
            text = _with_fraction(u, 3) + "µs"
        else:
            text = _with_fraction(u, 6) + "ms"
        return sign + text
    whole_seconds, frac = divmod(u, _NANOS_PER_SECOND)
    seconds = whole_seconds % 60
    frac_text = f"{frac:09d}".rstrip("0")
    text = f"{seconds}.{frac_text}s" if frac_text else f"{seconds}s"
    minutes = whole_seconds // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def _weekday_name(day: int) -> str:
    if 0 <= day < len(_WEEKDAY_NAMES):
        return _WEEKDAY_NAMES[day]
    return f"%!Weekday({day})"


@dataclass
class IntervalSpec:
    """Serialisable description of a schedule interval."""

    freq: str = ""
    period: int = 0
    month: int = 0
    weekday: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0

    def _to_yaml(self) -> dict[str, Any]:
        data: dict[str, Any] = {"freq": self.freq}
        for f in fields(self):
            if f.name == "freq":
                continue
            value = getattr(self, f.name)
            if value:
                data[f.name] = value
        return data


@dataclass
class RetainIntervalSpec(IntervalSpec):
    """Serialised form of an interval together with how many instances to keep."""

    retain: int = 0


class Interval(ABC):
    """A recurring point in time."""

    @abstractmethod
    def next_after(self, t: datetime) -> datetime:
        """Return the next time this interval fires after ``t``."""

    @abstractmethod
    def interval_type(self) -> str:
        """Return the frequency name of this interval."""

    @abstractmethod
    def spec(self) -> IntervalSpec:
        """Return the serialisable description of this interval."""


@dataclass(frozen=True)
class Periodic(Interval):
    """Fires every ``delta``."""

    delta: timedelta

    def next_after(self, t: datetime) -> datetime:
        return t + self.delta

    def __str__(self) -> str:
        return f"{PERIODIC_TYPE} {_format_nanos(self._nanos())}"

    def _nanos(self) -> int:
        return (self.delta // _MICROSECOND) * 1000

    def interval_type(self) -> str:
        return PERIODIC_TYPE

    def spec(self) -> IntervalSpec:
        return IntervalSpec(freq=PERIODIC_TYPE, period=self._nanos())


@dataclass(frozen=True)
class Daily(Interval):
    """Fires every day at hour:minute."""

    hour: int
    minute: int

    def next_after(self, t: datetime) -> datetime:
        h, m = t.hour, t.minute
        if h < self.hour:
            t = t + timedelta(hours=self.hour - h)
        elif h > self.hour or m >= self.minute:
            t = t + timedelta(hours=24 - h + self.hour)
        return t + timedelta(minutes=self.minute - m)

    def __str__(self) -> str:
        return f"{DAILY_TYPE} @{self.hour:02d}:{self.minute:02d}"

    def interval_type(self) -> str:
        return DAILY_TYPE

    def spec(self) -> IntervalSpec:
        return IntervalSpec(freq=DAILY_TYPE, hour=self.hour, minute=self.minute)


@dataclass(frozen=True)
class Weekly(Interval):
    """Fires every week on ``day`` (0 is Sunday) at hour:minute."""

    day: int
    hour: int
    minute: int

    def next_after(self, t: datetime) -> datetime:
        t = Daily(self.hour, self.minute).next_after(t)
        current = (t.weekday() + 1) % 7
        delta = self.day - current
        if self.day < current:
            delta += 7
        return t + timedelta(days=delta)

    def __str__(self) -> str:
        return (
            f"{WEEKLY_TYPE} {_weekday_name(self.day)}"
            f"@{self.hour:02d}:{self.minute:02d}"
        )

    def interval_type(self) -> str:
        return WEEKLY_TYPE

    def spec(self) -> IntervalSpec:
        return IntervalSpec(
            freq=WEEKLY_TYPE, weekday=self.day, hour=self.hour, minute=self.minute
        )


@dataclass(frozen=True)
class Monthly(Interval):
    """Fires every month on ``day`` at hour:minute."""

    day: int
    hour: int
    minute: int

    def next_after(self, t: datetime) -> datetime:
        t = Daily(self.hour, self.minute).next_after(t)
        if t.day > self.day:
            days_in = calendar.monthrange(t.year, t.month)[1]
            t = t + timedelta(days=days_in)
        return t

    def __str__(self) -> str:
        return f"{MONTHLY_TYPE} {self.day}@{self.hour:02d}:{self.minute:02d}"

    def interval_type(self) -> str:
        return MONTHLY_TYPE

    def spec(self) -> IntervalSpec:
        return IntervalSpec(
            freq=MONTHLY_TYPE, day=self.day, hour=self.hour, minute=self.minute
        )


@dataclass(frozen=True)
class RetainInterval(Interval):
    """An interval with the number of instances to retain."""

    interval: Interval
    retain: int = 0

    def next_after(self, t: datetime) -> datetime:
        new_time = self.interval.next_after(t)
        if _in_speed_up():
            return t + timedelta(minutes=1)
        return new_time

    def __str__(self) -> str:
        text = str(self.interval)
        if self.retain_number() > 0:
            return f"{text},keep last {self.retain_number()}"
        return text

    def interval_type(self) -> str:
        return self.interval.interval_type()

    def spec(self) -> IntervalSpec:
        return self.interval.spec()

    def retain_number(self) -> int:
        return self.retain

    def retain_interval_spec(self) -> RetainIntervalSpec:
        return RetainIntervalSpec(**asdict(self.spec()), retain=self.retain_number())


@dataclass
class PolicyTags:
    """A group of policy names."""

    names: list[str] = field(default_factory=list)

    def _verify(self) -> None:
        for name in self.names:
            if not _POLICY_NAME.search(name):
                raise ValueError(f"Invalid policy name '{name}'")

    def summary(self) -> str:
        if not self.names:
            return ""
        return f"{POLICY_TAG}={POLICY_NAME_SEPARATOR.join(self.names)}"

    def __str__(self) -> str:
        return self.summary()


def _parse_spec(spec: IntervalSpec) -> Interval:
    if spec.freq == PERIODIC_TYPE:
        return Periodic(timedelta(microseconds=spec.period // 1000))
    if spec.freq == DAILY_TYPE:
        return Daily(spec.hour, spec.minute)
    if spec.freq == WEEKLY_TYPE:
        return Weekly(spec.weekday, spec.hour, spec.minute)
    if spec.freq == MONTHLY_TYPE:
        return Monthly(spec.day or 1, spec.hour, spec.minute)
    raise ValueError("Invalid schedule spec")


def _parse_retain_spec(spec: RetainIntervalSpec) -> RetainInterval:
    return RetainInterval(_parse_spec(spec), spec.retain)


class _YamlMismatch(Exception):
    """The YAML document does not have the shape of a schedule list."""


def _yaml_int(value: Any, low: int, high: int) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise _YamlMismatch
    if isinstance(value, float):
        if not math.isfinite(value):
            raise _YamlMismatch
        value = int(value)
    if not isinstance(value, int) or not low <= value <= high:
        raise _YamlMismatch
    return value


def _yaml_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise _YamlMismatch
    return value if isinstance(value, str) else str(value)


_YAML_INT_RANGES = {
    "period": (0, _UINT64_MAX),
    "month": (_INT64_MIN, _INT64_MAX),
    "weekday": (_INT64_MIN, _INT64_MAX),
    "day": (_INT64_MIN, _INT64_MAX),
    "hour": (_INT64_MIN, _INT64_MAX),
    "minute": (_INT64_MIN, _INT64_MAX),
    "retain": (0, _UINT32_MAX),
}


def _spec_from_yaml(item: Any) -> RetainIntervalSpec:
    if item is None:
        return RetainIntervalSpec()
    if not isinstance(item, dict):
        raise _YamlMismatch
    values: dict[str, Any] = {}
    for key, value in item.items():
        if key == "freq":
            values["freq"] = _yaml_str(value)
        elif key in _YAML_INT_RANGES:
            low, high = _YAML_INT_RANGES[key]
            values[key] = _yaml_int(value, low, high)
    return RetainIntervalSpec(**values)


def _load_yaml_specs(schedule: str) -> list[RetainIntervalSpec]:
    try:
        data = yaml.safe_load(schedule)
    except yaml.YAMLError as exc:
        raise _YamlMismatch from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise _YamlMismatch
    return [_spec_from_yaml(item) for item in data]


def _parse_non_yaml_schedule(schedule: str) -> RetainIntervalSpec:
    parts = schedule.split(NON_YAML_TYPE_SEPARATOR)
    if len(parts) != 2 or not is_interval_type(parts[0]):
        raise ValueError(f"Invalid schedule specification: {schedule}")
    parser = PARSE_CLI.get(parts[0], parse_periodic)
    return parser(parts[1])


def parse_schedule(schedule: str) -> list[RetainInterval]:
    """Parse a YAML list of interval specs or a single ``type=value`` spec."""
    if schedule == "":
        return []
    try:
        specs = _load_yaml_specs(schedule)
    except _YamlMismatch:
        specs = [_parse_non_yaml_schedule(schedule)]
    return [_parse_retain_spec(s) for s in specs]


def parse_schedule_and_policies(
    schedule_string: str,
) -> tuple[list[RetainInterval], PolicyTags | None]:
    """Parse ``;``-separated schedules and policy tags.

    The policy tags are None when no policy names were given.
    """
    policies = PolicyTags()
    intervals: list[RetainInterval] = []
    for schedule in schedule_string.split(SCHEDULE_SEPARATOR):
        if schedule.startswith(POLICY_TAG):
            policy = parse_policy_tags(schedule)
            if policy is not None:
                policies.names.extend(policy.names)
        else:
            intervals.extend(parse_schedule(schedule))
    if not policies.names:
        return intervals, None
    return intervals, policies


def schedule_string_retain_inv(
    intvs: Sequence[RetainInterval], p: PolicyTags | None
) -> str:
    """Serialise retained intervals and policy tags."""
    return schedule_string([i.retain_interval_spec() for i in intvs], p)


def schedule_string(items: Sequence[RetainIntervalSpec], p: PolicyTags | None) -> str:
    """Serialise interval specs as YAML followed by the policy tags."""
    text = ""
    if items:
        text = yaml.safe_dump(
            [item._to_yaml() for item in items],
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    if p is not None:
        policy_text = str(p)
        if policy_text:
            if text:
                text += SCHEDULE_SEPARATOR
            text += policy_text
    return text


def schedule_interval_summary(
    items: Sequence[Interval], policy_tags: PolicyTags | None
) -> str:
    """Return a one-line description of the intervals."""
    return ", ".join(str(iv) for iv in items)


def schedule_summary(
    items: Sequence[RetainInterval], policy_tags: PolicyTags | None
) -> str:
    """Return a one-line description of the policy tags and intervals."""
    summary = str(policy_tags) if policy_tags is not None else ""
    if not items:
        return summary
    if summary:
        summary += SCHEDULE_SEPARATOR
    return summary + ", ".join(str(iv) for iv in items)


def _time_of_day(hhmm: str) -> tuple[int, int]:
    if hhmm == "":
        return 0, 0
    parts = hhmm.split(":")
    if len(parts) == 1:
        parts.append("0")
    if len(parts) == 2:
        try:
            h, m = _atoi(parts[0]), _atoi(parts[1])
        except ValueError:
            pass
        else:
            if 0 <= h < 24 and 0 <= m < 60:
                return h, m
    raise ValueError(f"invalid start time {hhmm}")


def _is_word_separator(ch: str) -> bool:
    if ord(ch) < 0x80:
        return not (ch.isalnum() or ch == "_")
    if ch.isalpha() or ch.isdigit():
        return False
    return ch.isspace()


def _title(text: str) -> str:
    out = []
    previous_separator = True
    for ch in text:
        out.append(ch.upper() if previous_separator else ch)
        previous_separator = _is_word_separator(ch)
    return "".join(out)


def _day_of_week(wd: str) -> int:
    day = _title(wd) or "Sunday"
    try:
        return _WEEKDAY_NAMES.index(day)
    except ValueError:
        raise ValueError(f"invalid weekday {day}") from None


def _parse_retain_number(text: str) -> tuple[RetainIntervalSpec, str]:
    spec = RetainIntervalSpec()
    parts = text.split(RETAIN_SEPARATOR)
    if len(parts) > 1:
        try:
            retain = _atoi(parts[1])
        except ValueError:
            raise ValueError(f"Invalid number: {parts[1]}") from None
        if retain <= 0:
            raise ValueError("Keep number should be greater than 0")
        spec.retain = retain % (_UINT32_MAX + 1)
    return spec, parts[0]


def _with_interval(retain: RetainIntervalSpec, interval: Interval) -> RetainIntervalSpec:
    return RetainIntervalSpec(**asdict(interval.spec()), retain=retain.retain)


def parse_periodic(text: str) -> RetainIntervalSpec:
    """Parse ``minutes[,retain]`` into a periodic spec."""
    retain, interval = _parse_retain_number(text)
    if interval == "":
        raise ValueError("Interval is missing")
    if not _DIGITS.fullmatch(interval) or int(interval) > _UINT64_MAX:
        raise ValueError(f"Invalid interval {interval}")
    try:
        delta = timedelta(minutes=int(interval))
    except OverflowError:
        raise ValueError(f"Invalid interval {interval}") from None
    return _with_interval(retain, Periodic(delta))


def _parse_daily(text: str) -> RetainIntervalSpec:
    retain, daily = _parse_retain_number(text)
    if daily == "":
        raise ValueError("Daily schedule is missing")
    h, m = _time_of_day(daily.split("@")[-1])
    return _with_interval(retain, Daily(h, m))


def _split_day_time(value: str, kind: str, original: str) -> list[str]:
    parts = value.split("@")
    if len(parts) == 1:
        parts.append("0:0")
    if len(parts) != 2:
        raise ValueError(f"Invalid {kind} spec {original}")
    return parts


def _parse_weekly(text: str) -> RetainIntervalSpec:
    retain, weekly = _parse_retain_number(text)
    if weekly == "":
        raise ValueError("Weekly schedule is missing")
    day_text, time_text = _split_day_time(weekly, "weekly", text)
    day = _day_of_week(day_text)
    h, m = _time_of_day(time_text)
    return _with_interval(retain, Weekly(day, h, m))


def _parse_monthly(text: str) -> RetainIntervalSpec:
    retain, monthly = _parse_retain_number(text)
    if monthly == "":
        raise ValueError("Monthly schedule is missing")
    day_text, time_text = _split_day_time(monthly, "monthly", text)
    try:
        day = _atoi(day_text)
    except ValueError:
        day = -1
    if not 0 <= day <= 31:
        raise ValueError(f"Invalid day of month {day_text}")
    h, m = _time_of_day(time_text)
    return _with_interval(retain, Monthly(day, h, m))


PARSE_CLI: dict[str, Callable[[str], RetainIntervalSpec]] = {
    DAILY_TYPE: _parse_daily,
    WEEKLY_TYPE: _parse_weekly,
    MONTHLY_TYPE: _parse_monthly,
}


def interval_type(interval: Interval) -> str:
    """Return the frequency word at the start of the interval's description."""
    return str(interval).split(" ")[0]


def is_interval_type(t: str) -> bool:
    """Return True if ``t`` names a known frequency."""
    return t in (PERIODIC_TYPE, DAILY_TYPE, WEEKLY_TYPE, MONTHLY_TYPE)


_DEFAULT_RETAIN = {
    DAILY_TYPE: DAILY_RETAIN,
    WEEKLY_TYPE: WEEKLY_RETAIN,
    PERIODIC_TYPE: WEEKLY_RETAIN,
    MONTHLY_TYPE: MONTHLY_RETAIN,
}


def setup_intv_with_defaults(intvs: Sequence[RetainInterval]) -> list[RetainInterval]:
    """Wrap intervals, filling in the default retain count where none is set."""
    result = []
    for intv in intvs:
        retain = intv.retain_number()
        if retain == 0:
            retain = _DEFAULT_RETAIN.get(intv.interval_type(), 0)
        result.append(RetainInterval(intv, retain))
    return result


def new_policy_tags_from_slice(policies: Sequence[str]) -> PolicyTags:
    """Create policy tags from a list of names."""
    tags = PolicyTags(list(policies))
    tags._verify()
    return tags


def new_policy_tags(policies: str) -> PolicyTags | None:
    """Create policy tags from comma-separated names; None for an empty string."""
    if policies == "":
        return None
    tags = PolicyTags(policies.split(POLICY_NAME_SEPARATOR))
    tags._verify()
    return tags


def parse_policy_tags(policy_tags_str: str) -> PolicyTags | None:
    """Parse ``policy=name1,name2``; None for an empty string."""
    if policy_tags_str == "":
        return None
    parts = policy_tags_str.split(POLICY_STR_SEPARATOR)
    if len(parts) != 2 or parts[0] != POLICY_TAG:
        raise ValueError(f"Invalid policy string {policy_tags_str}")
    return new_policy_tags(parts[1])


def same_policy_tags(p1: PolicyTags | None, p2: PolicyTags | None) -> bool:
    """Return True if both tag groups hold the same names."""
    if p1 is p2:
        return True
    if p1 is None or p2 is None or len(p1.names) != len(p2.names):
        return False
    return all(name in p2.names for name in p1.names)