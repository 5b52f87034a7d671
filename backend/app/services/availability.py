"""Reservation availability resolution.

Decides whether a candidate reservation can be booked given the venue's
operating windows for the weekday and the reservations already on the books
for that date. Business outcomes are returned as ``Decision`` values; only
malformed input raises.
"""
from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import ClassVar, Protocol, Union


class Weekday(str, enum.Enum):
    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"


# date.weekday() is Monday=0; index the enum Sunday-first.
_WEEKDAYS = list(Weekday)

# Display/listing order used by the schedule endpoints.
WEEK_ORDER = _WEEKDAYS[1:] + _WEEKDAYS[:1]


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


ACTIVE_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS})


class ContainmentPolicy(str, enum.Enum):
    STRICT = "strict"
    UNION = "union"


class MalformedInputError(ValueError):
    """A time or date reached the resolver in a shape it cannot compare."""


_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


def parse_wall_time(value: time | str) -> time:
    """Normalise a wall-clock value to a second-precision ``time``."""
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if isinstance(value, str):
        match = _TIME_RE.match(value.strip())
        if match:
            hour, minute, second = match.groups()
            return time(int(hour), int(minute), int(second or 0))
    raise MalformedInputError(f"Invalid wall-clock time: {value!r}")


def parse_calendar_date(value: date | str) -> date:
    if isinstance(value, datetime):
        raise MalformedInputError(f"Expected a calendar date, got a datetime: {value!r}")
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise MalformedInputError(f"Invalid calendar date: {value!r}")


def weekday_for(day: date) -> Weekday:
    return _WEEKDAYS[(day.weekday() + 1) % 7]


def intervals_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end) share at least one instant."""
    return a_start < b_end and a_end > b_start


@dataclass(frozen=True)
class OperatingWindow:
    weekday: Weekday
    start_time: time
    end_time: time
    active: bool = True
    label: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class ExistingReservation:
    id: int
    reservation_date: date
    start_time: time
    end_time: time
    status: ReservationStatus


@dataclass(frozen=True)
class CandidateReservation:
    reservation_date: date | str
    start_time: time | str
    end_time: time | str
    party_size: int = 1
    exclude_id: int | None = None


@dataclass(frozen=True)
class Available:
    kind: ClassVar[str] = "available"


@dataclass(frozen=True)
class InvalidRange:
    kind: ClassVar[str] = "invalid_range"


@dataclass(frozen=True)
class PastDate:
    kind: ClassVar[str] = "past_date"


@dataclass(frozen=True)
class Closed:
    weekday: Weekday
    kind: ClassVar[str] = "closed"


@dataclass(frozen=True)
class OutsideOperatingHours:
    weekday: Weekday
    windows: tuple[OperatingWindow, ...]
    kind: ClassVar[str] = "outside_operating_hours"


@dataclass(frozen=True)
class Conflict:
    conflicts: tuple[ExistingReservation, ...]
    kind: ClassVar[str] = "conflict"


@dataclass(frozen=True)
class CapacityExceeded:
    max_capacity: int
    kind: ClassVar[str] = "capacity_exceeded"


Decision = Union[Available, InvalidRange, PastDate, Closed, OutsideOperatingHours, Conflict]


class ScheduleStore(Protocol):
    async def get_operating_windows(self, weekday: Weekday) -> Sequence[OperatingWindow]:
        ...


class ReservationStore(Protocol):
    async def get_active_reservations(
        self, reservation_date: date, exclude_id: int | None = None
    ) -> Sequence[ExistingReservation]:
        ...


@dataclass(frozen=True)
class _Slot:
    day: date
    start: time
    end: time


def _normalise(candidate: CandidateReservation) -> _Slot:
    return _Slot(
        day=parse_calendar_date(candidate.reservation_date),
        start=parse_wall_time(candidate.start_time),
        end=parse_wall_time(candidate.end_time),
    )


def _precondition_failure(slot: _Slot, today: date) -> Decision | None:
    if slot.end <= slot.start:
        return InvalidRange()
    if slot.day < today:
        return PastDate()
    return None


def _is_contained(slot: _Slot, windows: Sequence[OperatingWindow], policy: ContainmentPolicy) -> bool:
    if policy is ContainmentPolicy.STRICT:
        return any(w.start_time <= slot.start and slot.end <= w.end_time for w in windows)

    # Union: merge the (already sorted) windows, then look for a single merged span.
    merged: list[list[time]] = []
    for window in windows:
        if merged and window.start_time <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], window.end_time)
        else:
            merged.append([window.start_time, window.end_time])
    return any(start <= slot.start and slot.end <= end for start, end in merged)


def find_conflicts(
    slot_day: date,
    start: time,
    end: time,
    reservations: Iterable[ExistingReservation],
    exclude_id: int | None = None,
) -> tuple[ExistingReservation, ...]:
    """Active reservations on ``slot_day`` whose interval overlaps [start, end)."""
    hits = [
        r
        for r in reservations
        if r.reservation_date == slot_day
        and r.status in ACTIVE_STATUSES
        and (exclude_id is None or r.id != exclude_id)
        and intervals_overlap(start, end, parse_wall_time(r.start_time), parse_wall_time(r.end_time))
    ]
    return tuple(sorted(hits, key=lambda r: (parse_wall_time(r.start_time), r.id)))


def check_availability(
    candidate: CandidateReservation,
    windows: Iterable[OperatingWindow],
    reservations: Iterable[ExistingReservation],
    *,
    today: date,
    exclude_id: int | None = None,
    policy: ContainmentPolicy = ContainmentPolicy.STRICT,
) -> Decision:
    """Decide whether ``candidate`` can be booked.

    ``windows`` may hold any weekday; only active windows for the candidate's
    weekday are considered. ``reservations`` may hold any status; only
    confirmed and in-progress bookings on the candidate's date block it.
    ``exclude_id`` (or ``candidate.exclude_id``) names the reservation being
    edited so it never conflicts with itself.
    """
    slot = _normalise(candidate)
    failure = _precondition_failure(slot, today)
    if failure is not None:
        return failure

    weekday = weekday_for(slot.day)
    day_windows = sorted(
        (
            OperatingWindow(
                weekday=w.weekday,
                start_time=parse_wall_time(w.start_time),
                end_time=parse_wall_time(w.end_time),
                active=w.active,
                label=w.label,
                id=w.id,
            )
            for w in windows
            if w.active and w.weekday == weekday
        ),
        key=lambda w: (w.start_time, w.end_time),
    )
    if not day_windows:
        return Closed(weekday=weekday)

    if not _is_contained(slot, day_windows, ContainmentPolicy(policy)):
        return OutsideOperatingHours(weekday=weekday, windows=tuple(day_windows))

    skip = exclude_id if exclude_id is not None else candidate.exclude_id
    conflicts = find_conflicts(slot.day, slot.start, slot.end, reservations, skip)
    if conflicts:
        return Conflict(conflicts=conflicts)
    return Available()


async def resolve_availability(
    candidate: CandidateReservation,
    *,
    schedules: ScheduleStore,
    reservations: ReservationStore,
    today: date,
    exclude_id: int | None = None,
    policy: ContainmentPolicy = ContainmentPolicy.STRICT,
) -> Decision:
    """Fetch the day's windows and bookings from the stores, then decide."""
    slot = _normalise(candidate)
    failure = _precondition_failure(slot, today)
    if failure is not None:
        return failure

    skip = exclude_id if exclude_id is not None else candidate.exclude_id
    windows = await schedules.get_operating_windows(weekday_for(slot.day))
    existing = await reservations.get_active_reservations(slot.day, skip)
    return check_availability(
        candidate,
        windows,
        existing,
        today=today,
        exclude_id=skip,
        policy=policy,
    )


def check_capacity(party_size: int, max_capacity: int) -> CapacityExceeded | None:
    if party_size > max_capacity:
        return CapacityExceeded(max_capacity=max_capacity)
    return None
