from datetime import date, time

import pytest

from backend.app.services.availability import (
    Available,
    CandidateReservation,
    CapacityExceeded,
    Closed,
    Conflict,
    ContainmentPolicy,
    ExistingReservation,
    InvalidRange,
    MalformedInputError,
    OperatingWindow,
    OutsideOperatingHours,
    PastDate,
    ReservationStatus,
    Weekday,
    check_availability,
    check_capacity,
    intervals_overlap,
    parse_wall_time,
    resolve_availability,
    weekday_for,
)
from backend.tests.constants import BOOKING_DAY, TODAY


MONDAY = BOOKING_DAY

EVENING = OperatingWindow(weekday=Weekday.MONDAY, start_time=time(19), end_time=time(23), label="Evening")


def booked(res_id, start, end, status=ReservationStatus.CONFIRMED, day=MONDAY):
    return ExistingReservation(
        id=res_id,
        reservation_date=day,
        start_time=parse_wall_time(start),
        end_time=parse_wall_time(end),
        status=status,
    )


def check(start, end, *, day=MONDAY, windows=(EVENING,), reservations=(), **kwargs):
    candidate = CandidateReservation(reservation_date=day, start_time=start, end_time=end, party_size=4)
    return check_availability(candidate, windows, reservations, today=TODAY, **kwargs)


class TestPreconditions:
    @pytest.mark.parametrize("start,end", [("20:00", "20:00"), ("21:00", "20:00")])
    def test_non_positive_range_is_invalid(self, start, end):
        assert isinstance(check(start, end), InvalidRange)

    def test_invalid_range_wins_over_past_date(self):
        assert isinstance(check("21:00", "20:00", day=date(2020, 1, 6)), InvalidRange)

    def test_past_date_is_rejected(self):
        assert isinstance(check("20:00", "21:00", day=date(2025, 3, 2)), PastDate)

    def test_today_is_bookable(self):
        assert isinstance(check("20:00", "21:00", day=TODAY), Available)

    @pytest.mark.parametrize("value", ["25:00", "20:61", "eight", "", None, 2000])
    def test_malformed_time_raises(self, value):
        with pytest.raises(MalformedInputError):
            check(value, "21:00")

    def test_malformed_date_raises(self):
        with pytest.raises(MalformedInputError):
            check("20:00", "21:00", day="2025-13-01")


class TestOperatingHours:
    def test_no_window_for_weekday_is_closed(self):
        tuesday = date(2025, 3, 11)
        decision = check("20:00", "21:00", day=tuesday)
        assert decision == Closed(weekday=Weekday.TUESDAY)

    def test_inactive_window_counts_as_closed(self):
        inactive = OperatingWindow(weekday=Weekday.MONDAY, start_time=time(19), end_time=time(23), active=False)
        assert isinstance(check("20:00", "21:00", windows=[inactive]), Closed)

    def test_exact_window_bounds_are_contained(self):
        assert isinstance(check("19:00:00", "23:00:00"), Available)

    def test_starting_before_opening_is_outside(self):
        decision = check("18:00", "19:30")
        assert isinstance(decision, OutsideOperatingHours)
        assert decision.windows == (EVENING,)
        assert decision.weekday is Weekday.MONDAY

    def test_running_past_closing_is_outside(self):
        assert isinstance(check("22:30", "23:30"), OutsideOperatingHours)

    def test_strict_policy_rejects_span_across_two_windows(self):
        split = [
            OperatingWindow(weekday=Weekday.MONDAY, start_time=time(12), end_time=time(15)),
            OperatingWindow(weekday=Weekday.MONDAY, start_time=time(15), end_time=time(18)),
        ]
        assert isinstance(check("14:00", "16:00", windows=split), OutsideOperatingHours)
        assert isinstance(
            check("14:00", "16:00", windows=split, policy=ContainmentPolicy.UNION), Available
        )

    def test_union_policy_does_not_bridge_a_gap(self):
        gapped = [
            OperatingWindow(weekday=Weekday.MONDAY, start_time=time(12), end_time=time(15)),
            OperatingWindow(weekday=Weekday.MONDAY, start_time=time(19), end_time=time(23)),
        ]
        decision = check("14:00", "20:00", windows=gapped, policy=ContainmentPolicy.UNION)
        assert isinstance(decision, OutsideOperatingHours)
        assert [w.start_time for w in decision.windows] == [time(12), time(19)]

    def test_windows_for_other_days_are_ignored(self):
        friday = OperatingWindow(weekday=Weekday.FRIDAY, start_time=time(10), end_time=time(23))
        assert isinstance(check("12:00", "13:00", windows=[EVENING, friday]), OutsideOperatingHours)


class TestOverlap:
    def test_back_to_back_intervals_do_not_overlap(self):
        assert not intervals_overlap(time(10), time(11), time(11), time(12))
        assert not intervals_overlap(time(11), time(12), time(10), time(11))

    def test_partial_overlap(self):
        assert intervals_overlap(time(10), time(11), time(10, 30), time(11, 30))

    def test_containment_overlaps_both_ways(self):
        assert intervals_overlap(time(10), time(12), time(10, 30), time(11, 30))
        assert intervals_overlap(time(10, 30), time(11, 30), time(10), time(12))

    def test_conflict_lists_overlapping_reservations_in_start_order(self):
        existing = [booked(7, "21:00", "22:00"), booked(3, "19:30", "20:30"), booked(9, "22:00", "23:00")]
        decision = check("20:00", "21:30", reservations=existing)
        assert isinstance(decision, Conflict)
        assert [r.id for r in decision.conflicts] == [3, 7]

    @pytest.mark.parametrize(
        "status",
        [
            ReservationStatus.PENDING,
            ReservationStatus.COMPLETED,
            ReservationStatus.CANCELLED,
            ReservationStatus.NO_SHOW,
        ],
    )
    def test_inactive_statuses_never_block(self, status):
        assert isinstance(check("20:00", "21:00", reservations=[booked(1, "20:00", "21:00", status)]), Available)

    def test_in_progress_blocks(self):
        existing = [booked(1, "20:00", "21:00", ReservationStatus.IN_PROGRESS)]
        assert isinstance(check("20:30", "21:30", reservations=existing), Conflict)

    def test_reservations_on_other_dates_are_ignored(self):
        existing = [booked(1, "20:00", "21:00", day=date(2025, 3, 17))]
        assert isinstance(check("20:00", "21:00", reservations=existing), Available)

    def test_excluded_reservation_does_not_conflict_with_itself(self):
        existing = [booked(5, "20:00", "21:00")]
        assert isinstance(check("20:00", "21:00", reservations=existing, exclude_id=5), Available)

    def test_candidate_exclude_id_is_honoured(self):
        existing = [booked(5, "20:00", "21:00")]
        candidate = CandidateReservation(MONDAY, "20:00", "21:00", party_size=2, exclude_id=5)
        assert isinstance(check_availability(candidate, [EVENING], existing, today=TODAY), Available)


def test_weekday_is_sunday_first():
    assert weekday_for(date(2025, 3, 9)) is Weekday.SUNDAY
    assert weekday_for(date(2025, 3, 10)) is Weekday.MONDAY
    assert weekday_for(date(2025, 3, 15)) is Weekday.SATURDAY


def test_parse_wall_time_normalises_to_seconds():
    assert parse_wall_time("9:05") == time(9, 5)
    assert parse_wall_time("21:30:15") == time(21, 30, 15)
    assert parse_wall_time(time(21, 30, 15, 999)) == time(21, 30, 15)


def test_repeated_checks_are_identical():
    existing = [booked(1, "20:00", "21:00")]
    assert check("20:30", "21:30", reservations=existing) == check("20:30", "21:30", reservations=existing)


def test_monday_evening_scenario():
    existing = [booked(1, "20:00", "21:00")]
    assert isinstance(check("20:30", "21:30", reservations=existing), Conflict)
    assert isinstance(check("21:00", "22:00", reservations=existing), Available)
    assert isinstance(check("18:00", "19:30", reservations=existing), OutsideOperatingHours)


def test_capacity_gate():
    assert check_capacity(30, 30) is None
    assert check_capacity(31, 30) == CapacityExceeded(max_capacity=30)


class _Windows:
    def __init__(self, windows):
        self.windows = windows
        self.calls = []

    async def get_operating_windows(self, weekday):
        self.calls.append(weekday)
        return [w for w in self.windows if w.weekday == weekday]


class _Bookings:
    def __init__(self, reservations):
        self.reservations = reservations
        self.calls = []

    async def get_active_reservations(self, reservation_date, exclude_id=None):
        self.calls.append((reservation_date, exclude_id))
        # Deliberately unfiltered: the resolver must cope with every status.
        return self.reservations


@pytest.mark.asyncio
async def test_resolve_availability_queries_stores_for_the_candidate_day():
    schedules = _Windows([EVENING])
    bookings = _Bookings([booked(1, "20:00", "21:00"), booked(2, "21:00", "22:00", ReservationStatus.CANCELLED)])
    candidate = CandidateReservation(MONDAY, "21:00", "22:00", party_size=2)

    decision = await resolve_availability(candidate, schedules=schedules, reservations=bookings, today=TODAY)

    assert isinstance(decision, Available)
    assert schedules.calls == [Weekday.MONDAY]
    assert bookings.calls == [(MONDAY, None)]


@pytest.mark.asyncio
async def test_resolve_availability_skips_stores_for_past_dates():
    schedules = _Windows([EVENING])
    bookings = _Bookings([])
    candidate = CandidateReservation(date(2025, 3, 1), "20:00", "21:00")

    decision = await resolve_availability(candidate, schedules=schedules, reservations=bookings, today=TODAY)

    assert isinstance(decision, PastDate)
    assert schedules.calls == []
    assert bookings.calls == []
