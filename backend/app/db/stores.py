from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import OperatingHours, Reservation
from backend.app.services.availability import (
    ACTIVE_STATUSES,
    ExistingReservation,
    OperatingWindow,
    Weekday,
)


def to_window(row: OperatingHours) -> OperatingWindow:
    return OperatingWindow(
        weekday=row.weekday,
        start_time=row.start_time,
        end_time=row.end_time,
        active=row.active,
        label=row.notes,
        id=row.id,
    )


def to_existing(row: Reservation) -> ExistingReservation:
    return ExistingReservation(
        id=row.id,
        reservation_date=row.reservation_date,
        start_time=row.start_time,
        end_time=row.end_time,
        status=row.status,
    )


class SqlScheduleStore:
    """Read-only view over ``operating_hours`` for one session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_operating_windows(self, weekday: Weekday) -> Sequence[OperatingWindow]:
        rows = await self._session.scalars(
            select(OperatingHours)
            .where(OperatingHours.weekday == weekday, OperatingHours.active.is_(True))
            .order_by(OperatingHours.start_time)
        )
        return [to_window(row) for row in rows]


class SqlReservationStore:
    """Read-only view over confirmed/in-progress reservations for one session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_active_reservations(
        self, reservation_date: date, exclude_id: int | None = None
    ) -> Sequence[ExistingReservation]:
        query = (
            select(Reservation)
            .where(
                Reservation.reservation_date == reservation_date,
                Reservation.status.in_(sorted(ACTIVE_STATUSES)),
            )
            .order_by(Reservation.start_time, Reservation.id)
        )
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)
        rows = await self._session.scalars(query)
        return [to_existing(row) for row in rows]
