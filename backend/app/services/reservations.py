import logging
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.models import MAX_CAPACITY_KEY, AppSetting, Client, MeetingType, Reservation
from backend.app.db.stores import SqlReservationStore, SqlScheduleStore
from backend.app.services.availability import (
    Available,
    CandidateReservation,
    CapacityExceeded,
    ContainmentPolicy,
    Decision,
    ExistingReservation,
    check_capacity,
    find_conflicts,
    resolve_availability,
)


logger = logging.getLogger(__name__)


async def get_max_capacity(session: AsyncSession) -> int:
    """Configured party-size ceiling; the app_setting row wins over the env default."""
    raw = await session.scalar(select(AppSetting.value).where(AppSetting.key == MAX_CAPACITY_KEY))
    if raw is None:
        return settings.MAX_CAPACITY
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s setting %r; using %d", MAX_CAPACITY_KEY, raw, settings.MAX_CAPACITY)
        return settings.MAX_CAPACITY


async def evaluate_booking(
    session: AsyncSession,
    candidate: CandidateReservation,
    *,
    today: date,
    exclude_id: int | None = None,
) -> Decision | CapacityExceeded:
    """Run the availability resolver, then the capacity gate."""
    decision = await resolve_availability(
        candidate,
        schedules=SqlScheduleStore(session),
        reservations=SqlReservationStore(session),
        today=today,
        exclude_id=exclude_id,
        policy=ContainmentPolicy(settings.CONTAINMENT_POLICY),
    )
    if not isinstance(decision, Available):
        logger.info(
            "Booking rejected (%s) for %s %s-%s",
            decision.kind,
            candidate.reservation_date,
            candidate.start_time,
            candidate.end_time,
        )
        return decision

    exceeded = check_capacity(candidate.party_size, await get_max_capacity(session))
    if exceeded is not None:
        logger.info("Party of %d exceeds capacity %d", candidate.party_size, exceeded.max_capacity)
        return exceeded
    return decision


async def find_active_conflicts(session: AsyncSession, reservation: Reservation) -> tuple[ExistingReservation, ...]:
    """Overlapping active bookings for an existing reservation, ignoring itself."""
    existing = await SqlReservationStore(session).get_active_reservations(
        reservation.reservation_date, reservation.id
    )
    return find_conflicts(
        reservation.reservation_date,
        reservation.start_time,
        reservation.end_time,
        existing,
        reservation.id,
    )


async def client_exists(session: AsyncSession, client_id: int) -> bool:
    return await session.scalar(select(Client.id).where(Client.id == client_id)) is not None


async def load_reservation(session: AsyncSession, reservation_id: int) -> Reservation | None:
    """Fetch a reservation with its client, refreshing any stale identity-map copy."""
    result = await session.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def insert_reservation(
    session: AsyncSession,
    *,
    client_id: int,
    reservation_date: date,
    start_time: time,
    end_time: time,
    party_size: int,
    meeting_type: MeetingType | None,
    reason: str | None,
    notes: str | None,
    price: float | None,
) -> int:
    """Insert a pending reservation and return its id."""
    reservation = Reservation(
        client_id=client_id,
        reservation_date=reservation_date,
        start_time=start_time,
        end_time=end_time,
        party_size=party_size,
        meeting_type=meeting_type or MeetingType.BUSINESS,
        reason=reason,
        notes=notes,
        price=price or 0,
    )
    session.add(reservation)
    await session.flush()
    logger.info("Reservation %d created for %s %s-%s", reservation.id, reservation_date, start_time, end_time)
    return reservation.id
