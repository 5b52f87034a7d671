import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, nullcontext
from datetime import date
from typing import NoReturn
from uuid import uuid4

from asyncpg import exceptions as asyncpg_exc
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core import redis_client as redis_module
from backend.app.core.clock import get_today
from backend.app.core.config import settings
from backend.app.db.models import MeetingType, Reservation
from backend.app.db.session import get_session
from backend.app.routers.availability import evaluate_or_422, raise_for_decision
from backend.app.routers.schemas import ReservationIn, ReservationOut, ReservationStatusIn
from backend.app.services.availability import (
    ACTIVE_STATUSES,
    CandidateReservation,
    Conflict,
    ReservationStatus,
)
from backend.app.services.reservations import (
    client_exists,
    find_active_conflicts,
    insert_reservation,
    load_reservation,
)


logger = logging.getLogger(__name__)

router = APIRouter()

LOCKED_STATUSES = {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED}
OVERLAP_CONSTRAINT = "reservation_no_overlap"


def _hold_key(reservation_date: date) -> str:
    return f"hold:reservations:{reservation_date.isoformat()}"


@asynccontextmanager
async def _date_hold(reservation_date: date) -> AsyncIterator[None]:
    """Serialise check-then-write for one calendar date across workers."""
    if redis_module.redis_client is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Redis unavailable")

    hold_key = _hold_key(reservation_date)
    hold_id = str(uuid4())
    acquired = await redis_module.redis_client.set(
        hold_key,
        hold_id,
        nx=True,
        px=settings.HOLD_TTL_SECONDS * 1000,
    )
    if not acquired:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Date temporarily held by another request")

    try:
        yield
    finally:
        # Past the TTL the key may belong to another request; leave it alone then.
        if await redis_module.redis_client.get(hold_key) == hold_id:
            await redis_module.redis_client.delete(hold_key)
        else:
            logger.warning("Hold on %s expired before release", reservation_date)


def _raise_for_db_error(exc: DBAPIError) -> NoReturn:
    orig = getattr(exc, "orig", exc)
    cause = getattr(orig, "__cause__", None)
    message = str(orig)
    overlap_errors = (asyncpg_exc.ExclusionViolationError, asyncpg_exc.UniqueViolationError)
    if isinstance(orig, overlap_errors) or isinstance(cause, overlap_errors) or OVERLAP_CONSTRAINT in message:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Slot already booked") from exc
    logger.exception("Database error while writing reservation")
    raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error") from exc


def _candidate(payload: ReservationIn) -> CandidateReservation:
    return CandidateReservation(
        reservation_date=payload.reservation_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        party_size=payload.party_size,
    )


async def _get_or_404(session: AsyncSession, reservation_id: int) -> Reservation:
    reservation = await session.get(Reservation, reservation_id)
    if reservation is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


@router.get("/reservations", response_model=list[ReservationOut])
async def list_reservations(
    date_from: date | None = None,
    date_to: date | None = None,
    status_filter: ReservationStatus | None = Query(default=None, alias="status"),
    meeting_type: MeetingType | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[Reservation]:
    query = select(Reservation)
    if date_from is not None:
        query = query.where(Reservation.reservation_date >= date_from)
    if date_to is not None:
        query = query.where(Reservation.reservation_date <= date_to)
    if status_filter is not None:
        query = query.where(Reservation.status == status_filter)
    if meeting_type is not None:
        query = query.where(Reservation.meeting_type == meeting_type)
    query = query.order_by(Reservation.reservation_date.desc(), Reservation.start_time.desc())
    return list(await session.scalars(query))


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
async def get_reservation(reservation_id: int, session: AsyncSession = Depends(get_session)) -> Reservation:
    return await _get_or_404(session, reservation_id)


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationIn,
    session: AsyncSession = Depends(get_session),
    today: date = Depends(get_today),
) -> Reservation:
    async with _date_hold(payload.reservation_date):
        try:
            async with session.begin():
                if not await client_exists(session, payload.client_id):
                    raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Client not found")

                raise_for_decision(await evaluate_or_422(session, _candidate(payload), today=today))

                reservation_id = await insert_reservation(
                    session,
                    client_id=payload.client_id,
                    reservation_date=payload.reservation_date,
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    party_size=payload.party_size,
                    meeting_type=payload.meeting_type,
                    reason=payload.reason,
                    notes=payload.notes,
                    price=payload.price,
                )
        except DBAPIError as exc:
            _raise_for_db_error(exc)

    return await load_reservation(session, reservation_id)


@router.put("/reservations/{reservation_id}", response_model=ReservationOut)
async def update_reservation(
    reservation_id: int,
    payload: ReservationIn,
    session: AsyncSession = Depends(get_session),
    today: date = Depends(get_today),
) -> Reservation:
    reservation = await _get_or_404(session, reservation_id)
    if reservation.status in LOCKED_STATUSES:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail="Completed or cancelled reservations cannot be edited",
        )
    if not await client_exists(session, payload.client_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Client not found")

    async with _date_hold(payload.reservation_date):
        decision = await evaluate_or_422(session, _candidate(payload), today=today, exclude_id=reservation_id)
        raise_for_decision(decision)

        for field, value in payload.model_dump().items():
            setattr(reservation, field, value)
        try:
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            _raise_for_db_error(exc)

    logger.info("Reservation %d updated", reservation_id)
    return await load_reservation(session, reservation_id)


@router.patch("/reservations/{reservation_id}/status", response_model=ReservationOut)
async def change_status(
    reservation_id: int,
    payload: ReservationStatusIn,
    session: AsyncSession = Depends(get_session),
) -> Reservation:
    reservation = await _get_or_404(session, reservation_id)
    activating = payload.status in ACTIVE_STATUSES and reservation.status not in ACTIVE_STATUSES

    hold = _date_hold(reservation.reservation_date) if activating else nullcontext()
    async with hold:
        if activating:
            conflicts = await find_active_conflicts(session, reservation)
            if conflicts:
                raise_for_decision(Conflict(conflicts=conflicts))

        reservation.status = payload.status
        try:
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            _raise_for_db_error(exc)

    logger.info("Reservation %d moved to %s", reservation_id, payload.status.value)
    return await load_reservation(session, reservation_id)


@router.delete("/reservations/{reservation_id}", response_model=ReservationOut)
async def cancel_reservation(reservation_id: int, session: AsyncSession = Depends(get_session)) -> Reservation:
    # Soft delete: the row stays for history.
    reservation = await _get_or_404(session, reservation_id)
    reservation.status = ReservationStatus.CANCELLED
    await session.commit()
    logger.info("Reservation %d cancelled", reservation_id)
    return await load_reservation(session, reservation_id)
