from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import get_today
from backend.app.db.session import get_session
from backend.app.routers.schemas import AvailabilityCheckIn, AvailabilityCheckOut
from backend.app.services.availability import (
    Available,
    CandidateReservation,
    CapacityExceeded,
    Closed,
    Conflict,
    Decision,
    InvalidRange,
    MalformedInputError,
    OutsideOperatingHours,
    PastDate,
    weekday_for,
)
from backend.app.services.reservations import evaluate_booking

router = APIRouter()


def _fmt(value) -> str:
    return value.strftime("%H:%M:%S")


def decision_detail(decision: Decision | CapacityExceeded) -> dict:
    """Structured 400 payload for a rejected booking."""
    if isinstance(decision, InvalidRange):
        return {"reason": decision.kind, "message": "End time must be later than start time"}
    if isinstance(decision, PastDate):
        return {"reason": decision.kind, "message": "Reservations cannot be made for past dates"}
    if isinstance(decision, Closed):
        return {
            "reason": decision.kind,
            "message": f"No operating hours on {decision.weekday.value}",
            "weekday": decision.weekday.value,
        }
    if isinstance(decision, OutsideOperatingHours):
        return {
            "reason": decision.kind,
            "message": f"Requested time is outside operating hours for {decision.weekday.value}",
            "weekday": decision.weekday.value,
            "windows": [
                {"id": w.id, "start_time": _fmt(w.start_time), "end_time": _fmt(w.end_time), "label": w.label}
                for w in decision.windows
            ],
        }
    if isinstance(decision, Conflict):
        return {
            "reason": decision.kind,
            "message": "A reservation already exists in that time range",
            "conflicts": [
                {"id": r.id, "start_time": _fmt(r.start_time), "end_time": _fmt(r.end_time)}
                for r in decision.conflicts
            ],
        }
    if isinstance(decision, CapacityExceeded):
        return {
            "reason": decision.kind,
            "message": f"Party size exceeds the maximum capacity ({decision.max_capacity})",
            "max_capacity": decision.max_capacity,
        }
    raise TypeError(f"Not a rejection: {decision!r}")


def raise_for_decision(decision: Decision | CapacityExceeded) -> None:
    if isinstance(decision, Available):
        return
    raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=decision_detail(decision))


async def evaluate_or_422(
    session: AsyncSession,
    candidate: CandidateReservation,
    *,
    today: date,
    exclude_id: int | None = None,
) -> Decision | CapacityExceeded:
    try:
        return await evaluate_booking(session, candidate, today=today, exclude_id=exclude_id)
    except MalformedInputError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/availability/check", response_model=AvailabilityCheckOut)
async def check_availability(
    payload: AvailabilityCheckIn,
    session: AsyncSession = Depends(get_session),
    today: date = Depends(get_today),
) -> AvailabilityCheckOut:
    candidate = CandidateReservation(
        reservation_date=payload.reservation_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        party_size=payload.party_size,
        exclude_id=payload.exclude_id,
    )
    raise_for_decision(await evaluate_or_422(session, candidate, today=today))

    return AvailabilityCheckOut(
        available=True,
        reservation_date=payload.reservation_date,
        weekday=weekday_for(payload.reservation_date),
        start_time=payload.start_time,
        end_time=payload.end_time,
        party_size=payload.party_size,
    )
