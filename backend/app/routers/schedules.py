import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import OperatingHours
from backend.app.db.session import get_session
from backend.app.db.stores import SqlReservationStore, SqlScheduleStore
from backend.app.routers.schemas import (
    BookedSlotOut,
    DayAvailabilityOut,
    OperatingHoursIn,
    OperatingHoursOut,
)
from backend.app.services.availability import WEEK_ORDER, weekday_for


logger = logging.getLogger(__name__)

router = APIRouter()


def _validate_range(payload: OperatingHoursIn) -> None:
    if payload.end_time <= payload.start_time:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="End time must be later than start time")


async def _get_or_404(session: AsyncSession, schedule_id: int) -> OperatingHours:
    schedule = await session.get(OperatingHours, schedule_id)
    if schedule is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    return schedule


@router.get("/schedules", response_model=list[OperatingHoursOut])
async def list_schedules(session: AsyncSession = Depends(get_session)) -> list[OperatingHours]:
    rows = await session.scalars(select(OperatingHours))
    return sorted(rows, key=lambda row: (WEEK_ORDER.index(row.weekday), row.start_time))


# Declared before /schedules/{schedule_id} so "availability" is not parsed as an id.
@router.get("/schedules/availability", response_model=DayAvailabilityOut)
async def day_availability(
    day: date = Query(alias="date"),
    session: AsyncSession = Depends(get_session),
) -> DayAvailabilityOut:
    weekday = weekday_for(day)
    windows = await SqlScheduleStore(session).get_operating_windows(weekday)
    booked = await SqlReservationStore(session).get_active_reservations(day) if windows else []

    return DayAvailabilityOut(
        date=day,
        weekday=weekday,
        open=bool(windows),
        windows=[
            OperatingHoursOut(
                id=w.id,
                weekday=w.weekday,
                start_time=w.start_time,
                end_time=w.end_time,
                active=w.active,
                notes=w.label,
            )
            for w in windows
        ],
        reservations=[
            BookedSlotOut(id=r.id, start_time=r.start_time, end_time=r.end_time, status=r.status)
            for r in booked
        ],
    )


@router.get("/schedules/{schedule_id}", response_model=OperatingHoursOut)
async def get_schedule(schedule_id: int, session: AsyncSession = Depends(get_session)) -> OperatingHours:
    return await _get_or_404(session, schedule_id)


@router.post("/schedules", response_model=OperatingHoursOut, status_code=status.HTTP_201_CREATED)
async def create_schedule(payload: OperatingHoursIn, session: AsyncSession = Depends(get_session)) -> OperatingHours:
    _validate_range(payload)
    schedule = OperatingHours(**payload.model_dump())
    session.add(schedule)
    await session.commit()
    logger.info("Operating window %d added for %s", schedule.id, schedule.weekday.value)
    return schedule


@router.put("/schedules/{schedule_id}", response_model=OperatingHoursOut)
async def update_schedule(
    schedule_id: int,
    payload: OperatingHoursIn,
    session: AsyncSession = Depends(get_session),
) -> OperatingHours:
    _validate_range(payload)
    schedule = await _get_or_404(session, schedule_id)
    for field, value in payload.model_dump().items():
        setattr(schedule, field, value)
    await session.commit()
    return schedule


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(schedule_id: int, session: AsyncSession = Depends(get_session)) -> None:
    schedule = await _get_or_404(session, schedule_id)
    await session.delete(schedule)
    await session.commit()
