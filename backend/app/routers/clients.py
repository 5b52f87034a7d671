import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Client, Reservation
from backend.app.db.session import get_session
from backend.app.routers.schemas import ClientIn, ClientOut, ReservationOut
from backend.app.services.availability import ReservationStatus


logger = logging.getLogger(__name__)

router = APIRouter()

# Reservations that still tie a client to the venue.
OPEN_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS)


async def _get_or_404(session: AsyncSession, client_id: int) -> Client:
    client = await session.get(Client, client_id)
    if client is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


async def _ensure_unique_contact(session: AsyncSession, payload: ClientIn, client_id: int | None = None) -> None:
    phone_query = select(Client.id).where(Client.phone == payload.phone)
    if client_id is not None:
        phone_query = phone_query.where(Client.id != client_id)
    if await session.scalar(phone_query) is not None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="A client with that phone already exists")

    if payload.email:
        email_query = select(Client.id).where(Client.email == payload.email)
        if client_id is not None:
            email_query = email_query.where(Client.id != client_id)
        if await session.scalar(email_query) is not None:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="A client with that email already exists")


@router.get("/clients", response_model=list[ClientOut])
async def list_clients(
    name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[Client]:
    query = select(Client)
    if name:
        pattern = f"%{name}%"
        query = query.where(or_(Client.first_name.ilike(pattern), Client.last_name.ilike(pattern)))
    if phone:
        query = query.where(Client.phone.like(f"%{phone}%"))
    if email:
        query = query.where(Client.email.ilike(f"%{email}%"))
    query = query.order_by(Client.last_name, Client.first_name)
    return list(await session.scalars(query))


@router.get("/clients/{client_id}", response_model=ClientOut)
async def get_client(client_id: int, session: AsyncSession = Depends(get_session)) -> Client:
    return await _get_or_404(session, client_id)


@router.get("/clients/{client_id}/reservations", response_model=list[ReservationOut])
async def list_client_reservations(client_id: int, session: AsyncSession = Depends(get_session)) -> list[Reservation]:
    await _get_or_404(session, client_id)
    rows = await session.scalars(
        select(Reservation)
        .where(Reservation.client_id == client_id)
        .order_by(Reservation.reservation_date.desc(), Reservation.start_time.desc())
    )
    return list(rows)


@router.post("/clients", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
async def create_client(payload: ClientIn, session: AsyncSession = Depends(get_session)) -> Client:
    await _ensure_unique_contact(session, payload)
    client = Client(**payload.model_dump())
    session.add(client)
    await session.commit()
    logger.info("Client %d created", client.id)
    return client


@router.put("/clients/{client_id}", response_model=ClientOut)
async def update_client(client_id: int, payload: ClientIn, session: AsyncSession = Depends(get_session)) -> Client:
    client = await _get_or_404(session, client_id)
    await _ensure_unique_contact(session, payload, client_id)
    for field, value in payload.model_dump().items():
        setattr(client, field, value)
    await session.commit()
    return client


@router.delete("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(client_id: int, session: AsyncSession = Depends(get_session)) -> None:
    client = await _get_or_404(session, client_id)
    open_count = await session.scalar(
        select(func.count())
        .select_from(Reservation)
        .where(Reservation.client_id == client_id, Reservation.status.in_(OPEN_STATUSES))
    )
    if open_count:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail="Client has active reservations and cannot be deleted",
        )

    await session.delete(client)
    await session.commit()
    logger.info("Client %d deleted", client_id)
