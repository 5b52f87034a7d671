from datetime import date, time
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from backend.app.db.models import MeetingType
from backend.app.services.availability import ReservationStatus, Weekday


def _naive_time(value: time) -> time:
    if value.tzinfo is not None:
        raise ValueError("Times are local wall-clock times and must not carry a UTC offset")
    return value


# "HH:MM:SS" or "HH:MM", no offset
WallTime = Annotated[time, AfterValidator(_naive_time)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Products

class CategoryOut(ORMModel):
    id: int
    name: str


class ProductIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    price: float = Field(ge=0.01)
    category_id: int = Field(ge=1)
    available: bool = True
    alcoholic: bool = False
    image_url: str | None = Field(default=None, max_length=500)


class ProductOut(ORMModel):
    id: int
    name: str
    description: str | None
    price: float
    category_id: int
    category: CategoryOut | None = None
    available: bool
    alcoholic: bool
    image_url: str | None


# Clients

class ClientIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=7, max_length=15)
    email: EmailStr | None = None
    company: str | None = Field(default=None, max_length=200)


class ClientOut(ORMModel):
    id: int
    first_name: str
    last_name: str
    phone: str
    email: str | None
    company: str | None


# Reservations

class ReservationIn(BaseModel):
    client_id: int = Field(ge=1)
    reservation_date: date
    start_time: WallTime
    end_time: WallTime
    party_size: int = Field(ge=1, le=100)
    meeting_type: MeetingType = MeetingType.BUSINESS
    reason: str | None = None
    notes: str | None = None
    price: float = Field(default=0, ge=0)


class ReservationStatusIn(BaseModel):
    status: ReservationStatus


class ReservationOut(ORMModel):
    id: int
    client_id: int
    client: ClientOut | None = None
    reservation_date: date
    start_time: time
    end_time: time
    party_size: int
    meeting_type: MeetingType
    reason: str | None
    notes: str | None
    price: float
    status: ReservationStatus


# Schedules

class OperatingHoursIn(BaseModel):
    weekday: Weekday
    start_time: WallTime
    end_time: WallTime
    active: bool = True
    notes: str | None = None


class OperatingHoursOut(ORMModel):
    id: int
    weekday: Weekday
    start_time: time
    end_time: time
    active: bool
    notes: str | None


class BookedSlotOut(BaseModel):
    id: int
    start_time: time
    end_time: time
    status: ReservationStatus


class DayAvailabilityOut(BaseModel):
    date: date
    weekday: Weekday
    open: bool
    windows: list[OperatingHoursOut]
    reservations: list[BookedSlotOut]


# Availability

class AvailabilityCheckIn(BaseModel):
    reservation_date: date
    start_time: WallTime
    end_time: WallTime
    party_size: int = Field(default=1, ge=1, le=100)
    exclude_id: int | None = None


class AvailabilityCheckOut(BaseModel):
    available: bool
    reservation_date: date
    weekday: Weekday
    start_time: time
    end_time: time
    party_size: int
