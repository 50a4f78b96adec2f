import math
from datetime import datetime, timezone
from typing import List, Optional

from dateutil import parser
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

_ALLOWED_ROLES = {"user", "agent"}


def _to_utc(value):
    if isinstance(value, str):
        value = parser.isoparse(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


# ---- Auth ----

class Register(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: str = "user"
    tax_number: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        role = (v or "").strip().lower() or "user"
        if role not in _ALLOWED_ROLES:
            raise ValueError(f"Invalid role: {v}. Allowed: {sorted(_ALLOWED_ROLES)}")
        return role


class Login(BaseModel):
    email: str
    password: str


class ForgotPassword(BaseModel):
    email: str
    client_url: Optional[str] = None


class ResetPassword(BaseModel):
    token: str
    new_password: str = Field(min_length=6)


# ---- Users ----

class UserUpdate(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None
    is_completed_profile: Optional[bool] = None
    telephone_or_phone: Optional[str] = None
    street: Optional[str] = None
    house_or_building_num: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    role: Optional[str] = None
    tax_number: Optional[str] = None


class UserUpdateRequest(BaseModel):
    update: UserUpdate


class PasswordUpdate(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class PasswordUpdateRequest(BaseModel):
    update: PasswordUpdate


class UserName(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str


class Reviewer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    image: Optional[str] = None


class OwnerPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    image: Optional[str] = None
    telephone_or_phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    is_email_verified: bool


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    tax_number: Optional[str] = None
    is_completed_profile: bool
    is_email_verified: bool
    is_admin: bool
    telephone_or_phone: Optional[str] = None
    street: Optional[str] = None
    house_or_building_num: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    image: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---- Properties ----

class PropertyCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amenities: List[str] = Field(default_factory=list)
    price_per_night: float = Field(ge=0)
    location: str = Field(min_length=1)
    state: str = Field(min_length=1)
    property_type: str = Field(min_length=1)
    guests: int = Field(ge=1)
    property_images: List[str] = Field(default_factory=list)
    owner_id: Optional[int] = None


class PropertyUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    amenities: Optional[List[str]] = None
    price_per_night: Optional[float] = Field(default=None, ge=0)
    location: Optional[str] = None
    state: Optional[str] = None
    property_type: Optional[str] = None
    guests: Optional[int] = Field(default=None, ge=1)
    property_images: Optional[List[str]] = None


class BookedDateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_date: datetime
    end_date: datetime


class Rating(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rating: int


class PropertySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    amenities: List[str]
    price_per_night: float
    location: str
    state: str
    property_type: str
    guests: int
    property_images: List[str]
    owner_id: int


class PropertyOut(PropertySummary):
    booked_dates: List[BookedDateOut]
    feedbacks: List[Rating]


class PropertyDetail(PropertyOut):
    owner: OwnerPublic


# ---- Bookings ----

class CreateBookingRequest(BaseModel):
    guest_id: int
    owner_id: int
    property_id: int
    price: str
    total_guests: int = Field(ge=1)
    start_date: datetime
    end_date: datetime

    @field_validator("price", mode="before")
    @classmethod
    def price_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("price")
    @classmethod
    def price_is_numeric(cls, v):
        try:
            amount = float(v)
        except ValueError:
            raise ValueError("price must be numeric")
        if not math.isfinite(amount):
            raise ValueError("price must be a finite number")
        if amount < 0:
            raise ValueError("price must not be negative")
        return v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v):
        return _to_utc(v)


class ManageBookingRequest(BaseModel):
    action: str


class PaymentDetailsRequest(BaseModel):
    agent_paypal_email: EmailStr
    payment_instruction: str = Field(min_length=1)


class TransactionIdRequest(BaseModel):
    user_transaction_id: str = Field(min_length=1)


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    guest_id: int
    owner_id: int
    property_id: int
    price: str
    total_guests: int
    start_date: datetime
    end_date: datetime
    status: str
    agent_paypal_email: Optional[str] = None
    payment_instruction: Optional[str] = None
    user_transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BookingListItem(BookingOut):
    guest: Optional[UserName] = None
    owner: Optional[UserName] = None


class BookingDetail(BookingOut):
    guest: UserOut
    owner: UserOut
    property: PropertySummary


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: Optional[int] = None
    user_id: int
    agent_id: int
    amount: float
    transaction_id: str
    payment_method: str
    created_at: datetime


# ---- Favorites / Feedback ----

class FavoriteToggle(BaseModel):
    property_id: int


class FeedbackCreate(BaseModel):
    property_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class FeedbackOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class FeedbackWithUser(FeedbackOut):
    user: Reviewer


def dump(schema, obj) -> dict:
    return schema.model_validate(obj).model_dump(mode="json")


def dump_many(schema, objs) -> list[dict]:
    return [dump(schema, o) for o in objs]
