from pydantic import BaseModel, Field, RootModel, field_validator, model_validator
from datetime import date, datetime, time
from typing import Literal, Optional

class CreditEntry(BaseModel):
    included: int = Field(ge=0)
    used: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def used_within_included(self):
        if self.used > self.included:
            raise ValueError("used credits cannot exceed included credits")
        return self

class SessionCreditLedger(RootModel[dict[str, CreditEntry]]):
    """Session type -> credit entry, stored as JSON on the enrolment."""

    @classmethod
    def from_includes(cls, includes: dict[str, int]) -> "SessionCreditLedger":
        return cls({session_type: CreditEntry(included=count) for session_type, count in (includes or {}).items()})

    def to_json(self) -> dict:
        return self.model_dump()

class WellnessPackageRead(BaseModel):
    id: int
    slug: str
    name: str
    description: str
    price_cents: int
    currency: str
    duration_weeks: int
    includes: dict[str, int]
    is_active: bool
    class Config:
        from_attributes = True

class EnrolmentCreate(BaseModel):
    user_id: str
    package_id: Optional[int] = None
    package_slug: Optional[str] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def package_reference(self):
        if self.package_id is None and not self.package_slug:
            raise ValueError("package_id or package_slug is required")
        return self

class EnrolmentRead(BaseModel):
    id: int
    user_id: str
    package_id: int
    status: str
    session_credits: dict[str, CreditEntry]
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    package: Optional[WellnessPackageRead] = None
    class Config:
        from_attributes = True

# Bookings

BookingType = Literal[
    "initial",
    "followup",
    "quick",
    "oligoscan_assessment",
    "wellness_package_initial",
    "meditation_session",
    "sauna_session",
    "dietary_session",
]

class OligoscanBiometrics(BaseModel):
    date_of_birth: date
    gender: Literal["female", "male", "other", "prefer_not_to_say"]
    blood_type: Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown"]
    height_cm: float = Field(ge=50, le=250)
    weight_kg: float = Field(ge=20, le=250)

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return value

class BookingCreate(BaseModel):
    type: BookingType
    date: date
    time: time
    notes: Optional[str] = Field(default=None, max_length=1000)
    biometrics: Optional[OligoscanBiometrics] = None
    use_package_credit: bool = False
    package_enrolment_id: Optional[int] = None

class BookingTypeRead(BaseModel):
    type: str
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: float
    class Config:
        from_attributes = True

class BookingRead(BaseModel):
    id: int
    user_id: str
    practitioner_id: Optional[str] = None
    type: str
    date: date
    time: time
    duration_minutes: int
    price: float
    status: str
    notes: Optional[str] = None
    details: Optional[dict] = Field(default=None, serialization_alias="metadata")
    package_enrolment_id: Optional[int] = None
    is_package_booking: bool
    created_at: datetime
    class Config:
        from_attributes = True

class AvailableSlots(BaseModel):
    date: date
    type: BookingType
    slots: list[dict]
