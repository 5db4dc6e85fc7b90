from datetime import date
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apothecary.domain.models import Booking, BookingTypeConfig
from apothecary.infrastructure.availability import AvailabilityClient
from shared.core import get_logger
from .errors import Conflict, Forbidden, NotFound, UpstreamError, ValidationFailed
from .wellness_schemas import BookingCreate
from .wellness_service import WellnessService

logger = get_logger(__name__)

# Only bookable with a wellness package credit
PACKAGE_ONLY_TYPES = {
    "wellness_package_initial",
    "meditation_session",
    "sauna_session",
    "dietary_session",
}


class BookingService:
    def __init__(self, db: Session, availability: AvailabilityClient):
        self.db = db
        self.availability = availability
        self.wellness = WellnessService(db)

    def list_types(self):
        return (
            self.db.query(BookingTypeConfig)
            .filter(BookingTypeConfig.is_active.is_(True))
            .order_by(BookingTypeConfig.duration_minutes.asc())
            .all()
        )

    def get_type(self, booking_type: str) -> Optional[BookingTypeConfig]:
        return (
            self.db.query(BookingTypeConfig)
            .filter(BookingTypeConfig.type == booking_type, BookingTypeConfig.is_active.is_(True))
            .first()
        )

    def available_slots(self, day: date, booking_type: str) -> list[dict]:
        try:
            return self.availability.get_available_slots(day, booking_type)
        except httpx.HTTPError as e:
            logger.error(
                "Available slot lookup failed",
                extra={"extra_fields": {"date": day.isoformat(), "type": booking_type, "error": str(e)}},
            )
            raise UpstreamError("Failed to fetch available slots")

    def list_user_bookings(self, user_id: str):
        return (
            self.db.query(Booking)
            .filter(Booking.user_id == user_id)
            .order_by(Booking.date.asc(), Booking.time.asc())
            .all()
        )

    def _validate_request(self, data: BookingCreate):
        if data.date < date.today():
            raise ValidationFailed("Booking date must be today or in the future")
        if data.type == "oligoscan_assessment" and data.biometrics is None:
            raise ValidationFailed("Oligoscan biometrics are required")
        if data.use_package_credit and data.package_enrolment_id is None:
            raise ValidationFailed("Wellness package enrolment is required")
        if data.type in PACKAGE_ONLY_TYPES and not data.use_package_credit:
            raise ValidationFailed("This session type requires an active wellness package")

    def _insert_booking(self, user_id: str, data: BookingCreate, config: BookingTypeConfig) -> Booking:
        booking = Booking(
            user_id=user_id,
            type=data.type,
            date=data.date,
            time=data.time,
            duration_minutes=config.duration_minutes,
            price=0 if data.use_package_credit else config.price,
            status="scheduled",
            notes=data.notes,
            details={"biometrics": data.biometrics.model_dump(mode="json")} if data.biometrics else None,
            package_enrolment_id=data.package_enrolment_id if data.use_package_credit else None,
            is_package_booking=data.use_package_credit,
        )
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def create_booking(self, user_id: str, data: BookingCreate) -> Booking:
        """Book a session, spending a package credit when asked to.

        The credit is taken before the insert and handed back if the insert
        fails.
        """
        config = self.get_type(data.type)
        if config is None:
            raise ValidationFailed("Invalid booking type")
        self._validate_request(data)

        if not self.availability.is_slot_available(data.date, data.time, config.duration_minutes):
            raise Conflict("Selected time slot is not available")

        consumed = False
        if data.use_package_credit:
            self.wellness.consume_session_credit(data.package_enrolment_id, data.type, user_id)
            consumed = True

        try:
            booking = self._insert_booking(user_id, data, config)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Booking insert failed",
                extra={"extra_fields": {"user_id": user_id, "type": data.type, "error": str(e)}},
            )
            if consumed:
                self.wellness.release_session_credit(data.package_enrolment_id, data.type)
            raise UpstreamError("Failed to create booking")

        logger.info(
            "Booking created",
            extra={"extra_fields": {
                "booking_id": booking.id,
                "type": booking.type,
                "package_booking": booking.is_package_booking,
            }},
        )
        return booking

    def cancel_booking(self, booking_id: int, user_id: str) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.user_id != user_id:
            raise Forbidden("Booking not found or unauthorized")
        if booking.status == "cancelled":
            raise Conflict("Booking is already cancelled")
        if booking.status == "completed":
            raise Conflict("Cannot cancel a completed booking")

        booking.status = "cancelled"
        self.db.commit()
        self.db.refresh(booking)

        if booking.is_package_booking and booking.package_enrolment_id:
            self.wellness.release_session_credit(booking.package_enrolment_id, booking.type)
        return booking
