from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from apothecary.domain.models import WellnessPackage, WellnessPackageEnrolment
from shared.core import get_logger
from .errors import ApothecaryError, Conflict, Forbidden, NotFound, UpstreamError
from .wellness_schemas import EnrolmentCreate, SessionCreditLedger

logger = get_logger(__name__)

# Grace period added on top of the programme length
PACKAGE_BUFFER_WEEKS = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_enrolment_expired(enrolment: WellnessPackageEnrolment, now: Optional[datetime] = None) -> bool:
    if enrolment.expires_at is None:
        return False
    return _as_utc(enrolment.expires_at) < (now or utcnow())


class WellnessService:
    def __init__(self, db: Session):
        self.db = db

    def list_active_packages(self):
        return (
            self.db.query(WellnessPackage)
            .filter(WellnessPackage.is_active.is_(True))
            .order_by(WellnessPackage.created_at.asc(), WellnessPackage.id.asc())
            .all()
        )

    def get_package_by_slug(self, slug: str) -> Optional[WellnessPackage]:
        return (
            self.db.query(WellnessPackage)
            .filter(WellnessPackage.slug == slug, WellnessPackage.is_active.is_(True))
            .first()
        )

    def get_active_enrolment(self, user_id: str) -> Optional[WellnessPackageEnrolment]:
        return (
            self.db.query(WellnessPackageEnrolment)
            .options(selectinload(WellnessPackageEnrolment.package))
            .filter(WellnessPackageEnrolment.user_id == user_id, WellnessPackageEnrolment.status == "active")
            .order_by(WellnessPackageEnrolment.started_at.desc(), WellnessPackageEnrolment.id.desc())
            .first()
        )

    def create_enrolment(self, data: EnrolmentCreate) -> WellnessPackageEnrolment:
        package = None
        if data.package_id is not None:
            package = self.db.get(WellnessPackage, data.package_id)
        elif data.package_slug:
            package = self.get_package_by_slug(data.package_slug)
        if package is None:
            raise NotFound("Wellness package not found")

        now = utcnow()
        expires_at = data.expires_at or now + timedelta(weeks=package.duration_weeks + PACKAGE_BUFFER_WEEKS)
        enrolment = WellnessPackageEnrolment(
            user_id=data.user_id,
            package_id=package.id,
            status="active",
            session_credits=SessionCreditLedger.from_includes(package.includes).to_json(),
            started_at=now,
            expires_at=expires_at,
            notes=data.notes,
        )
        self.db.add(enrolment)
        self.db.commit()
        self.db.refresh(enrolment)
        logger.info(
            "Package enrolment created",
            extra={"extra_fields": {"enrolment_id": enrolment.id, "package": package.slug}},
        )
        return enrolment

    def _load_ledger(self, enrolment: WellnessPackageEnrolment) -> SessionCreditLedger:
        try:
            return SessionCreditLedger.model_validate(enrolment.session_credits or {})
        except ValidationError as e:
            raise UpstreamError(f"Corrupt session credit ledger on enrolment {enrolment.id}: {e}")

    def _refusal(
        self, enrolment: Optional[WellnessPackageEnrolment], booking_type: str, user_id: Optional[str]
    ) -> Optional[ApothecaryError]:
        if enrolment is None:
            return NotFound("Package enrolment not found")
        if user_id is not None and enrolment.user_id != user_id:
            return Forbidden("Package enrolment does not belong to user")
        if enrolment.status != "active":
            return Conflict("Package enrolment is no longer active")
        if is_enrolment_expired(enrolment):
            return Conflict("Package enrolment has expired")
        try:
            entry = self._load_ledger(enrolment).root.get(booking_type)
        except UpstreamError as e:
            return e
        if entry is None or entry.used >= entry.included:
            return Conflict("No credits remaining for this session type")
        return None

    def consume_session_credit(
        self, enrolment_id: int, booking_type: str, user_id: Optional[str] = None
    ) -> WellnessPackageEnrolment:
        """Use one credit of `booking_type`.

        The enrolment row is locked for the read-modify-write; any refusal
        leaves the ledger untouched.
        """
        enrolment = (
            self.db.query(WellnessPackageEnrolment)
            .filter(WellnessPackageEnrolment.id == enrolment_id)
            .with_for_update()
            .first()
        )
        refusal = self._refusal(enrolment, booking_type, user_id)
        if refusal is not None:
            # releases the row lock
            self.db.rollback()
            raise refusal

        ledger = self._load_ledger(enrolment)
        entry = ledger.root[booking_type]
        entry.used += 1
        enrolment.session_credits = ledger.to_json()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Failed to update session credits: {e}")
        self.db.refresh(enrolment)
        return enrolment

    def release_session_credit(self, enrolment_id: int, booking_type: str) -> None:
        """Give back one credit of `booking_type`. Never raises."""
        try:
            enrolment = (
                self.db.query(WellnessPackageEnrolment)
                .filter(WellnessPackageEnrolment.id == enrolment_id)
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to load enrolment for release",
                extra={"extra_fields": {"enrolment_id": enrolment_id, "error": str(e)}},
            )
            return
        if enrolment is None:
            logger.error(
                "Failed to load enrolment for release",
                extra={"extra_fields": {"enrolment_id": enrolment_id, "error": "not found"}},
            )
            return

        try:
            ledger = self._load_ledger(enrolment)
        except UpstreamError as e:
            self.db.rollback()
            logger.error(
                "Failed to release session credit",
                extra={"extra_fields": {"enrolment_id": enrolment_id, "booking_type": booking_type, "error": e.message}},
            )
            return
        entry = ledger.root.get(booking_type)
        if entry is None or entry.used <= 0:
            self.db.rollback()
            return

        entry.used -= 1
        enrolment.session_credits = ledger.to_json()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to release session credit",
                extra={"extra_fields": {"enrolment_id": enrolment_id, "booking_type": booking_type, "error": str(e)}},
            )
