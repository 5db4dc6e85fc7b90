from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from apothecary.domain.models import (
    Booking, Compound, CompoundBatch, CompoundDispensation, GuidedAssessment,
)
from shared.core import get_logger
from .compound_pricing import calculate_compound_price, validate_formula
from .compound_safety import aggregate_safety_severity, check_formula_safety
from .errors import Forbidden, NotFound, ValidationFailed
from .schemas import (
    BatchCreate, CompoundCreate, CompoundQuote, CompoundRead, DispensationCreate,
    DispensationResult, DispensationRead, SafetyContext,
)

logger = get_logger(__name__)

TIER_TYPES = {1: "preset", 2: "guided"}


class CompoundService:
    def __init__(self, db: Session):
        self.db = db

    def list_for_owner(self, owner_user_id: str, tier: Optional[int] = None, type: Optional[str] = None):
        q = self.db.query(Compound).filter(Compound.owner_user_id == owner_user_id)
        if tier:
            q = q.filter(Compound.tier == tier)
        if type:
            q = q.filter(Compound.type == type)
        return q.order_by(Compound.created_at.desc(), Compound.id.desc()).limit(50).all()

    def _guided_context(self, data: CompoundCreate, user_id: str) -> SafetyContext:
        if not data.source_assessment_id:
            raise ValidationFailed("Guided compounds require a linked assessment.")
        assessment = (
            self.db.query(GuidedAssessment)
            .filter(GuidedAssessment.id == data.source_assessment_id, GuidedAssessment.user_id == user_id)
            .first()
        )
        if not assessment:
            raise NotFound("Assessment not found")
        responses = assessment.responses or {}
        return SafetyContext(
            pregnancy_status=responses.get("pregnancy_status"),
            medications=responses.get("medications") or [],
            allergies=responses.get("allergies") or [],
        )

    def _practitioner_booking(self, data: CompoundCreate, user_id: str) -> Booking:
        if not data.source_booking_id:
            raise ValidationFailed("Practitioner compounds must reference a completed booking.")
        booking = self.db.get(Booking, data.source_booking_id)
        if not booking:
            raise NotFound("Booking not found")
        if booking.practitioner_id != user_id:
            raise Forbidden("Forbidden")
        if booking.status != "completed":
            raise ValidationFailed("Only completed consultations can receive practitioner compounds.")
        return booking

    def save(self, data: CompoundCreate, user_id: str, preview: bool = False) -> CompoundQuote:
        """Price and safety-check a formula, then store it unless previewing.

        Tier 2 blends take their safety context from the caller's guided
        assessment. Tier 3 blends belong to the client of the completed
        booking the caller practised on.
        """
        formula = validate_formula(data.formula)
        owner_user_id = user_id
        context = data.context

        if data.tier == 2:
            context = self._guided_context(data, user_id)
        elif data.tier == 3:
            owner_user_id = self._practitioner_booking(data, user_id).user_id

        pricing = calculate_compound_price(self.db, formula, data.tier, data.bottle_volume_ml)
        issues = check_formula_safety(self.db, formula, context)
        quote = CompoundQuote(
            price_breakdown=pricing,
            safety_issues=issues,
            safety_severity=aggregate_safety_severity(issues),
        )
        if preview:
            return quote

        name = (data.name or "").strip()
        if len(name) < 3:
            raise ValidationFailed("Name must be at least 3 characters when saving a compound.")

        compound = Compound(
            name=name,
            owner_user_id=owner_user_id,
            created_by=user_id,
            type=TIER_TYPES.get(data.tier, data.type or "practitioner"),
            tier=data.tier,
            formula=[herb.model_dump() for herb in formula],
            price=pricing.price,
            bottle_volume_ml=data.bottle_volume_ml,
            notes=data.notes,
            source_assessment_id=data.source_assessment_id,
            source_booking_id=data.source_booking_id,
            status="draft",
        )
        self.db.add(compound)
        self.db.commit()
        self.db.refresh(compound)
        logger.info(
            "Compound saved",
            extra={"extra_fields": {"compound_id": compound.id, "tier": compound.tier, "owner": owner_user_id}},
        )
        quote.compound = CompoundRead.model_validate(compound)
        return quote


class BatchService:
    def __init__(self, db: Session):
        self.db = db

    def list_batches(self, compound_id: Optional[int] = None, limit: int = 50):
        q = self.db.query(CompoundBatch)
        if compound_id:
            q = q.filter(CompoundBatch.compound_id == compound_id)
        return q.order_by(CompoundBatch.prepared_at.desc()).limit(min(limit, 100)).all()

    def create(self, data: BatchCreate, prepared_by: str) -> CompoundBatch:
        if not self.db.get(Compound, data.compound_id):
            raise NotFound("Compound not found")
        batch = CompoundBatch(**data.model_dump(), prepared_by=prepared_by)
        self.db.add(batch)
        self.db.commit()
        self.db.refresh(batch)
        return batch

    def dispensed_volume(self, batch_id: int) -> float:
        total = (
            self.db.query(func.coalesce(func.sum(CompoundDispensation.volume_ml), 0))
            .filter(CompoundDispensation.batch_id == batch_id)
            .scalar()
        )
        return float(total or 0)

    def list_dispensations(self, batch_id: Optional[int] = None, user_id: Optional[str] = None):
        q = self.db.query(CompoundDispensation)
        if batch_id:
            q = q.filter(CompoundDispensation.batch_id == batch_id)
        if user_id:
            q = q.filter(CompoundDispensation.user_id == user_id)
        return q.order_by(CompoundDispensation.dispensed_at.desc()).limit(100).all()

    def dispense(self, data: DispensationCreate) -> DispensationResult:
        """Record a manual dispensation against a batch."""
        batch = (
            self.db.query(CompoundBatch)
            .filter(CompoundBatch.id == data.batch_id)
            .with_for_update()
            .first()
        )
        if not batch:
            raise NotFound("Batch not found")

        dispensed = self.dispensed_volume(batch.id)
        if dispensed + data.volume_ml > batch.total_volume_ml:
            raise ValidationFailed(
                f"Dispensing {data.volume_ml:g}ml would exceed the batch total of "
                f"{batch.total_volume_ml:g}ml."
            )

        record = CompoundDispensation(
            batch_id=batch.id,
            order_id=data.order_id,
            user_id=data.user_id,
            volume_ml=data.volume_ml,
        )
        self.db.add(record)
        new_total = dispensed + data.volume_ml
        if new_total >= batch.total_volume_ml and batch.status != "dispensed":
            batch.status = "dispensed"
        self.db.commit()
        self.db.refresh(record)
        return DispensationResult(
            dispensation=DispensationRead.model_validate(record),
            remaining_volume_ml=max(batch.total_volume_ml - new_total, 0),
        )
