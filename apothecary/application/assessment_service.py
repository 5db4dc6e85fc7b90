from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apothecary.domain.models import GuidedAssessment, WellnessAssessment
from shared.core import get_logger
from .assessment_schemas import (
    QUESTION_IDS, TRACKED_ACTIONS, AssessmentResult, GuidedAssessmentInput, GuidedRecommendation,
    WellnessAssessmentSubmit,
)
from .errors import NotFound, UpstreamError
from .herb_recommendations import generate_guided_recommendations
from .product_service import ProductService
from .qualification import build_recommendation, build_result_payload, determine_qualification_level
from .scoring import calculate_wellness_score

logger = get_logger(__name__)


class AssessmentService:
    def __init__(self, db: Session):
        self.db = db

    def submit_wellness(self, data: WellnessAssessmentSubmit) -> WellnessAssessment:
        """Score and store a public questionnaire submission."""
        responses = data.model_dump(mode="json")
        summary = calculate_wellness_score({q: responses[q] for q in QUESTION_IDS})
        level = determine_qualification_level(data, summary.score)
        record = WellnessAssessment(
            name=data.name,
            email=data.email,
            responses=responses,
            wellness_score=summary.score,
            score_category=summary.category,
            qualification_level=level,
            recommended_next_step=build_recommendation(level, summary.score).model_dump(),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Assessment insert failed", extra={"extra_fields": {"error": str(e)}})
            raise UpstreamError("Unable to save assessment")
        self.db.refresh(record)
        logger.info(
            "Wellness assessment scored",
            extra={"extra_fields": {
                "assessment_id": record.id,
                "score": summary.score,
                "qualification_level": level,
            }},
        )
        return record

    def wellness_result(self, assessment_id: int) -> AssessmentResult:
        record = self.db.get(WellnessAssessment, assessment_id)
        if record is None:
            raise NotFound("Assessment not found")
        return build_result_payload(record.id, record.responses)

    def track_action(self, assessment_id: int, action: str) -> None:
        """Flag a follow-up action taken from the results page."""
        record = self.db.get(WellnessAssessment, assessment_id)
        if record is None:
            raise NotFound("Assessment not found")
        setattr(record, TRACKED_ACTIONS[action], True)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Track action failed", extra={"extra_fields": {"assessment_id": assessment_id, "error": str(e)}})
            raise UpstreamError("Unable to track action")

    def submit_guided(self, data: GuidedAssessmentInput, user_id: str) -> tuple[GuidedAssessment, GuidedRecommendation]:
        recommendations = generate_guided_recommendations(data, ProductService(self.db).lookup_by_slugs)
        record = GuidedAssessment(
            user_id=user_id,
            type="guided_compound",
            responses=data.model_dump(mode="json"),
            recommendations=recommendations.model_dump(mode="json"),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to persist assessment", extra={"extra_fields": {"error": str(e)}})
            raise UpstreamError("Unable to save assessment")
        self.db.refresh(record)
        return record, recommendations
