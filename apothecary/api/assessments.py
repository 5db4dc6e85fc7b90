from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user
from apothecary.application.assessment_schemas import (
    AssessmentResult, AssessmentSubmitted, GuidedAssessmentInput, GuidedAssessmentRead,
    GuidedRecommendation, TrackAction, WellnessAssessmentSubmit,
)
from apothecary.application.assessment_service import AssessmentService
from apothecary.infrastructure.db import get_db

router = APIRouter(tags=["assessments"])

class GuidedAssessmentResponse(BaseModel):
    assessment: GuidedAssessmentRead
    recommendations: GuidedRecommendation

@router.post("/assessment/submit", response_model=AssessmentSubmitted, status_code=201)
def submit_wellness_assessment(payload: WellnessAssessmentSubmit, db: Session = Depends(get_db)):
    """Public questionnaire; no account needed."""
    service = AssessmentService(db)
    record = service.submit_wellness(payload)
    return AssessmentSubmitted(assessment_id=record.id, result=service.wellness_result(record.id))

@router.get("/assessment/results/{assessment_id}", response_model=AssessmentResult)
def get_wellness_result(assessment_id: int, db: Session = Depends(get_db)):
    return AssessmentService(db).wellness_result(assessment_id)

@router.post("/assessment/track-action", status_code=204)
def track_assessment_action(payload: TrackAction, db: Session = Depends(get_db)):
    AssessmentService(db).track_action(payload.id, payload.action)

@router.post("/assessments/guided-compound", response_model=GuidedAssessmentResponse, status_code=201)
def submit_guided_assessment(
    payload: GuidedAssessmentInput,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    record, recommendations = AssessmentService(db).submit_guided(payload, user.id)
    return GuidedAssessmentResponse(
        assessment=GuidedAssessmentRead.model_validate(record),
        recommendations=recommendations,
    )
