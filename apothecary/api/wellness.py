from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user, require_admin
from apothecary.application.wellness_schemas import EnrolmentCreate, EnrolmentRead, WellnessPackageRead
from apothecary.application.wellness_service import WellnessService
from apothecary.infrastructure.db import get_db

router = APIRouter(prefix="/wellness", tags=["wellness"])

@router.get("/packages", response_model=list[WellnessPackageRead])
def list_packages(db: Session = Depends(get_db)):
    return WellnessService(db).list_active_packages()

@router.get("/enrolment", response_model=Optional[EnrolmentRead])
def get_enrolment(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """The caller's active enrolment, or null."""
    return WellnessService(db).get_active_enrolment(user.id)

@router.post("/enrolments", response_model=EnrolmentRead, status_code=201)
def create_enrolment(
    payload: EnrolmentCreate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    return WellnessService(db).create_enrolment(payload)
