from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user, require_practitioner
from apothecary.application.compound_service import BatchService, CompoundService
from apothecary.application.schemas import (
    BatchCreate, BatchRead, CompoundCreate, CompoundQuote, CompoundRead, DispensationCreate,
    DispensationRead, DispensationResult,
)
from apothecary.infrastructure.db import get_db

router = APIRouter(tags=["compounds"])

@router.get("/compounds/", response_model=list[CompoundRead])
def list_compounds(
    tier: Optional[int] = Query(default=None, ge=1, le=3),
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return CompoundService(db).list_for_owner(user.id, tier=tier, type=type)

@router.post("/compounds/", response_model=CompoundQuote)
def save_compound(
    payload: CompoundCreate,
    preview: bool = False,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Quote a formula; with ``?preview=1`` nothing is stored."""
    if payload.tier == 3 and not user.is_practitioner:
        raise HTTPException(status_code=403, detail="Practitioner access required")
    return CompoundService(db).save(payload, user.id, preview=preview)

@router.get("/compound-batches/", response_model=list[BatchRead])
def list_batches(
    compound_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_practitioner),
):
    return BatchService(db).list_batches(compound_id=compound_id, limit=limit)

@router.post("/compound-batches/", response_model=BatchRead, status_code=201)
def create_batch(
    payload: BatchCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_practitioner),
):
    return BatchService(db).create(payload, prepared_by=user.id)

@router.get("/compound-dispensations/", response_model=list[DispensationRead])
def list_dispensations(
    batch_id: Optional[int] = None,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_practitioner),
):
    return BatchService(db).list_dispensations(batch_id=batch_id, user_id=user_id)

@router.post("/compound-dispensations/", response_model=DispensationResult, status_code=201)
def create_dispensation(
    payload: DispensationCreate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_practitioner),
):
    return BatchService(db).dispense(payload)
