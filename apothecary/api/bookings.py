from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user
from apothecary.application.booking_service import BookingService
from apothecary.application.wellness_schemas import (
    AvailableSlots, BookingCreate, BookingRead, BookingType, BookingTypeRead,
)
from apothecary.infrastructure.availability import AvailabilityClient, get_availability_client
from apothecary.infrastructure.db import get_db

router = APIRouter(prefix="/bookings", tags=["bookings"])

def get_booking_service(
    db: Session = Depends(get_db),
    availability: AvailabilityClient = Depends(get_availability_client),
) -> BookingService:
    return BookingService(db, availability)

@router.get("/types", response_model=list[BookingTypeRead])
def list_booking_types(service: BookingService = Depends(get_booking_service)):
    return service.list_types()

@router.get("/available-slots", response_model=AvailableSlots)
def available_slots(
    date: date,
    type: BookingType,
    service: BookingService = Depends(get_booking_service),
):
    return AvailableSlots(date=date, type=type, slots=service.available_slots(date, type))

@router.get("/", response_model=list[BookingRead])
def list_bookings(
    service: BookingService = Depends(get_booking_service),
    user: CurrentUser = Depends(get_current_user),
):
    return service.list_user_bookings(user.id)

@router.post("/", response_model=BookingRead, status_code=201)
def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    user: CurrentUser = Depends(get_current_user),
):
    return service.create_booking(user.id, payload)

@router.post("/{booking_id}/cancel", response_model=BookingRead)
def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: CurrentUser = Depends(get_current_user),
):
    return service.cancel_booking(booking_id, user.id)
