from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, get_current_user, require_admin
from apothecary.application.order_service import OrderService
from apothecary.application.schemas import OrderCreate, OrderRead, OrderStatusUpdate
from apothecary.infrastructure.db import get_db
from apothecary.infrastructure.email import EmailSender, notify_order_confirmation

router = APIRouter(prefix="/orders", tags=["orders"])

def get_email_sender() -> EmailSender:
    return EmailSender()

@router.post("/", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    order = OrderService(db).create_order(payload, user.id)
    background_tasks.add_task(notify_order_confirmation, sender, user.email, order)
    return order

@router.get("/", response_model=list[OrderRead])
def list_orders(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """Orders of the caller, newest first."""
    return OrderService(db).list_user_orders(user.id)

@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return OrderService(db).get_order(order_id, user.id, is_admin=user.is_admin)

@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    return OrderService(db).update_order_status(order_id, payload.status)
