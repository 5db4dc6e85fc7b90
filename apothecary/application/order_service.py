"""Checkout: turn a client cart into a persisted order.

The cart is re-priced from the catalog, written as an order plus items, and
then stock and compound batch volume are consumed. Writes that must be
undone on a later hard failure are recorded on a compensation stack.
"""
import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from apothecary.domain.models import (
    Compound, CompoundBatch, CompoundDispensation, Order, OrderItem, Product,
)
from shared.core import get_logger
from .compound_pricing import DEFAULT_BOTTLE_VOLUME_ML, to_cents
from .errors import (
    CompoundNotFound, CompoundNotOwned, CompoundPriceUnavailable, Conflict, EmptyOrder,
    InsufficientStock, NotFound, OrderInsertFailed, UpstreamError, OrderItemsInsertFailed,
    ProductFetchFailed, ProductInactive, ProductsUnavailable,
)
from .schemas import CompoundLine, OrderCreate, ProductLine

logger = get_logger(__name__)

TAX_RATE = 0.08
FREE_SHIPPING_THRESHOLD = 50.0
SHIPPING_FEE = 5.99
TOTAL_TOLERANCE = 0.01

ORDER_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}


@dataclass
class PricedLine:
    type: str
    quantity: int
    price: float
    product_id: Optional[int] = None
    compound_id: Optional[int] = None
    product_snapshot: Optional[dict] = None
    compound_snapshot: Optional[dict] = None


@dataclass
class Totals:
    subtotal: float
    shipping: float
    tax: float
    total: float


@dataclass
class CompensationStack:
    """Undo actions for committed writes, run newest first."""
    actions: list = field(default_factory=list)

    def push(self, description: str, action: Callable[[], None]):
        self.actions.append((description, action))

    def unwind(self, db: Session, order_id: Optional[int] = None):
        while self.actions:
            description, action = self.actions.pop()
            try:
                action()
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"Compensation failed: {description}",
                    extra={"extra_fields": {"order_id": order_id, "error": _detail(e)}},
                )


def _detail(error: Exception) -> str:
    return str(getattr(error, "orig", None) or error)


def calculate_totals(lines: list[PricedLine]) -> Totals:
    subtotal = sum(line.price * line.quantity for line in lines)
    shipping = 0.0 if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_FEE
    tax = subtotal * TAX_RATE
    return Totals(subtotal=subtotal, shipping=shipping, tax=tax, total=subtotal + shipping + tax)


class OrderService:
    def __init__(self, db: Session):
        self.db = db

    # Reads

    def get_order(self, order_id: int, user_id: str, is_admin: bool = False) -> Order:
        order = (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.id == order_id)
            .first()
        )
        # Someone else's order reads as missing
        if not order or (not is_admin and order.user_id != user_id):
            raise NotFound("Order not found")
        return order

    def list_user_orders(self, user_id: str):
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def update_order_status(self, order_id: int, status: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFound("Order not found")
        if status not in ORDER_TRANSITIONS.get(order.status, set()):
            raise Conflict(f"Cannot change order status from {order.status} to {status}")
        order.status = status
        self.db.commit()
        self.db.refresh(order)
        logger.info(
            "Order status updated",
            extra={"extra_fields": {"order_id": order.id, "status": status}},
        )
        return order

    # Checkout

    def create_order(self, data: OrderCreate, user_id: str) -> Order:
        product_lines = [item for item in data.items if isinstance(item, ProductLine)]
        compound_lines = [item for item in data.items if isinstance(item, CompoundLine)]

        lines: list[PricedLine] = []
        if product_lines:
            products = self._fetch_products({line.product_id for line in product_lines})
            lines.extend(self._price_product_lines(product_lines, products))
        if compound_lines:
            compounds = self._fetch_compounds({line.compound_id for line in compound_lines})
            lines.extend(self._price_compound_lines(compound_lines, compounds, user_id))
        if not lines:
            raise EmptyOrder()

        totals = calculate_totals(lines)
        if abs(totals.total - data.total_amount) > TOTAL_TOLERANCE:
            logger.warning(
                "Client total does not match server total",
                extra={"extra_fields": {
                    "user_id": user_id,
                    "client_total": data.total_amount,
                    "server_total": totals.total,
                }},
            )

        compensation = CompensationStack()

        try:
            order = self._insert_order(user_id, totals, data.shipping_address.model_dump())
        except SQLAlchemyError as e:
            self.db.rollback()
            raise OrderInsertFailed(_detail(e))
        order_id = order.id
        compensation.push("delete order", lambda: self._delete_order(order_id))

        try:
            self._insert_order_items(order_id, lines)
        except SQLAlchemyError as e:
            self.db.rollback()
            compensation.unwind(self.db, order_id)
            raise OrderItemsInsertFailed(_detail(e))

        try:
            self._decrement_stock(order_id, lines, compensation)
        except InsufficientStock:
            compensation.unwind(self.db, order_id)
            raise

        self._allocate_dispensations(order_id, user_id, lines)

        self.db.refresh(order)
        logger.info(
            "Order created",
            extra={"extra_fields": {
                "order_id": order.id,
                "order_number": order.order_number,
                "total": order.total,
                "lines": len(order.items),
            }},
        )
        return order

    def _fetch_products(self, product_ids: set[int]) -> dict[int, Product]:
        try:
            products = self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ProductFetchFailed(_detail(e))
        if len(products) != len(product_ids):
            raise ProductsUnavailable()
        return {p.id: p for p in products}

    def _price_product_lines(self, items: list[ProductLine], products: dict[int, Product]) -> list[PricedLine]:
        requested: dict[int, int] = {}
        for item in items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        priced = []
        for item in items:
            product = products[item.product_id]
            if not product.is_active:
                raise ProductInactive(product.name)
            # Stock covers every line of the same product together
            if product.stock_quantity < requested[product.id]:
                raise InsufficientStock(product.name, product.stock_quantity, requested[product.id])
            # The client price is ignored
            priced.append(PricedLine(
                type="product",
                product_id=product.id,
                quantity=item.quantity,
                price=product.price,
                product_snapshot={
                    "name": product.name,
                    "price": product.price,
                    "slug": product.slug,
                    "category": product.category,
                },
            ))
        return priced

    def _fetch_compounds(self, compound_ids: set[int]) -> dict[int, Compound]:
        try:
            compounds = self.db.query(Compound).filter(Compound.id.in_(compound_ids)).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Failed to fetch compounds: {_detail(e)}")
        return {c.id: c for c in compounds}

    def _price_compound_lines(
        self, items: list[CompoundLine], compounds: dict[int, Compound], user_id: str
    ) -> list[PricedLine]:
        priced = []
        for item in items:
            compound = compounds.get(item.compound_id)
            if compound is None:
                raise CompoundNotFound()
            if compound.owner_user_id != user_id:
                raise CompoundNotOwned()
            price = compound.price
            if price is None or not math.isfinite(price) or price <= 0:
                raise CompoundPriceUnavailable()
            priced.append(PricedLine(
                type="compound",
                compound_id=compound.id,
                quantity=item.quantity,
                price=price,
                compound_snapshot={
                    "name": compound.name,
                    "price": price,
                    "tier": compound.tier,
                    "type": compound.type,
                    "formula": compound.formula,
                    "source_assessment_id": compound.source_assessment_id,
                    "source_booking_id": compound.source_booking_id,
                    "bottle_volume_ml": compound.bottle_volume_ml or DEFAULT_BOTTLE_VOLUME_ML,
                },
            ))
        return priced

    def _insert_order(self, user_id: str, totals: Totals, shipping_address: dict) -> Order:
        order = Order(
            user_id=user_id,
            status="pending",
            subtotal=to_cents(totals.subtotal),
            shipping=to_cents(totals.shipping),
            tax=to_cents(totals.tax),
            total=to_cents(totals.total),
            shipping_address=shipping_address,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def _insert_order_items(self, order_id: int, lines: list[PricedLine]):
        self.db.add_all([
            OrderItem(
                order_id=order_id,
                type=line.type,
                product_id=line.product_id,
                compound_id=line.compound_id,
                quantity=line.quantity,
                price=line.price,
                product_snapshot=line.product_snapshot,
                compound_snapshot=line.compound_snapshot,
            )
            for line in lines
        ])
        self.db.commit()

    def _delete_order(self, order_id: int):
        self.db.query(OrderItem).filter(OrderItem.order_id == order_id).delete(synchronize_session=False)
        self.db.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
        self.db.expire_all()

    def _restore_stock(self, product_id: int, quantity: int):
        self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
        )

    def _guarded_decrement(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
        )
        self.db.commit()
        return result.rowcount

    def _decrement_stock(self, order_id: int, lines: list[PricedLine], compensation: CompensationStack):
        """Guarded decrement per product line.

        Zero rows matched means another order took the stock after validation;
        that raises InsufficientStock. Store errors are logged and skipped.
        """
        for line in lines:
            if line.type != "product":
                continue
            try:
                matched = self._guarded_decrement(line.product_id, line.quantity)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    "Stock decrement failed",
                    extra={"extra_fields": {
                        "order_id": order_id,
                        "product_id": line.product_id,
                        "quantity": line.quantity,
                        "error": _detail(e),
                    }},
                )
                continue

            if matched == 0:
                available = (
                    self.db.query(Product.stock_quantity)
                    .filter(Product.id == line.product_id)
                    .scalar()
                ) or 0
                logger.warning(
                    "Stock taken by a concurrent order",
                    extra={"extra_fields": {
                        "order_id": order_id,
                        "product_id": line.product_id,
                        "available": available,
                        "requested": line.quantity,
                    }},
                )
                raise InsufficientStock(line.product_snapshot["name"], available, line.quantity)

            compensation.push(
                f"restore stock for product {line.product_id}",
                lambda p=line.product_id, q=line.quantity: self._restore_stock(p, q),
            )

    def _allocate_dispensations(self, order_id: int, user_id: str, lines: list[PricedLine]):
        """Draw compound volume from batches, oldest first.

        Running short keeps the order; the shortfall is logged for the
        dispensary to make up.
        """
        for line in lines:
            if line.type != "compound":
                continue
            bottle = line.compound_snapshot.get("bottle_volume_ml") or DEFAULT_BOTTLE_VOLUME_ML
            required = bottle * line.quantity
            try:
                remaining = self._allocate_line(order_id, user_id, line.compound_id, required)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    "Dispensation allocation failed",
                    extra={"extra_fields": {
                        "order_id": order_id,
                        "compound_id": line.compound_id,
                        "error": _detail(e),
                    }},
                )
                continue
            if remaining > 0:
                logger.warning(
                    "Insufficient batch volume for compound",
                    extra={"extra_fields": {
                        "order_id": order_id,
                        "compound_id": line.compound_id,
                        "required_ml": required,
                        "shortfall_ml": remaining,
                    }},
                )

    def _allocate_line(self, order_id: int, user_id: str, compound_id: int, required: float) -> float:
        batches = (
            self.db.query(CompoundBatch)
            .filter(CompoundBatch.compound_id == compound_id, CompoundBatch.status != "discarded")
            .order_by(CompoundBatch.prepared_at.asc(), CompoundBatch.id.asc())
            .with_for_update()
            .all()
        )
        remaining = required
        for batch in batches:
            if remaining <= 0:
                break
            dispensed = (
                self.db.query(func.coalesce(func.sum(CompoundDispensation.volume_ml), 0))
                .filter(CompoundDispensation.batch_id == batch.id)
                .scalar()
            )
            available = batch.total_volume_ml - float(dispensed or 0)
            if available <= 0:
                continue
            volume = min(available, remaining)
            self.db.add(CompoundDispensation(
                batch_id=batch.id,
                order_id=order_id,
                user_id=user_id,
                volume_ml=volume,
            ))
            if volume >= available:
                batch.status = "dispensed"
            remaining -= volume
        return remaining
