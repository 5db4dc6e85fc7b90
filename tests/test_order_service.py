import logging
from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from apothecary.application.errors import (
    CompoundNotFound, CompoundNotOwned, CompoundPriceUnavailable, Conflict, InsufficientStock,
    NotFound, OrderItemsInsertFailed, ProductInactive, ProductsUnavailable,
)
from apothecary.application.order_service import OrderService, calculate_totals, PricedLine
from apothecary.application.schemas import OrderCreate
from apothecary.domain.models import CompoundDispensation, Order, OrderItem, Product


def product_line(product, quantity, price=0.01):
    return {"type": "product", "product_id": product.id, "quantity": quantity, "price": price}


def compound_line(compound, quantity=1):
    return {"type": "compound", "compound_id": compound.id, "quantity": quantity, "price": 1}


@pytest.fixture()
def elixir(db):
    product = Product(slug="elderberry-elixir", name="Elderberry Elixir", category="Tinctures",
                      price=12.99, stock_quantity=20, volume_ml=100)
    db.add(product)
    db.commit()
    return product


def place(db, build_order, items, user_id="user-1", total_amount=1.0):
    return OrderService(db).create_order(OrderCreate(**build_order(items, total_amount)), user_id)


def test_catalog_price_wins_over_client_price(db, elixir, build_order):
    order = place(db, build_order, [product_line(elixir, 2, price=0.01)])
    assert order.subtotal == pytest.approx(25.98)
    assert order.shipping == pytest.approx(5.99)
    assert order.tax == pytest.approx(2.08)
    assert order.total == pytest.approx(34.05)
    assert order.items[0].price == pytest.approx(12.99)
    assert order.items[0].product_snapshot["name"] == "Elderberry Elixir"


def test_free_shipping_from_fifty(db, elixir, build_order):
    order = place(db, build_order, [product_line(elixir, 5)])
    assert order.subtotal == pytest.approx(64.95)
    assert order.shipping == 0


def test_tax_is_eight_percent():
    totals = calculate_totals([PricedLine(type="product", quantity=1, price=45.97, product_id=1)])
    assert round(totals.tax, 2) == pytest.approx(3.68)
    assert totals.shipping == pytest.approx(5.99)


def test_stock_gate_names_product_and_counts(db, products, build_order):
    with pytest.raises(InsufficientStock) as exc:
        place(db, build_order, [product_line(products["lemon-balm"], 11)])
    assert exc.value.message == "Insufficient stock for Lemon Balm. Available: 10, Requested: 11"
    assert exc.value.status_code == 409
    assert db.query(Order).count() == 0


def test_stock_is_decremented(db, products, build_order):
    place(db, build_order, [product_line(products["lemon-balm"], 3), product_line(products["ginger-root"], 5)])
    db.refresh(products["lemon-balm"])
    db.refresh(products["ginger-root"])
    assert products["lemon-balm"].stock_quantity == 7
    assert products["ginger-root"].stock_quantity == 0


def test_repeated_lines_are_checked_against_stock_together(db, products, build_order, monkeypatch):
    ginger = products["ginger-root"]
    inserted = []
    monkeypatch.setattr(OrderService, "_insert_order", lambda self, *args: inserted.append(args))
    with pytest.raises(InsufficientStock) as exc:
        place(db, build_order, [product_line(ginger, 3), product_line(ginger, 3)])
    assert exc.value.message == "Insufficient stock for Ginger Root. Available: 5, Requested: 6"
    assert inserted == []
    assert db.query(Order).count() == 0
    db.refresh(ginger)
    assert ginger.stock_quantity == 5


def test_item_insert_failure_deletes_the_order(db, products, build_order, monkeypatch):
    service = OrderService(db)

    def fail(order_id, lines):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(service, "_insert_order_items", fail)
    payload = OrderCreate(**build_order([product_line(products["lemon-balm"], 1)]))
    with pytest.raises(OrderItemsInsertFailed) as exc:
        service.create_order(payload, "user-1")
    assert exc.value.message == "Failed to create order items: disk full"
    assert db.query(Order).count() == 0
    db.refresh(products["lemon-balm"])
    assert products["lemon-balm"].stock_quantity == 10


def test_concurrent_stock_loss_rolls_back_the_order(db, products, build_order, monkeypatch):
    service = OrderService(db)
    lemon, ginger = products["lemon-balm"], products["ginger-root"]
    original = service._guarded_decrement

    def racing(product_id, quantity):
        if product_id == ginger.id:
            # another checkout takes most of the ginger first
            db.execute(update(Product).where(Product.id == ginger.id).values(stock_quantity=1))
            db.commit()
        return original(product_id, quantity)

    monkeypatch.setattr(service, "_guarded_decrement", racing)
    payload = OrderCreate(**build_order([product_line(lemon, 2), product_line(ginger, 3)]))
    with pytest.raises(InsufficientStock) as exc:
        service.create_order(payload, "user-1")

    assert exc.value.message == "Insufficient stock for Ginger Root. Available: 1, Requested: 3"
    assert db.query(Order).count() == 0
    assert db.query(OrderItem).count() == 0
    db.refresh(lemon)
    db.refresh(ginger)
    assert lemon.stock_quantity == 10
    assert ginger.stock_quantity == 1


def test_decrement_store_error_is_logged_not_raised(db, products, build_order, monkeypatch, caplog):
    service = OrderService(db)

    def broken(product_id, quantity):
        raise SQLAlchemyError("lock timeout")

    monkeypatch.setattr(service, "_guarded_decrement", broken)
    payload = OrderCreate(**build_order([product_line(products["lemon-balm"], 1)]))
    with caplog.at_level(logging.ERROR):
        order = service.create_order(payload, "user-1")
    assert order.id
    assert "Stock decrement failed" in caplog.text
    db.refresh(products["lemon-balm"])
    assert products["lemon-balm"].stock_quantity == 10


def test_inactive_and_unknown_products(db, products, build_order):
    with pytest.raises(ProductInactive) as exc:
        place(db, build_order, [product_line(products["rose-tea"], 1)])
    assert exc.value.message == "Rose Tea is no longer available"

    missing = {"type": "product", "product_id": 9999, "quantity": 1, "price": 5}
    with pytest.raises(ProductsUnavailable):
        place(db, build_order, [missing])


def test_order_numbers_are_sequential_per_year(db, products, build_order):
    first = place(db, build_order, [product_line(products["lemon-balm"], 1)])
    second = place(db, build_order, [product_line(products["lemon-balm"], 1)])
    year = datetime.utcnow().year
    assert first.order_number == f"ORD-{year}-00001"
    assert second.order_number == f"ORD-{year}-00002"


def test_client_total_mismatch_only_warns(db, products, build_order, caplog):
    with caplog.at_level(logging.WARNING):
        order = place(db, build_order, [product_line(products["lemon-balm"], 1)], total_amount=999)
    assert order.total == pytest.approx(27.59)
    assert "Client total does not match server total" in caplog.text


def test_foreign_compound_is_refused(db, compound, batches, build_order):
    with pytest.raises(CompoundNotOwned) as exc:
        place(db, build_order, [compound_line(compound)], user_id="user-2")
    assert exc.value.message == "Compound not available for this account"
    assert db.query(Order).count() == 0
    assert db.query(CompoundDispensation).count() == 0


def test_missing_or_unpriced_compound(db, compound, build_order):
    with pytest.raises(CompoundNotFound):
        place(db, build_order, [{"type": "compound", "compound_id": 999, "quantity": 1, "price": 1}])

    compound.price = None
    db.commit()
    with pytest.raises(CompoundPriceUnavailable) as exc:
        place(db, build_order, [compound_line(compound)])
    assert exc.value.message == "Compound price unavailable - please resave the blend"


def test_compound_volume_is_drawn_oldest_batch_first(db, compound, batches, build_order):
    older, newer = batches
    order = place(db, build_order, [compound_line(compound, quantity=2)])

    assert order.subtotal == pytest.approx(110.0)
    assert order.items[0].compound_snapshot["name"] == "Evening Calm"
    assert order.items[0].compound_snapshot["bottle_volume_ml"] == 100

    rows = db.query(CompoundDispensation).order_by(CompoundDispensation.id).all()
    assert [(r.batch_id, r.volume_ml) for r in rows] == [(older.id, 150), (newer.id, 50)]
    assert all(r.order_id == order.id for r in rows)
    db.refresh(older)
    db.refresh(newer)
    assert older.status == "dispensed"
    assert newer.status == "active"


def test_batch_shortfall_keeps_the_order(db, compound, batches, build_order, caplog):
    with caplog.at_level(logging.WARNING):
        order = place(db, build_order, [compound_line(compound, quantity=7)])
    assert db.get(Order, order.id) is not None
    total = sum(r.volume_ml for r in db.query(CompoundDispensation).all())
    assert total == pytest.approx(650)
    assert "Insufficient batch volume for compound" in caplog.text


def test_discarded_batches_are_skipped(db, compound, batches, build_order):
    older, newer = batches
    older.status = "discarded"
    db.commit()
    place(db, build_order, [compound_line(compound)])
    rows = db.query(CompoundDispensation).all()
    assert [(r.batch_id, r.volume_ml) for r in rows] == [(newer.id, 100)]


def test_allocation_error_is_logged(db, compound, batches, build_order, monkeypatch, caplog):
    service = OrderService(db)

    def broken(*args):
        raise SQLAlchemyError("deadlock")

    monkeypatch.setattr(service, "_allocate_line", broken)
    with caplog.at_level(logging.ERROR):
        order = service.create_order(OrderCreate(**build_order([compound_line(compound)])), "user-1")
    assert order.id
    assert "Dispensation allocation failed" in caplog.text
    assert db.query(CompoundDispensation).count() == 0


def test_orders_are_private(db, products, build_order):
    order = place(db, build_order, [product_line(products["lemon-balm"], 1)])
    service = OrderService(db)
    assert service.get_order(order.id, "user-1").id == order.id
    assert service.get_order(order.id, "admin-1", is_admin=True).id == order.id
    with pytest.raises(NotFound):
        service.get_order(order.id, "user-2")
    assert [o.id for o in service.list_user_orders("user-1")] == [order.id]
    assert service.list_user_orders("user-2") == []


def test_status_transitions(db, products, build_order):
    order = place(db, build_order, [product_line(products["lemon-balm"], 1)])
    service = OrderService(db)
    assert service.update_order_status(order.id, "processing").status == "processing"
    assert service.update_order_status(order.id, "shipped").status == "shipped"
    with pytest.raises(Conflict) as exc:
        service.update_order_status(order.id, "cancelled")
    assert exc.value.message == "Cannot change order status from shipped to cancelled"
