import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RESEND_API_KEY"] = ""

from datetime import date, datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from apothecary.api.orders import get_email_sender
from apothecary.core_settings import get_settings
from apothecary.domain.models import (
    Base, BookingTypeConfig, Compound, CompoundBatch, CompoundPricingRule, Product,
    WellnessPackage, WellnessPackageEnrolment,
)
from apothecary.infrastructure.availability import get_availability_client
from apothecary.infrastructure.db import SessionLocal, engine
from apothecary.main import app

SHIPPING_ADDRESS = {
    "full_name": "Maya Green",
    "address_line1": "12 Wattle St",
    "city": "Byron Bay",
    "state": "NSW",
    "zip_code": "2481",
    "country": "Australia",
    "phone": "0412345678",
}


class StubAvailability:
    def __init__(self, available=True, slots=None):
        self.available = available
        self.slots = slots if slots is not None else [{"time": "09:00:00", "available": True}]
        self.checked = []

    def is_slot_available(self, day, start, duration_minutes):
        self.checked.append((day, start, duration_minutes))
        return self.available

    def get_available_slots(self, day, booking_type):
        return self.slots


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, to, order):
        self.sent.append((to, order.order_number))
        return {"status": "sent", "id": "test"}

    def send_newsletter_welcome(self, to, name=None):
        self.sent.append((to, "newsletter"))
        return {"status": "sent", "id": "test"}


def make_token(sub="user-1", role="customer", email="maya@wattle.com.au"):
    settings = get_settings()
    return jwt.encode({"sub": sub, "role": role, "email": email}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def auth_headers(sub="user-1", role="customer", email="maya@wattle.com.au"):
    return {"Authorization": f"Bearer {make_token(sub, role, email)}"}


def order_payload(items, total_amount=1.0):
    return {
        "items": items,
        "shipping_address": SHIPPING_ADDRESS,
        "subtotal": 0,
        "shipping_cost": 0,
        "tax": 0,
        "total_amount": total_amount,
    }


@pytest.fixture()
def db():
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture()
def products(db):
    items = [
        Product(slug="lemon-balm", name="Lemon Balm", category="Tinctures", price=20.0,
                stock_quantity=10, volume_ml=100, description="Calming nervine"),
        Product(slug="ginger-root", name="Ginger Root", category="Tinctures", price=30.0,
                stock_quantity=5, volume_ml=100, description="Warming digestive"),
        Product(slug="vitex-berry", name="Vitex Berry", category="Tinctures", price=40.0,
                stock_quantity=3, volume_ml=100),
        Product(slug="rose-tea", name="Rose Tea", category="Teas", price=12.5,
                stock_quantity=8, volume_ml=50, is_active=False),
    ]
    db.add_all(items)
    db.commit()
    return {p.slug: p for p in items}


@pytest.fixture()
def pricing_rules(db):
    rules = [
        CompoundPricingRule(tier=1, min_price_per_100ml=45, max_price_per_100ml=75, default_margin=0.35),
        CompoundPricingRule(tier=2, min_price_per_100ml=55, max_price_per_100ml=95, default_margin=0.45),
        CompoundPricingRule(tier=3, min_price_per_100ml=65, max_price_per_100ml=140, default_margin=0.55),
    ]
    db.add_all(rules)
    db.commit()
    return rules


@pytest.fixture()
def compound(db, products):
    item = Compound(
        owner_user_id="user-1",
        created_by="user-1",
        name="Evening Calm",
        tier=1,
        type="preset",
        formula=[
            {"product_id": products["lemon-balm"].id, "percentage": 60},
            {"product_id": products["ginger-root"].id, "percentage": 40},
        ],
        price=55.0,
        bottle_volume_ml=100,
        status="draft",
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def batches(db, compound):
    older = CompoundBatch(compound_id=compound.id, batch_code="EC-001", total_volume_ml=150,
                          prepared_at=datetime(2026, 1, 5))
    newer = CompoundBatch(compound_id=compound.id, batch_code="EC-002", total_volume_ml=500,
                          prepared_at=datetime(2026, 3, 1))
    db.add_all([newer, older])
    db.commit()
    return older, newer


@pytest.fixture()
def booking_types(db):
    configs = [
        BookingTypeConfig(type="initial", name="Initial Consultation", duration_minutes=60, price=120),
        BookingTypeConfig(type="quick", name="Quick Check-in", duration_minutes=20, price=45),
        BookingTypeConfig(type="oligoscan_assessment", name="Oligoscan Assessment", duration_minutes=30, price=95),
        BookingTypeConfig(type="sauna_session", name="Infrared Sauna", duration_minutes=40, price=0),
        BookingTypeConfig(type="meditation_session", name="Guided Meditation", duration_minutes=45, price=0),
    ]
    db.add_all(configs)
    db.commit()
    return configs


@pytest.fixture()
def package(db):
    item = WellnessPackage(
        slug="reset-12",
        name="12 Week Reset",
        description="Sauna, meditation and dietary support",
        price_cents=89900,
        currency="AUD",
        duration_weeks=12,
        includes={"sauna_session": 2, "meditation_session": 1},
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def enrolment(db, package):
    now = datetime.now(timezone.utc)
    item = WellnessPackageEnrolment(
        user_id="user-1",
        package_id=package.id,
        status="active",
        session_credits={
            "sauna_session": {"included": 2, "used": 0},
            "meditation_session": {"included": 1, "used": 0},
        },
        started_at=now,
        expires_at=now + timedelta(weeks=18),
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def availability():
    return StubAvailability()


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def client(db, availability, sender):
    app.dependency_overrides[get_availability_client] = lambda: availability
    app.dependency_overrides[get_email_sender] = lambda: sender
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def tomorrow():
    return date.today() + timedelta(days=1)


@pytest.fixture()
def headers():
    return auth_headers


@pytest.fixture()
def build_order():
    return order_payload
