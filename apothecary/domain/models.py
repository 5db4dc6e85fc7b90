from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Integer, ForeignKey, Numeric, Boolean, Text, DateTime, Date, Time, JSON,
    CheckConstraint, UniqueConstraint, event, func, select,
)
from datetime import datetime, date, time
from typing import Optional

class Base(DeclarativeBase):
    pass

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), index=True)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Bottle size the price refers to; used for per-ml compound costing
    volume_ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=100)
    contraindications: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    # Identity provider subject; no FK, users live outside this store
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(30), default="pending")
    subtotal: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    shipping: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    tax: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    total: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    shipping_address: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    items: Mapped[list["OrderItem"]] = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (compound_id IS NULL)",
            name="ck_order_items_single_reference",
        ),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(20))
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id"), nullable=True)
    compound_id: Mapped[Optional[int]] = mapped_column(ForeignKey("compounds.id"), nullable=True)
    quantity: Mapped[int]
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    # Copies taken at purchase time, immune to later catalog edits
    product_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    compound_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    order: Mapped[Order] = relationship("Order", back_populates="items")

@event.listens_for(Order, "before_insert")
def assign_order_number(mapper, connection, target):
    """Number orders ORD-YYYY-NNNNN, sequential within the year."""
    if target.order_number:
        return
    prefix = f"ORD-{datetime.utcnow().year}-"
    table = Order.__table__
    latest = connection.execute(
        select(func.max(table.c.order_number)).where(table.c.order_number.like(f"{prefix}%"))
    ).scalar()
    sequence = int(latest[len(prefix):]) + 1 if latest else 1
    target.order_number = f"{prefix}{sequence:05d}"

class CompoundPricingRule(Base):
    __tablename__ = "compound_pricing_rules"
    tier: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    min_price_per_100ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    max_price_per_100ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    default_margin: Mapped[float] = mapped_column(Numeric(5, 4, asdecimal=False), default=0)

class Compound(Base):
    __tablename__ = "compounds"
    id: Mapped[int] = mapped_column(primary_key=True)
    owner_user_id: Mapped[str] = mapped_column(String(64), index=True)
    created_by: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(200))
    tier: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(30))
    # Ordered list of {"product_id": int, "percentage": float}
    formula: Mapped[list] = mapped_column(JSON)
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    bottle_volume_ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=100)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_assessment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assessments.id"), nullable=True)
    source_booking_id: Mapped[Optional[int]] = mapped_column(ForeignKey("bookings.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    batches: Mapped[list["CompoundBatch"]] = relationship("CompoundBatch", back_populates="compound")

class CompoundBatch(Base):
    __tablename__ = "compound_batches"
    id: Mapped[int] = mapped_column(primary_key=True)
    compound_id: Mapped[int] = mapped_column(ForeignKey("compounds.id"), index=True)
    batch_code: Mapped[str] = mapped_column(String(50))
    total_volume_ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    # active | dispensed | discarded
    status: Mapped[str] = mapped_column(String(20), default="active")
    prepared_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prepared_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    compound: Mapped[Compound] = relationship("Compound", back_populates="batches")
    dispensations: Mapped[list["CompoundDispensation"]] = relationship("CompoundDispensation", back_populates="batch")

class CompoundDispensation(Base):
    __tablename__ = "compound_dispensations"
    id: Mapped[int] = mapped_column(primary_key=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("compound_batches.id"), index=True)
    # Manual dispensations are not tied to an order
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64))
    volume_ml: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    dispensed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    batch: Mapped[CompoundBatch] = relationship("CompoundBatch", back_populates="dispensations")

class GuidedAssessment(Base):
    __tablename__ = "assessments"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(40), default="guided_compound")
    responses: Mapped[dict] = mapped_column(JSON)
    recommendations: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

class WellnessAssessment(Base):
    __tablename__ = "wellness_assessments"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(80))
    email: Mapped[str] = mapped_column(String(255), index=True)
    # Questionnaire answers, qualifiers and contact extras as submitted
    responses: Mapped[dict] = mapped_column(JSON)
    wellness_score: Mapped[int] = mapped_column(Integer)
    score_category: Mapped[str] = mapped_column(String(30))
    qualification_level: Mapped[str] = mapped_column(String(10))
    recommended_next_step: Mapped[dict] = mapped_column(JSON)
    # Follow-up actions taken from the results page
    result_viewed: Mapped[bool] = mapped_column(Boolean, default=False)
    clicked_cta: Mapped[bool] = mapped_column(Boolean, default=False)
    booking_made: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

class WellnessPackage(Base):
    __tablename__ = "wellness_packages"
    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    price_cents: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="AUD")
    duration_weeks: Mapped[int] = mapped_column(Integer)
    # Session type -> number of sessions included
    includes: Mapped[dict] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

class WellnessPackageEnrolment(Base):
    __tablename__ = "wellness_package_enrolments"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("wellness_packages.id"))
    # active | completed | expired
    status: Mapped[str] = mapped_column(String(20), default="active")
    # Session type -> {"included": int, "used": int}, rewritten as a whole
    session_credits: Mapped[dict] = mapped_column(JSON)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    package: Mapped[WellnessPackage] = relationship("WellnessPackage")

class BookingTypeConfig(Base):
    __tablename__ = "booking_type_config"
    type: Mapped[str] = mapped_column(String(40), primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Booking(Base):
    __tablename__ = "bookings"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    practitioner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(40))
    date: Mapped[date] = mapped_column(Date)
    time: Mapped[time] = mapped_column(Time)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    # scheduled | confirmed | completed | cancelled | no_show
    status: Mapped[str] = mapped_column(String(20), default="scheduled")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    package_enrolment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("wellness_package_enrolments.id"), nullable=True
    )
    is_package_booking: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_reviews_product_user"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    rating: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(100))
    comment: Mapped[str] = mapped_column(Text)
    verified_purchase: Mapped[bool] = mapped_column(Boolean, default=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=True)
    # Count of "helpful" votes, recomputed on every vote
    helpful_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    votes: Mapped[list["ReviewVote"]] = relationship("ReviewVote", back_populates="review", cascade="all, delete-orphan")

class ReviewVote(Base):
    __tablename__ = "review_votes"
    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_votes_review_user"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    review_id: Mapped[int] = mapped_column(ForeignKey("reviews.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(64))
    is_helpful: Mapped[bool] = mapped_column(Boolean)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    review: Mapped[Review] = relationship("Review", back_populates="votes")

class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"
    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(190), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    subscribed: Mapped[bool] = mapped_column(Boolean, default=True)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
