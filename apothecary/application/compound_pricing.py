"""Formula validation and pricing for custom compounds."""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from sqlalchemy.orm import Session

from apothecary.domain.models import CompoundPricingRule, Product
from .errors import ValidationFailed
from .schemas import FormulaHerb, PriceBreakdown

DEFAULT_BOTTLE_VOLUME_ML = 100.0
PERCENTAGE_TOLERANCE = 0.5


def to_cents(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def validate_formula(formula: Any) -> list[FormulaHerb]:
    """Check a raw formula and return it as typed herbs.

    Raises ValidationFailed with the first problem found.
    """
    if not isinstance(formula, list) or not formula:
        raise ValidationFailed("Formula must contain at least one herb.")

    herbs = []
    total = 0.0
    for entry in formula:
        product_id = entry.get("product_id") if isinstance(entry, dict) else None
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id <= 0:
            raise ValidationFailed("Each herb must include a product_id.")
        percentage = entry.get("percentage")
        if isinstance(percentage, bool) or not isinstance(percentage, (int, float)) or math.isnan(percentage):
            raise ValidationFailed("Each herb must include a numeric percentage.")
        if percentage <= 0:
            raise ValidationFailed("Herb percentages must be greater than zero.")
        total += percentage
        herbs.append(FormulaHerb(product_id=product_id, percentage=percentage))

    if abs(total - 100) > PERCENTAGE_TOLERANCE:
        raise ValidationFailed("Formula percentages must add up to 100.")
    return herbs


def clamp_price(value: float, rule: CompoundPricingRule, bottle_volume_ml: float = DEFAULT_BOTTLE_VOLUME_ML) -> float:
    scale = bottle_volume_ml / 100
    low = rule.min_price_per_100ml * scale
    high = rule.max_price_per_100ml * scale
    return min(max(value, low), high)


def fetch_pricing_rule(db: Session, tier: int) -> CompoundPricingRule:
    rule = db.get(CompoundPricingRule, tier)
    if rule is None:
        raise ValidationFailed(f"Pricing rule not configured for tier {tier}")
    return rule


def calculate_compound_price(
    db: Session,
    formula: Iterable[FormulaHerb],
    tier: int,
    bottle_volume_ml: float = DEFAULT_BOTTLE_VOLUME_ML,
) -> PriceBreakdown:
    formula = list(formula)
    if not formula:
        raise ValidationFailed("Formula must include at least one herb.")

    rule = fetch_pricing_rule(db, tier)
    product_ids = {herb.product_id for herb in formula}
    products = {
        p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    base_cost = 0.0
    for herb in formula:
        product = products.get(herb.product_id)
        # Unknown herbs add nothing; the tier minimum still applies
        if product is None:
            continue
        per_ml = product.price / (product.volume_ml or DEFAULT_BOTTLE_VOLUME_ML)
        base_cost += per_ml * (herb.percentage / 100) * bottle_volume_ml

    margin = rule.default_margin or 0.0
    price = clamp_price(base_cost * (1 + margin), rule, bottle_volume_ml)
    return PriceBreakdown(
        price=to_cents(price),
        base_cost=to_cents(base_cost),
        margin_applied=margin,
        tier=rule.tier,
        min_price_per_100ml=rule.min_price_per_100ml,
        max_price_per_100ml=rule.max_price_per_100ml,
        bottle_volume_ml=bottle_volume_ml,
    )
