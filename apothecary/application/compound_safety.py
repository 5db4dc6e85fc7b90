from typing import Iterable, Optional

from sqlalchemy.orm import Session

from apothecary.domain.models import Product
from .schemas import FormulaHerb, SafetyContext, SafetyIssue

# Keyed by product slug
STATIC_SAFETY_RULES = {
    "vitex-berry": {"pregnancy": "avoid", "interactions": ["Hormonal medications"]},
    "ashwagandha-root": {"pregnancy": "caution", "interactions": ["Thyroid medications", "Sedatives"]},
    "turmeric-root": {"interactions": ["Blood thinners"]},
    "garlic": {"interactions": ["Blood thinners"]},
    "hawthorn-berry": {"interactions": ["Cardiac medications"]},
}


def check_formula_safety(
    db: Session,
    formula: Iterable[FormulaHerb],
    context: Optional[SafetyContext] = None,
) -> list[SafetyIssue]:
    formula = list(formula)
    product_ids = {herb.product_id for herb in formula}
    if not product_ids:
        return []
    context = context or SafetyContext()
    products = {
        p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    allergies = [a.strip().lower() for a in context.allergies if a.strip()]
    pregnant = context.pregnancy_status not in (None, "not_pregnant")

    issues = []
    for herb in formula:
        product = products.get(herb.product_id)
        name = product.name if product else "This herb"
        rule = STATIC_SAFETY_RULES.get(product.slug, {}) if product else {}

        risk = rule.get("pregnancy")
        if risk and pregnant:
            if risk == "avoid":
                message = f"{name} should be avoided during pregnancy or nursing."
            else:
                message = f"{name} requires practitioner oversight during pregnancy or nursing."
            issues.append(SafetyIssue(
                severity="error" if risk == "avoid" else "warning",
                code="PREGNANCY", message=message,
                herb_id=herb.product_id, herb_name=product.name if product else None,
            ))

        interactions = rule.get("interactions", [])
        if interactions and context.medications:
            issues.append(SafetyIssue(
                severity="warning",
                code="MEDICATION",
                message=f"{name} may interact with: {', '.join(interactions)}. Review before dispensing.",
                herb_id=herb.product_id, herb_name=product.name if product else None,
            ))

        if product and allergies and any(a in product.name.lower() for a in allergies):
            issues.append(SafetyIssue(
                severity="error",
                code="ALLERGY",
                message=f"{name} matches an allergy noted in the intake.",
                herb_id=herb.product_id, herb_name=product.name,
            ))
    return issues


def aggregate_safety_severity(issues: Iterable[SafetyIssue]) -> str:
    severities = {issue.severity for issue in issues}
    if "error" in severities:
        return "error"
    if "warning" in severities:
        return "warning"
    return "info"
