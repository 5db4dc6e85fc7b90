"""Guided compound herb suggestions.

Goals selected in the guided intake are mapped through a static herb table,
merged, deduplicated and capped, then annotated with safety warnings.
"""
from typing import Callable, Iterable, Mapping, NamedTuple, Optional

from shared.core import get_logger

from .assessment_schemas import (
    GuidedAssessmentInput, GuidedRecommendation, RecommendationMetadata,
    RecommendationWarning, SuggestedHerb,
)

logger = get_logger(__name__)

MAX_HERBS = 5
MIN_HERBS = 3


class HerbRule(NamedTuple):
    slug: str
    name: str
    start: float
    minimum: float
    maximum: float
    notes: Optional[str] = None
    avoid_during_pregnancy: bool = False


GOAL_LIBRARY = {
    "sleep": (
        HerbRule("valerian-root", "Valerian Root", 30, 20, 40, "Deep calm + sleep onset"),
        HerbRule("passionflower", "Passionflower", 25, 15, 35, "Quiet racing thoughts"),
        HerbRule("lemon-balm", "Lemon Balm", 20, 10, 30, "Mood lifting nervine"),
        HerbRule("ashwagandha-root", "Ashwagandha Root", 15, 10, 25, "Night-time adaptogen for busy minds"),
    ),
    "stress": (
        HerbRule("ashwagandha-root", "Ashwagandha", 30, 20, 35, "Adaptogen for cortisol balance"),
        HerbRule("lemon-balm", "Lemon Balm", 20, 10, 25),
        HerbRule("passionflower", "Passionflower", 15, 10, 20),
        HerbRule("hawthorn-berry", "Hawthorn Berry", 10, 5, 20, "Circulatory support for anxious hearts"),
    ),
    "digestion": (
        HerbRule("ginger-root", "Ginger Root", 25, 15, 35),
        HerbRule("peppermint", "Peppermint", 20, 10, 30, "Gas + bloating support"),
        HerbRule("fennel-seed", "Fennel Seed", 20, 10, 25),
        HerbRule("burdock-root", "Burdock Root", 15, 5, 20, "Liver + lymph support"),
    ),
    "immunity": (
        HerbRule("elderberry", "Elderberry", 30, 20, 35),
        HerbRule("echinacea", "Echinacea", 25, 15, 30, "Acute immune activation"),
        HerbRule("astragalus-root", "Astragalus", 20, 10, 25, "Long-term immune resilience"),
        HerbRule("garlic", "Garlic", 10, 5, 15, "Broad antimicrobial"),
    ),
    "energy": (
        HerbRule("astragalus-root", "Astragalus", 25, 15, 30),
        HerbRule("turmeric-root", "Turmeric Root", 15, 10, 20, "Inflammation + joint support"),
        HerbRule("ginger-root", "Ginger Root", 20, 10, 25),
        HerbRule(
            "vitex-berry", "Vitex Berry", 15, 5, 20, "Hormone-friendly tone for cycling fatigue",
            avoid_during_pregnancy=True,
        ),
    ),
    "detox": (
        HerbRule("burdock-root", "Burdock Root", 25, 15, 30, "Lymphatic drainage + skin clarity"),
        HerbRule("calendula", "Calendula", 20, 10, 25, "Moves lymph and soothes tissue"),
        HerbRule("turmeric-root", "Turmeric Root", 15, 10, 25, "Inflammation + liver support"),
        HerbRule(
            "red-raspberry-leaf", "Red Raspberry Leaf", 15, 5, 20, "Uterine tone + mineral support",
            avoid_during_pregnancy=True,
        ),
    ),
}

FALLBACK_RULES = (
    HerbRule("lemon-balm", "Lemon Balm", 25, 15, 35),
    HerbRule("ginger-root", "Ginger Root", 20, 10, 30),
    HerbRule("burdock-root", "Burdock Root", 15, 5, 25),
)

# slugs -> {slug: {"id": ..., "name": ...}} for the catalog products that exist
ProductLookup = Callable[[list[str]], Mapping[str, Mapping]]


def select_herb_rules(goals: Iterable[str]) -> list[HerbRule]:
    selected: list[HerbRule] = []
    seen: set[str] = set()
    for goal in goals:
        for rule in GOAL_LIBRARY.get(goal, ()):
            if rule.slug in seen:
                continue
            selected.append(rule)
            seen.add(rule.slug)
            if len(selected) >= MAX_HERBS:
                return selected

    if not selected:
        return list(FALLBACK_RULES)
    if len(selected) < MIN_HERBS:
        padding = [r for r in FALLBACK_RULES if r.slug not in seen]
        selected.extend(padding[: MIN_HERBS - len(selected)])
    return selected


def _resolve_products(slugs: list[str], product_lookup: Optional[ProductLookup]) -> Mapping[str, Mapping]:
    if product_lookup is None or not slugs:
        return {}
    try:
        return product_lookup(slugs)
    except Exception as e:
        logger.error(
            "Failed to load herb metadata",
            extra={"extra_fields": {"slugs": slugs, "error": str(e)}},
        )
        return {}


def _allergy_matches(names: list[str], allergies: list[str]) -> list[str]:
    needles = [a.strip().lower() for a in allergies if a.strip()]
    return [n for n in names if any(needle in n.lower() for needle in needles)]


def generate_guided_recommendations(
    payload: GuidedAssessmentInput,
    product_lookup: Optional[ProductLookup] = None,
) -> GuidedRecommendation:
    rules = select_herb_rules(payload.goals)
    products = _resolve_products([r.slug for r in rules], product_lookup)

    herbs = []
    for rule in rules:
        product = products.get(rule.slug)
        herbs.append(SuggestedHerb(
            product_id=product["id"] if product else None,
            slug=rule.slug,
            name=product["name"] if product else rule.name,
            start_percentage=rule.start,
            min_percentage=rule.minimum,
            max_percentage=rule.maximum,
            notes=rule.notes,
        ))

    warnings = []
    if payload.medications:
        warnings.append(RecommendationWarning(
            code="MEDICATIONS",
            message="Review potential herb-medication interactions before finalizing this blend.",
        ))
    if payload.pregnancy_status != "not_pregnant":
        risky = [r.name for r in rules if r.avoid_during_pregnancy]
        if risky:
            warnings.append(RecommendationWarning(
                code="PREGNANCY",
                message=(
                    "The following herbs need practitioner approval during pregnancy or "
                    f"lactation: {', '.join(risky)}."
                ),
            ))
    if payload.allergies:
        matched = _allergy_matches([h.name for h in herbs], payload.allergies)
        if matched:
            warnings.append(RecommendationWarning(
                code="ALLERGY",
                message=f"The following herbs match allergies noted in the intake: {', '.join(matched)}.",
            ))
    if "avoid_alcohol" in payload.sensitivities:
        warnings.append(RecommendationWarning(
            code="ALCOHOL_BASE",
            message=(
                "Current compounds use alcohol extractions. Flag this for glycerite conversion "
                "before bottling."
            ),
        ))

    primary_goal = payload.goals[0]
    supporting = ", ".join(payload.goals[1:]) or "n/a"
    return GuidedRecommendation(
        primary_goal=primary_goal,
        suggested_herbs=herbs,
        warnings=warnings,
        metadata=RecommendationMetadata(
            goals=payload.goals,
            pregnancy_status=payload.pregnancy_status,
            stimulant_sensitivity=payload.stimulant_sensitivity,
            sleep_quality=payload.sleep_quality,
            summary=f"Focus: {primary_goal}. Supporting goals: {supporting}.",
        ),
    )
