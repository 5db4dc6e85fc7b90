from typing import Any, Mapping

from .assessment_schemas import (
    QUESTION_IDS, AssessmentResult, CallToAction, NextStepRecommendation, QualificationInput,
)
from .scoring import calculate_wellness_score, insight_copy_map

CHRONIC_SITUATIONS = {"managing_chronic", "years_no_resolution", "recovering"}
COMPREHENSIVE_SUPPORT = {"comprehensive_testing", "ongoing_support", "full_service_partnership"}
CONSULTATION_SUPPORT = {"one_time_consult", "comprehensive_testing"}


def determine_qualification_level(data: QualificationInput, score: int) -> str:
    """Lead qualification: high, medium or low."""
    if (
        score < 60
        and data.preferred_support in COMPREHENSIVE_SUPPORT
        and data.current_situation in CHRONIC_SITUATIONS
    ):
        return "high"
    if 60 <= score < 80 and data.preferred_support in CONSULTATION_SUPPORT:
        return "medium"
    return "low"


def build_recommendation(level: str, score: int) -> NextStepRecommendation:
    if level == "high":
        return NextStepRecommendation(
            title="Private Naturopathic Consultation + Oligoscan Testing",
            summary=(
                "Your assessment suggests layered root-cause factors. A comprehensive consultation "
                "coupled with mineral and heavy metal analysis will fast-track clarity."
            ),
            bullets=[
                "90-minute Initial Naturopathy Consultation ($180)",
                "Oligoscan Mineral & Heavy Metal Analysis ($120)",
                "Personalized treatment roadmap and priority protocol",
                "Custom herbal formulation if appropriate",
            ],
            primary_cta=CallToAction(label="Book Your Consultation", href="/booking"),
            secondary_cta=CallToAction(label="Explore Our Services", href="/practitioner"),
        )
    if level == "medium":
        return NextStepRecommendation(
            title="Initial Naturopathy Consultation",
            summary=(
                "Let's go deeper into the symptoms you flagged and create a personalized plan you "
                "can execute confidently."
            ),
            bullets=[
                "90-minute Initial Consultation ($180)",
                "Comprehensive history & symptom review",
                "Targeted recommendations for nutrition, herbs, and lifestyle",
                "Testing options available if needed",
            ],
            primary_cta=CallToAction(label="Schedule Your Appointment", href="/booking"),
            secondary_cta=CallToAction(label="Download Our Free Gut Guide", href="/wellness"),
        )
    if score >= 80:
        summary = (
            "You are on a solid path. Continue fine-tuning with our trusted resources until you "
            "are ready for bespoke support."
        )
    else:
        summary = (
            "Build confidence with foundational education before diving into deeper work. These "
            "resources will help you establish momentum."
        )
    return NextStepRecommendation(
        title="Start with Educational Resources",
        summary=summary,
        bullets=[
            "Free 7-Day Gut Reset Guide",
            "Video: Understanding Oligoscan Testing",
            "Article: Heavy Metals - The Hidden Health Thieves",
        ],
        primary_cta=CallToAction(label="Access Free Resources", href="/wellness"),
        secondary_cta=CallToAction(label="Book a Discovery Call", href="/practitioner"),
    )


def build_result_payload(assessment_id: int, responses: Mapping[str, Any]) -> AssessmentResult:
    """Re-derive the full result view from stored questionnaire responses."""
    summary = calculate_wellness_score({q: responses[q] for q in QUESTION_IDS})
    qualifiers = QualificationInput(**responses)
    level = determine_qualification_level(qualifiers, summary.score)
    return AssessmentResult(
        id=assessment_id,
        name=responses["name"],
        score=summary.score,
        category=summary.category,
        insight_flags=summary.insight_flags,
        qualification_level=level,
        recommended_next_step=build_recommendation(level, summary.score),
        insights=insight_copy_map(summary.insight_flags),
    )
