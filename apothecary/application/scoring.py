"""Wellness questionnaire scoring.

Ten yes/no/sometimes answers are turned into a 0-100 score, a category and
three topic flags (gut, toxic load, lifestyle). Everything here is pure.
"""
import math
from typing import Mapping

from .assessment_schemas import QUESTION_IDS, InsightCopy, InsightFlags, WellnessScoreSummary

ANSWER_POINTS = {"yes": 0, "sometimes": 5, "no": 10}
CONCERN_WEIGHTS = {"yes": 1.0, "sometimes": 0.5, "no": 0.0}
FOCUS_THRESHOLD = 1.5

TOPIC_QUESTIONS = {
    "gut": ("q1_digestive_issues", "q3_medications", "q4_processed_foods", "q9_supplements"),
    "toxic": ("q7_toxic_exposure", "q8_symptoms", "q9_supplements"),
    "lifestyle": ("q2_sleep_quality", "q5_energy_crashes", "q6_water_intake", "q10_unresolved_issues"),
}

SCORE_CATEGORY_LABELS = {
    "strong": {
        "title": "Strong Foundation",
        "subtitle": "Excellent! You have resilient health foundations and can focus on optimization.",
    },
    "moderate": {
        "title": "Room for Improvement",
        "subtitle": "Great progress so far, but there are clear opportunities to strengthen your baseline.",
    },
    "needs_attention": {
        "title": "Urgent Attention Needed",
        "subtitle": "Your body is sending clear signals it needs support. Let's create a plan quickly.",
    },
}

INSIGHT_COPY = {
    "gut": {
        "title": "Gut Health Analysis",
        "focus": (
            "Your digestive system may be compromised. Patterns point to potential dysbiosis, "
            "inflammation, or slowed digestive function that needs targeted support."
        ),
        "stable": (
            "Your gut health appears relatively stable. Strategic fine-tuning could still unlock "
            "better nutrient absorption and less reactivity."
        ),
    },
    "toxic": {
        "title": "Toxic Load & Mineral Status",
        "focus": (
            "Your exposure patterns and symptoms suggest a higher likelihood of heavy metal burden "
            "or mineral depletion. Cellular testing like Oligoscan can reveal exact imbalances."
        ),
        "stable": (
            "Your toxic load appears manageable, though routine monitoring and mineral "
            "replenishment will help prevent future accumulation."
        ),
    },
    "lifestyle": {
        "title": "Lifestyle & Energy Patterns",
        "focus": (
            "Daily rhythms may be draining your energy reserves. Dialing in sleep, hydration, and "
            "nervous-system support could unlock dramatic improvements."
        ),
        "stable": (
            "Your lifestyle foundations are largely supportive. Continue refining stress, sleep, "
            "and hydration habits to protect your momentum."
        ),
    },
}


def _topic_flag(answers: Mapping[str, str], question_ids) -> str:
    total = sum(CONCERN_WEIGHTS[answers[q]] for q in question_ids)
    return "focus" if total >= FOCUS_THRESHOLD else "stable"


def _category(score: int) -> str:
    if score >= 80:
        return "strong"
    if score >= 50:
        return "moderate"
    return "needs_attention"


def calculate_wellness_score(answers: Mapping[str, str]) -> WellnessScoreSummary:
    """Score the ten questionnaire answers.

    `answers` maps each question id to "yes", "no" or "sometimes"; extra keys
    are ignored. A missing question raises KeyError.
    """
    total_points = sum(ANSWER_POINTS[answers[q]] for q in QUESTION_IDS)
    # Half-up rounding
    score = int(math.floor(total_points / (len(QUESTION_IDS) * 10) * 100 + 0.5))
    flags = InsightFlags(**{topic: _topic_flag(answers, ids) for topic, ids in TOPIC_QUESTIONS.items()})
    return WellnessScoreSummary(score=score, category=_category(score), insight_flags=flags)


def insight_copy_map(flags: InsightFlags) -> list[InsightCopy]:
    cards = []
    for topic in ("gut", "toxic", "lifestyle"):
        flag = getattr(flags, topic)
        copy = INSIGHT_COPY[topic]
        cards.append(InsightCopy(
            title=copy["title"],
            status="attention" if flag == "focus" else "positive",
            summary=copy[flag],
        ))
    return cards
