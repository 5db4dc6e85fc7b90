from apothecary.application.assessment_schemas import QUESTION_IDS, InsightFlags
from apothecary.application.scoring import calculate_wellness_score, insight_copy_map

def answers(default="no", **overrides):
    values = {q: default for q in QUESTION_IDS}
    values.update(overrides)
    return values

def test_all_no_is_full_score():
    summary = calculate_wellness_score(answers("no"))
    assert summary.score == 100
    assert summary.category == "strong"
    assert summary.insight_flags == InsightFlags(gut="stable", toxic="stable", lifestyle="stable")

def test_all_yes_is_zero():
    summary = calculate_wellness_score(answers("yes"))
    assert summary.score == 0
    assert summary.category == "needs_attention"
    assert summary.insight_flags == InsightFlags(gut="focus", toxic="focus", lifestyle="focus")

def test_scoring_is_repeatable():
    data = answers("sometimes", q1_digestive_issues="yes", q6_water_intake="no")
    assert calculate_wellness_score(data) == calculate_wellness_score(dict(data))

def test_sometimes_counts_half():
    summary = calculate_wellness_score(answers("sometimes"))
    assert summary.score == 50
    assert summary.category == "moderate"
    # four gut questions at 0.5 each reach the focus threshold
    assert summary.insight_flags.gut == "focus"
    assert summary.insight_flags.toxic == "focus"

def test_category_boundaries():
    # eight "no" answers and two "yes" answers score exactly 80
    strong = answers("no", q1_digestive_issues="yes", q2_sleep_quality="yes")
    assert calculate_wellness_score(strong).score == 80
    assert calculate_wellness_score(strong).category == "strong"

    moderate = answers("no", q1_digestive_issues="yes", q2_sleep_quality="yes", q3_medications="sometimes")
    assert calculate_wellness_score(moderate).score == 75
    assert calculate_wellness_score(moderate).category == "moderate"

def test_topic_flag_needs_one_and_a_half_points():
    one_concern = answers("no", q7_toxic_exposure="yes")
    assert calculate_wellness_score(one_concern).insight_flags.toxic == "stable"

    one_and_half = answers("no", q7_toxic_exposure="yes", q8_symptoms="sometimes")
    assert calculate_wellness_score(one_and_half).insight_flags.toxic == "focus"

def test_extra_keys_are_ignored():
    data = answers("no", name="Maya", current_situation="recovering")
    assert calculate_wellness_score(data).score == 100

def test_insight_cards_follow_flags():
    cards = insight_copy_map(InsightFlags(gut="focus", toxic="stable", lifestyle="stable"))
    assert [c.title for c in cards] == [
        "Gut Health Analysis",
        "Toxic Load & Mineral Status",
        "Lifestyle & Energy Patterns",
    ]
    assert cards[0].status == "attention"
    assert cards[0].summary.startswith("Your digestive system may be compromised")
    assert cards[1].status == "positive"
