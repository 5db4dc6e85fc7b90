from apothecary.application.assessment_schemas import QUESTION_IDS
from apothecary.domain.models import GuidedAssessment, WellnessAssessment


def submission(**overrides):
    values = {q: "yes" for q in QUESTION_IDS}
    values.update({
        "name": "Maya Green",
        "email": "  Maya@Wattle.com.au ",
        "phone": "0412 345 678",
        "location": "   ",
        "current_situation": "managing_chronic",
        "primary_goal": "resolve_digestive",
        "biggest_obstacle": "tried_many_things",
        "preferred_support": "ongoing_support",
    })
    values.update(overrides)
    return values


def guided_intake(**overrides):
    values = {
        "primary_concern": "Bloating after meals and low energy",
        "goals": ["digestion", "energy"],
        "allergies": ["fennel"],
        "pregnancy_status": "not_pregnant",
        "stimulant_sensitivity": "low",
        "sleep_quality": "tired",
    }
    values.update(overrides)
    return values


def test_submit_is_public_and_scored(client, db):
    resp = client.post("/assessment/submit", json=submission())
    assert resp.status_code == 201
    body = resp.json()
    result = body["result"]
    assert result["id"] == body["assessment_id"]
    assert result["score"] == 0
    assert result["category"] == "needs_attention"
    assert result["qualification_level"] == "high"
    assert result["recommended_next_step"]["primary_cta"]["label"] == "Book Your Consultation"

    record = db.get(WellnessAssessment, body["assessment_id"])
    assert record.email == "maya@wattle.com.au"
    assert record.responses["location"] is None
    assert record.wellness_score == 0


def test_results_are_rebuilt_from_storage(client):
    assessment_id = client.post("/assessment/submit", json=submission()).json()["assessment_id"]
    resp = client.get(f"/assessment/results/{assessment_id}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Maya Green"
    assert len(resp.json()["insights"]) == 3

    missing = client.get("/assessment/results/9999")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Assessment not found"


def test_submission_validation(client):
    assert client.post("/assessment/submit", json=submission(phone="555-1234")).status_code == 422
    assert client.post("/assessment/submit", json=submission(email="not-an-email")).status_code == 422
    assert client.post("/assessment/submit", json=submission(q1_digestive_issues="maybe")).status_code == 422


def test_guided_assessment_needs_a_user(client):
    assert client.post("/assessments/guided-compound", json=guided_intake()).status_code == 401


def test_guided_assessment_links_catalog_products(client, db, products, headers):
    resp = client.post("/assessments/guided-compound", json=guided_intake(), headers=headers())
    assert resp.status_code == 201
    body = resp.json()

    herbs = body["recommendations"]["suggested_herbs"]
    assert len(herbs) == 5
    ginger = next(h for h in herbs if h["slug"] == "ginger-root")
    assert ginger["product_id"] == products["ginger-root"].id
    assert [w["code"] for w in body["recommendations"]["warnings"]] == ["ALLERGY"]

    record = db.get(GuidedAssessment, body["assessment"]["id"])
    assert record.user_id == "user-1"
    assert record.responses["goals"] == ["digestion", "energy"]
    assert record.recommendations["primary_goal"] == "digestion"


def test_results_page_actions_are_tracked(client, db):
    assessment_id = client.post("/assessment/submit", json=submission()).json()["assessment_id"]
    for action in ("view", "secondary", "booking"):
        resp = client.post("/assessment/track-action", json={"id": assessment_id, "action": action})
        assert resp.status_code == 204

    record = db.get(WellnessAssessment, assessment_id)
    db.refresh(record)
    assert (record.result_viewed, record.clicked_cta, record.booking_made) == (True, True, True)

    assert client.post("/assessment/track-action", json={"id": assessment_id, "action": "share"}).status_code == 422
    missing = client.post("/assessment/track-action", json={"id": 9999, "action": "view"})
    assert missing.status_code == 404
