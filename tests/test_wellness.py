import logging
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from apothecary.application.errors import Conflict, Forbidden, NotFound, UpstreamError
from apothecary.application.wellness_schemas import CreditEntry, EnrolmentCreate, SessionCreditLedger
from apothecary.application.wellness_service import WellnessService, is_enrolment_expired
from apothecary.domain.models import WellnessPackageEnrolment


def credits(db, enrolment):
    db.refresh(enrolment)
    return enrolment.session_credits


def test_ledger_from_package_includes():
    ledger = SessionCreditLedger.from_includes({"sauna_session": 4, "dietary_session": 2})
    assert ledger.to_json() == {
        "sauna_session": {"included": 4, "used": 0},
        "dietary_session": {"included": 2, "used": 0},
    }


def test_used_cannot_exceed_included():
    with pytest.raises(ValidationError):
        CreditEntry(included=1, used=2)


def test_consume_increments_used(db, enrolment):
    WellnessService(db).consume_session_credit(enrolment.id, "sauna_session", "user-1")
    assert credits(db, enrolment)["sauna_session"] == {"included": 2, "used": 1}
    assert credits(db, enrolment)["meditation_session"] == {"included": 1, "used": 0}


def test_exhausted_credit_is_refused_and_ledger_unchanged(db, enrolment):
    service = WellnessService(db)
    service.consume_session_credit(enrolment.id, "meditation_session", "user-1")
    before = credits(db, enrolment)
    with pytest.raises(Conflict) as exc:
        service.consume_session_credit(enrolment.id, "meditation_session", "user-1")
    assert exc.value.message == "No credits remaining for this session type"
    assert credits(db, enrolment) == before


def test_session_type_not_in_package(db, enrolment):
    with pytest.raises(Conflict):
        WellnessService(db).consume_session_credit(enrolment.id, "dietary_session", "user-1")


def test_consume_checks_owner_status_and_expiry(db, enrolment):
    service = WellnessService(db)
    with pytest.raises(NotFound):
        service.consume_session_credit(9999, "sauna_session")
    with pytest.raises(Forbidden) as exc:
        service.consume_session_credit(enrolment.id, "sauna_session", "user-2")
    assert exc.value.message == "Package enrolment does not belong to user"

    enrolment.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()
    with pytest.raises(Conflict) as exc:
        service.consume_session_credit(enrolment.id, "sauna_session", "user-1")
    assert exc.value.message == "Package enrolment has expired"

    enrolment.status = "completed"
    db.commit()
    with pytest.raises(Conflict) as exc:
        service.consume_session_credit(enrolment.id, "sauna_session", "user-1")
    assert exc.value.message == "Package enrolment is no longer active"
    assert credits(db, enrolment)["sauna_session"]["used"] == 0


@pytest.mark.parametrize("refusal", ["missing", "foreign", "inactive"])
def test_refusals_end_the_locking_transaction(db, enrolment, refusal):
    enrolment_id, user_id = enrolment.id, "user-1"
    if refusal == "missing":
        enrolment_id = 9999
    elif refusal == "foreign":
        user_id = "user-2"
    else:
        enrolment.status = "cancelled"
        db.commit()
    with pytest.raises((NotFound, Forbidden, Conflict)):
        WellnessService(db).consume_session_credit(enrolment_id, "sauna_session", user_id)
    assert not db.in_transaction()


def test_corrupt_ledger_is_refused_on_consume(db, enrolment):
    enrolment.session_credits = {"sauna_session": {"included": 2, "used": "lots"}}
    db.commit()
    with pytest.raises(UpstreamError):
        WellnessService(db).consume_session_credit(enrolment.id, "sauna_session", "user-1")
    assert not db.in_transaction()


def test_release_on_corrupt_ledger_logs_instead_of_raising(db, enrolment, caplog):
    enrolment.session_credits = {"sauna_session": {"included": 2, "used": "lots"}}
    db.commit()
    with caplog.at_level(logging.ERROR):
        WellnessService(db).release_session_credit(enrolment.id, "sauna_session")
    assert "Failed to release session credit" in caplog.text
    assert credits(db, enrolment)["sauna_session"]["used"] == "lots"


def test_release_gives_a_credit_back(db, enrolment):
    service = WellnessService(db)
    service.consume_session_credit(enrolment.id, "sauna_session", "user-1")
    service.release_session_credit(enrolment.id, "sauna_session")
    assert credits(db, enrolment)["sauna_session"]["used"] == 0


def test_release_at_zero_is_a_no_op(db, enrolment):
    service = WellnessService(db)
    before = credits(db, enrolment)
    service.release_session_credit(enrolment.id, "sauna_session")
    service.release_session_credit(enrolment.id, "dietary_session")
    service.release_session_credit(9999, "sauna_session")
    assert credits(db, enrolment) == before


def test_enrolment_expiry_defaults_to_programme_plus_buffer(db, package):
    enrolment = WellnessService(db).create_enrolment(EnrolmentCreate(user_id="user-3", package_slug="reset-12"))
    assert enrolment.session_credits["sauna_session"] == {"included": 2, "used": 0}
    length = enrolment.expires_at.replace(tzinfo=None) - enrolment.started_at.replace(tzinfo=None)
    assert length == timedelta(weeks=18)


def test_naive_expiry_is_read_as_utc(db, enrolment):
    enrolment.expires_at = datetime.utcnow() + timedelta(hours=1)
    assert not is_enrolment_expired(enrolment)
    enrolment.expires_at = datetime.utcnow() - timedelta(hours=1)
    assert is_enrolment_expired(enrolment)


def test_packages_endpoint(client, package):
    body = client.get("/wellness/packages").json()
    assert [p["slug"] for p in body] == ["reset-12"]
    assert body[0]["includes"] == {"sauna_session": 2, "meditation_session": 1}


def test_enrolment_endpoint(client, enrolment, headers):
    assert client.get("/wellness/enrolment").status_code == 401
    body = client.get("/wellness/enrolment", headers=headers()).json()
    assert body["id"] == enrolment.id
    assert body["package"]["slug"] == "reset-12"
    assert client.get("/wellness/enrolment", headers=headers(sub="user-2")).json() is None


def test_admin_enrols_a_user(client, db, package, headers):
    payload = {"user_id": "user-5", "package_id": package.id}
    assert client.post("/wellness/enrolments", json=payload, headers=headers()).status_code == 403

    resp = client.post("/wellness/enrolments", json=payload, headers=headers(sub="admin-1", role="admin"))
    assert resp.status_code == 201
    assert resp.json()["status"] == "active"
    assert db.query(WellnessPackageEnrolment).filter_by(user_id="user-5").count() == 1

    missing = {"user_id": "user-5", "package_slug": "no-such-package"}
    resp = client.post("/wellness/enrolments", json=missing, headers=headers(sub="admin-1", role="admin"))
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Wellness package not found"
