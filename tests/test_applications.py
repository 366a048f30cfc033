"""Tests for the applications module and the submission gate."""
import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.scholartrack import create_app
from app.scholartrack.db import session_scope
from app.scholartrack.models import AuditEvent, Base, User
from app.scholartrack.modules.applications.models import Application, ApplicationSection
from app.scholartrack.modules.applications.service import (
    calculate_progress,
    can_transition_to,
    incomplete_sections,
    next_section_id,
    submit_application,
    validate_application_payload,
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "PAYWALL_ENABLED"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for email in ("alice@example.com", "bob@example.com"):
            s.add(User(email=email, password_hash=generate_password_hash("pw"), is_active=True))

    return app


def _login(app, email="alice@example.com"):
    c = app.test_client()
    r = c.post("/auth/login", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return c


def _create(c, offer_id="sch-1", sections=("a", "b")):
    r = c.post("/applications", json={"offerId": offer_id, "name": "Merit award", "sections": list(sections)})
    assert r.status_code == 201, r.json
    return r.json["application"]


def _submit_events(app) -> int:
    with session_scope(app) as s:
        return len(s.scalars(select(AuditEvent).where(AuditEvent.action == "application.submit")).all())


# ─────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ─────────────────────────────────────────────────────────────────────────────


def _application(*flags):
    return Application(
        sections=[ApplicationSection(section_id=chr(ord("a") + i), position=i, is_complete=f) for i, f in enumerate(flags)]
    )


def test_incomplete_sections_in_order():
    assert incomplete_sections(_application(True, False, False)) == ["b", "c"]
    assert incomplete_sections(_application(True, True)) == []
    assert incomplete_sections(_application()) == []


def test_calculate_progress():
    assert calculate_progress(_application()) == 0
    assert calculate_progress(_application(True, False)) == 50
    assert calculate_progress(_application(True, False, False)) == 33
    assert calculate_progress(_application(True, True, False)) == 67
    assert calculate_progress(_application(True, True)) == 100


def test_next_section_id():
    a = _application(False, False, False)
    assert next_section_id(a) == "a"
    a.current_section_id = "b"
    assert next_section_id(a) == "c"
    a.current_section_id = "c"
    assert next_section_id(a) is None


def test_status_transitions():
    assert can_transition_to("draft", "in_progress")
    assert can_transition_to("draft", "submitted")
    assert can_transition_to("in_progress", "submitted")
    assert not can_transition_to("in_progress", "draft")
    assert not can_transition_to("submitted", "in_progress")
    assert not can_transition_to("submitted", "submitted")


def test_validate_application_payload():
    fields, errors = validate_application_payload({"offerId": " x ", "sections": ["a", "b"]})
    assert errors == []
    assert fields["offer_id"] == "x"
    assert fields["offer_type"] == "scholarship"
    assert fields["section_ids"] == ["a", "b"]

    fields, errors = validate_application_payload({"sections": ["a", "a"], "offerType": "job"})
    assert fields == {}
    assert "offerId is required" in errors
    assert any(e.startswith("offerType must be one of") for e in errors)
    assert "Duplicate section id: a" in errors


# ─────────────────────────────────────────────────────────────────────────────
# API
# ─────────────────────────────────────────────────────────────────────────────


def test_requires_login(app):
    c = app.test_client()
    assert c.get("/applications").status_code == 401
    assert c.post("/applications/1/submit").status_code == 401


def test_create_and_list(app):
    c = _login(app)
    a = _create(c)
    assert a["status"] == "draft"
    assert a["progress"] == 0
    assert [sec["sectionId"] for sec in a["sections"]] == ["a", "b"]

    r = c.get("/applications")
    assert r.status_code == 200
    assert [x["id"] for x in r.json["applications"]] == [a["id"]]


def test_create_duplicate_offer_rejected(app):
    c = _login(app)
    first = _create(c)
    r = c.post("/applications", json={"offerId": "sch-1", "sections": ["a"]})
    assert r.status_code == 400
    assert r.json["applicationId"] == first["id"]


def test_create_requires_offer(app):
    c = _login(app)
    r = c.post("/applications", json={"sections": ["a"]})
    assert r.status_code == 400
    assert r.json["errors"] == ["offerId is required"]


def test_submit_scenario(app):
    c = _login(app)
    a = _create(c)

    r = c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})
    assert r.status_code == 200
    assert r.json["application"]["status"] == "in_progress"
    assert r.json["application"]["progress"] == 50
    assert r.json["application"]["currentSectionId"] == "a"

    r = c.post(f"/applications/{a['id']}/submit")
    assert r.status_code == 400
    assert r.json["incompleteSections"] == ["b"]
    assert _submit_events(app) == 0

    r = c.put(f"/applications/{a['id']}/sections/b", json={"isComplete": True})
    assert r.json["application"]["progress"] == 100

    r = c.post(f"/applications/{a['id']}/submit")
    assert r.status_code == 200
    assert r.json["applicationId"] == a["id"]
    assert "alreadySubmitted" not in r.json
    submitted = r.json["application"]
    assert submitted["status"] == "submitted"
    assert submitted["progress"] == 100
    assert submitted["submittedAt"] is not None
    assert submitted["submittedAt"] == submitted["completedAt"]

    r = c.get(f"/applications/{a['id']}/submission-status")
    assert r.json["applicationSubmitted"] is True
    assert r.json["status"] == "submitted"


def test_submit_all_incomplete_lists_every_section(app):
    c = _login(app)
    a = _create(c, sections=("intro", "essay", "refs"))
    r = c.post(f"/applications/{a['id']}/submit")
    assert r.status_code == 400
    assert r.json["incompleteSections"] == ["intro", "essay", "refs"]


def test_double_submit_single_event(app):
    c = _login(app)
    a = _create(c, sections=("a",))
    c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})

    r1 = c.post(f"/applications/{a['id']}/submit")
    r2 = c.post(f"/applications/{a['id']}/submit")
    assert r1.status_code == 200
    assert r2.status_code == 200
    assert r2.json["alreadySubmitted"] is True
    assert r2.json["application"]["submittedAt"] == r1.json["application"]["submittedAt"]
    assert _submit_events(app) == 1


def test_racing_submit_transitions_once(app):
    c = _login(app)
    a = _create(c, sections=("a",))
    c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})

    sm = app.extensions["sqlalchemy_sessionmaker"]
    s1, s2 = sm(), sm()
    try:
        # Both sessions read the application before either submits.
        stale = s1.get(Application, a["id"])
        fresh = s2.get(Application, a["id"])
        assert stale.status == fresh.status == "in_progress"

        _, already = submit_application(s2, fresh, user=s2.get(User, fresh.user_id))
        s2.commit()
        assert already is False

        application, already = submit_application(s1, stale, user=s1.get(User, stale.user_id))
        s1.commit()
        assert already is True
        assert application.status == "submitted"
    finally:
        s1.close()
        s2.close()

    assert _submit_events(app) == 1


def test_not_found_and_other_owner(app):
    alice = _login(app)
    a = _create(alice)
    bob = _login(app, "bob@example.com")

    assert bob.get(f"/applications/{a['id']}").status_code == 404
    assert bob.post(f"/applications/{a['id']}/submit").status_code == 404
    assert bob.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True}).status_code == 404
    assert alice.post("/applications/9999/submit").status_code == 404
    assert alice.get("/applications/9999/submission-status").status_code == 404


def test_section_update_errors(app):
    c = _login(app)
    a = _create(c, sections=("a",))

    r = c.put(f"/applications/{a['id']}/sections/zzz", json={"isComplete": True})
    assert r.status_code == 404

    r = c.put(f"/applications/{a['id']}/sections/a", json={})
    assert r.status_code == 400

    c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})
    c.post(f"/applications/{a['id']}/submit")
    r = c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": False})
    assert r.status_code == 400
    assert r.json["error"] == "Application has already been submitted"


def test_reopening_section_lowers_progress(app):
    c = _login(app)
    a = _create(c)
    c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})
    c.put(f"/applications/{a['id']}/sections/b", json={"isComplete": True})
    r = c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": False})
    assert r.json["application"]["progress"] == 50
    sec_a = r.json["application"]["sections"][0]
    assert sec_a["isComplete"] is False
    assert sec_a["completedAt"] is None
    assert sec_a["startedAt"] is not None


def test_delete_is_soft(app):
    c = _login(app)
    a = _create(c)
    r = c.delete(f"/applications/{a['id']}")
    assert r.status_code == 200
    assert c.get(f"/applications/{a['id']}").status_code == 404
    assert c.get("/applications").json["applications"] == []

    with session_scope(app) as s:
        assert s.get(Application, a["id"]).is_active is False

    # The offer is free again once the old application is gone.
    _create(c)


def test_list_filter_by_status(app):
    c = _login(app)
    a = _create(c, offer_id="one", sections=("a",))
    _create(c, offer_id="two")
    c.put(f"/applications/{a['id']}/sections/a", json={"isComplete": True})
    c.post(f"/applications/{a['id']}/submit")

    r = c.get("/applications?status=submitted")
    assert [x["offerId"] for x in r.json["applications"]] == ["one"]
    assert c.get("/applications?status=bogus").status_code == 400
