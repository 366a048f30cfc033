import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.scholartrack import create_app
from app.scholartrack.db import session_scope
from app.scholartrack.errors import ValidationError
from app.scholartrack.models import AuditEvent, Base, Permission, Role, User
from app.scholartrack.modules.documents.models import Document
from app.scholartrack.modules.requirements.models import ApplicationRequirement
from app.scholartrack.modules.requirements.service import (
    RequirementStatus,
    can_transition_to,
    parse_bulk_update,
    parse_requirement_payload,
)
from app.scholartrack.utils import parse_int, parse_number


def _make_app(tmp_path, monkeypatch, **env):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    for k in ("PAYWALL_ENABLED", "REQUIREMENT_STRICT_TRANSITIONS"):
        monkeypatch.delenv(k, raising=False)
    for k, v in env.items():
        monkeypatch.setenv(k, v)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="feature.requirements_tracking", name="Feature: requirements tracking")
        premium = Role(key="premium", name="Premium")
        premium.permissions.append(p)
        alice = User(email="alice@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        alice.roles.append(premium)
        bob = User(email="bob@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, premium, alice, bob])

    return app


@pytest.fixture()
def app(tmp_path, monkeypatch):
    return _make_app(tmp_path, monkeypatch)


def _login(app, email="alice@example.com"):
    c = app.test_client()
    r = c.post("/auth/login", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return c


def _application(c, offer_id="sch-1"):
    r = c.post("/applications", json={"offerId": offer_id, "sections": ["a"]})
    assert r.status_code == 201
    return r.json["application"]["id"]


def _requirement(c, application_id, **overrides):
    body = {
        "applicationId": application_id,
        "requirementType": "document",
        "category": "academic",
        "name": "Transcript",
        "documentType": "transcript",
    }
    body.update(overrides)
    r = c.post("/application-requirements", json=body)
    assert r.status_code == 201, r.json
    return r.json["requirement"]


def _add_document(app, owner_email, title="CV"):
    with session_scope(app) as s:
        owner = s.scalars(select(User).where(User.email == owner_email)).one()
        doc = Document(
            owner_user_id=owner.id,
            title=title,
            filename="cv.pdf",
            content_type="application/pdf",
            storage_key=f"documents/{owner.id}/{title}/cv.pdf",
        )
        s.add(doc)
        s.flush()
        return doc.id


# ─────────────────────────────────────────────────────────────────────────────
# Parsing and transitions
# ─────────────────────────────────────────────────────────────────────────────


def test_parse_requirement_payload_type_rules():
    data, errors = parse_requirement_payload(
        {"requirementType": "test_score", "category": "academic", "name": "GRE", "testType": "gre", "minScore": 320, "maxScore": 300}
    )
    assert errors == ["minScore cannot be greater than maxScore"]

    _, errors = parse_requirement_payload({"requirementType": "fee", "category": "financial", "name": "Fee"})
    assert errors == ["Fee amount is required for fee requirements"]

    _, errors = parse_requirement_payload({"requirementType": "essay", "category": "academic", "name": "X"})
    assert errors[0].startswith("Invalid requirementType")

    data, errors = parse_requirement_payload(
        {"requirementType": "other", "category": "personal", "name": "Photo", "allowedFileTypes": [".PNG", "jpg"]}
    )
    assert errors == []
    assert data["allowed_file_types"] == ["png", "jpg"]
    assert "is_required" not in data


def test_partial_payload_checks_against_current():
    current = ApplicationRequirement(requirement_type="document", category="academic", name="CV", document_type="cv")
    data, errors = parse_requirement_payload({"name": "Resume"}, partial=True, current=current)
    assert errors == []
    assert data == {"name": "Resume"}

    _, errors = parse_requirement_payload({"documentType": None}, partial=True, current=current)
    assert errors == ["Document type is required for document requirements"]


def test_strict_transition_table():
    assert can_transition_to("pending", RequirementStatus.COMPLETED)
    assert can_transition_to("completed", RequirementStatus.COMPLETED)
    assert can_transition_to("completed", RequirementStatus.IN_PROGRESS)
    assert not can_transition_to("completed", RequirementStatus.WAIVED)
    assert not can_transition_to("waived", RequirementStatus.COMPLETED)


def test_parse_bulk_update_rejects_unknown_fields():
    with pytest.raises(ValidationError) as exc:
        parse_bulk_update({"requirementIds": [1], "updates": {"name": "x"}})
    assert "Fields not allowed in bulk update: name" in str(exc.value)


def test_numeric_parsing_rejects_non_finite_and_fractional():
    errors: list[str] = []
    assert parse_number("nan", field="minScore", errors=errors) is None
    assert parse_number(float("inf"), field="maxScore", errors=errors) is None
    assert parse_number("12.5", field="maxFileSize", errors=errors) == 12.5
    assert errors == ["minScore must be a number", "maxScore must be a number"]

    errors = []
    assert parse_int(2.9, field="wordLimit", errors=errors) is None
    assert parse_int(3.0, field="order", errors=errors) == 3
    assert parse_int("7", field="characterLimit", errors=errors) == 7
    assert errors == ["wordLimit must be a number"]

    ids, fields = parse_bulk_update({"requirementIds": [2, 2, 3], "updates": {"status": "completed", "order": 4}})
    assert ids == [2, 3]
    assert fields == {"status": RequirementStatus.COMPLETED, "order": 4}


# ─────────────────────────────────────────────────────────────────────────────
# API
# ─────────────────────────────────────────────────────────────────────────────


def test_create_and_list(app):
    c = _login(app)
    app_id = _application(c)
    first = _requirement(c, app_id)
    second = _requirement(c, app_id, name="Essay", documentType="personal_statement", isRequired=False, isOptional=True)
    assert first["status"] == "pending"
    assert first["order"] == 0
    assert second["order"] == 1

    r = c.get(f"/application-requirements?applicationId={app_id}")
    assert r.status_code == 200
    assert r.json["total"] == 2
    assert [x["name"] for x in r.json["requirements"]] == ["Transcript", "Essay"]

    r = c.get(f"/application-requirements?applicationId={app_id}&isOptional=true")
    assert [x["name"] for x in r.json["requirements"]] == ["Essay"]

    r = c.get(f"/application-requirements?applicationId={app_id}&sortBy=name&sortOrder=asc")
    assert [x["name"] for x in r.json["requirements"]] == ["Essay", "Transcript"]

    assert c.get("/application-requirements").status_code == 400
    assert c.get(f"/application-requirements?applicationId={app_id}&sortBy=bogus").status_code == 400


def test_create_validates_type_specific_fields(app):
    c = _login(app)
    app_id = _application(c)
    r = c.post(
        "/application-requirements",
        json={"applicationId": app_id, "requirementType": "document", "category": "academic", "name": "CV"},
    )
    assert r.status_code == 400
    assert r.json["error"] == "Document type is required for document requirements"

    r = c.post("/application-requirements", json={"requirementType": "other", "category": "personal", "name": "X"})
    assert r.status_code == 400
    assert r.json["error"] == "Application ID is required"


def test_other_owner_cannot_see_requirements(app):
    alice = _login(app)
    app_id = _application(alice)
    req = _requirement(alice, app_id)

    bob = _login(app, "bob@example.com")
    assert bob.get(f"/application-requirements/{req['id']}").status_code == 404
    assert bob.get(f"/application-requirements?applicationId={app_id}").status_code == 404
    assert bob.put(f"/application-requirements/{req['id']}/status", json={"status": "completed"}).status_code == 404
    assert bob.get(f"/applications/{app_id}/requirements/summary").status_code == 404


def test_status_update(app):
    c = _login(app)
    req = _requirement(c, _application(c))

    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "done"})
    assert r.status_code == 400
    assert r.json["allowedStatuses"] == ["pending", "in_progress", "completed", "waived", "not_applicable"]

    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "completed", "notes": "Sent by registrar"})
    assert r.status_code == 200
    assert r.json["requirement"]["status"] == "completed"
    assert r.json["requirement"]["isComplete"] is True
    assert r.json["requirement"]["submittedAt"] is not None

    r = c.get(f"/application-requirements/{req['id']}")
    assert r.json["requirement"]["notes"] == "Sent by registrar"

    # Lenient mode lets any status follow any other.
    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "waived"})
    assert r.status_code == 200


def test_fee_completion_marks_paid(app):
    c = _login(app)
    req = _requirement(
        c, _application(c), requirementType="fee", category="financial", name="Application fee", applicationFeeAmount=50
    )
    assert req["applicationFeePaid"] is False

    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "completed"})
    assert r.json["requirement"]["applicationFeePaid"] is True
    assert r.json["requirement"]["applicationFeePaidAt"] is not None


def test_fee_amount_must_be_finite(app):
    c = _login(app)
    app_id = _application(c)
    for amount in ("nan", "inf", "-Infinity"):
        r = c.post(
            "/application-requirements",
            json={
                "applicationId": app_id,
                "requirementType": "fee",
                "category": "financial",
                "name": "Application fee",
                "applicationFeeAmount": amount,
            },
        )
        assert r.status_code == 400
        assert "applicationFeeAmount must be a number" in r.json["errors"]

    with session_scope(app) as s:
        assert s.scalars(select(ApplicationRequirement)).all() == []


def test_strict_transitions(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, REQUIREMENT_STRICT_TRANSITIONS="1")
    c = _login(app)
    req = _requirement(c, _application(c))

    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "waived"})
    assert r.status_code == 200

    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "completed"})
    assert r.status_code == 400
    assert r.json["error"] == "Cannot transition from waived to completed"
    assert r.json["allowedStatuses"] == ["pending"]

    # Same status is always accepted.
    r = c.put(f"/application-requirements/{req['id']}/status", json={"status": "waived"})
    assert r.status_code == 200


def test_update_requirement_fields(app):
    c = _login(app)
    req = _requirement(c, _application(c))

    r = c.put(
        f"/application-requirements/{req['id']}",
        json={"description": "Official copy", "externalUrl": "https://registrar.example.edu", "status": "in_progress"},
    )
    assert r.status_code == 200
    assert r.json["requirement"]["description"] == "Official copy"
    assert r.json["requirement"]["externalUrl"] == "https://registrar.example.edu"
    assert r.json["requirement"]["status"] == "in_progress"

    r = c.put(f"/application-requirements/{req['id']}", json={"category": "nope"})
    assert r.status_code == 400


def test_link_document_requires_id(app):
    c = _login(app)
    req = _requirement(c, _application(c))

    r = c.post(f"/application-requirements/{req['id']}/link-document", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Document ID is required"

    r = c.get(f"/application-requirements/{req['id']}")
    assert r.json["requirement"]["status"] == "pending"
    assert r.json["requirement"]["linkedDocumentId"] is None

    with session_scope(app) as s:
        linked = s.scalars(select(AuditEvent).where(AuditEvent.action == "requirement.link_document")).all()
    assert linked == []


def test_link_document(app):
    c = _login(app)
    req = _requirement(c, _application(c))
    mine = _add_document(app, "alice@example.com")
    theirs = _add_document(app, "bob@example.com", title="Other")

    r = c.post(f"/application-requirements/{req['id']}/link-document", json={"documentId": theirs})
    assert r.status_code == 404

    r = c.post(f"/application-requirements/{req['id']}/link-document", json={"documentId": mine, "notes": "Final"})
    assert r.status_code == 200
    body = r.json["requirement"]
    assert body["linkedDocumentId"] == mine
    assert body["status"] == "completed"
    assert body["notes"] == "Final"


def test_delete_requirement(app):
    c = _login(app)
    req = _requirement(c, _application(c))
    assert c.delete(f"/application-requirements/{req['id']}").status_code == 200
    assert c.get(f"/application-requirements/{req['id']}").status_code == 404


def test_bulk_update(app):
    c = _login(app)
    app_id = _application(c)
    a = _requirement(c, app_id)
    b = _requirement(c, app_id, name="CV", documentType="cv")

    r = c.put("/application-requirements", json={"requirementIds": [a["id"], b["id"]], "updates": {"name": "x"}})
    assert r.status_code == 400

    r = c.put("/application-requirements", json={"requirementIds": [9999], "updates": {"status": "completed"}})
    assert r.status_code == 404

    r = c.put("/application-requirements", json={"requirementIds": [a["id"], 9999], "updates": {"status": "completed"}})
    assert r.status_code == 404
    assert r.json["missing"] == [9999]

    r = c.put(
        "/application-requirements",
        json={"requirementIds": [a["id"], b["id"]], "updates": {"status": "completed", "notes": "batch"}},
    )
    assert r.status_code == 200
    assert r.json["updated"] == 2
    assert {x["status"] for x in r.json["requirements"]} == {"completed"}
    assert {x["notes"] for x in r.json["requirements"]} == {"batch"}

    r = c.put("/application-requirements", json={"requirementIds": [a["id"], b["id"]], "updates": {"notes": None}})
    assert r.status_code == 200
    assert {x["notes"] for x in r.json["requirements"]} == {None}
    assert {x["status"] for x in r.json["requirements"]} == {"completed"}


def test_summary_attention_and_readiness(app):
    c = _login(app)
    app_id = _application(c)

    r = c.get(f"/applications/{app_id}/requirements/summary")
    summary = r.json["summary"]
    assert summary["total"] == 0
    assert summary["percentage"] == 0
    assert summary["byStatus"] == {"pending": 0, "in_progress": 0, "completed": 0, "waived": 0, "not_applicable": 0}
    assert c.get(f"/applications/{app_id}/requirements/readiness").json["ready"] is False

    a = _requirement(c, app_id)
    _requirement(c, app_id, name="Portfolio", documentType="portfolio", isRequired=False, isOptional=True)
    c.put(f"/application-requirements/{a['id']}/status", json={"status": "completed"})

    summary = c.get(f"/applications/{app_id}/requirements/summary").json["summary"]
    assert summary["total"] == 2
    assert summary["completed"] == 1
    assert summary["percentage"] == 50
    assert summary["required"] == 1
    assert summary["requiredPercentage"] == 100
    assert summary["byStatus"]["pending"] == 1
    assert summary["byStatus"]["completed"] == 1
    assert summary["byCategory"]["academic"] == {"total": 2, "completed": 1}

    r = c.get(f"/applications/{app_id}/requirements/attention")
    assert r.json["count"] == 0

    r = c.get(f"/applications/{app_id}/requirements/readiness")
    assert r.json == {"ready": True, "total": 2, "missing": []}

    c.put(f"/application-requirements/{a['id']}/status", json={"status": "in_progress"})
    r = c.get(f"/applications/{app_id}/requirements/attention")
    assert [x["id"] for x in r.json["requirements"]] == [a["id"]]
    r = c.get(f"/applications/{app_id}/requirements/readiness")
    assert r.json["ready"] is False
    assert r.json["missing"] == [{"id": a["id"], "name": "Transcript", "status": "in_progress"}]


def test_paywall_blocks_unentitled_users(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, PAYWALL_ENABLED="1")

    bob = _login(app, "bob@example.com")
    app_id = _application(bob)
    r = bob.post(
        "/application-requirements",
        json={"applicationId": app_id, "requirementType": "other", "category": "personal", "name": "Photo"},
    )
    assert r.status_code == 403
    assert r.json == {"error": "Upgrade required", "feature": "requirements_tracking"}

    # Alice holds the premium role.
    alice = _login(app)
    _requirement(alice, _application(alice))
