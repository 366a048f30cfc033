"""
Requirement routes.
Handles the per-application checklist: CRUD, status updates, document links and summaries.
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.scholartrack.db import db_session
from app.scholartrack.errors import ValidationError
from app.scholartrack.feature_gate import REQUIREMENTS_TRACKING, require_feature
from app.scholartrack.modules.applications.service import get_application
from app.scholartrack.rbac import current_user, require_login
from app.scholartrack.utils import clean_str, json_body, parse_int, query_bool, query_int

from .service import (
    bulk_update_requirements,
    create_requirement,
    delete_requirement,
    get_requirement,
    is_ready_to_submit,
    link_document,
    list_requirements,
    parse_bulk_update,
    parse_document_id,
    parse_requirement_payload,
    parse_status,
    requirements_needing_attention,
    serialize_requirement,
    summarize,
    update_requirement,
    update_status,
)

bp = Blueprint("requirements", __name__)


def _strict() -> bool:
    return bool(current_app.config.get("REQUIREMENT_STRICT_TRANSITIONS"))


def _application_id_arg(value) -> int:
    if value is None or value == "":
        raise ValidationError("Application ID is required")
    errors: list[str] = []
    n = parse_int(value, field="applicationId", errors=errors, minimum=1)
    if errors or n is None:
        raise ValidationError.from_errors(errors or ["applicationId is required"])
    return n


# ─────────────────────────────────────────────────────────────────────────────
# Requirement collection
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/application-requirements")
@require_login
def requirements_list():
    u = current_user()
    s = db_session()
    application = get_application(s, _application_id_arg(request.args.get("applicationId")), u.id)

    items, total = list_requirements(
        s,
        application,
        status=clean_str(request.args.get("status")),
        category=clean_str(request.args.get("category")),
        requirement_type=clean_str(request.args.get("requirementType")),
        is_required=query_bool("isRequired"),
        is_optional=query_bool("isOptional"),
        sort_by=clean_str(request.args.get("sortBy")) or "order",
        sort_order=clean_str(request.args.get("sortOrder")) or "asc",
        limit=query_int("limit", 100, maximum=500),
        offset=query_int("offset", 0),
    )
    return jsonify({"requirements": [serialize_requirement(r) for r in items], "total": total})


@bp.post("/application-requirements")
@require_login
@require_feature(REQUIREMENTS_TRACKING)
def requirements_create():
    u = current_user()
    payload = json_body()
    application_id = _application_id_arg(payload.get("applicationId"))
    data, errors = parse_requirement_payload(payload)
    if errors:
        raise ValidationError.from_errors(errors)

    s = db_session()
    application = get_application(s, application_id, u.id)
    req = create_requirement(s, application, data, user=u)
    s.commit()
    return jsonify({"success": True, "requirement": serialize_requirement(req)}), 201


@bp.put("/application-requirements")
@require_login
def requirements_bulk_update():
    u = current_user()
    ids, fields = parse_bulk_update(json_body())
    s = db_session()
    reqs = bulk_update_requirements(s, ids, fields, user=u, strict=_strict())
    s.commit()
    return jsonify({"success": True, "updated": len(reqs), "requirements": [serialize_requirement(r) for r in reqs]})


# ─────────────────────────────────────────────────────────────────────────────
# Single requirement
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/application-requirements/<int:requirement_id>")
@require_login
def requirements_detail(requirement_id: int):
    u = current_user()
    req = get_requirement(db_session(), requirement_id, u.id)
    return jsonify({"requirement": serialize_requirement(req)})


@bp.put("/application-requirements/<int:requirement_id>")
@require_login
def requirements_update(requirement_id: int):
    u = current_user()
    payload = json_body()
    s = db_session()
    req = get_requirement(s, requirement_id, u.id)

    data, errors = parse_requirement_payload(payload, partial=True, current=req)
    new_status = None
    if "status" in payload:
        try:
            new_status = parse_status(payload.get("status"))
        except ValidationError as e:
            errors.append(e.message)
    if errors:
        raise ValidationError.from_errors(errors)

    update_requirement(s, req, data, user=u)
    if new_status is not None:
        update_status(s, req, new_status, user=u, strict=_strict())
    s.commit()
    return jsonify({"success": True, "requirement": serialize_requirement(req)})


@bp.delete("/application-requirements/<int:requirement_id>")
@require_login
def requirements_delete(requirement_id: int):
    u = current_user()
    s = db_session()
    req = get_requirement(s, requirement_id, u.id)
    delete_requirement(s, req, user=u)
    s.commit()
    return jsonify({"success": True})


@bp.put("/application-requirements/<int:requirement_id>/status")
@require_login
def requirements_update_status(requirement_id: int):
    """Set a requirement's status; any of the five values, optionally with notes."""
    u = current_user()
    payload = json_body()
    new_status = parse_status(payload.get("status"))
    notes = clean_str(payload.get("notes"))

    s = db_session()
    req = get_requirement(s, requirement_id, u.id)
    update_status(s, req, new_status, notes=notes, user=u, strict=_strict())
    s.commit()
    return jsonify({"success": True, "requirement": serialize_requirement(req)})


@bp.post("/application-requirements/<int:requirement_id>/link-document")
@require_login
def requirements_link_document(requirement_id: int):
    u = current_user()
    payload = json_body()
    # Validate before touching the database.
    document_id = parse_document_id(payload.get("documentId"))
    notes = clean_str(payload.get("notes"))

    s = db_session()
    req = get_requirement(s, requirement_id, u.id)
    link_document(s, req, document_id, notes=notes, user=u)
    s.commit()
    return jsonify({"success": True, "requirement": serialize_requirement(req)})


# ─────────────────────────────────────────────────────────────────────────────
# Per-application views
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/applications/<int:application_id>/requirements/summary")
@require_login
def requirements_summary(application_id: int):
    u = current_user()
    s = db_session()
    application = get_application(s, application_id, u.id)
    return jsonify({"summary": summarize(s, application)})


@bp.get("/applications/<int:application_id>/requirements/attention")
@require_login
def requirements_attention(application_id: int):
    u = current_user()
    s = db_session()
    application = get_application(s, application_id, u.id)
    reqs = requirements_needing_attention(s, application)
    return jsonify({"requirements": [serialize_requirement(r) for r in reqs], "count": len(reqs)})


@bp.get("/applications/<int:application_id>/requirements/readiness")
@require_login
def requirements_readiness(application_id: int):
    u = current_user()
    s = db_session()
    application = get_application(s, application_id, u.id)
    return jsonify(is_ready_to_submit(s, application))
