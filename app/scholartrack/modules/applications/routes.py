"""
Application routes.
Handles the application lifecycle, section updates and submission.
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.scholartrack.db import db_session
from app.scholartrack.errors import ValidationError
from app.scholartrack.rbac import current_user, require_login
from app.scholartrack.utils import json_body, parse_bool

from .service import (
    create_application,
    deactivate_application,
    get_application,
    list_applications,
    serialize_application,
    submission_status,
    submit_application,
    update_section,
    validate_application_payload,
)

bp = Blueprint("applications", __name__)


@bp.post("")
@require_login
def applications_create():
    u = current_user()
    fields, errors = validate_application_payload(json_body())
    if errors:
        raise ValidationError.from_errors(errors)

    s = db_session()
    application = create_application(s, user=u, **fields)
    s.commit()
    return jsonify({"success": True, "application": serialize_application(application)}), 201


@bp.get("")
@require_login
def applications_list():
    u = current_user()
    s = db_session()
    status = (request.args.get("status") or "").strip() or None
    apps = list_applications(s, user_id=u.id, status=status)
    return jsonify({"applications": [serialize_application(a) for a in apps]})


@bp.get("/<int:application_id>")
@require_login
def applications_detail(application_id: int):
    u = current_user()
    application = get_application(db_session(), application_id, u.id)
    return jsonify({"application": serialize_application(application)})


@bp.delete("/<int:application_id>")
@require_login
def applications_delete(application_id: int):
    u = current_user()
    s = db_session()
    application = get_application(s, application_id, u.id)
    deactivate_application(s, application, user=u)
    s.commit()
    return jsonify({"success": True})


@bp.put("/<int:application_id>/sections/<section_id>")
@require_login
def applications_update_section(application_id: int, section_id: str):
    u = current_user()
    payload = json_body()
    try:
        is_complete = parse_bool(payload.get("isComplete"))
    except ValueError as e:
        raise ValidationError("isComplete must be true or false") from e
    if is_complete is None:
        raise ValidationError("isComplete is required")

    s = db_session()
    application = get_application(s, application_id, u.id)
    update_section(s, application, section_id=section_id, is_complete=is_complete, user=u)
    s.commit()
    return jsonify({"success": True, "application": serialize_application(application)})


@bp.post("/<int:application_id>/submit")
@require_login
def applications_submit(application_id: int):
    """Submit the application; 400 with incompleteSections while any section is open."""
    u = current_user()
    s = db_session()
    application = get_application(s, application_id, u.id)
    application, already_submitted = submit_application(s, application, user=u)
    s.commit()
    if not already_submitted:
        current_app.logger.info("Application submitted: id=%s user_id=%s", application.id, u.id)

    body = {
        "success": True,
        "message": "Application submitted successfully",
        "applicationId": application.id,
        "application": serialize_application(application),
    }
    if already_submitted:
        body["alreadySubmitted"] = True
    return jsonify(body)


@bp.get("/<int:application_id>/submission-status")
@require_login
def applications_submission_status(application_id: int):
    u = current_user()
    application = get_application(db_session(), application_id, u.id)
    return jsonify(submission_status(application))
