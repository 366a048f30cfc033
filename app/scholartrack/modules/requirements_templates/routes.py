"""
Requirements template routes.
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.scholartrack.db import db_session
from app.scholartrack.errors import ValidationError
from app.scholartrack.feature_gate import REQUIREMENTS_TEMPLATES, require_feature
from app.scholartrack.modules.applications.service import get_application
from app.scholartrack.modules.requirements.service import serialize_requirement
from app.scholartrack.rbac import TEMPLATES_ADMIN, current_user, require_login, require_permission
from app.scholartrack.utils import clean_str, json_body, parse_int, query_bool, query_int

from .service import (
    apply_template_to_application,
    create_system_templates,
    create_template,
    delete_template,
    get_template,
    get_template_statistics,
    list_templates,
    parse_template_payload,
    popular_templates,
    search_templates,
    serialize_template,
    update_template,
)

bp = Blueprint("requirements_templates", __name__)


@bp.get("")
def templates_list():
    """List templates. System templates are public; everything else needs a session."""
    is_system = query_bool("isSystemTemplate")
    if is_system is not True:
        current_user()

    created_by = None
    if request.args.get("createdBy") == "me":
        created_by = current_user().id

    templates, total = list_templates(
        db_session(),
        category=clean_str(request.args.get("category")),
        is_system_template=is_system,
        is_active=query_bool("isActive") if "isActive" in request.args else True,
        created_by=created_by,
        limit=query_int("limit", 50, maximum=200),
        offset=query_int("offset", 0),
    )
    return jsonify({"templates": [serialize_template(t) for t in templates], "total": total})


@bp.post("")
@require_login
def templates_create():
    u = current_user()
    data, definitions, errors = parse_template_payload(json_body())
    if errors:
        raise ValidationError.from_errors(errors)

    s = db_session()
    template = create_template(s, data, definitions or [], user=u)
    s.commit()
    return jsonify({"success": True, "template": serialize_template(template)}), 201


@bp.get("/popular")
@require_login
def templates_popular():
    templates = popular_templates(db_session(), limit=query_int("limit", 10, maximum=50))
    return jsonify({"templates": [serialize_template(t, include_requirements=False) for t in templates]})


@bp.get("/search")
@require_login
def templates_search():
    q = clean_str(request.args.get("q"))
    if not q:
        raise ValidationError("Search query is required")
    templates = search_templates(db_session(), q, limit=query_int("limit", 20, maximum=100))
    return jsonify({"templates": [serialize_template(t, include_requirements=False) for t in templates]})


@bp.get("/statistics")
@require_permission(TEMPLATES_ADMIN)
def templates_statistics():
    return jsonify({"statistics": get_template_statistics(db_session())})


@bp.post("/system")
@require_permission(TEMPLATES_ADMIN)
def templates_seed_system():
    u = current_user()
    s = db_session()
    created = create_system_templates(s, user=u)
    s.commit()
    return jsonify({"success": True, "created": created})


@bp.get("/<int:template_id>")
@require_login
def templates_detail(template_id: int):
    template = get_template(db_session(), template_id)
    return jsonify({"template": serialize_template(template)})


@bp.put("/<int:template_id>")
@require_login
def templates_update(template_id: int):
    u = current_user()
    data, definitions, errors = parse_template_payload(json_body(), partial=True)
    if errors:
        raise ValidationError.from_errors(errors)

    s = db_session()
    template = get_template(s, template_id)
    update_template(s, template, data, definitions, user=u)
    s.commit()
    return jsonify({"success": True, "template": serialize_template(template)})


@bp.delete("/<int:template_id>")
@require_login
def templates_delete(template_id: int):
    u = current_user()
    s = db_session()
    template = get_template(s, template_id)
    delete_template(s, template, user=u)
    s.commit()
    return jsonify({"success": True})


@bp.post("/<int:template_id>/apply")
@require_login
@require_feature(REQUIREMENTS_TEMPLATES)
def templates_apply(template_id: int):
    """Copy a template's requirements onto one of the caller's applications."""
    u = current_user()
    payload = json_body()
    raw_id = payload.get("applicationId")
    if raw_id is None or raw_id == "":
        raise ValidationError("Application ID is required")
    errors: list[str] = []
    application_id = parse_int(raw_id, field="applicationId", errors=errors, minimum=1)
    if errors or application_id is None:
        raise ValidationError.from_errors(errors or ["Application ID is required"])

    s = db_session()
    template = get_template(s, template_id)
    application = get_application(s, application_id, u.id)
    created, skipped = apply_template_to_application(s, template, application, user=u)
    s.commit()
    current_app.logger.info(
        "Template applied: template_id=%s application_id=%s created=%s skipped=%s",
        template.id,
        application.id,
        len(created),
        skipped,
    )
    return jsonify(
        {
            "success": True,
            "message": f"Applied {len(created)} requirements",
            "created": len(created),
            "skipped": skipped,
            "requirements": [serialize_requirement(r) for r in created],
        }
    )
