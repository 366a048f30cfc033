"""
Requirements template service layer.
Handles template CRUD, search, statistics, system template seeding and applying a
template's definitions to an application.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.scholartrack.audit import apply_changes, record_event
from app.scholartrack.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.scholartrack.modules.applications.models import Application
from app.scholartrack.modules.requirements.models import ApplicationRequirement
from app.scholartrack.modules.requirements.service import RequirementStatus, parse_definition_payload
from app.scholartrack.rbac import TEMPLATES_ADMIN, user_has_permission
from app.scholartrack.utils import clean_str, iso, parse_bool, slugify

from .models import RequirementsTemplate, TemplateRequirement
from .system_templates import SYSTEM_TEMPLATES

if TYPE_CHECKING:
    from app.scholartrack.models import User

logger = logging.getLogger(__name__)

TEMPLATE_CATEGORIES = ["graduate", "undergraduate", "scholarship", "custom"]

# Columns copied from a definition onto each new requirement
DEFINITION_COLUMNS = [
    "requirement_type",
    "category",
    "name",
    "description",
    "is_required",
    "is_optional",
    "document_type",
    "max_file_size",
    "allowed_file_types",
    "word_limit",
    "character_limit",
    "test_type",
    "min_score",
    "max_score",
    "score_format",
    "application_fee_amount",
    "application_fee_currency",
    "application_fee_description",
    "interview_type",
    "interview_duration",
    "interview_notes",
    "order",
]


def source_key(template_id: int, key: str) -> str:
    return f"{template_id}:{key}"


def parse_template_payload(
    payload: dict, *, partial: bool = False
) -> tuple[dict[str, Any], list[dict[str, Any]] | None, list[str]]:
    """
    Parse a template body into (template fields, requirement definitions, errors).

    Definitions are None when a partial update leaves them untouched.
    """
    errors: list[str] = []
    data: dict[str, Any] = {}

    if not partial or "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Template name is required")
        data["name"] = name
    if "description" in payload:
        data["description"] = clean_str(payload.get("description"))
    if not partial or "category" in payload:
        category = clean_str(payload.get("category"))
        if not category:
            errors.append("Template category is required")
        elif category not in TEMPLATE_CATEGORIES:
            errors.append(f"Invalid category. Must be one of: {', '.join(TEMPLATE_CATEGORIES)}")
        data["category"] = category
    if "tags" in payload:
        tags = payload.get("tags")
        if tags is None:
            data["tags"] = None
        elif not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            errors.append("tags must be a list of strings")
        else:
            data["tags"] = [t.strip().lower() for t in tags if t.strip()]
    if "isActive" in payload:
        try:
            is_active = parse_bool(payload.get("isActive"))
        except ValueError:
            errors.append("isActive must be true or false")
        else:
            if is_active is not None:
                data["is_active"] = is_active

    definitions: list[dict[str, Any]] | None = None
    if not partial or "requirements" in payload:
        raw = payload.get("requirements")
        if not isinstance(raw, list) or not raw:
            errors.append("Template must have at least one requirement")
        else:
            definitions = []
            seen: set[str] = set()
            for i, item in enumerate(raw):
                if not isinstance(item, dict):
                    errors.append(f"requirements[{i}] must be an object")
                    continue
                d, d_errors = parse_definition_payload(item)
                errors.extend(f"requirements[{i}]: {e}" for e in d_errors)
                if d_errors:
                    continue
                key = slugify(d["name"])
                if key in seen:
                    errors.append(f"Requirement names must be unique: {d['name']}")
                    continue
                seen.add(key)
                d["key"] = key
                if d.get("order") is None:
                    d["order"] = i + 1
                definitions.append(d)

    return data, definitions, errors


def _build_definitions(definitions: list[dict[str, Any]]) -> list[TemplateRequirement]:
    return [TemplateRequirement(**d) for d in definitions]


def can_modify(template: RequirementsTemplate, user: User) -> bool:
    return template.created_by_user_id == user.id or user_has_permission(user, TEMPLATES_ADMIN)


def _check_modifiable(template: RequirementsTemplate, user: User, verb: str) -> None:
    if template.is_system_template:
        raise ValidationError(f"Cannot {verb} system templates")
    if not can_modify(template, user):
        raise ForbiddenError(f"Only the template's creator can {verb} it")


def create_template(
    s: Session,
    data: dict[str, Any],
    definitions: list[dict[str, Any]],
    *,
    user: User | None,
    is_system: bool = False,
) -> RequirementsTemplate:
    now = datetime.utcnow()
    template = RequirementsTemplate(
        **data,
        is_system_template=is_system,
        created_by_user_id=user.id if user else None,
        usage_count=0,
        created_at=now,
        updated_at=now,
        requirements=_build_definitions(definitions),
    )
    s.add(template)
    s.flush()
    record_event(
        s,
        actor=user,
        action="template.create",
        entity_type="RequirementsTemplate",
        entity_id=str(template.id),
        metadata={"name": template.name, "category": template.category, "requirements": len(definitions)},
    )
    return template


def list_templates(
    s: Session,
    *,
    category: str | None = None,
    is_system_template: bool | None = None,
    is_active: bool | None = True,
    created_by: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[RequirementsTemplate], int]:
    if category is not None and category not in TEMPLATE_CATEGORIES:
        raise ValidationError(f"Invalid category. Must be one of: {', '.join(TEMPLATE_CATEGORIES)}")

    q = select(RequirementsTemplate)
    if category is not None:
        q = q.where(RequirementsTemplate.category == category)
    if is_system_template is not None:
        q = q.where(RequirementsTemplate.is_system_template.is_(is_system_template))
    if is_active is not None:
        q = q.where(RequirementsTemplate.is_active.is_(is_active))
    if created_by is not None:
        q = q.where(RequirementsTemplate.created_by_user_id == created_by)

    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0
    q = q.order_by(RequirementsTemplate.usage_count.desc(), RequirementsTemplate.name.asc(), RequirementsTemplate.id.asc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return list(s.scalars(q)), total


def get_template(s: Session, template_id: int) -> RequirementsTemplate:
    template = s.get(RequirementsTemplate, template_id)
    if template is None:
        raise NotFoundError.for_entity("Template", template_id)
    return template


def update_template(
    s: Session,
    template: RequirementsTemplate,
    data: dict[str, Any],
    definitions: list[dict[str, Any]] | None,
    *,
    user: User,
) -> RequirementsTemplate:
    """Update a custom template. Requirements already copied onto applications are untouched."""
    _check_modifiable(template, user, "update")

    changes: dict[str, Any] = apply_changes(template, data)
    if definitions is not None:
        changes["requirements"] = {"old": len(template.requirements), "new": len(definitions)}
        # Flush the deletes first; replacement rows may reuse the same keys.
        template.requirements.clear()
        s.flush()
        template.requirements.extend(_build_definitions(definitions))

    template.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="template.update",
        entity_type="RequirementsTemplate",
        entity_id=str(template.id),
        metadata={"changes": changes},
    )
    return template


def delete_template(s: Session, template: RequirementsTemplate, *, user: User) -> None:
    _check_modifiable(template, user, "delete")
    record_event(
        s,
        actor=user,
        action="template.delete",
        entity_type="RequirementsTemplate",
        entity_id=str(template.id),
        metadata={"name": template.name},
    )
    s.delete(template)


def popular_templates(s: Session, *, limit: int = 10) -> list[RequirementsTemplate]:
    return list(
        s.scalars(
            select(RequirementsTemplate)
            .where(RequirementsTemplate.is_active.is_(True))
            .order_by(RequirementsTemplate.usage_count.desc(), RequirementsTemplate.name.asc())
            .limit(limit)
        )
    )


def search_templates(s: Session, query: str, *, limit: int = 20) -> list[RequirementsTemplate]:
    """Case-insensitive match on name, description and tags."""
    pat = f"%{query.strip().lower()}%"
    return list(
        s.scalars(
            select(RequirementsTemplate)
            .where(
                RequirementsTemplate.is_active.is_(True),
                or_(
                    func.lower(RequirementsTemplate.name).like(pat),
                    func.lower(RequirementsTemplate.description).like(pat),
                    func.lower(cast(RequirementsTemplate.tags, String)).like(pat),
                ),
            )
            .order_by(RequirementsTemplate.usage_count.desc(), RequirementsTemplate.name.asc())
            .limit(limit)
        )
    )


def apply_template_to_application(
    s: Session, template: RequirementsTemplate, application: Application, *, user: User
) -> tuple[list[ApplicationRequirement], int]:
    """
    Copy the template's definitions onto the application as pending requirements.

    Definitions already copied (matched on source_key) are skipped, so re-applying is a
    no-op. A concurrent apply that slips past the check trips uq_requirement_source and
    surfaces as a 409. Returns (created requirements, skipped count).
    """
    if not template.is_active:
        raise ValidationError("Template is not active")

    prefix = source_key(template.id, "")
    existing = set(
        s.scalars(
            select(ApplicationRequirement.source_key).where(
                ApplicationRequirement.application_id == application.id,
                ApplicationRequirement.source_key.like(f"{prefix}%"),
            )
        )
    )

    now = datetime.utcnow()
    created: list[ApplicationRequirement] = []
    skipped = 0
    for definition in template.requirements:
        key = source_key(template.id, definition.key)
        if key in existing:
            skipped += 1
            continue
        fields = {col: getattr(definition, col) for col in DEFINITION_COLUMNS}
        if fields["allowed_file_types"] is not None:
            fields["allowed_file_types"] = list(fields["allowed_file_types"])
        created.append(
            ApplicationRequirement(
                application_id=application.id,
                status=RequirementStatus.PENDING.value,
                source_key=key,
                created_at=now,
                updated_at=now,
                **fields,
            )
        )

    if not created:
        return [], skipped

    s.add_all(created)
    try:
        s.flush()
    except IntegrityError as e:
        s.rollback()
        logger.warning("Concurrent template apply: template_id=%s application_id=%s", template.id, application.id)
        raise ConflictError("Template is already being applied to this application, retry the request") from e

    s.execute(
        update(RequirementsTemplate)
        .where(RequirementsTemplate.id == template.id)
        .values(usage_count=RequirementsTemplate.usage_count + 1)
    )
    application.last_activity_at = now

    record_event(
        s,
        actor=user,
        action="template.apply",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"template_id": template.id, "created": len(created), "skipped": skipped},
    )
    return created, skipped


def get_template_statistics(s: Session) -> dict[str, Any]:
    by_category = {c: 0 for c in TEMPLATE_CATEGORIES}
    for category, count in s.execute(
        select(RequirementsTemplate.category, func.count(RequirementsTemplate.id)).group_by(RequirementsTemplate.category)
    ):
        by_category[category] = count

    total = s.scalar(select(func.count(RequirementsTemplate.id))) or 0
    system = s.scalar(
        select(func.count(RequirementsTemplate.id)).where(RequirementsTemplate.is_system_template.is_(True))
    ) or 0
    active = s.scalar(select(func.count(RequirementsTemplate.id)).where(RequirementsTemplate.is_active.is_(True))) or 0
    usage = s.scalar(select(func.coalesce(func.sum(RequirementsTemplate.usage_count), 0))) or 0
    return {
        "totalTemplates": total,
        "systemTemplates": system,
        "userTemplates": total - system,
        "activeTemplates": active,
        "totalUsage": int(usage),
        "templatesByCategory": by_category,
    }


def create_system_templates(s: Session, *, user: User | None = None) -> list[str]:
    """Seed the built-in templates, skipping any whose name already exists. Returns names created."""
    existing = set(
        s.scalars(select(RequirementsTemplate.name).where(RequirementsTemplate.is_system_template.is_(True)))
    )
    created: list[str] = []
    for entry in SYSTEM_TEMPLATES:
        if entry["name"] in existing:
            continue
        data, definitions, errors = parse_template_payload(entry)
        if errors or definitions is None:
            raise ValidationError.from_errors(errors or ["System template has no requirements"])
        create_template(s, data, definitions, user=user, is_system=True)
        created.append(entry["name"])

    if created:
        logger.info("Seeded system templates: %s", ", ".join(created))
        record_event(s, actor=user, action="template.seed", entity_type="RequirementsTemplate", metadata={"created": created})
    return created


def serialize_definition(d: TemplateRequirement) -> dict[str, Any]:
    return {
        "key": d.key,
        "requirementType": d.requirement_type,
        "category": d.category,
        "name": d.name,
        "description": d.description,
        "isRequired": d.is_required,
        "isOptional": d.is_optional,
        "documentType": d.document_type,
        "maxFileSize": d.max_file_size,
        "allowedFileTypes": d.allowed_file_types,
        "wordLimit": d.word_limit,
        "characterLimit": d.character_limit,
        "testType": d.test_type,
        "minScore": d.min_score,
        "maxScore": d.max_score,
        "scoreFormat": d.score_format,
        "applicationFeeAmount": d.application_fee_amount,
        "applicationFeeCurrency": d.application_fee_currency,
        "applicationFeeDescription": d.application_fee_description,
        "interviewType": d.interview_type,
        "interviewDuration": d.interview_duration,
        "interviewNotes": d.interview_notes,
        "order": d.order,
    }


def serialize_template(t: RequirementsTemplate, *, include_requirements: bool = True) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "category": t.category,
        "tags": t.tags or [],
        "usageCount": t.usage_count,
        "isActive": t.is_active,
        "isSystemTemplate": t.is_system_template,
        "createdBy": t.created_by_user_id,
        "requirementCount": len(t.requirements),
        "createdAt": iso(t.created_at),
        "updatedAt": iso(t.updated_at),
    }
    if include_requirements:
        body["requirements"] = [serialize_definition(d) for d in t.requirements]
    return body
