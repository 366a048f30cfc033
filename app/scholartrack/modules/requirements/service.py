"""
Requirement service layer.
Handles requirement CRUD, status changes, document linking and checklist summaries.
"""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.scholartrack.audit import apply_changes, record_event
from app.scholartrack.errors import NotFoundError, ValidationError
from app.scholartrack.modules.applications.models import Application
from app.scholartrack.modules.documents.service import get_owned_document
from app.scholartrack.utils import clean_str, iso, parse_bool, parse_int, parse_number

from .models import ApplicationRequirement

if TYPE_CHECKING:
    from app.scholartrack.models import User

logger = logging.getLogger(__name__)


class RequirementStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAIVED = "waived"
    NOT_APPLICABLE = "not_applicable"


VALID_STATUSES = [st.value for st in RequirementStatus]

# Statuses that satisfy a requirement
COMPLETE_STATUSES = {RequirementStatus.COMPLETED, RequirementStatus.WAIVED, RequirementStatus.NOT_APPLICABLE}

# Enforced only when REQUIREMENT_STRICT_TRANSITIONS is on
REQUIREMENT_STATUS_TRANSITIONS = {
    RequirementStatus.PENDING: {
        RequirementStatus.IN_PROGRESS,
        RequirementStatus.COMPLETED,
        RequirementStatus.WAIVED,
        RequirementStatus.NOT_APPLICABLE,
    },
    RequirementStatus.IN_PROGRESS: {
        RequirementStatus.PENDING,
        RequirementStatus.COMPLETED,
        RequirementStatus.WAIVED,
        RequirementStatus.NOT_APPLICABLE,
    },
    RequirementStatus.COMPLETED: {RequirementStatus.IN_PROGRESS, RequirementStatus.PENDING},
    RequirementStatus.WAIVED: {RequirementStatus.PENDING},
    RequirementStatus.NOT_APPLICABLE: {RequirementStatus.PENDING},
}

REQUIREMENT_TYPES = ["document", "test_score", "fee", "interview", "other"]
CATEGORIES = ["academic", "financial", "personal", "professional", "administrative"]
DOCUMENT_TYPES = [
    "personal_statement",
    "cv",
    "transcript",
    "recommendation_letter",
    "test_scores",
    "portfolio",
    "financial_documents",
    "other",
]
TEST_TYPES = ["toefl", "ielts", "gre", "gmat", "sat", "act", "other"]
INTERVIEW_TYPES = ["in-person", "virtual", "phone", "multiple"]

# Field that each requirement type cannot do without
TYPE_REQUIRED_FIELDS = {
    "document": ("document_type", "Document type is required for document requirements"),
    "test_score": ("test_type", "Test type is required for test score requirements"),
    "fee": ("application_fee_amount", "Fee amount is required for fee requirements"),
    "interview": ("interview_type", "Interview type is required for interview requirements"),
}

# Wire name -> column, shared with template definitions
DEFINITION_STR_FIELDS = {
    "name": "name",
    "description": "description",
    "scoreFormat": "score_format",
    "applicationFeeCurrency": "application_fee_currency",
    "applicationFeeDescription": "application_fee_description",
    "interviewNotes": "interview_notes",
}
DEFINITION_CHOICE_FIELDS = {
    "requirementType": ("requirement_type", REQUIREMENT_TYPES),
    "category": ("category", CATEGORIES),
    "documentType": ("document_type", DOCUMENT_TYPES),
    "testType": ("test_type", TEST_TYPES),
    "interviewType": ("interview_type", INTERVIEW_TYPES),
}
DEFINITION_INT_FIELDS = {
    "wordLimit": "word_limit",
    "characterLimit": "character_limit",
    "interviewDuration": "interview_duration",
    "order": "order",
}
DEFINITION_NUMBER_FIELDS = {
    "maxFileSize": "max_file_size",
    "minScore": "min_score",
    "maxScore": "max_score",
    "applicationFeeAmount": "application_fee_amount",
}
DEFINITION_BOOL_FIELDS = {
    "isRequired": "is_required",
    "isOptional": "is_optional",
}

# Requirement-only fields (not part of a template definition)
REQUIREMENT_STR_FIELDS = {
    "notes": "notes",
    "externalUrl": "external_url",
}

BULK_UPDATE_FIELDS = {"status", "notes", "isRequired", "isOptional", "order"}

SORT_COLUMNS = {
    "order": ApplicationRequirement.order,
    "name": ApplicationRequirement.name,
    "status": ApplicationRequirement.status,
    "createdAt": ApplicationRequirement.created_at,
}


def parse_definition_payload(
    payload: dict,
    *,
    partial: bool = False,
    current: Any = None,
    extra_str_fields: dict[str, str] | None = None,
) -> tuple[dict[str, Any], list[str]]:
    """
    Parse a requirement definition from wire keys to column names.

    With partial=True only the keys present are parsed; `current` supplies the stored
    values the type-specific rules are checked against.
    """
    errors: list[str] = []
    data: dict[str, Any] = {}

    for key, col in {**DEFINITION_STR_FIELDS, **(extra_str_fields or {})}.items():
        if key in payload:
            data[col] = clean_str(payload.get(key))

    for key, (col, choices) in DEFINITION_CHOICE_FIELDS.items():
        if key not in payload:
            continue
        value = clean_str(payload.get(key))
        if value is not None and value not in choices:
            errors.append(f"Invalid {key}. Must be one of: {', '.join(choices)}")
            continue
        data[col] = value

    for key, col in DEFINITION_INT_FIELDS.items():
        if key in payload:
            data[col] = parse_int(payload.get(key), field=key, errors=errors)

    for key, col in DEFINITION_NUMBER_FIELDS.items():
        if key in payload:
            data[col] = parse_number(payload.get(key), field=key, errors=errors)

    for key, col in DEFINITION_BOOL_FIELDS.items():
        if key not in payload:
            continue
        try:
            data[col] = parse_bool(payload.get(key))
        except ValueError:
            errors.append(f"{key} must be true or false")

    if "allowedFileTypes" in payload:
        raw = payload.get("allowedFileTypes")
        if raw is None:
            data["allowed_file_types"] = None
        elif not isinstance(raw, list) or not all(isinstance(x, str) and x.strip() for x in raw):
            errors.append("allowedFileTypes must be a list of file extensions")
        else:
            data["allowed_file_types"] = [x.strip().lower().lstrip(".") for x in raw]

    def effective(col: str) -> Any:
        if col in data:
            return data[col]
        return getattr(current, col, None) if current is not None else None

    if not partial or "name" in data:
        if not effective("name"):
            errors.append("Name is required")
    if not partial or "requirement_type" in data:
        if not effective("requirement_type") and not any(e.startswith("Invalid requirementType") for e in errors):
            errors.append("Requirement type is required")
    if not partial or "category" in data:
        if not effective("category") and not any(e.startswith("Invalid category") for e in errors):
            errors.append("Category is required")

    rtype = effective("requirement_type")
    if rtype in TYPE_REQUIRED_FIELDS:
        col, message = TYPE_REQUIRED_FIELDS[rtype]
        if effective(col) is None and message not in errors:
            errors.append(message)

    min_score, max_score = effective("min_score"), effective("max_score")
    if min_score is not None and max_score is not None and min_score > max_score:
        errors.append("minScore cannot be greater than maxScore")

    if partial and "order" in data and data["order"] is None:
        del data["order"]

    # Unset booleans fall back to the column defaults on create
    for col in DEFINITION_BOOL_FIELDS.values():
        if col in data and data[col] is None:
            del data[col]

    return data, errors


def parse_requirement_payload(
    payload: dict, *, partial: bool = False, current: ApplicationRequirement | None = None
) -> tuple[dict[str, Any], list[str]]:
    return parse_definition_payload(payload, partial=partial, current=current, extra_str_fields=REQUIREMENT_STR_FIELDS)


def parse_status(value: Any) -> RequirementStatus:
    raw = clean_str(value)
    try:
        return RequirementStatus(raw)
    except ValueError:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}",
            details={"allowedStatuses": VALID_STATUSES},
        ) from None


def can_transition_to(current_status: str, new_status: RequirementStatus) -> bool:
    if current_status == new_status.value:
        return True
    return new_status in REQUIREMENT_STATUS_TRANSITIONS.get(RequirementStatus(current_status), set())


def is_complete(req: ApplicationRequirement) -> bool:
    return req.status in {st.value for st in COMPLETE_STATUSES}


def _owned_requirements_query(user_id: int):
    return (
        select(ApplicationRequirement)
        .join(Application, Application.id == ApplicationRequirement.application_id)
        .where(Application.user_id == user_id, Application.is_active.is_(True))
    )


def get_requirement(s: Session, requirement_id: int, user_id: int) -> ApplicationRequirement:
    req = s.scalar(_owned_requirements_query(user_id).where(ApplicationRequirement.id == requirement_id))
    if req is None:
        raise NotFoundError.for_entity("Requirement", requirement_id)
    return req


def create_requirement(s: Session, application: Application, data: dict[str, Any], *, user: User) -> ApplicationRequirement:
    if data.get("order") is None:
        data["order"] = s.scalar(
            select(func.count(ApplicationRequirement.id)).where(ApplicationRequirement.application_id == application.id)
        ) or 0
    now = datetime.utcnow()
    req = ApplicationRequirement(
        application_id=application.id,
        status=RequirementStatus.PENDING.value,
        created_at=now,
        updated_at=now,
        **data,
    )
    s.add(req)
    s.flush()
    record_event(
        s,
        actor=user,
        action="requirement.create",
        entity_type="ApplicationRequirement",
        entity_id=str(req.id),
        metadata={"application_id": application.id, "name": req.name, "requirement_type": req.requirement_type},
    )
    return req


def list_requirements(
    s: Session,
    application: Application,
    *,
    status: str | None = None,
    category: str | None = None,
    requirement_type: str | None = None,
    is_required: bool | None = None,
    is_optional: bool | None = None,
    sort_by: str = "order",
    sort_order: str = "asc",
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[ApplicationRequirement], int]:
    errors: list[str] = []
    if status is not None and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    if category is not None and category not in CATEGORIES:
        errors.append(f"Invalid category. Must be one of: {', '.join(CATEGORIES)}")
    if requirement_type is not None and requirement_type not in REQUIREMENT_TYPES:
        errors.append(f"Invalid requirementType. Must be one of: {', '.join(REQUIREMENT_TYPES)}")
    if sort_by not in SORT_COLUMNS:
        errors.append(f"Invalid sortBy. Must be one of: {', '.join(SORT_COLUMNS)}")
    if sort_order not in ("asc", "desc"):
        errors.append("sortOrder must be asc or desc")
    if errors:
        raise ValidationError.from_errors(errors)

    q = select(ApplicationRequirement).where(ApplicationRequirement.application_id == application.id)
    if status is not None:
        q = q.where(ApplicationRequirement.status == status)
    if category is not None:
        q = q.where(ApplicationRequirement.category == category)
    if requirement_type is not None:
        q = q.where(ApplicationRequirement.requirement_type == requirement_type)
    if is_required is not None:
        q = q.where(ApplicationRequirement.is_required.is_(is_required))
    if is_optional is not None:
        q = q.where(ApplicationRequirement.is_optional.is_(is_optional))

    total = s.scalar(select(func.count()).select_from(q.subquery())) or 0

    col = SORT_COLUMNS[sort_by]
    q = q.order_by(col.desc() if sort_order == "desc" else col.asc(), ApplicationRequirement.id.asc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return list(s.scalars(q)), total


def update_requirement(
    s: Session, req: ApplicationRequirement, data: dict[str, Any], *, user: User
) -> ApplicationRequirement:
    """Apply parsed (whitelisted) fields to a requirement."""
    changes = apply_changes(req, data)
    if changes:
        req.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="requirement.update",
            entity_type="ApplicationRequirement",
            entity_id=str(req.id),
            metadata={"changes": changes},
        )
    return req


def update_status(
    s: Session,
    req: ApplicationRequirement,
    new_status: RequirementStatus,
    *,
    notes: str | None = None,
    user: User,
    strict: bool = False,
) -> ApplicationRequirement:
    old_status = req.status
    if strict and not can_transition_to(old_status, new_status):
        raise ValidationError(
            f"Cannot transition from {old_status} to {new_status.value}",
            details={"allowedStatuses": sorted(st.value for st in REQUIREMENT_STATUS_TRANSITIONS[RequirementStatus(old_status)])},
        )

    now = datetime.utcnow()
    req.status = new_status.value
    if notes is not None:
        req.notes = notes
    if new_status is RequirementStatus.COMPLETED:
        req.submitted_at = now
        if req.requirement_type == "fee" and not req.application_fee_paid:
            req.application_fee_paid = True
            req.application_fee_paid_at = now
    req.updated_at = now

    record_event(
        s,
        actor=user,
        action="requirement.status",
        entity_type="ApplicationRequirement",
        entity_id=str(req.id),
        metadata={"from": old_status, "to": new_status.value, "application_id": req.application_id},
    )
    return req


def parse_document_id(value: Any) -> int:
    """Document id from a request body. Missing or malformed is a 400."""
    if value is None or value == "":
        raise ValidationError("Document ID is required")
    if isinstance(value, bool):
        raise ValidationError("documentId must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("documentId must be an integer") from None


def link_document(
    s: Session, req: ApplicationRequirement, document_id: int, *, notes: str | None = None, user: User
) -> ApplicationRequirement:
    doc = get_owned_document(s, document_id, user.id)
    now = datetime.utcnow()
    req.linked_document_id = doc.id
    req.status = RequirementStatus.COMPLETED.value
    req.submitted_at = now
    if notes is not None:
        req.notes = notes
    req.updated_at = now
    record_event(
        s,
        actor=user,
        action="requirement.link_document",
        entity_type="ApplicationRequirement",
        entity_id=str(req.id),
        metadata={"document_id": doc.id, "application_id": req.application_id},
    )
    return req


def delete_requirement(s: Session, req: ApplicationRequirement, *, user: User) -> None:
    record_event(
        s,
        actor=user,
        action="requirement.delete",
        entity_type="ApplicationRequirement",
        entity_id=str(req.id),
        metadata={"application_id": req.application_id, "name": req.name},
    )
    s.delete(req)


def parse_bulk_update(payload: dict) -> tuple[list[int], dict[str, Any]]:
    raw_ids = payload.get("requirementIds")
    updates = payload.get("updates")
    errors: list[str] = []

    ids: list[int] = []
    if not isinstance(raw_ids, list) or not raw_ids:
        errors.append("requirementIds must be a non-empty list")
    else:
        for raw in raw_ids:
            n = parse_int(raw, field="requirementIds", errors=errors, minimum=1)
            if n is None:
                break
            ids.append(n)

    fields: dict[str, Any] = {}
    if not isinstance(updates, dict) or not updates:
        errors.append("updates must be a non-empty object")
    else:
        unknown = sorted(set(updates) - BULK_UPDATE_FIELDS)
        if unknown:
            errors.append(f"Fields not allowed in bulk update: {', '.join(unknown)}")
        if "status" in updates:
            try:
                fields["status"] = parse_status(updates.get("status"))
            except ValidationError as e:
                errors.append(e.message)
        if "notes" in updates:
            fields["notes"] = clean_str(updates.get("notes"))
        for key, col in DEFINITION_BOOL_FIELDS.items():
            if key in updates:
                try:
                    fields[col] = parse_bool(updates.get(key))
                except ValueError:
                    errors.append(f"{key} must be true or false")
        if "order" in updates:
            fields["order"] = parse_int(updates.get("order"), field="order", errors=errors)

    if errors:
        raise ValidationError.from_errors(errors)
    return list(dict.fromkeys(ids)), fields


def bulk_update_requirements(
    s: Session, ids: list[int], fields: dict[str, Any], *, user: User, strict: bool = False
) -> list[ApplicationRequirement]:
    reqs = list(s.scalars(_owned_requirements_query(user.id).where(ApplicationRequirement.id.in_(ids))))
    if not reqs:
        raise NotFoundError("No requirements found")
    if len(reqs) != len(ids):
        found = {r.id for r in reqs}
        raise NotFoundError("Some requirements were not found", details={"missing": [i for i in ids if i not in found]})

    status = fields.get("status")
    # notes is the only nullable bulk field
    plain = {k: v for k, v in fields.items() if k != "status" and (v is not None or k == "notes")}
    for req in reqs:
        if status is not None:
            update_status(s, req, status, user=user, strict=strict)
        if plain:
            update_requirement(s, req, plain, user=user)
    logger.info("Bulk requirement update: user_id=%s count=%s fields=%s", user.id, len(reqs), sorted(fields))
    return reqs


def summarize(s: Session, application: Application) -> dict[str, Any]:
    """Checklist counts for one application. Every status key is always present."""
    reqs = list(s.scalars(select(ApplicationRequirement).where(ApplicationRequirement.application_id == application.id)))

    by_status = {st: 0 for st in VALID_STATUSES}
    by_category: dict[str, dict[str, int]] = {}
    by_type: dict[str, dict[str, int]] = {}
    completed = required = required_completed = optional = optional_completed = 0

    for req in reqs:
        done = is_complete(req)
        by_status[req.status] = by_status.get(req.status, 0) + 1
        for bucket, key in ((by_category, req.category), (by_type, req.requirement_type)):
            entry = bucket.setdefault(key, {"total": 0, "completed": 0})
            entry["total"] += 1
            entry["completed"] += int(done)
        completed += int(done)
        if req.is_required:
            required += 1
            required_completed += int(done)
        if req.is_optional:
            optional += 1
            optional_completed += int(done)

    total = len(reqs)
    return {
        "total": total,
        "completed": completed,
        "required": required,
        "requiredCompleted": required_completed,
        "optional": optional,
        "optionalCompleted": optional_completed,
        "percentage": round(completed / total * 100) if total else 0,
        "requiredPercentage": round(required_completed / required * 100) if required else 0,
        "byStatus": by_status,
        "byCategory": by_category,
        "byType": by_type,
    }


def requirements_needing_attention(s: Session, application: Application) -> list[ApplicationRequirement]:
    return list(
        s.scalars(
            select(ApplicationRequirement)
            .where(
                ApplicationRequirement.application_id == application.id,
                ApplicationRequirement.is_required.is_(True),
                ApplicationRequirement.status.in_([RequirementStatus.PENDING.value, RequirementStatus.IN_PROGRESS.value]),
            )
            .order_by(ApplicationRequirement.order.asc(), ApplicationRequirement.id.asc())
        )
    )


def is_ready_to_submit(s: Session, application: Application) -> dict[str, Any]:
    reqs = list(
        s.scalars(
            select(ApplicationRequirement)
            .where(ApplicationRequirement.application_id == application.id)
            .order_by(ApplicationRequirement.order.asc(), ApplicationRequirement.id.asc())
        )
    )
    blocking = [r for r in reqs if r.is_required and not r.is_optional and not is_complete(r)]
    return {
        "ready": bool(reqs) and not blocking,
        "total": len(reqs),
        "missing": [{"id": r.id, "name": r.name, "status": r.status} for r in blocking],
    }


def serialize_requirement(req: ApplicationRequirement) -> dict[str, Any]:
    return {
        "id": req.id,
        "applicationId": req.application_id,
        "requirementType": req.requirement_type,
        "category": req.category,
        "name": req.name,
        "description": req.description,
        "isRequired": req.is_required,
        "isOptional": req.is_optional,
        "documentType": req.document_type,
        "maxFileSize": req.max_file_size,
        "allowedFileTypes": req.allowed_file_types,
        "wordLimit": req.word_limit,
        "characterLimit": req.character_limit,
        "testType": req.test_type,
        "minScore": req.min_score,
        "maxScore": req.max_score,
        "scoreFormat": req.score_format,
        "applicationFeeAmount": req.application_fee_amount,
        "applicationFeeCurrency": req.application_fee_currency,
        "applicationFeeDescription": req.application_fee_description,
        "applicationFeePaid": req.application_fee_paid,
        "applicationFeePaidAt": iso(req.application_fee_paid_at),
        "interviewType": req.interview_type,
        "interviewDuration": req.interview_duration,
        "interviewNotes": req.interview_notes,
        "status": req.status,
        "isComplete": is_complete(req),
        "submittedAt": iso(req.submitted_at),
        "verifiedAt": iso(req.verified_at),
        "notes": req.notes,
        "linkedDocumentId": req.linked_document_id,
        "externalUrl": req.external_url,
        "sourceKey": req.source_key,
        "order": req.order,
        "createdAt": iso(req.created_at),
        "updatedAt": iso(req.updated_at),
    }
