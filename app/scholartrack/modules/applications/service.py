"""
Application service layer.
Handles application CRUD, section completion, progress and the submission gate.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from app.scholartrack.audit import record_event
from app.scholartrack.errors import NotFoundError, ValidationError
from app.scholartrack.utils import clean_str, iso

from .models import Application, ApplicationSection

if TYPE_CHECKING:
    from app.scholartrack.models import User

logger = logging.getLogger(__name__)

# Valid statuses
VALID_STATUSES = {"draft", "in_progress", "submitted"}

# Valid status transitions
STATUS_TRANSITIONS = {
    "draft": {"in_progress", "submitted"},
    "in_progress": {"submitted"},
    "submitted": set(),
}

OFFER_TYPES = {"scholarship", "program", "school"}


def can_transition_to(current_status: str, new_status: str) -> bool:
    return new_status in STATUS_TRANSITIONS.get(current_status, set())


def incomplete_sections(application: Application) -> list[str]:
    """Section ids that still block submission, in section order."""
    return [sec.section_id for sec in application.sections if not sec.is_complete]


def calculate_progress(application: Application) -> int:
    total = len(application.sections)
    if total == 0:
        return 0
    completed = sum(1 for sec in application.sections if sec.is_complete)
    return round(completed / total * 100)


def next_section_id(application: Application) -> str | None:
    ids = [sec.section_id for sec in application.sections]
    if application.current_section_id not in ids:
        return ids[0] if ids else None
    idx = ids.index(application.current_section_id)
    return ids[idx + 1] if idx + 1 < len(ids) else None


def validate_application_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    offer_id = clean_str(payload.get("offerId"))
    offer_type = clean_str(payload.get("offerType")) or "scholarship"
    raw_sections = payload.get("sections")
    if raw_sections is None:
        raw_sections = []

    if not offer_id:
        errors.append("offerId is required")
    if offer_type not in OFFER_TYPES:
        errors.append(f"offerType must be one of: {', '.join(sorted(OFFER_TYPES))}")

    section_ids: list[str] = []
    if not isinstance(raw_sections, list):
        errors.append("sections must be a list of section ids")
    else:
        for raw in raw_sections:
            sid = clean_str(raw)
            if not sid:
                errors.append("section ids must be non-empty strings")
                break
            if sid in section_ids:
                errors.append(f"Duplicate section id: {sid}")
                break
            section_ids.append(sid)

    if errors:
        return {}, errors
    return {
        "offer_id": offer_id,
        "offer_type": offer_type,
        "name": clean_str(payload.get("name")),
        "notes": clean_str(payload.get("notes")),
        "section_ids": section_ids,
    }, []


def create_application(
    s: Session,
    *,
    user: User,
    offer_id: str,
    offer_type: str = "scholarship",
    name: str | None = None,
    notes: str | None = None,
    section_ids: list[str] | None = None,
) -> Application:
    """Create a draft application for `offer_id`. One active application per offer."""
    dup = s.scalar(
        select(Application.id).where(
            Application.user_id == user.id,
            Application.offer_id == offer_id,
            Application.is_active.is_(True),
        )
    )
    if dup is not None:
        raise ValidationError(
            "You already have an application for this offer",
            details={"applicationId": dup},
        )

    now = datetime.utcnow()
    application = Application(
        user_id=user.id,
        offer_id=offer_id,
        offer_type=offer_type,
        name=name,
        notes=notes,
        status="draft",
        progress=0,
        started_at=now,
        last_activity_at=now,
        created_at=now,
        updated_at=now,
        sections=[ApplicationSection(section_id=sid, position=i) for i, sid in enumerate(section_ids or [])],
    )
    s.add(application)
    s.flush()

    record_event(
        s,
        actor=user,
        action="application.create",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"offer_id": offer_id, "offer_type": offer_type, "sections": len(application.sections)},
    )
    return application


def list_applications(s: Session, *, user_id: int, status: str | None = None) -> list[Application]:
    q = select(Application).where(Application.user_id == user_id, Application.is_active.is_(True))
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(VALID_STATUSES))}")
        q = q.where(Application.status == status)
    return list(s.scalars(q.order_by(Application.last_activity_at.desc(), Application.id.desc())))


def get_application(s: Session, application_id: int, user_id: int) -> Application:
    """Load an application scoped to its owner; absent, inactive and foreign all read as 404."""
    application = s.scalar(
        select(Application).where(
            Application.id == application_id,
            Application.user_id == user_id,
            Application.is_active.is_(True),
        )
    )
    if application is None:
        raise NotFoundError.for_entity("Application", application_id)
    return application


def update_section(
    s: Session,
    application: Application,
    *,
    section_id: str,
    is_complete: bool,
    user: User,
) -> Application:
    if application.status == "submitted":
        raise ValidationError("Application has already been submitted")

    section = next((sec for sec in application.sections if sec.section_id == section_id), None)
    if section is None:
        raise NotFoundError.for_entity("Section", section_id)

    now = datetime.utcnow()
    if section.started_at is None:
        section.started_at = now
    section.is_complete = is_complete
    section.completed_at = now if is_complete else None

    application.current_section_id = section_id
    application.progress = calculate_progress(application)
    application.last_activity_at = now
    application.updated_at = now
    if application.status == "draft" and can_transition_to("draft", "in_progress"):
        application.status = "in_progress"

    record_event(
        s,
        actor=user,
        action="application.section.update",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"section_id": section_id, "is_complete": is_complete, "progress": application.progress},
    )
    return application


def submit_application(s: Session, application: Application, *, user: User) -> tuple[Application, bool]:
    """
    Submit an application whose sections are all complete.

    The status flip is a single conditional UPDATE, so of two racing submits exactly one
    matches a row. Returns (application, already_submitted); the audit event is only
    written for the call that performed the transition.
    """
    if application.status == "submitted":
        return application, True

    missing = incomplete_sections(application)
    if missing:
        raise ValidationError(
            "Please complete all required sections before submitting",
            details={"incompleteSections": missing},
        )

    now = datetime.utcnow()
    has_incomplete = exists().where(
        ApplicationSection.application_id == application.id,
        ApplicationSection.is_complete.is_(False),
    )
    result = s.execute(
        update(Application)
        .where(
            Application.id == application.id,
            Application.is_active.is_(True),
            Application.status != "submitted",
            ~has_incomplete,
        )
        .values(
            status="submitted",
            submitted_at=now,
            completed_at=now,
            last_activity_at=now,
            updated_at=now,
            progress=100,
        )
        .execution_options(synchronize_session=False)
    )
    s.refresh(application)

    if result.rowcount == 0:
        if application.status == "submitted":
            logger.info("Application %s was already submitted", application.id)
            return application, True
        # A section was reopened between the check and the update.
        raise ValidationError(
            "Please complete all required sections before submitting",
            details={"incompleteSections": incomplete_sections(application)},
        )

    record_event(
        s,
        actor=user,
        action="application.submit",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"offer_id": application.offer_id, "sections": len(application.sections)},
    )
    return application, False


def deactivate_application(s: Session, application: Application, *, user: User) -> None:
    application.is_active = False
    application.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="application.delete",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"offer_id": application.offer_id, "status": application.status},
    )


def submission_status(application: Application) -> dict[str, Any]:
    return {
        "applicationSubmitted": application.status == "submitted",
        "submittedAt": iso(application.submitted_at),
        "status": application.status,
        "progress": application.progress,
    }


def serialize_section(section: ApplicationSection) -> dict[str, Any]:
    return {
        "sectionId": section.section_id,
        "isComplete": section.is_complete,
        "startedAt": iso(section.started_at),
        "completedAt": iso(section.completed_at),
    }


def serialize_application(application: Application) -> dict[str, Any]:
    return {
        "id": application.id,
        "offerId": application.offer_id,
        "offerType": application.offer_type,
        "name": application.name,
        "status": application.status,
        "sections": [serialize_section(sec) for sec in application.sections],
        "currentSectionId": application.current_section_id,
        "nextSectionId": next_section_id(application),
        "progress": application.progress,
        "notes": application.notes,
        "startedAt": iso(application.started_at),
        "lastActivityAt": iso(application.last_activity_at),
        "submittedAt": iso(application.submitted_at),
        "completedAt": iso(application.completed_at),
        "createdAt": iso(application.created_at),
        "updatedAt": iso(application.updated_at),
    }
