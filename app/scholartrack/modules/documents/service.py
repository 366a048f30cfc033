from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.scholartrack.audit import record_event
from app.scholartrack.errors import NotFoundError
from app.scholartrack.utils import clean_str, iso

from .models import Document

if TYPE_CHECKING:
    from app.scholartrack.models import User

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/png",
        "image/jpeg",
        "text/plain",
    }
)


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.bin"


def build_storage_key(user_id: int, filename: str) -> str:
    return f"documents/{user_id}/{uuid.uuid4().hex}/{filename}"


def validate_upload_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    filename = clean_str(payload.get("filename"))
    content_type = clean_str(payload.get("contentType")) or "application/octet-stream"
    if not filename:
        errors.append("filename is required")
    if content_type not in ALLOWED_CONTENT_TYPES:
        errors.append(f"Unsupported content type. Must be one of: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}")
    if errors:
        return {}, errors
    return {
        "filename": sanitize_upload_filename(filename or ""),
        "title": clean_str(payload.get("title")) or filename,
        "content_type": content_type,
    }, []


def create_document(s: Session, *, owner: "User", filename: str, title: str, content_type: str) -> Document:
    doc = Document(
        owner_user_id=owner.id,
        title=title,
        filename=filename,
        content_type=content_type,
        storage_key=build_storage_key(owner.id, filename),
    )
    s.add(doc)
    s.flush()
    record_event(
        s,
        actor=owner,
        action="document.create",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"filename": filename, "content_type": content_type},
    )
    return doc


def get_owned_document(s: Session, document_id: int, owner_id: int) -> Document:
    doc = s.get(Document, document_id)
    if not doc or doc.owner_user_id != owner_id:
        raise NotFoundError.for_entity("Document", document_id)
    return doc


def serialize_document(doc: Document) -> dict[str, Any]:
    return {
        "id": doc.id,
        "title": doc.title,
        "filename": doc.filename,
        "contentType": doc.content_type,
        "sizeBytes": doc.size_bytes,
        "createdAt": iso(doc.created_at),
    }
