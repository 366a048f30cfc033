from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.scholartrack.db import db_session
from app.scholartrack.errors import ValidationError
from app.scholartrack.modules.documents.service import (
    create_document,
    get_owned_document,
    serialize_document,
    validate_upload_payload,
)
from app.scholartrack.rbac import current_user, require_login
from app.scholartrack.storage import storage_from_config
from app.scholartrack.utils import json_body

bp = Blueprint("documents", __name__)


@bp.post("/upload-url")
@require_login
def upload_url():
    """Register a library document and hand back a presigned PUT URL for its bytes."""
    u = current_user()
    fields, errors = validate_upload_payload(json_body())
    if errors:
        raise ValidationError.from_errors(errors)

    # Resolve storage first so a misconfigured backend writes nothing.
    storage = storage_from_config(current_app.config)
    expires = int(current_app.config.get("PRESIGNED_URL_EXPIRES", 300))

    s = db_session()
    doc = create_document(s, owner=u, **fields)
    url = storage.presigned_upload_url(doc.storage_key, content_type=doc.content_type, expires_in=expires)
    s.commit()
    return jsonify({"success": True, "document": serialize_document(doc), "uploadUrl": url, "expiresIn": expires}), 201


@bp.get("/<int:document_id>/download-url")
@require_login
def download_url(document_id: int):
    u = current_user()
    s = db_session()
    doc = get_owned_document(s, document_id, u.id)
    storage = storage_from_config(current_app.config)
    expires = int(current_app.config.get("PRESIGNED_URL_EXPIRES", 300))
    url = storage.presigned_download_url(doc.storage_key, filename=doc.filename, expires_in=expires)
    return jsonify({"success": True, "downloadUrl": url, "expiresIn": expires})
