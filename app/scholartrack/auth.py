from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from app.scholartrack.audit import record_event
from app.scholartrack.db import db_session
from app.scholartrack.errors import UnauthorizedError, ValidationError
from app.scholartrack.models import User
from app.scholartrack.ratelimit import rate_limiter
from app.scholartrack.rbac import current_user
from app.scholartrack.security import ensure_csrf_token

bp = Blueprint("auth", __name__)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "userType": user.user_type,
        "roles": sorted(r.key for r in user.roles),
    }


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return

    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


@bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not email or not password:
        raise ValidationError("email and password are required")

    limiter = rate_limiter()
    limiter.check_and_hit(f"login:{ip}")

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise UnauthorizedError("Invalid credentials")

    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()
    limiter.reset(f"login:{ip}")
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login ok: user_id=%s request_id=%s", user.id, g.request_id)
    return jsonify({"success": True, "user": serialize_user(user), "csrfToken": session["csrf_token"]})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"success": True})


@bp.get("/me")
def me():
    return jsonify({"success": True, "user": serialize_user(current_user())})


@bp.get("/csrf")
def csrf():
    return jsonify({"csrfToken": ensure_csrf_token()})
