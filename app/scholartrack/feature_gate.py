"""
Subscription feature gate.

Billing lives outside this service. When PAYWALL_ENABLED is off every feature is open;
when it is on, access to feature X means holding the permission "feature.X", which the
billing integration grants and revokes through role membership.
"""
from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app

from app.scholartrack.errors import ForbiddenError
from app.scholartrack.models import User
from app.scholartrack.rbac import current_user, user_has_permission

# Gated features
REQUIREMENTS_TEMPLATES = "requirements_templates"
REQUIREMENTS_TRACKING = "requirements_tracking"


def feature_permission_key(feature: str) -> str:
    return f"feature.{feature}"


def has_access(user: User | None, feature: str) -> bool:
    if not current_app.config.get("PAYWALL_ENABLED"):
        return True
    return user_has_permission(user, feature_permission_key(feature))


def require_feature(feature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if not has_access(user, feature):
                current_app.logger.info("Feature gate denied: user_id=%s feature=%s", user.id, feature)
                raise ForbiddenError("Upgrade required", details={"feature": feature})
            return fn(*args, **kwargs)

        return wrapped

    return decorator
