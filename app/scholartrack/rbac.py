from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.scholartrack.errors import ForbiddenError, UnauthorizedError
from app.scholartrack.models import User

# Permission keys
TEMPLATES_ADMIN = "templates.admin"


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def current_user() -> User:
    """The authenticated user for this request; 401 when there is none."""
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        raise UnauthorizedError()
    return user


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_user()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise ForbiddenError("You don't have permission to perform this action")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
