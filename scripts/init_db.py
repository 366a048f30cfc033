"""
Idempotent seed: permissions, the admin and premium roles, the admin user and the
built-in requirements templates.

Usage:
  python scripts/init_db.py          (DATABASE_URL, ADMIN_EMAIL, ADMIN_PASSWORD from env)
"""
import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.scholartrack.db import engine_options
from app.scholartrack.feature_gate import REQUIREMENTS_TEMPLATES, REQUIREMENTS_TRACKING, feature_permission_key
from app.scholartrack.models import Permission, Role, User
from app.scholartrack.modules.requirements_templates.service import create_system_templates
from app.scholartrack.rbac import TEMPLATES_ADMIN


@contextmanager
def _session_scope(database_url: str):
    # Standalone engine so the release phase never imports app.wsgi.
    engine = create_engine(database_url, **engine_options(database_url))
    try:
        with Session(engine, autoflush=False, expire_on_commit=False) as s, s.begin():
            yield s
    finally:
        engine.dispose()


def seed_permissions(s: Session) -> Role:
    """Permissions plus the admin role holding all of them (idempotent). Returns the admin role."""

    def ensure_perm(key: str, name: str) -> Permission:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        return p

    perms = [
        ensure_perm(TEMPLATES_ADMIN, "Templates: administer system templates and statistics"),
        ensure_perm(feature_permission_key(REQUIREMENTS_TEMPLATES), "Feature: requirements templates"),
        ensure_perm(feature_permission_key(REQUIREMENTS_TRACKING), "Feature: requirements tracking"),
    ]

    role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
    if not role_admin:
        role_admin = Role(key="admin", name="Administrator")
        s.add(role_admin)
    for p in perms:
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)

    # Paid plan: feature permissions only. The billing integration moves users in and out.
    role_premium = s.query(Role).filter(Role.key == "premium").one_or_none()
    if not role_premium:
        role_premium = Role(key="premium", name="Premium student")
        s.add(role_premium)
    for p in perms[1:]:
        if p not in role_premium.permissions:
            role_premium.permissions.append(p)

    s.flush()
    return role_admin


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user and system templates in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@scholartrack.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///scholartrack.db").strip()

    with _session_scope(db_url) as s:
        role_admin = seed_permissions(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, name="Administrator", password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)
        s.flush()

        created = create_system_templates(s, user=user)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"System templates created: {', '.join(created) if created else '(none, already present)'}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
