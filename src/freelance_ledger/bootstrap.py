from __future__ import annotations

from sqlalchemy.orm import Session

import freelance_ledger.models  # noqa: F401
from freelance_ledger.core.config import settings
from freelance_ledger.core.db import SessionLocal, engine
from freelance_ledger.core.logging import get_logger, log_event
from freelance_ledger.core.models import Base
from freelance_ledger.core.security import hash_password
from freelance_ledger.modules.expenses.service import seed_categories
from freelance_ledger.modules.identity.models import User, UserRole
from freelance_ledger.modules.identity.service import get_user_by_email, normalize_email

logger = get_logger(__name__)


def _ensure_admins(session: Session, *, emails: str, password: str) -> None:
    # INIT_ADMIN_EMAIL may list several addresses, comma separated
    for email in {normalize_email(e) for e in emails.split(",") if e.strip()}:
        user = get_user_by_email(session, email=email)
        if user is None:
            session.add(
                User(
                    email=email,
                    full_name="Admin",
                    password_hash=hash_password(password),
                    role=UserRole.ADMIN,
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.admin.created", email=email)
        elif user.role != UserRole.ADMIN:
            user.role = UserRole.ADMIN
            log_event(logger, "bootstrap.admin.promoted", email=email)
    session.commit()


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    with SessionLocal() as session:
        created = seed_categories(session)
        if created:
            log_event(logger, "bootstrap.categories.seeded", count=created)
        if settings.init_admin_email and settings.init_admin_password:
            _ensure_admins(
                session, emails=settings.init_admin_email, password=settings.init_admin_password
            )
