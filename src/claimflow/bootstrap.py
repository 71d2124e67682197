from __future__ import annotations

from sqlalchemy import select

from claimflow.core.config import settings
from claimflow.core.db import SessionLocal, engine
from claimflow.core.logging import get_logger, log_event
from claimflow.core.models import Base
from claimflow.modules.identity.models import Organization, User, UserRole
from claimflow.modules.identity.service import create_organization, create_user
from claimflow.modules.policy.service import seed_default_policy

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    if not settings.init_admin_email or not settings.init_admin_password:
        return

    # Support comma-separated list of admin emails
    admin_emails = [e.strip() for e in settings.init_admin_email.split(",") if e.strip()]
    if not admin_emails:
        return

    with SessionLocal() as session:
        org = session.scalar(select(Organization).where(Organization.name == settings.init_org_name))
        if not org:
            org = create_organization(session, name=settings.init_org_name)
            log_event(logger, "bootstrap.org_created", org_id=str(org.id))

        for email in admin_emails:
            existing = session.scalar(select(User).where(User.email == email))
            if existing:
                if existing.role != UserRole.ADMIN:
                    existing.role = UserRole.ADMIN
                    session.add(existing)
                    session.commit()
                continue
            create_user(
                session,
                org_id=org.id,
                email=email,
                password=settings.init_admin_password,
                role=UserRole.ADMIN,
                full_name="Admin",
            )

        if settings.seed_default_policy and seed_default_policy(session, org_id=org.id):
            log_event(logger, "bootstrap.policy_seeded", org_id=str(org.id))
