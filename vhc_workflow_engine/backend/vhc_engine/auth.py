# backend/vhc_engine/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .models import Organization, AppUser


@dataclass(frozen=True)
class Principal:
    """
    The caller as resolved by the surrounding platform.

    Access policy lives outside this service; the engine only needs an org
    scope for its WHERE clauses and a user id for outcome_set_by/changed_by.
    """

    org_id: int
    org_slug: str
    user_id: int
    email: str


def _resolve_org(db: Session, org_slug: str) -> Optional[Organization]:
    return db.scalar(select(Organization).where(Organization.slug == org_slug))


def _get_user_by_email(db: Session, email: str) -> Optional[AppUser]:
    return db.scalar(select(AppUser).where(AppUser.email == email))


def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    x_org_slug: Optional[str] = Header(default=None, alias="X-Org-Slug"),
) -> Principal:
    """
    Dev header principal (X-Org-Slug + X-User-Email).

    In dev mode unknown orgs/users are auto-provisioned so a fresh database
    can be driven straight from curl or the test client.
    """
    org_slug = str(x_org_slug or "").strip()
    if not org_slug:
        raise HTTPException(status_code=401, detail="Missing X-Org-Slug (active org context).")

    if settings.auth_mode != "dev":
        raise HTTPException(status_code=401, detail="Not authenticated")

    email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Missing X-User-Email for dev auth")

    org = _resolve_org(db, org_slug)
    if org is None and settings.dev_auto_provision:
        org = Organization(slug=org_slug, name=org_slug, created_at=datetime.utcnow())
        db.add(org)
        db.commit()
        db.refresh(org)

    user = _get_user_by_email(db, email)
    if user is None and settings.dev_auto_provision:
        user = AppUser(email=email, display_name=email.split("@")[0], created_at=datetime.utcnow())
        db.add(user)
        db.commit()
        db.refresh(user)

    if org is None or user is None:
        raise HTTPException(status_code=401, detail="Dev auth could not resolve user/org")

    return Principal(org_id=int(org.id), org_slug=str(org.slug), user_id=int(user.id), email=str(user.email))
