"""Admin invitations and profile registration."""
from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Optional

from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from ..auth import Actor, ensure_admin
from ..database import commit_or_raise
from ..errors import AuthorizationError, HandykonnectError, ValidationError
from ..extensions import db
from ..models import AdminInvitation, Profile, utc_now

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailInUse(HandykonnectError):
    code = "conflict"
    status_code = 409


def normalize_email(email: Optional[str]) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationError("A valid email address is required", code="invalid_email")
    return value


def _promote(profile: Profile, invitation: AdminInvitation) -> None:
    profile.role = "admin"
    invitation.status = "accepted"


def invite_admin(actor: Optional[Actor], email: str) -> tuple[AdminInvitation, bool]:
    """Invite ``email`` to become an admin.

    Returns the invitation and whether an existing profile was promoted at once.
    """
    actor = ensure_admin(actor)
    email = normalize_email(email)

    ttl = timedelta(days=current_app.config.get("INVITATION_TTL_DAYS", 7))
    invitation = AdminInvitation(
        invited_email=email,
        invited_by=actor.id,
        status="pending",
        expires_at=utc_now() + ttl,
    )
    db.session.add(invitation)

    profile = Profile.query.filter_by(email=email).first()
    promoted = profile is not None
    if promoted:
        _promote(profile, invitation)

    commit_or_raise("create admin invitation")
    if promoted:
        logger.info("Admin access granted to existing profile %s", profile.id)
    return invitation, promoted


def list_invitations(actor: Optional[Actor]) -> list[AdminInvitation]:
    ensure_admin(actor)
    return AdminInvitation.query.order_by(AdminInvitation.created_at.desc(), AdminInvitation.id.desc()).all()


def accept_pending_invitations(profile: Profile) -> bool:
    """Grant admin to a profile whose email holds an unexpired pending invitation.

    Does not commit; registration commits the profile and the acceptance together.
    """
    now = utc_now()
    invitations = AdminInvitation.query.filter_by(invited_email=profile.email, status="pending").all()
    live = [invitation for invitation in invitations if not invitation.is_expired(now)]
    if not live:
        return False
    for invitation in live:
        _promote(profile, invitation)
    return True


def register_profile(full_name: str, email: str, password: str) -> Profile:
    full_name = (full_name or "").strip()
    if not full_name or not password:
        raise ValidationError("full_name, email, and password are required")
    email = normalize_email(email)
    if Profile.query.filter_by(email=email).first() is not None:
        raise EmailInUse("email address is already in use")

    profile = Profile(
        full_name=full_name,
        email=email,
        role="client",
        password_hash=generate_password_hash(password),
    )
    db.session.add(profile)
    db.session.flush()
    if accept_pending_invitations(profile):
        logger.info("Profile %s registered with a pending admin invitation", profile.id)
    commit_or_raise("register profile")
    return profile


def authenticate(email: str, password: str) -> Profile:
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("email and password are required")
    profile = Profile.query.filter_by(email=email).first()
    if profile is None or not profile.password_hash or not check_password_hash(profile.password_hash, password):
        raise AuthorizationError("invalid email or password")
    return profile
