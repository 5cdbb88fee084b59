"""Bearer tokens and the explicit caller identity passed to every lifecycle call."""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from .errors import AuthorizationError
from .extensions import db
from .models import Profile

TOKEN_SALT = "auth-token"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation, and with which role."""

    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_profile(cls, profile: Profile) -> "Actor":
        return cls(id=profile.id, role=profile.role)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(payload: dict[str, object]) -> str:
    return _serializer().dumps(payload)


def get_jwt_identity() -> int | None:
    """Extract and validate the profile id from the Authorization header.

    Returns None when the header is missing, malformed, tampered with or expired.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]

    try:
        payload = _serializer().loads(token, max_age=current_app.config.get("TOKEN_MAX_AGE", 86400))
    except BadSignature:
        return None
    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    return int(user_id) if user_id is not None else None


def current_actor() -> Actor | None:
    """Resolve the caller. The role is always read from the profile row, never the token."""
    user_id = get_jwt_identity()
    if user_id is None:
        return None
    profile = db.session.get(Profile, user_id)
    if profile is None:
        return None
    return Actor.from_profile(profile)


def require_actor() -> Actor:
    actor = current_actor()
    if actor is None:
        raise AuthorizationError()
    return actor


def ensure_authenticated(actor: Actor | None) -> Actor:
    if actor is None:
        raise AuthorizationError()
    return actor


def ensure_admin(actor: Actor | None, message: str = "Admin access required") -> Actor:
    actor = ensure_authenticated(actor)
    if not actor.is_admin:
        raise AuthorizationError(message, forbidden=True)
    return actor
