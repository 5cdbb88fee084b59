"""Support chat: an append-only message log grouped by conversation key."""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import joinedload

from ..auth import Actor, ensure_admin, ensure_authenticated
from ..database import commit_or_raise
from ..errors import AuthorizationError, ValidationError
from ..extensions import db
from ..models import Message

logger = logging.getLogger(__name__)

SUPPORT_PREFIX = "support_"
MAX_MESSAGE_LENGTH = 4000


def support_conversation_id(client_id: int) -> str:
    """The support thread key for a client. Stable for the life of the account."""
    return f"{SUPPORT_PREFIX}{client_id}"


def new_conversation_id() -> str:
    """Opaque key for an admin-initiated thread."""
    return uuid.uuid4().hex


def can_access(actor: Actor, conversation_id: str) -> bool:
    if actor.is_admin:
        return True
    if conversation_id == support_conversation_id(actor.id):
        return True
    # Threads a client has already written in stay readable to them.
    return db.session.query(
        Message.query.filter_by(conversation_id=conversation_id, sender_id=actor.id).exists()
    ).scalar()


def _ensure_access(actor: Actor, conversation_id: str) -> None:
    if not conversation_id:
        raise ValidationError("conversation_id is required")
    if not can_access(actor, conversation_id):
        raise AuthorizationError("You are not a participant in this conversation", forbidden=True)


def send_message(actor: Optional[Actor], conversation_id: str, content: Optional[str]) -> Message:
    actor = ensure_authenticated(actor)
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content must not be empty", code="empty_message")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content must be at most {MAX_MESSAGE_LENGTH} characters")
    _ensure_access(actor, conversation_id)

    message = Message(conversation_id=conversation_id, sender_id=actor.id, content=text)
    db.session.add(message)
    commit_or_raise("send message")
    return message


def list_messages(actor: Optional[Actor], conversation_id: str, limit: Optional[int] = None) -> list[Message]:
    actor = ensure_authenticated(actor)
    _ensure_access(actor, conversation_id)
    query = (
        Message.query.options(joinedload(Message.sender))
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def unread_count(actor: Actor, conversation_id: str) -> int:
    # read state is not tracked per reader
    return 0


def list_conversations(actor: Optional[Actor], limit: int = 500) -> list[dict[str, object]]:
    """Admin inbox: one entry per conversation with its latest message, newest first."""
    actor = ensure_admin(actor)
    rows = (
        Message.query.options(joinedload(Message.sender))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )

    conversations: dict[str, dict[str, object]] = {}
    for message in rows:
        if message.conversation_id in conversations:
            continue
        conversations[message.conversation_id] = {
            "conversation_id": message.conversation_id,
            "last_message": message.content,
            "last_message_at": message.created_at.isoformat() if message.created_at else None,
            "last_sender": message.sender.full_name if message.sender else None,
            "unread_count": unread_count(actor, message.conversation_id),
        }
    return list(conversations.values())
