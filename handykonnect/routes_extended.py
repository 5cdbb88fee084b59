"""Support chat, admin dashboard, email and realtime endpoints."""
from __future__ import annotations

import json

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from .auth import ensure_admin, require_actor
from .errors import NotFound, ValidationError
from .extensions import db
from .models import Booking, Payment
from .services import analytics, invitations, messaging
from .services import email as email_service
from .services.notifications import NotificationBridge

bp_ext = Blueprint("api_ext", __name__)


# --- Messaging ---


@bp_ext.get("/conversations")
def list_conversations() -> tuple[dict[str, object], int]:
    """Admin inbox with the latest message of each conversation."""
    conversations = messaging.list_conversations(require_actor())
    return jsonify({"conversations": conversations}), 200


@bp_ext.get("/support/conversation")
def support_conversation() -> tuple[dict[str, object], int]:
    """The caller's own support thread key and its messages."""
    actor = require_actor()
    conversation_id = messaging.support_conversation_id(actor.id)
    rows = messaging.list_messages(actor, conversation_id)
    return jsonify({
        "conversation_id": conversation_id,
        "messages": [message.to_dict() for message in rows],
    }), 200


@bp_ext.get("/conversations/<conversation_id>/messages")
def get_messages(conversation_id: str) -> tuple[dict[str, object], int]:
    """
    Messages in a conversation, oldest first.
    ---
    tags:
      - Messaging
    parameters:
      - name: conversation_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Conversation messages
      401:
        description: Authentication required
      403:
        description: Not a participant
    """
    rows = messaging.list_messages(require_actor(), conversation_id)
    return jsonify({"messages": [message.to_dict() for message in rows]}), 200


@bp_ext.post("/conversations/<conversation_id>/messages")
def post_message(conversation_id: str) -> tuple[dict[str, object], int]:
    """
    Append a message to a conversation.
    ---
    tags:
      - Messaging
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            content:
              type: string
          required:
            - content
    responses:
      201:
        description: Message stored
      400:
        description: Empty or oversized content
      403:
        description: Not a participant
    """
    payload = request.get_json(silent=True) or {}
    message = messaging.send_message(require_actor(), conversation_id, payload.get("content"))
    return jsonify({"message": message.to_dict()}), 201


@bp_ext.post("/conversations")
def start_conversation() -> tuple[dict[str, object], int]:
    """Admin opens a fresh thread with a generated key."""
    actor = ensure_admin(require_actor())
    payload = request.get_json(silent=True) or {}
    conversation_id = messaging.new_conversation_id()
    message = messaging.send_message(actor, conversation_id, payload.get("content"))
    return jsonify({"conversation_id": conversation_id, "message": message.to_dict()}), 201


# --- Admin dashboard ---


@bp_ext.get("/admin/stats")
def admin_stats() -> tuple[dict[str, object], int]:
    actor = require_actor()
    stats = analytics.dashboard_stats(actor)
    recent = analytics.recent_bookings(actor)
    return jsonify({"stats": stats, "recent_bookings": [booking.to_dict() for booking in recent]}), 200


@bp_ext.get("/admin/analytics")
def admin_analytics() -> tuple[dict[str, object], int]:
    """Monthly trend, service popularity and headline figures over recent bookings."""
    try:
        limit = int(request.args["limit"]) if "limit" in request.args else None
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_parameters", "message": "limit must be an integer"}), 400
    if limit is not None and limit <= 0:
        return jsonify({"error": "invalid_parameters", "message": "limit must be positive"}), 400

    return jsonify(analytics.analytics(require_actor(), limit=limit)), 200


@bp_ext.get("/admin/invitations")
def list_admin_invitations() -> tuple[dict[str, object], int]:
    rows = invitations.list_invitations(require_actor())
    return jsonify({"invitations": [invitation.to_dict() for invitation in rows]}), 200


@bp_ext.post("/admin/invitations")
def invite_admin() -> tuple[dict[str, object], int]:
    """Invite an email address to become an admin.

    An existing profile with that email is promoted immediately; otherwise the
    invitation is honoured when the address registers.
    """
    payload = request.get_json(silent=True) or {}
    invitation, promoted = invitations.invite_admin(require_actor(), payload.get("email"))
    return jsonify({"invitation": invitation.to_dict(), "promoted": promoted}), 201


# --- Email ---


def _booking_for_email(booking_id: object, actor) -> Booking:
    if not booking_id:
        raise ValidationError("bookingId is required")
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.client_id != actor.id:
        ensure_admin(actor)
    return booking


@bp_ext.post("/send-booking-email")
def send_booking_email() -> tuple[dict[str, object], int]:
    """Send a booking confirmation, update or reminder email.
    ---
    tags:
      - Email
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            bookingId:
              type: integer
            type:
              type: string
              enum: [confirmation, update, reminder]
    responses:
      200:
        description: Email sent
      400:
        description: Unknown email type
      404:
        description: Booking not found
      502:
        description: Email provider failure
    """
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    booking = _booking_for_email(payload.get("bookingId") or payload.get("booking_id"), actor)
    result = email_service.send_booking_email(booking, payload.get("type") or "")
    return jsonify({"success": True, "data": result}), 200


@bp_ext.post("/send-payment-receipt")
def send_payment_receipt() -> tuple[dict[str, object], int]:
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    payment_id = payload.get("paymentId") or payload.get("payment_id")
    if not payment_id:
        return jsonify({"error": "invalid_payload", "message": "paymentId is required"}), 400

    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    if payment.client_id != actor.id:
        ensure_admin(actor)

    result = email_service.send_payment_receipt(payment)
    return jsonify({"success": True, "data": result}), 200


@bp_ext.post("/send-transaction-alert")
def send_transaction_alert() -> tuple[dict[str, object], int]:
    """Forward a transaction alert to the operations inbox (admin)."""
    ensure_admin(require_actor())
    payload = request.get_json(silent=True) or {}

    required = ("type", "status", "customerName", "customerEmail", "transactionId")
    missing = [field for field in required if not payload.get(field)]
    if missing:
        return jsonify({
            "error": "invalid_payload",
            "message": f"Missing fields: {', '.join(missing)}",
        }), 400
    if payload["type"] not in ("payment", "booking"):
        return jsonify({"error": "invalid_type", "message": "type must be payment or booking"}), 400
    try:
        amount = float(payload["amount"]) if payload.get("amount") is not None else None
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_payload", "message": "amount must be a number"}), 400

    alert = email_service.TransactionAlert(
        type=payload["type"],
        status=payload["status"],
        customer_name=payload["customerName"],
        customer_email=payload["customerEmail"],
        transaction_id=str(payload["transactionId"]),
        amount=amount,
        service_name=payload.get("serviceName"),
        booking_date=payload.get("bookingDate"),
    )
    result = email_service.send_transaction_alert(alert)
    return jsonify({"success": True, "data": result}), 200


# --- Realtime ---


def _sse(data: dict[str, object]) -> str:
    return f"data: {json.dumps(data)}\n\n"


@bp_ext.get("/realtime/stream")
def realtime_stream() -> Response:
    """Server-sent events carrying toasts for the caller's bookings, payments and messages."""
    actor = require_actor()
    keepalive = current_app.config.get("REALTIME_KEEPALIVE_SECONDS", 15)
    bridge = NotificationBridge(actor)

    def generate():
        try:
            yield ": connected\n\n"
            while True:
                toasts = bridge.drain(timeout=keepalive)
                if not toasts:
                    yield ": keepalive\n\n"
                    continue
                for toast in toasts:
                    yield _sse(toast)
        finally:
            bridge.close()
            current_app.logger.debug("Realtime stream closed for profile %s", actor.id)

    response = Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    # covers a client that disconnects before the first chunk
    response.call_on_close(bridge.close)
    return response
