"""HTTP routes for the Handykonnect backend."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .auth import build_token, current_actor, require_actor
from .errors import HandykonnectError
from .extensions import db
from .services import bookings, catalog, invitations, payments
from .services.analytics import total_revenue

bp = Blueprint("api", __name__)


@bp.app_errorhandler(HandykonnectError)
def handle_domain_error(exc: HandykonnectError):
    if exc.status_code >= 500:
        current_app.logger.error("%s %s failed: %s", request.method, request.path, exc.message, exc_info=exc)
    else:
        current_app.logger.warning("%s %s rejected (%s): %s", request.method, request.path, exc.code, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Profiles ---


@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Create a client profile; a pending admin invitation for the email is honoured.
    ---
    tags:
      - Authentication
    responses:
      201:
        description: Profile created, returns access token
      400:
        description: Invalid payload
      409:
        description: Email already in use
    """
    payload = request.get_json(silent=True) or {}
    profile = invitations.register_profile(
        payload.get("full_name") or payload.get("name"),
        payload.get("email"),
        payload.get("password") or "",
    )
    token = build_token({"user_id": profile.id})
    return jsonify({"token": token, "user": profile.to_dict_basic()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate by email/password and return an access token."""
    payload = request.get_json(silent=True) or {}
    profile = invitations.authenticate(payload.get("email"), payload.get("password") or "")
    token = build_token({"user_id": profile.id})
    return jsonify({"token": token, "user": profile.to_dict_basic()}), 200


# --- Services ---


@bp.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """List bookable services. Admins may pass ``include_inactive=true``."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    services = catalog.list_services(current_actor(), include_inactive=include_inactive)
    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"service": catalog.get_service(service_id).to_dict()}), 200


@bp.post("/services")
def create_service() -> tuple[dict[str, object], int]:
    """Create a service (admin).
    ---
    tags:
      - Services
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            description:
              type: string
            price:
              type: number
            duration_minutes:
              type: integer
            image_url:
              type: string
          required:
            - name
            - price
            - duration_minutes
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
      403:
        description: Admin access required
    """
    payload = request.get_json(silent=True) or {}
    service = catalog.create_service(require_actor(), payload)
    return jsonify({"message": "Service created successfully", "service": service.to_dict()}), 201


@bp.put("/services/<int:service_id>")
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    service = catalog.update_service(require_actor(), service_id, payload)
    return jsonify({"message": "Service updated successfully", "service": service.to_dict()}), 200


@bp.post("/services/<int:service_id>/toggle")
def toggle_service(service_id: int) -> tuple[dict[str, object], int]:
    service = catalog.toggle_service(require_actor(), service_id)
    return jsonify({"service": service.to_dict()}), 200


@bp.delete("/services/<int:service_id>")
def delete_service(service_id: int) -> tuple[dict[str, str], int]:
    catalog.delete_service(require_actor(), service_id)
    return jsonify({"message": "Service deleted successfully"}), 200


@bp.get("/services/<int:service_id>/reviews")
def list_service_reviews(service_id: int) -> tuple[dict[str, object], int]:
    reviews = catalog.list_reviews(service_id)
    return jsonify({"reviews": [review.to_dict() for review in reviews]}), 200


# --- Bookings ---


@bp.get("/bookings")
def list_bookings() -> tuple[dict[str, object], int]:
    """Bookings for the caller (all bookings for admins), newest first."""
    status = (request.args.get("status") or "").strip() or None
    try:
        limit = min(200, max(1, int(request.args.get("limit", 50))))
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_parameters", "message": "limit must be an integer"}), 400

    rows = bookings.list_bookings(require_actor(), status=status, limit=limit)
    return jsonify({"bookings": [booking.to_dict() for booking in rows]}), 200


@bp.get("/bookings/calendar")
def booking_calendar() -> tuple[dict[str, object], int]:
    """Bookings scheduled between ``start`` and ``end`` (ISO timestamps)."""
    start = request.args.get("start")
    end = request.args.get("end")
    if not start or not end:
        return jsonify({"error": "invalid_query", "message": "start and end query parameters are required"}), 400

    rows = bookings.calendar(require_actor(), start, end)
    return jsonify({"bookings": [booking.to_dict() for booking in rows]}), 200


@bp.get("/bookings/<int:booking_id>")
def get_booking(booking_id: int) -> tuple[dict[str, object], int]:
    booking = bookings.get_booking(booking_id, require_actor())
    data = booking.to_dict()
    data["payments"] = [payment.to_dict() for payment in booking.payments]
    data["allowed_transitions"] = bookings.allowed_transitions(booking.status)
    return jsonify({"booking": data}), 200


@bp.post("/bookings")
def create_booking() -> tuple[dict[str, object], int]:
    """Book a service.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: integer
            scheduled_date:
              type: string
              format: date-time
            address:
              type: string
            notes:
              type: string
          required:
            - service_id
            - scheduled_date
            - address
    responses:
      201:
        description: Booking created with status pending
      400:
        description: Invalid payload
      401:
        description: Authentication required
      404:
        description: Service not found
    """
    actor = require_actor()
    payload = request.get_json(silent=True) or {}

    service_id = payload.get("service_id")
    scheduled_date = payload.get("scheduled_date")
    address = payload.get("address")

    if not all([service_id, scheduled_date, address]):
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "service_id, scheduled_date, and address are required",
            }),
            400,
        )

    booking = bookings.create_booking(actor, service_id, scheduled_date, address, payload.get("notes"))
    return jsonify({"message": "Booking created successfully", "booking": booking.to_dict()}), 201


@bp.put("/bookings/<int:booking_id>/status")
def update_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    """Move a booking along its lifecycle (admin).
    ---
    tags:
      - Bookings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [pending, confirmed, in_progress, completed, cancelled]
    responses:
      200:
        description: Booking status updated
      400:
        description: Invalid status
      403:
        description: Admin access required
      404:
        description: Booking not found
      409:
        description: Transition not allowed from the current status
    """
    actor = require_actor()
    data = request.get_json(silent=True) or {}
    if "status" not in data:
        return jsonify({"error": "invalid_input", "message": "status is required"}), 400

    booking = bookings.get_booking(booking_id, actor)
    bookings.transition(booking, data["status"], actor)
    return jsonify({"message": "Booking status updated", "booking": booking.to_dict()}), 200


# --- Payment endpoints (Stripe card payments plus self-attested bank/bitcoin) ---


@bp.post("/create-payment-intent")
def create_payment_intent() -> tuple[dict[str, object], int]:
    """Create a Stripe PaymentIntent for a booking.
    ---
    tags:
      - Payments
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            booking_id:
              type: integer
            amount:
              type: number
              description: Optional; must equal the service price when given
    responses:
      200:
        description: Payment intent created successfully
      400:
        description: Invalid payload or amount mismatch
      401:
        description: Authentication required
      403:
        description: Not the caller's booking
      404:
        description: Booking not found
      502:
        description: Payment processor error
    """
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    booking_id = payload.get("booking_id")
    if not booking_id:
        return jsonify({"error": "invalid_payload", "message": "booking_id is required"}), 400

    payment, intent = payments.create_payment_intent(actor, booking_id, payload.get("amount"))
    return jsonify({
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.intent_id,
        "publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY"),
        "payment": payment.to_dict(),
    }), 200


@bp.post("/confirm-payment")
def confirm_payment() -> tuple[dict[str, object], int]:
    """Settle a payment from the processor's intent status.
    ---
    tags:
      - Payments
    responses:
      200:
        description: Intent status and the payment row
      401:
        description: Authentication required
      404:
        description: Payment not found
      409:
        description: Payment already failed or refunded
      502:
        description: Processor error; the payment is marked failed
    """
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    payment_intent_id = payload.get("payment_intent_id")
    if not payment_intent_id:
        return jsonify({"error": "invalid_payload", "message": "payment_intent_id is required"}), 400

    result = payments.confirm_payment(actor, payment_intent_id)
    return jsonify({
        "status": result.processor_status,
        "already_processed": result.already_processed,
        "payment": result.payment.to_dict(),
    }), 200


@bp.post("/manual-payment")
def manual_payment() -> tuple[dict[str, object], int]:
    """Record a bank transfer or bitcoin payment the client says they sent."""
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    booking_id = payload.get("booking_id")
    method = payload.get("method")
    if not booking_id or not method:
        return jsonify({"error": "invalid_payload", "message": "booking_id and method are required"}), 400

    payment = payments.record_manual_payment(actor, booking_id, method)
    return jsonify({"message": "Payment recorded", "payment": payment.to_dict()}), 201


@bp.post("/process-refund")
def process_refund() -> tuple[dict[str, object], int]:
    """Refund a completed payment through Stripe (admin).
    ---
    tags:
      - Payments
    responses:
      200:
        description: Refund processed
      403:
        description: Admin access required
      404:
        description: Payment not found
      409:
        description: Payment is not in a refundable state
      502:
        description: Processor refused the refund; nothing changed
    """
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    payment_id = payload.get("payment_id")
    if not payment_id:
        return jsonify({"error": "invalid_payload", "message": "Missing payment_id"}), 400

    payment, result = payments.refund(actor, payment_id)
    return jsonify({
        "success": True,
        "refund_id": result.refund_id,
        "status": result.status,
        "payment": payment.to_dict(),
    }), 200


@bp.put("/payments/<int:payment_id>/status")
def update_payment_status(payment_id: int) -> tuple[dict[str, object], int]:
    """Transaction monitor: complete or fail a pending payment by hand (admin)."""
    actor = require_actor()
    data = request.get_json(silent=True) or {}
    if "status" not in data:
        return jsonify({"error": "invalid_input", "message": "status is required"}), 400

    payment = payments.update_payment_status(actor, payment_id, data["status"])
    return jsonify({"message": "Payment status updated", "payment": payment.to_dict()}), 200


@bp.get("/payments")
def payment_history() -> tuple[dict[str, object], int]:
    """Payment history with the total actually paid."""
    actor = require_actor()
    try:
        limit = min(200, max(1, int(request.args.get("limit", 50))))
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_parameters", "message": "limit must be an integer"}), 400

    rows = payments.list_payments(actor, limit=limit)
    return jsonify({
        "payments": [payment.to_dict() for payment in rows],
        "total_paid": float(total_revenue(rows)),
        "completed_count": sum(1 for payment in rows if payment.status == "completed"),
    }), 200


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)
