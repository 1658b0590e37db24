"""HTTP routes for the SalonBook system of record."""
from __future__ import annotations

from datetime import date, datetime, time

from flask import Blueprint, current_app, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import lifecycle, refunds, wallets
from .errors import InsufficientFunds, PolicyViolation
from .extensions import db
from .lifecycle import AppointmentStatus, CancellationPolicy, PaymentStatus
from .models import Appointment, Service, User, utc_now
from .refunds import LedgerEffect, LedgerInstruction

bp = Blueprint("api", __name__)

ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


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
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


def _build_token(payload: dict[str, object]) -> str:
    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
    return serializer.dumps(payload)


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing or invalid.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
        payload = serializer.loads(token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
    except BadSignature:
        # Invalid or expired token
        return None
    return payload.get("user_id")


def current_policy() -> CancellationPolicy:
    config = current_app.config
    return CancellationPolicy(
        cancellation_window_hours=config["CANCELLATION_WINDOW_HOURS"],
        reschedule_window_hours=config["RESCHEDULE_WINDOW_HOURS"],
        refund_eligible=tuple(config["REFUND_ELIGIBLE_METHODS"]),
        policy_text=config["CANCELLATION_POLICY_TEXT"],
    )


def _unauthorized():
    return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401


def _owned_appointment(appointment_id: int, user_id: int):
    """Return (appointment, None) or (None, error response)."""
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return None, (jsonify({"error": "not_found", "message": "Appointment not found"}), 404)
    if appointment.client_id != user_id:
        return None, (
            jsonify({"error": "forbidden", "message": "This appointment belongs to another account"}),
            403,
        )
    return appointment, None


# ============================================================================
# Appointments
# ============================================================================

@bp.get("/api/customer/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    """List the signed-in client's appointments.
    ---
    tags:
      - Appointments
    parameters:
      - name: status
        in: query
        type: string
        description: Only return appointments with this status
    responses:
      200:
        description: Appointments ordered by date and time
      401:
        description: Missing or invalid token
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        query = Appointment.query.filter(Appointment.client_id == user_id)
        status = request.args.get("status", "").strip()
        if status and status != "all":
            query = query.filter(Appointment.status == status)
        appointments = query.order_by(
            Appointment.appointment_date, Appointment.appointment_time
        ).all()

        policy = current_policy()
        now = utc_now()
        return jsonify({"appointments": [a.to_dict(policy, now) for a in appointments]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/api/customer/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Return one appointment with its current policy flags.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment found
      403:
        description: Appointment belongs to another client
      404:
        description: Appointment not found
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        appointment, error = _owned_appointment(appointment_id, user_id)
        if error:
            return error
        return jsonify({"appointment": appointment.to_dict(current_policy())}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.patch("/api/customer/booking/<int:appointment_id>/cancel")
def cancel_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Cancel an appointment and refund wallet payments in the same transaction.
    ---
    tags:
      - Appointments
    parameters:
      - in: body
        name: body
        schema:
          properties:
            cancellation_reason:
              type: string
    responses:
      200:
        description: Appointment cancelled
      400:
        description: Cancellation not permitted
      403:
        description: Appointment belongs to another client
      404:
        description: Appointment not found
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        appointment, error = _owned_appointment(appointment_id, user_id)
        if error:
            return error

        data = request.get_json(silent=True) or {}
        reason = (data.get("cancellation_reason") or "").strip() or None

        policy = current_policy()
        now = utc_now()
        appointment.apply_policy(policy, now)

        lifecycle.cancel(appointment, reason, now)
        instruction = refunds.for_cancellation(appointment, refund_eligible=policy.refund_eligible)

        wallet = None
        transaction = None
        if instruction.effect == LedgerEffect.CREDIT:
            wallet = wallets.get_or_create_wallet(user_id)
            transaction = wallets.post(
                wallet,
                instruction,
                f"Refund for cancelled appointment {appointment.booking_reference}",
                appointment.booking_reference,
            )
            if transaction is not None:
                appointment.payment_status = PaymentStatus.REFUNDED.value

        db.session.commit()

        refunded = transaction is not None
        message = "Appointment cancelled successfully"
        if refunded:
            message += f". R{instruction.amount:.2f} has been refunded to your wallet"
        return jsonify({
            "message": message,
            "appointment": appointment.to_dict(policy),
            "wallet_refunded": refunded,
            "refund_amount": instruction.amount if refunded else None,
            "refund_amount_cents": instruction.amount_cents if refunded else None,
            "manual_refund_required": instruction.manual_refund_required,
            "notice": instruction.notice,
            "wallet": wallet.to_dict() if wallet else None,
        }), 200

    except PolicyViolation as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 400
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


def _parse_slot(data: dict) -> tuple[date, time]:
    new_date = date.fromisoformat(str(data["appointment_date"]))
    new_time = datetime.strptime(str(data["appointment_time"])[:5], "%H:%M").time()
    return new_date, new_time


@bp.patch("/api/customer/booking/<int:appointment_id>/reschedule")
def reschedule_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move an appointment to a new date/time with conflict checking.
    ---
    tags:
      - Appointments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            appointment_date:
              type: string
              format: date
            appointment_time:
              type: string
              example: "14:30"
    responses:
      200:
        description: Appointment rescheduled successfully
      400:
        description: Invalid input or cannot reschedule
      404:
        description: Appointment not found
      409:
        description: Time slot conflict
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        appointment, error = _owned_appointment(appointment_id, user_id)
        if error:
            return error

        policy = current_policy()
        now = utc_now()
        appointment.apply_policy(policy, now)
        lifecycle.check_reschedule(appointment)

        data = request.get_json(silent=True) or {}
        if "appointment_date" not in data or "appointment_time" not in data:
            return (
                jsonify({
                    "error": "invalid_input",
                    "message": "appointment_date and appointment_time are required",
                }),
                400,
            )

        try:
            new_date, new_time = _parse_slot(data)
        except (TypeError, ValueError):
            return (
                jsonify({"error": "invalid_datetime", "message": "Invalid date or time format"}),
                400,
            )

        new_start = datetime.combine(new_date, new_time, tzinfo=now.tzinfo)
        if new_start <= now:
            return (
                jsonify({"error": "invalid_datetime", "message": "The new time must be in the future"}),
                400,
            )

        if appointment.staff_id is not None:
            new_end_minutes = new_time.hour * 60 + new_time.minute + appointment.duration_minutes
            new_start_minutes = new_time.hour * 60 + new_time.minute
            others = Appointment.query.filter(
                Appointment.staff_id == appointment.staff_id,
                Appointment.appointment_id != appointment_id,  # Exclude current appointment
                Appointment.appointment_date == new_date,
                Appointment.status.in_(ACTIVE_STATUSES),
            ).all()
            for other in others:
                other_start = other.appointment_time.hour * 60 + other.appointment_time.minute
                other_end = other_start + other.duration_minutes
                if other_start < new_end_minutes and other_end > new_start_minutes:
                    return (
                        jsonify({
                            "error": "conflict",
                            "message": "Time slot conflicts with another appointment",
                        }),
                        409,
                    )

        lifecycle.reschedule(appointment, new_date, new_time)
        db.session.commit()

        return jsonify({
            "message": "Appointment rescheduled successfully",
            "appointment": appointment.to_dict(policy),
        }), 200

    except PolicyViolation as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 400
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to reschedule appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.patch("/api/customer/booking/<int:appointment_id>/modify")
def modify_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Switch an appointment to another service, settling the price difference via the wallet.
    ---
    tags:
      - Appointments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            service_id:
              type: integer
    responses:
      200:
        description: Service changed; price difference charged or refunded
      400:
        description: Invalid input or modification not permitted
      404:
        description: Appointment or service not found
      409:
        description: Insufficient wallet balance for the upgrade
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        appointment, error = _owned_appointment(appointment_id, user_id)
        if error:
            return error

        data = request.get_json(silent=True) or {}
        service_id = data.get("service_id")
        if not isinstance(service_id, int) or isinstance(service_id, bool):
            return jsonify({"error": "invalid_input", "message": "service_id must be an integer"}), 400

        service = db.session.get(Service, service_id)
        if service is None:
            return jsonify({"error": "service_not_found", "message": "Service not found"}), 404
        if not service.is_active:
            return (
                jsonify({"error": "service_unavailable", "message": "This service is no longer offered"}),
                400,
            )
        if service.service_id == appointment.service_id:
            return (
                jsonify({"error": "invalid_input", "message": "The appointment already uses this service"}),
                400,
            )

        policy = current_policy()
        now = utc_now()
        appointment.apply_policy(policy, now)
        lifecycle.check_modify_service(appointment)

        instruction = refunds.for_modification(appointment, service.price_cents)
        reference = appointment.booking_reference
        lifecycle.modify_service(appointment, service)

        wallet = None
        if instruction.effect != LedgerEffect.NONE:
            wallet = wallets.get_or_create_wallet(user_id)
            if instruction.effect == LedgerEffect.DEBIT:
                description = f"Service change charge for {reference}"
            else:
                description = f"Service change refund for {reference}"
            wallets.post(wallet, instruction, description, reference)

        db.session.commit()

        return jsonify({
            "message": f"Appointment changed to {service.name}",
            "appointment": appointment.to_dict(policy),
            "price_difference": instruction.signed_cents / 100.0,
            "price_difference_cents": instruction.signed_cents,
            "ledger_effect": instruction.effect.value,
            "wallet_charged_or_refunded": wallet is not None,
            "wallet": wallet.to_dict() if wallet else None,
        }), 200

    except PolicyViolation as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 400
    except InsufficientFunds as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to modify appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/api/customer/cancellation-policy")
def get_cancellation_policy() -> tuple[dict[str, object], int]:
    """Return the cancellation and reschedule policy.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Policy windows and refundable payment methods
    """
    return jsonify({"policy": current_policy().to_dict()}), 200


@bp.get("/api/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    """Return a single service.
    ---
    tags:
      - Services
    responses:
      200:
        description: Service found
      404:
        description: Service not found
    """
    try:
        service = db.session.get(Service, service_id)
        if service is None:
            return jsonify({"error": "service_not_found", "message": "Service not found"}), 404
        return jsonify({"service": service.to_dict()}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# ============================================================================
# Wallet
# ============================================================================

@bp.get("/api/customer/wallet")
def get_wallet() -> tuple[dict[str, object], int]:
    """Return the client's wallet balance and transaction history.
    ---
    tags:
      - Wallet
    responses:
      200:
        description: Wallet with transactions in append order
      401:
        description: Missing or invalid token
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    try:
        wallet = wallets.get_or_create_wallet(user_id)
        db.session.commit()
        return jsonify({"wallet": wallet.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to fetch wallet", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/api/customer/wallet/add-funds")
def add_wallet_funds() -> tuple[dict[str, object], int]:
    """Credit a top-up, already captured by the payment provider, to the wallet.
    ---
    tags:
      - Wallet
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            amount_cents:
              type: integer
            payment_reference:
              type: string
    responses:
      201:
        description: Funds added
      400:
        description: Invalid amount
      500:
        description: Database error
    """
    user_id = get_jwt_identity()
    if user_id is None:
        return _unauthorized()

    data = request.get_json(silent=True) or {}
    amount_cents = data.get("amount_cents")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        return jsonify({"error": "invalid_input", "message": "amount_cents must be a positive integer"}), 400

    try:
        wallet = wallets.get_or_create_wallet(user_id)
        transaction = wallets.post(
            wallet,
            LedgerInstruction(effect=LedgerEffect.CREDIT, amount_cents=amount_cents),
            "Wallet top-up",
            data.get("payment_reference"),
        )
        db.session.commit()
        return jsonify({
            "message": "Funds added to wallet",
            "transaction": transaction.to_dict(),
            "wallet": wallet.to_dict(),
        }), 201

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to add wallet funds", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# ============================================================================
# Favorites
# ============================================================================

def _favorite_detail(service: Service) -> dict[str, object]:
    return {
        "service_id": service.service_id,
        "name": service.name,
        "price_cents": service.price_cents,
        "price": service.price_cents / 100.0,
        "duration_minutes": service.duration_minutes,
    }


def _favorites_user():
    """Return (user, None) for the token holder or (None, error response)."""
    user_id = get_jwt_identity()
    if user_id is None:
        return None, _unauthorized()
    user = db.session.get(User, user_id)
    if user is None:
        return None, (jsonify({"error": "user_not_found"}), 404)
    return user, None


def _requested_service():
    data = request.get_json(silent=True) or {}
    service_id = data.get("service_id")
    if not isinstance(service_id, int) or isinstance(service_id, bool):
        return None, (jsonify({"error": "invalid_input", "message": "service_id must be an integer"}), 400)
    service = db.session.get(Service, service_id)
    if service is None:
        return None, (jsonify({"error": "service_not_found", "message": "Service not found"}), 404)
    return service, None


@bp.get("/api/favorites")
def list_favorites() -> tuple[dict[str, object], int]:
    """Return the client's favorite service ids and details.
    ---
    tags:
      - Favorites
    responses:
      200:
        description: Favorite ids and details
      401:
        description: Missing or invalid token
    """
    try:
        user, error = _favorites_user()
        if error:
            return error
        services = user.favorite_services.order_by(Service.service_id).all()
        return jsonify({
            "favorite_service_ids": [s.service_id for s in services],
            "favorites": [_favorite_detail(s) for s in services],
        }), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch favorites", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/api/favorites/toggle")
def toggle_favorite() -> tuple[dict[str, object], int]:
    """Flip a service's membership in the client's favorites.
    ---
    tags:
      - Favorites
    responses:
      200:
        description: New membership state, with details when added
      400:
        description: Invalid input
      404:
        description: Service not found
    """
    try:
        user, error = _favorites_user()
        if error:
            return error
        service, error = _requested_service()
        if error:
            return error

        if user.favorite_services.filter(Service.service_id == service.service_id).first():
            user.favorite_services.remove(service)
            db.session.commit()
            return jsonify({"is_favorite": False, "detail": None}), 200

        user.favorite_services.append(service)
        db.session.commit()
        return jsonify({"is_favorite": True, "detail": _favorite_detail(service)}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to toggle favorite", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/api/favorites")
def add_favorite() -> tuple[dict[str, object], int]:
    """Add a service to the client's favorites.
    ---
    tags:
      - Favorites
    responses:
      201:
        description: Created successfully
      400:
        description: Invalid input or already favorited
      404:
        description: Service not found
    """
    try:
        user, error = _favorites_user()
        if error:
            return error
        service, error = _requested_service()
        if error:
            return error

        if user.favorite_services.filter(Service.service_id == service.service_id).first():
            return jsonify({"error": "already_favorited", "message": "Service is already a favorite"}), 400

        user.favorite_services.append(service)
        db.session.commit()
        return jsonify({"is_favorite": True, "detail": _favorite_detail(service)}), 201

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to add favorite service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/api/favorites/<int:service_id>")
def remove_favorite(service_id: int) -> tuple[dict[str, object], int]:
    """Remove a service from the client's favorites.
    ---
    tags:
      - Favorites
    responses:
      200:
        description: Removed
      404:
        description: Service was not a favorite
    """
    try:
        user, error = _favorites_user()
        if error:
            return error

        service = user.favorite_services.filter(Service.service_id == service_id).first()
        if not service:
            return jsonify({"error": "not_favorited", "message": "Service is not a favorite"}), 404

        user.favorite_services.remove(service)
        db.session.commit()
        return jsonify({"is_favorite": False, "detail": None}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to remove favorite service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/api/favorites/sync")
def sync_favorites() -> tuple[dict[str, object], int]:
    """Replace the client's favorites with the given set of service ids.
    ---
    tags:
      - Favorites
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            service_ids:
              type: array
              items:
                type: integer
    responses:
      200:
        description: Favorites replaced
      400:
        description: Invalid input
      404:
        description: One or more services not found
    """
    try:
        user, error = _favorites_user()
        if error:
            return error

        data = request.get_json(silent=True) or {}
        service_ids = data.get("service_ids")
        if not isinstance(service_ids, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in service_ids
        ):
            return (
                jsonify({"error": "invalid_input", "message": "service_ids must be a list of integers"}),
                400,
            )

        wanted = set(service_ids)
        services = Service.query.filter(Service.service_id.in_(wanted)).all() if wanted else []
        missing = wanted - {s.service_id for s in services}
        if missing:
            return (
                jsonify({
                    "error": "service_not_found",
                    "message": f"Unknown services: {sorted(missing)}",
                }),
                404,
            )

        for current in user.favorite_services.all():
            if current.service_id not in wanted:
                user.favorite_services.remove(current)
        existing = {s.service_id for s in user.favorite_services.all()}
        for service in services:
            if service.service_id not in existing:
                user.favorite_services.append(service)
        db.session.commit()

        return jsonify({"ok": True, "favorite_service_ids": sorted(wanted)}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to sync favorites", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
