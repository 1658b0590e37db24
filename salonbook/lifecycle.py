"""Appointment state machine.

Statuses move ``pending -> confirmed -> completed``; ``pending`` and
``confirmed`` may be cancelled and ``confirmed`` may end as ``no_show``.
``completed``, ``cancelled`` and ``no_show`` are terminal.

The ``check_*`` functions only validate and are shared with the client core,
which never mutates status locally. The mutating functions are applied by the
system of record to its own models. Both work on any object exposing the
appointment attributes, so they serve the SQLAlchemy model and the client's
pydantic model alike.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from .errors import PolicyViolation


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    WALLET = "wallet"
    BANK_TRANSFER = "bank_transfer"
    MOBILE = "mobile"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)
CANCELLABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


@dataclass(frozen=True)
class CancellationPolicy:
    """Reference data describing the cancellation and reschedule windows."""

    cancellation_window_hours: int = 24
    reschedule_window_hours: int = 24
    refund_eligible: tuple[str, ...] = (PaymentMethod.WALLET.value,)
    policy_text: str = ""

    @property
    def non_refundable(self) -> tuple[str, ...]:
        return tuple(m.value for m in PaymentMethod if m.value not in self.refund_eligible)

    def to_dict(self) -> dict[str, object]:
        return {
            "cancellation_window_hours": self.cancellation_window_hours,
            "reschedule_window_hours": self.reschedule_window_hours,
            "refund_eligible": list(self.refund_eligible),
            "non_refundable": list(self.non_refundable),
            "policy_text": self.policy_text,
        }


def _status(appointment) -> AppointmentStatus:
    return AppointmentStatus(getattr(appointment, "status"))


def starts_at(appointment) -> datetime:
    """Return the appointment start as an aware UTC datetime."""
    return datetime.combine(
        appointment.appointment_date, appointment.appointment_time, tzinfo=timezone.utc
    )


def policy_flags(appointment, policy: CancellationPolicy, now: datetime) -> dict[str, bool]:
    """Compute ``can_cancel``/``can_reschedule`` for the system of record."""
    status = _status(appointment)
    lead = starts_at(appointment) - now
    return {
        "can_cancel": status in CANCELLABLE_STATUSES
        and lead >= timedelta(hours=policy.cancellation_window_hours),
        "can_reschedule": status == AppointmentStatus.CONFIRMED
        and lead >= timedelta(hours=policy.reschedule_window_hours),
    }


def check_cancel(appointment) -> None:
    status = _status(appointment)
    if status not in CANCELLABLE_STATUSES:
        raise PolicyViolation(
            f"Cannot cancel an appointment with status '{status.value}'",
            check="status",
            code="cannot_cancel",
        )
    if not appointment.can_cancel:
        raise PolicyViolation(
            "This appointment is inside the cancellation window and can no longer be cancelled",
            check="can_cancel",
            code="cannot_cancel",
        )


def check_reschedule(appointment) -> None:
    status = _status(appointment)
    if status != AppointmentStatus.CONFIRMED:
        raise PolicyViolation(
            f"Cannot reschedule an appointment with status '{status.value}'",
            check="status",
            code="cannot_reschedule",
        )
    if not appointment.can_reschedule:
        raise PolicyViolation(
            "This appointment is inside the reschedule window and can no longer be moved",
            check="can_reschedule",
            code="cannot_reschedule",
        )


def check_modify_service(appointment) -> None:
    # Service changes share the reschedule window.
    status = _status(appointment)
    if status != AppointmentStatus.CONFIRMED:
        raise PolicyViolation(
            f"Cannot change the service of an appointment with status '{status.value}'",
            check="status",
            code="cannot_modify",
        )
    if not appointment.can_reschedule:
        raise PolicyViolation(
            "This appointment is inside the reschedule window and its service can no longer be changed",
            check="can_reschedule",
            code="cannot_modify",
        )


def cancel(appointment, reason: str | None, now: datetime) -> None:
    check_cancel(appointment)
    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancelled_at = now
    appointment.cancellation_reason = reason or None


def reschedule(appointment, new_date: date, new_time: time) -> None:
    check_reschedule(appointment)
    appointment.appointment_date = new_date
    appointment.appointment_time = new_time


def modify_service(appointment, service) -> None:
    """Move the appointment onto ``service``, snapshotting its name and price."""
    check_modify_service(appointment)
    appointment.service_id = service.service_id
    appointment.service_name = service.name
    appointment.price_cents = service.price_cents
    appointment.total_price_cents = service.price_cents
    appointment.duration_minutes = service.duration_minutes


def confirm(appointment, now: datetime) -> None:
    status = _status(appointment)
    if status != AppointmentStatus.PENDING:
        raise PolicyViolation(
            f"Cannot confirm an appointment with status '{status.value}'",
            check="status",
            code="cannot_confirm",
        )
    appointment.status = AppointmentStatus.CONFIRMED.value
    appointment.confirmed_at = now


def complete(appointment) -> None:
    status = _status(appointment)
    if status != AppointmentStatus.CONFIRMED:
        raise PolicyViolation(
            f"Cannot complete an appointment with status '{status.value}'",
            check="status",
            code="cannot_complete",
        )
    appointment.status = AppointmentStatus.COMPLETED.value


def mark_no_show(appointment) -> None:
    status = _status(appointment)
    if status != AppointmentStatus.CONFIRMED:
        raise PolicyViolation(
            f"Cannot mark an appointment with status '{status.value}' as a no-show",
            check="status",
            code="cannot_mark_no_show",
        )
    appointment.status = AppointmentStatus.NO_SHOW.value
