"""Appointment lifecycle orchestration on the client.

Cancel, reschedule and service changes are request/confirm operations: the
state machine validates against the latest known appointment, the system of
record performs the transition together with any wallet effect, and only the
confirmed server payload replaces the local view. A failed call leaves the
appointment list and the wallet snapshot exactly as they were.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from .. import lifecycle, refunds
from ..errors import BookingError, LedgerIntegrityError, PolicyViolation
from ..lifecycle import CancellationPolicy
from ..refunds import LedgerInstruction
from .api import BookingApi
from .schemas import Appointment, WalletSnapshot
from .wallet import WalletView

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    ok: bool
    message: str
    appointment: Optional[Appointment] = None
    error: Optional[BookingError] = None

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


@dataclass
class CancelResult(ActionResult):
    refunded: bool = False
    refund_amount_cents: Optional[int] = None


@dataclass
class ModifyResult(ActionResult):
    preview: Optional[LedgerInstruction] = None
    price_difference_cents: Optional[int] = None
    wallet_charged_or_refunded: bool = False

    @property
    def price_difference(self) -> Optional[float]:
        if self.price_difference_cents is None:
            return None
        return self.price_difference_cents / 100.0


class AppointmentLifecycle:
    def __init__(self, api: BookingApi, wallet: Optional[WalletView] = None):
        self.api = api
        self.wallet = wallet
        self.policy: Optional[CancellationPolicy] = None
        self._appointments: dict[int, Appointment] = {}
        self._closed = False

    # Snapshot accessors

    @property
    def appointments(self) -> list[Appointment]:
        return sorted(
            self._appointments.values(),
            key=lambda a: (a.appointment_date, a.appointment_time, a.id),
        )

    def get(self, appointment_id: int) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def history(self, status: Optional[str] = None) -> list[Appointment]:
        if not status or status == "all":
            return self.appointments
        return [a for a in self.appointments if a.status.value == status]

    def close(self) -> None:
        """Stop adopting results; calls still in flight resolve into nothing."""
        self._closed = True

    # Loading

    async def refresh(self) -> ActionResult:
        try:
            appointments = await self.api.list_appointments()
        except BookingError as exc:
            return self._failed("refresh", exc)
        if self._closed:
            return ActionResult(ok=True, message="Ignored: lifecycle closed")
        self._appointments = {a.id: a for a in appointments}
        return ActionResult(ok=True, message=f"Loaded {len(appointments)} appointments")

    async def load_policy(self) -> Optional[CancellationPolicy]:
        try:
            policy = await self.api.fetch_policy()
        except BookingError as exc:
            logger.warning(f"Failed to fetch cancellation policy: {exc.message}")
            return None
        self.policy = policy.to_policy()
        return self.policy

    def preview_cancellation(self, appointment_id: int) -> Optional[LedgerInstruction]:
        """Refund the user should expect, computed from the cached appointment."""
        appointment = self.get(appointment_id)
        if appointment is None:
            return None
        if self.policy is not None:
            return refunds.for_cancellation(appointment, refund_eligible=self.policy.refund_eligible)
        return refunds.for_cancellation(appointment)

    # Operations

    async def cancel(self, appointment_id: int, reason: Optional[str] = None) -> CancelResult:
        try:
            current = await self.api.fetch_appointment(appointment_id)
            lifecycle.check_cancel(current)
            outcome = await self.api.cancel_appointment(appointment_id, reason)
        except BookingError as exc:
            return self._failed("cancel", exc, CancelResult)

        if self._closed:
            return CancelResult(ok=True, message=outcome.message, appointment=outcome.appointment)
        self._adopt(outcome.appointment, outcome.wallet)
        if outcome.wallet_refunded and outcome.wallet is None and self.wallet is not None:
            await self.wallet.refresh()
        return CancelResult(
            ok=True,
            message=outcome.message or "Appointment cancelled",
            appointment=outcome.appointment,
            refunded=outcome.wallet_refunded,
            refund_amount_cents=outcome.refund_amount_cents,
        )

    async def reschedule(self, appointment_id: int, new_date: date, new_time: time) -> ActionResult:
        try:
            current = await self._current(appointment_id)
            lifecycle.check_reschedule(current)
            outcome = await self.api.reschedule_appointment(appointment_id, new_date, new_time)
        except BookingError as exc:
            return self._failed("reschedule", exc)

        if not self._closed:
            self._adopt(outcome.appointment)
        return ActionResult(
            ok=True,
            message=outcome.message or "Appointment rescheduled",
            appointment=outcome.appointment,
        )

    async def modify_service(self, appointment_id: int, service_id: int) -> ModifyResult:
        try:
            current = await self._current(appointment_id)
            lifecycle.check_modify_service(current)
            service = await self.api.fetch_service(service_id)
            preview = refunds.for_modification(current, service.price_cents)
            outcome = await self.api.modify_appointment_service(appointment_id, service_id)
        except BookingError as exc:
            return self._failed("modify", exc, ModifyResult)

        if not self._closed:
            self._adopt(outcome.appointment, outcome.wallet)
            if outcome.wallet_charged_or_refunded and outcome.wallet is None and self.wallet is not None:
                await self.wallet.refresh()
        if outcome.price_difference_cents != preview.signed_cents:
            logger.info(
                f"Server price difference {outcome.price_difference_cents} differs from "
                f"preview {preview.signed_cents} for appointment {appointment_id}"
            )
        return ModifyResult(
            ok=True,
            message=outcome.message or "Service changed",
            appointment=outcome.appointment,
            preview=preview,
            price_difference_cents=outcome.price_difference_cents,
            wallet_charged_or_refunded=outcome.wallet_charged_or_refunded,
        )

    # Internals

    async def _current(self, appointment_id: int) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            appointment = await self.api.fetch_appointment(appointment_id)
        return appointment

    def _adopt(self, appointment: Appointment, wallet: Optional[WalletSnapshot] = None) -> None:
        self._appointments[appointment.id] = appointment
        if wallet is not None and self.wallet is not None:
            try:
                self.wallet.adopt(wallet)
            except LedgerIntegrityError as exc:
                self.wallet.error = exc.message

    def _failed(self, action: str, exc: BookingError, result_type=ActionResult):
        if isinstance(exc, PolicyViolation):
            logger.info(f"{action} refused locally ({exc.check}): {exc.message}")
        else:
            logger.warning(f"{action} failed: {exc.message}")
        return result_type(ok=False, message=exc.message, error=exc)
