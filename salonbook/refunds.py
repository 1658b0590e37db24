"""Refund and charge decisions for appointment actions.

Nothing here touches a wallet. :func:`decide` returns a
:class:`LedgerInstruction` which the caller applies (the system of record) or
shows as a preview (the client core).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .lifecycle import PaymentMethod, PaymentStatus


class Action(str, Enum):
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    MODIFY = "modify"


class LedgerEffect(str, Enum):
    NONE = "none"
    CREDIT = "credit"
    DEBIT = "debit"


REFUND_ELIGIBLE_METHODS = frozenset({PaymentMethod.WALLET.value})


@dataclass(frozen=True)
class LedgerInstruction:
    effect: LedgerEffect = LedgerEffect.NONE
    amount_cents: int = 0
    manual_refund_required: bool = False
    notice: str = ""

    @property
    def amount(self) -> float:
        return self.amount_cents / 100.0

    @property
    def signed_cents(self) -> int:
        """Price difference from the client's point of view (debit is positive)."""
        if self.effect == LedgerEffect.DEBIT:
            return self.amount_cents
        if self.effect == LedgerEffect.CREDIT:
            return -self.amount_cents
        return 0

    def to_dict(self) -> dict[str, object]:
        return {
            "ledger_effect": self.effect.value,
            "amount_cents": self.amount_cents,
            "amount": self.amount,
            "manual_refund_required": self.manual_refund_required,
            "notice": self.notice,
        }


NO_EFFECT = LedgerInstruction()


def _value(member) -> str:
    return member.value if isinstance(member, Enum) else str(member)


def decide(
    payment_method,
    payment_status,
    action,
    current_amount_cents: int,
    new_amount_cents: int | None = None,
    refund_eligible: frozenset[str] | tuple[str, ...] = REFUND_ELIGIBLE_METHODS,
) -> LedgerInstruction:
    action = Action(_value(action))
    method = _value(payment_method) if payment_method is not None else None
    status = _value(payment_status) if payment_status is not None else None

    if action == Action.RESCHEDULE:
        return NO_EFFECT

    if action == Action.CANCEL:
        if method in refund_eligible and status == PaymentStatus.PAID.value:
            return LedgerInstruction(
                effect=LedgerEffect.CREDIT,
                amount_cents=current_amount_cents,
                notice=f"R{current_amount_cents / 100:.2f} will be refunded to your wallet.",
            )
        if method is not None and status == PaymentStatus.PAID.value:
            return LedgerInstruction(
                manual_refund_required=True,
                notice=(
                    f"Payment made via {method} is not refunded automatically. "
                    "Please contact the salon for refund inquiries."
                ),
            )
        return LedgerInstruction(notice="No payment has been taken for this appointment.")

    if new_amount_cents is None:
        raise ValueError("a modification needs the new service price")
    difference = new_amount_cents - current_amount_cents
    if difference > 0:
        return LedgerInstruction(
            effect=LedgerEffect.DEBIT,
            amount_cents=difference,
            notice=f"R{difference / 100:.2f} will be charged to your wallet.",
        )
    if difference < 0:
        return LedgerInstruction(
            effect=LedgerEffect.CREDIT,
            amount_cents=-difference,
            notice=f"R{-difference / 100:.2f} will be refunded to your wallet.",
        )
    return NO_EFFECT


def for_cancellation(appointment, refund_eligible=REFUND_ELIGIBLE_METHODS) -> LedgerInstruction:
    return decide(
        appointment.payment_method,
        appointment.payment_status,
        Action.CANCEL,
        appointment.total_price_cents,
        refund_eligible=refund_eligible,
    )


def for_modification(appointment, new_price_cents: int) -> LedgerInstruction:
    return decide(
        appointment.payment_method,
        appointment.payment_status,
        Action.MODIFY,
        appointment.total_price_cents,
        new_price_cents,
    )
