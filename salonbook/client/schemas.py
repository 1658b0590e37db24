"""Wire models for payloads returned by the system of record."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .. import ledger
from ..lifecycle import (AppointmentStatus, CancellationPolicy, PaymentMethod,
                         PaymentStatus)
from ..refunds import LedgerEffect


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Appointment(WireModel):
    id: int
    booking_reference: str
    service_id: int
    service_name: str
    staff_id: Optional[int] = None
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    price_cents: int
    total_price_cents: int = Field(ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: AppointmentStatus
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    can_cancel: bool = False
    can_reschedule: bool = False

    @model_validator(mode="after")
    def _cancellation_fields(self) -> "Appointment":
        cancelled = self.status == AppointmentStatus.CANCELLED
        if cancelled != (self.cancelled_at is not None):
            raise ValueError("cancelled_at must be set exactly when status is cancelled")
        if self.cancellation_reason is not None and self.cancelled_at is None:
            raise ValueError("cancellation_reason requires cancelled_at")
        return self

    @property
    def total_price(self) -> float:
        return self.total_price_cents / 100.0


class Service(WireModel):
    id: int
    name: str
    price_cents: int = Field(ge=0)
    duration_minutes: int
    is_active: bool = True


class WalletTransaction(WireModel):
    id: int
    amount_cents: int = Field(gt=0)
    type: LedgerEffect
    description: Optional[str] = None
    reference: Optional[str] = None
    balance_after_cents: int
    created_at: datetime


class WalletSnapshot(WireModel):
    balance_cents: int
    currency: str = "ZAR"
    transactions: list[WalletTransaction] = Field(default_factory=list)

    @property
    def balance(self) -> float:
        return self.balance_cents / 100.0

    def verify(self) -> None:
        ledger.verify(self.balance_cents, self.transactions)


class Policy(WireModel):
    cancellation_window_hours: int
    reschedule_window_hours: int
    refund_eligible: list[PaymentMethod]
    non_refundable: list[PaymentMethod] = Field(default_factory=list)
    policy_text: str = ""

    def to_policy(self) -> CancellationPolicy:
        return CancellationPolicy(
            cancellation_window_hours=self.cancellation_window_hours,
            reschedule_window_hours=self.reschedule_window_hours,
            refund_eligible=tuple(m.value for m in self.refund_eligible),
            policy_text=self.policy_text,
        )


class CancelOutcome(WireModel):
    message: str = ""
    appointment: Appointment
    wallet_refunded: bool = False
    refund_amount_cents: Optional[int] = None
    wallet: Optional[WalletSnapshot] = None


class RescheduleOutcome(WireModel):
    message: str = ""
    appointment: Appointment


class ModifyOutcome(WireModel):
    message: str = ""
    appointment: Appointment
    price_difference_cents: int = 0
    wallet_charged_or_refunded: bool = False
    wallet: Optional[WalletSnapshot] = None

    @property
    def price_difference(self) -> float:
        return self.price_difference_cents / 100.0


class FavoriteDetail(WireModel):
    service_id: int
    name: str
    price_cents: int
    duration_minutes: int


class FavoriteToggle(WireModel):
    is_favorite: bool
    detail: Optional[FavoriteDetail] = None


class FavoriteList(WireModel):
    favorite_service_ids: list[int] = Field(default_factory=list)
    favorites: list[FavoriteDetail] = Field(default_factory=list)


class SyncOutcome(WireModel):
    ok: bool
