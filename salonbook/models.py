"""Database models for the SalonBook system of record."""
from __future__ import annotations

import random
import string
from datetime import datetime, timezone

from .extensions import db
from .lifecycle import (AppointmentStatus, CancellationPolicy, PaymentMethod,
                        PaymentStatus, policy_flags)


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _isoformat(value) -> str | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes; they are stored as UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def generate_booking_reference() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "SB-" + "".join(random.choices(alphabet, k=8))


# Association table for favorite services
favorite_services = db.Table(
    "favorite_services",
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
    db.Column("service_id", db.Integer, db.ForeignKey("services.service_id"), primary_key=True),
    db.Column("created_at", db.DateTime, nullable=False, default=utc_now),
)


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "client",
            "staff",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="client",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    wallet = db.relationship("Wallet", back_populates="user", uselist=False)
    favorite_services = db.relationship(
        "Service",
        secondary=favorite_services,
        lazy="dynamic",
    )

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


class Service(db.Model):
    """Catalog entry a client can book."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price": self.price_cents / 100.0,
            "duration_minutes": self.duration_minutes,
            "is_active": bool(self.is_active),
        }


class Appointment(db.Model):
    """A client's booking. Service name and price are snapshotted at booking time."""

    __tablename__ = "appointments"
    __table_args__ = (
        db.CheckConstraint("total_price_cents >= 0", name="ck_appointments_total_price"),
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    booking_reference = db.Column(
        db.String(20), unique=True, nullable=False, default=generate_booking_reference
    )
    client_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    service_name = db.Column(db.String(150), nullable=False)
    appointment_date = db.Column(db.Date, nullable=False)
    appointment_time = db.Column(db.Time, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(
        db.Enum(
            *[m.value for m in PaymentMethod],
            name="payment_method",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="cash",
    )
    payment_status = db.Column(
        db.Enum(
            *[s.value for s in PaymentStatus],
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    status = db.Column(
        db.Enum(
            *[s.value for s in AppointmentStatus],
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    confirmed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    client = db.relationship("User", foreign_keys=[client_id])
    staff = db.relationship("User", foreign_keys=[staff_id])
    service = db.relationship("Service")

    # Not persisted; refreshed from the policy windows by apply_policy().
    can_cancel = False
    can_reschedule = False

    def apply_policy(self, policy: CancellationPolicy, now: datetime | None = None) -> "Appointment":
        flags = policy_flags(self, policy, now or utc_now())
        self.can_cancel = flags["can_cancel"]
        self.can_reschedule = flags["can_reschedule"]
        return self

    def to_dict(self, policy: CancellationPolicy, now: datetime | None = None) -> dict[str, object]:
        self.apply_policy(policy, now)
        return {
            "id": self.appointment_id,
            "booking_reference": self.booking_reference,
            "user_id": self.client_id,
            "service_id": self.service_id,
            "service_name": self.service_name,
            "staff_id": self.staff_id,
            "staff": self.staff.to_dict_basic() if self.staff else None,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time.strftime("%H:%M"),
            "duration_minutes": self.duration_minutes,
            "price_cents": self.price_cents,
            "price": self.price_cents / 100.0,
            "total_price_cents": self.total_price_cents,
            "total_price": self.total_price_cents / 100.0,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "confirmed_at": _isoformat(self.confirmed_at),
            "cancelled_at": _isoformat(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "notes": self.notes,
            "can_cancel": self.can_cancel,
            "can_reschedule": self.can_reschedule,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


class Wallet(db.Model):
    """Prepaid balance of a client."""

    __tablename__ = "wallets"

    wallet_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), unique=True, nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    user = db.relationship("User", back_populates="wallet")
    transactions = db.relationship(
        "WalletTransaction",
        back_populates="wallet",
        order_by="WalletTransaction.transaction_id",
        lazy="select",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.wallet_id,
            "user_id": self.user_id,
            "balance_cents": self.balance_cents,
            "balance": self.balance_cents / 100.0,
            "currency": self.currency,
            "transactions": [t.to_dict() for t in self.transactions],
        }


class WalletTransaction(db.Model):
    """Append-only ledger entry. Rows are never updated or deleted."""

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_wallet_transactions_amount"),
    )

    transaction_id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.wallet_id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(
        db.Enum(
            "credit",
            "debit",
            name="wallet_transaction_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    description = db.Column(db.String(255))
    reference = db.Column(db.String(64))
    balance_after_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    wallet = db.relationship("Wallet", back_populates="transactions")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.transaction_id,
            "wallet_id": self.wallet_id,
            "amount_cents": self.amount_cents,
            "amount": self.amount_cents / 100.0,
            "type": self.type,
            "description": self.description,
            "reference": self.reference,
            "balance_after_cents": self.balance_after_cents,
            "balance_after": self.balance_after_cents / 100.0,
            "created_at": _isoformat(self.created_at),
        }
