"""Error taxonomy shared by the system of record and the client core."""
from __future__ import annotations


class BookingError(Exception):
    """Base class for every failure this package reports to a caller."""

    code = "booking_error"
    retryable = False

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": self.message}


class PolicyViolation(BookingError):
    """A transition is not permitted by the appointment's state or policy flags."""

    code = "policy_violation"

    def __init__(self, message: str, *, check: str, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.check = check


class RemoteRejected(BookingError):
    """The system of record declined the operation."""

    code = "remote_rejected"

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code


class TransportFailure(BookingError):
    """Network failure, timeout or unavailable server. Safe to retry."""

    code = "transport_failure"
    retryable = True


class CacheDivergence(BookingError):
    """A local cache could not be restored to its last known good snapshot."""

    code = "cache_divergence"


class InsufficientFunds(BookingError):
    """A wallet debit exceeds the available balance."""

    code = "insufficient_funds"

    def __init__(self, balance_cents: int, amount_cents: int) -> None:
        super().__init__(
            f"Insufficient wallet balance: R{balance_cents / 100:.2f} available, "
            f"R{amount_cents / 100:.2f} required"
        )
        self.balance_cents = balance_cents
        self.amount_cents = amount_cents


class LedgerIntegrityError(BookingError):
    """Replaying a transaction log does not reproduce its recorded balances."""

    code = "ledger_integrity"
