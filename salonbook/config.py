"""Configuration for the SalonBook system of record and client core."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv("SECRET_KEY", "salonbook-dev-secret")
    TESTING = False

    # Bearer tokens issued by the auth service stay valid for a day.
    AUTH_TOKEN_MAX_AGE = _int_env("AUTH_TOKEN_MAX_AGE", 86400)

    # Cancellation / reschedule policy
    CANCELLATION_WINDOW_HOURS = _int_env("CANCELLATION_WINDOW_HOURS", 24)
    RESCHEDULE_WINDOW_HOURS = _int_env("RESCHEDULE_WINDOW_HOURS", 24)
    REFUND_ELIGIBLE_METHODS = _list_env("REFUND_ELIGIBLE_METHODS", ("wallet",))
    CANCELLATION_POLICY_TEXT = os.getenv(
        "CANCELLATION_POLICY_TEXT",
        "Appointments can be cancelled or rescheduled with at least 24 hours notice. "
        "Wallet payments are refunded to your wallet immediately; other payment "
        "methods must be refunded by the salon.",
    )

    # Wallet
    WALLET_CURRENCY = os.getenv("WALLET_CURRENCY", "ZAR")
    ALLOW_WALLET_OVERDRAFT = os.getenv("ALLOW_WALLET_OVERDRAFT", "0") in {"1", "true", "True"}


class TestingConfig(Config):
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"
    TESTING = True
    ALLOW_WALLET_OVERDRAFT = False


@dataclass(frozen=True)
class ClientConfig:
    """Settings for the client-side lifecycle core."""

    base_url: str = "http://localhost:5000"
    timeout: float = 10.0
    store_dir: str | None = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=os.getenv("SALONBOOK_API_URL", cls.base_url),
            timeout=float(os.getenv("SALONBOOK_TIMEOUT", cls.timeout)),
            store_dir=os.getenv("SALONBOOK_STORE_DIR") or None,
        )
