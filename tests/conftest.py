"""pytest configuration and shared fixtures."""
from __future__ import annotations

import asyncio
import sys
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app  # noqa: E402
from salonbook import wallets  # noqa: E402
from salonbook.client.api import BookingApi  # noqa: E402
from salonbook.config import ClientConfig, TestingConfig  # noqa: E402
from salonbook.extensions import db  # noqa: E402
from salonbook.models import Appointment, Service, User  # noqa: E402
from salonbook.refunds import LedgerEffect, LedgerInstruction  # noqa: E402
from salonbook.routes import _build_token  # noqa: E402

# Prices in cents
SERVICE_PRICES = {
    "Trim": 20000,
    "Blow Dry": 25000,
    "Colour": 30000,
    "Highlights": 45000,
}


@pytest.fixture
def app():
    flask_app = create_app(TestingConfig)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def client_user(app) -> int:
    with app.app_context():
        user = User(user_id=1, name="Charlie Client", email="charlie@example.com", role="client")
        other = User(user_id=2, name="Olive Other", email="olive@example.com", role="client")
        stylist = User(user_id=3, name="Sam Stylist", email="sam@example.com", role="staff")
        db.session.add_all([user, other, stylist])
        db.session.commit()
    return 1


@pytest.fixture
def services(app) -> dict[str, int]:
    with app.app_context():
        created = {}
        for name, price_cents in SERVICE_PRICES.items():
            service = Service(name=name, price_cents=price_cents, duration_minutes=60)
            db.session.add(service)
            db.session.flush()
            created[name] = service.service_id
        retired = Service(name="Perm", price_cents=60000, duration_minutes=120, is_active=False)
        db.session.add(retired)
        db.session.commit()
        created["Perm"] = retired.service_id
    return created


@pytest.fixture
def make_appointment(app, client_user, services):
    """Factory creating an appointment for the test client; returns its id."""

    def _make(
        service: str = "Blow Dry",
        status: str = "confirmed",
        payment_method: str = "wallet",
        payment_status: str = "paid",
        days_ahead: int = 3,
        hours_ahead: int | None = None,
        at: time = time(10, 0),
        client_id: int = client_user,
        staff_id: int | None = None,
    ) -> int:
        now = datetime.now(timezone.utc)
        if hours_ahead is not None:
            start = (now + timedelta(hours=hours_ahead)).replace(second=0, microsecond=0)
        else:
            start = datetime.combine((now + timedelta(days=days_ahead)).date(), at, tzinfo=timezone.utc)
        with app.app_context():
            svc = db.session.get(Service, services[service])
            appointment = Appointment(
                client_id=client_id,
                staff_id=staff_id,
                service_id=svc.service_id,
                service_name=svc.name,
                appointment_date=start.date(),
                appointment_time=start.time(),
                duration_minutes=svc.duration_minutes,
                price_cents=svc.price_cents,
                total_price_cents=svc.price_cents,
                payment_method=payment_method,
                payment_status=payment_status,
                status=status,
                confirmed_at=now if status == "confirmed" else None,
                cancelled_at=now if status == "cancelled" else None,
            )
            db.session.add(appointment)
            db.session.commit()
            return appointment.appointment_id

    return _make


@pytest.fixture
def fund_wallet(app):
    """Credit a wallet the way a captured top-up would."""

    def _fund(user_id: int, amount_cents: int) -> None:
        with app.app_context():
            wallet = wallets.get_or_create_wallet(user_id)
            wallets.post(
                wallet,
                LedgerInstruction(effect=LedgerEffect.CREDIT, amount_cents=amount_cents),
                "Wallet top-up",
                "TOPUP-TEST",
            )
            db.session.commit()

    return _fund


def token_for(app, user_id: int) -> str:
    with app.app_context():
        return _build_token({"user_id": user_id})


@pytest.fixture
def auth_headers(app, client_user) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(app, client_user)}"}


class FlaskBridge:
    """httpx transport handler that serves requests from the Flask test client.

    Paths listed in ``offline_paths`` fail with a connection error, and
    ``server_error_paths`` answer 503, so tests can simulate outages.
    """

    def __init__(self, test_client):
        self.test_client = test_client
        self.requests: list[tuple[str, str]] = []
        self.offline_paths: set[str] = set()
        self.server_error_paths: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if any(p in path for p in self.offline_paths):
            raise httpx.ConnectError("connection refused", request=request)
        if any(p in path for p in self.server_error_paths):
            return httpx.Response(503, json={"error": "unavailable"})

        headers = {
            k: v
            for k, v in request.headers.items()
            if k.lower() not in {"host", "content-length", "content-type"}
        }
        response = self.test_client.open(
            path,
            method=request.method,
            query_string=request.url.query.decode(),
            headers=headers,
            data=request.content,
            content_type=request.headers.get("content-type"),
        )
        return httpx.Response(
            response.status_code,
            content=response.get_data(),
            headers={"content-type": response.content_type},
        )

    def calls_to(self, fragment: str) -> int:
        return sum(1 for _, path in self.requests if fragment in path)


@pytest.fixture
def bridge(client) -> FlaskBridge:
    return FlaskBridge(client)


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(base_url="http://salonbook.test", timeout=5.0)


@pytest.fixture
def booking_api(app, client_user, bridge, client_config):
    api = BookingApi(
        client_config,
        token=token_for(app, client_user),
        transport=httpx.MockTransport(bridge),
    )
    yield api
    asyncio.run(api.aclose())
