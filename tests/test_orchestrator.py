"""Client lifecycle core driven against the real routes through an in-process transport."""
import asyncio
import json
from datetime import datetime, time, timedelta, timezone

import httpx
import pytest

from salonbook.client.api import BookingApi
from salonbook.client.orchestrator import AppointmentLifecycle
from salonbook.client.wallet import WalletView
from salonbook.errors import PolicyViolation, RemoteRejected, TransportFailure
from salonbook.refunds import LedgerEffect

from conftest import token_for


@pytest.fixture
def core(booking_api):
    wallet = WalletView(booking_api)
    return AppointmentLifecycle(booking_api, wallet=wallet), wallet


def test_cancel_wallet_booking_refunds_and_updates_views(core, bridge, make_appointment, fund_wallet):
    lifecycle, wallet = core
    fund_wallet(1, 100000)
    appointment_id = make_appointment(service="Blow Dry")

    async def scenario():
        await lifecycle.refresh()
        await wallet.refresh()
        return await lifecycle.cancel(appointment_id, "Travelling")

    result = asyncio.run(scenario())

    assert result.ok is True
    assert result.refunded is True
    assert result.refund_amount_cents == 25000
    assert lifecycle.get(appointment_id).status == "cancelled"
    assert lifecycle.get(appointment_id).cancellation_reason == "Travelling"
    assert wallet.balance_cents == 125000
    assert wallet.snapshot.transactions[-1].type == LedgerEffect.CREDIT
    assert bridge.calls_to(f"/booking/{appointment_id}/cancel") == 1


def test_cancel_card_booking_does_not_refund(core, make_appointment):
    lifecycle, wallet = core
    appointment_id = make_appointment(payment_method="card")

    result = asyncio.run(lifecycle.cancel(appointment_id))

    assert result.ok is True
    assert result.refunded is False
    assert result.refund_amount_cents is None
    assert wallet.snapshot is None


def test_cancel_inside_window_is_refused_without_calling_server(core, bridge, make_appointment):
    lifecycle, _ = core
    appointment_id = make_appointment(hours_ahead=2)

    result = asyncio.run(lifecycle.cancel(appointment_id))

    assert result.ok is False
    assert isinstance(result.error, PolicyViolation)
    assert result.error.check == "can_cancel"
    assert result.retryable is False
    assert bridge.calls_to(f"/booking/{appointment_id}/cancel") == 0


def test_transport_failure_leaves_views_unchanged(core, bridge, make_appointment, fund_wallet):
    lifecycle, wallet = core
    fund_wallet(1, 100000)
    appointment_id = make_appointment()

    async def prime():
        await lifecycle.refresh()
        await wallet.refresh()

    asyncio.run(prime())
    before_appointments = lifecycle.appointments
    before_wallet = wallet.snapshot
    bridge.offline_paths.add(f"/booking/{appointment_id}/cancel")

    result = asyncio.run(lifecycle.cancel(appointment_id))

    assert result.ok is False
    assert isinstance(result.error, TransportFailure)
    assert result.retryable is True
    assert lifecycle.appointments == before_appointments
    assert wallet.snapshot is before_wallet


def test_server_error_maps_to_transport_failure(core, bridge, make_appointment):
    lifecycle, _ = core
    make_appointment()
    bridge.server_error_paths.add("/api/customer/appointments")

    result = asyncio.run(lifecycle.refresh())

    assert result.ok is False
    assert isinstance(result.error, TransportFailure)
    assert lifecycle.appointments == []


def test_modify_upgrade_charges_wallet(core, services, make_appointment, fund_wallet):
    lifecycle, wallet = core
    fund_wallet(1, 100000)
    appointment_id = make_appointment(service="Colour")

    async def scenario():
        await lifecycle.refresh()
        return await lifecycle.modify_service(appointment_id, services["Highlights"])

    result = asyncio.run(scenario())

    assert result.ok is True
    assert result.price_difference == 150.0
    assert result.preview.effect == LedgerEffect.DEBIT
    assert result.preview.amount_cents == 15000
    assert result.wallet_charged_or_refunded is True
    assert lifecycle.get(appointment_id).total_price == 450.0
    assert wallet.balance_cents == 85000


def test_modify_with_insufficient_funds_is_rejected(core, services, make_appointment, fund_wallet):
    lifecycle, wallet = core
    fund_wallet(1, 1000)
    appointment_id = make_appointment(service="Colour")

    async def scenario():
        await lifecycle.refresh()
        await wallet.refresh()
        return await lifecycle.modify_service(appointment_id, services["Highlights"])

    result = asyncio.run(scenario())

    assert result.ok is False
    assert isinstance(result.error, RemoteRejected)
    assert result.error.code == "insufficient_funds"
    assert result.error.status_code == 409
    assert lifecycle.get(appointment_id).service_name == "Colour"
    assert wallet.balance_cents == 1000


def test_reschedule_adopts_confirmed_appointment(core, make_appointment):
    lifecycle, _ = core
    appointment_id = make_appointment()
    new_day = (datetime.now(timezone.utc) + timedelta(days=6)).date()

    async def scenario():
        await lifecycle.refresh()
        return await lifecycle.reschedule(appointment_id, new_day, time(15, 0))

    result = asyncio.run(scenario())

    assert result.ok is True
    assert lifecycle.get(appointment_id).appointment_date == new_day
    assert lifecycle.get(appointment_id).appointment_time == time(15, 0)
    assert lifecycle.get(appointment_id).status == "confirmed"


def test_reschedule_pending_is_refused_locally(core, bridge, make_appointment):
    lifecycle, _ = core
    appointment_id = make_appointment(status="pending")
    new_day = (datetime.now(timezone.utc) + timedelta(days=6)).date()

    result = asyncio.run(lifecycle.reschedule(appointment_id, new_day, time(15, 0)))

    assert result.ok is False
    assert result.error.code == "cannot_reschedule"
    assert bridge.calls_to("/reschedule") == 0


def test_closed_lifecycle_ignores_late_results(core, make_appointment):
    lifecycle, _ = core
    appointment_id = make_appointment()

    asyncio.run(lifecycle.refresh())
    lifecycle.close()
    result = asyncio.run(lifecycle.cancel(appointment_id))

    assert result.ok is True
    assert lifecycle.get(appointment_id).status == "confirmed"


def test_history_filters_by_status(core, make_appointment):
    lifecycle, _ = core
    make_appointment(status="completed", days_ahead=-10)
    make_appointment(status="cancelled", days_ahead=-5)
    upcoming = make_appointment()

    asyncio.run(lifecycle.refresh())

    assert [a.id for a in lifecycle.history("confirmed")] == [upcoming]
    assert len(lifecycle.history("all")) == 3
    assert lifecycle.appointments[0].status == "completed"


def test_preview_uses_server_policy(core, make_appointment):
    lifecycle, _ = core
    appointment_id = make_appointment(payment_method="card")

    async def scenario():
        await lifecycle.refresh()
        await lifecycle.load_policy()

    asyncio.run(scenario())
    preview = lifecycle.preview_cancellation(appointment_id)

    assert lifecycle.policy.cancellation_window_hours == 24
    assert preview.effect == LedgerEffect.NONE
    assert preview.manual_refund_required is True
    assert lifecycle.preview_cancellation(999) is None


def test_modify_without_wallet_snapshot_refreshes_wallet(app, bridge, client_config, services, make_appointment, fund_wallet):
    fund_wallet(1, 100000)
    appointment_id = make_appointment(service="Colour")

    def without_wallet(request):
        response = bridge(request)
        if request.url.path.endswith("/modify") and response.status_code == 200:
            payload = json.loads(response.content)
            payload["wallet"] = None
            return httpx.Response(200, json=payload)
        return response

    api = BookingApi(client_config, token=token_for(app, 1), transport=httpx.MockTransport(without_wallet))
    wallet = WalletView(api)
    lifecycle = AppointmentLifecycle(api, wallet=wallet)

    async def scenario():
        try:
            return await lifecycle.modify_service(appointment_id, services["Highlights"])
        finally:
            await api.aclose()

    result = asyncio.run(scenario())

    assert result.ok is True
    assert result.wallet_charged_or_refunded is True
    assert wallet.balance_cents == 85000
    assert bridge.calls_to("/api/customer/wallet") == 1
