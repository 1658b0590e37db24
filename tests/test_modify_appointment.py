from salonbook import ledger
from salonbook.extensions import db
from salonbook.models import Appointment, Wallet


def test_upgrade_charges_difference_to_wallet_200(client, app, auth_headers, services, make_appointment, fund_wallet):
    fund_wallet(1, 100000)
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Highlights"]},
        headers=auth_headers,
    )
    data = response.get_json()

    assert response.status_code == 200
    assert data["price_difference"] == 150.0
    assert data["price_difference_cents"] == 15000
    assert data["ledger_effect"] == "debit"
    assert data["wallet_charged_or_refunded"] is True
    assert data["appointment"]["service_name"] == "Highlights"
    assert data["appointment"]["total_price"] == 450.0
    assert data["wallet"]["balance_cents"] == 85000

    with app.app_context():
        wallet = Wallet.query.filter_by(user_id=1).one()
        last = wallet.transactions[-1]
        assert last.type == "debit"
        assert last.amount_cents == 15000
        assert last.balance_after_cents == 85000
        ledger.verify(wallet.balance_cents, wallet.transactions)


def test_downgrade_refunds_difference_to_wallet_200(client, app, auth_headers, services, make_appointment, fund_wallet):
    fund_wallet(1, 100000)
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Trim"]},
        headers=auth_headers,
    )
    data = response.get_json()

    assert response.status_code == 200
    assert data["price_difference"] == -100.0
    assert data["ledger_effect"] == "credit"
    assert data["wallet"]["balance_cents"] == 110000
    assert data["appointment"]["total_price_cents"] == 20000


def test_upgrade_with_insufficient_funds_rolls_back_409(client, app, auth_headers, services, make_appointment, fund_wallet):
    fund_wallet(1, 5000)
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Highlights"]},
        headers=auth_headers,
    )
    data = response.get_json()

    assert response.status_code == 409
    assert data["error"] == "insufficient_funds"

    with app.app_context():
        appointment = db.session.get(Appointment, appointment_id)
        assert appointment.service_name == "Colour"
        assert appointment.total_price_cents == 30000
        wallet = Wallet.query.filter_by(user_id=1).one()
        assert wallet.balance_cents == 5000
        assert len(wallet.transactions) == 1


def test_modify_to_same_service_400(client, auth_headers, services, make_appointment):
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Colour"]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_input"


def test_modify_to_inactive_service_400(client, auth_headers, services, make_appointment):
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Perm"]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "service_unavailable"


def test_modify_unknown_service_404(client, auth_headers, make_appointment):
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": 999},
        headers=auth_headers,
    )

    assert response.status_code == 404
    assert response.get_json()["error"] == "service_not_found"


def test_modify_requires_integer_service_id_400(client, auth_headers, make_appointment):
    appointment_id = make_appointment(service="Colour")

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": "2"},
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_modify_inside_window_400(client, app, auth_headers, services, make_appointment):
    appointment_id = make_appointment(service="Colour", hours_ahead=5)

    response = client.patch(
        f"/api/customer/booking/{appointment_id}/modify",
        json={"service_id": services["Highlights"]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "cannot_modify"
