"""Async gateway to the SalonBook system of record."""
from __future__ import annotations

import logging
from datetime import date, time
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..config import ClientConfig
from ..errors import RemoteRejected, TransportFailure
from .schemas import (Appointment, CancelOutcome, FavoriteList, FavoriteToggle,
                      ModifyOutcome, Policy, RescheduleOutcome, Service,
                      SyncOutcome, WalletSnapshot)

logger = logging.getLogger(__name__)


class BookingApi:
    """One authenticated client of the booking API.

    Every call is a single round trip. Transport problems and 5xx responses
    raise :class:`TransportFailure`; any other non-2xx response or an
    unexpected payload raises :class:`RemoteRejected` carrying the server's
    message.
    """

    def __init__(
        self,
        config: ClientConfig,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "BookingApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, path: str, json: Any = None, params: Optional[dict] = None
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.warning(f"Request {method} {path} timed out")
            raise TransportFailure("The booking service took too long to respond. Please try again.") from exc
        except httpx.TransportError as exc:
            logger.warning(f"Request {method} {path} failed: {exc}")
            raise TransportFailure("Could not reach the booking service. Please try again.") from exc

        if response.status_code >= 500:
            logger.error(f"Request {method} {path} failed with {response.status_code}")
            raise TransportFailure("The booking service is unavailable. Please try again.")

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400:
            message = payload.get("message") if isinstance(payload, dict) else None
            code = payload.get("error") if isinstance(payload, dict) else None
            raise RemoteRejected(
                message or f"Request was rejected ({response.status_code})",
                code=code,
                status_code=response.status_code,
            )

        if not isinstance(payload, dict):
            raise RemoteRejected("The booking service sent an unexpected response", code="bad_response")
        return payload

    @staticmethod
    def _parse(model: type[BaseModel], payload: Any):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.error(f"Unexpected {model.__name__} payload: {exc}")
            raise RemoteRejected(
                "The booking service sent an unexpected response", code="bad_response"
            ) from exc

    # Appointments

    async def list_appointments(self, status: Optional[str] = None) -> list[Appointment]:
        params = {"status": status} if status else None
        payload = await self._request("GET", "/api/customer/appointments", params=params)
        return [self._parse(Appointment, item) for item in payload.get("appointments", [])]

    async def fetch_appointment(self, appointment_id: int) -> Appointment:
        payload = await self._request("GET", f"/api/customer/appointments/{appointment_id}")
        return self._parse(Appointment, payload.get("appointment"))

    async def cancel_appointment(self, appointment_id: int, reason: Optional[str] = None) -> CancelOutcome:
        body = {"cancellation_reason": reason} if reason else {}
        payload = await self._request("PATCH", f"/api/customer/booking/{appointment_id}/cancel", body)
        return self._parse(CancelOutcome, payload)

    async def reschedule_appointment(
        self, appointment_id: int, new_date: date, new_time: time
    ) -> RescheduleOutcome:
        body = {
            "appointment_date": new_date.isoformat(),
            "appointment_time": new_time.strftime("%H:%M"),
        }
        payload = await self._request("PATCH", f"/api/customer/booking/{appointment_id}/reschedule", body)
        return self._parse(RescheduleOutcome, payload)

    async def modify_appointment_service(self, appointment_id: int, service_id: int) -> ModifyOutcome:
        payload = await self._request(
            "PATCH", f"/api/customer/booking/{appointment_id}/modify", {"service_id": service_id}
        )
        return self._parse(ModifyOutcome, payload)

    async def fetch_policy(self) -> Policy:
        payload = await self._request("GET", "/api/customer/cancellation-policy")
        return self._parse(Policy, payload.get("policy"))

    async def fetch_service(self, service_id: int) -> Service:
        payload = await self._request("GET", f"/api/services/{service_id}")
        return self._parse(Service, payload.get("service"))

    # Wallet

    async def fetch_wallet(self) -> WalletSnapshot:
        payload = await self._request("GET", "/api/customer/wallet")
        return self._parse(WalletSnapshot, payload.get("wallet"))

    async def add_funds(self, amount_cents: int, payment_reference: Optional[str] = None) -> WalletSnapshot:
        body: dict[str, Any] = {"amount_cents": amount_cents}
        if payment_reference:
            body["payment_reference"] = payment_reference
        payload = await self._request("POST", "/api/customer/wallet/add-funds", body)
        return self._parse(WalletSnapshot, payload.get("wallet"))

    # Favorites

    async def fetch_favorites(self) -> FavoriteList:
        payload = await self._request("GET", "/api/favorites")
        return self._parse(FavoriteList, payload)

    async def toggle_favorite(self, service_id: int) -> FavoriteToggle:
        payload = await self._request("POST", "/api/favorites/toggle", {"service_id": service_id})
        return self._parse(FavoriteToggle, payload)

    async def add_favorite(self, service_id: int) -> FavoriteToggle:
        payload = await self._request("POST", "/api/favorites", {"service_id": service_id})
        return self._parse(FavoriteToggle, payload)

    async def remove_favorite(self, service_id: int) -> FavoriteToggle:
        payload = await self._request("DELETE", f"/api/favorites/{service_id}")
        return self._parse(FavoriteToggle, payload)

    async def sync_favorites(self, service_ids: list[int]) -> SyncOutcome:
        payload = await self._request("POST", "/api/favorites/sync", {"service_ids": service_ids})
        return self._parse(SyncOutcome, payload)
