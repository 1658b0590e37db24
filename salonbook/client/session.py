"""Signed-in client session: builds and tears down the per-account components."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import ClientConfig
from .api import BookingApi
from .favorites import FavoritesSynchronizer
from .orchestrator import AppointmentLifecycle
from .store import JsonFilePreferenceStore, MemoryPreferenceStore, PaymentPreferences, PreferenceStore
from .wallet import WalletView

logger = logging.getLogger(__name__)


class ClientSession:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        store: Optional[PreferenceStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ClientConfig.from_env()
        if store is None:
            store = (
                JsonFilePreferenceStore(self.config.store_dir)
                if self.config.store_dir
                else MemoryPreferenceStore()
            )
        self.store = store
        self.transport = transport

        self.account_id: Optional[int] = None
        self.api: Optional[BookingApi] = None
        self.appointments: Optional[AppointmentLifecycle] = None
        self.favorites: Optional[FavoritesSynchronizer] = None
        self.wallet: Optional[WalletView] = None
        self.payment_preferences: Optional[PaymentPreferences] = None

    @property
    def signed_in(self) -> bool:
        return self.account_id is not None

    async def sign_in(self, account_id: int, token: str) -> None:
        if self.signed_in:
            await self.sign_out()

        self.account_id = account_id
        self.api = BookingApi(self.config, token=token, transport=self.transport)
        self.wallet = WalletView(self.api)
        self.appointments = AppointmentLifecycle(self.api, wallet=self.wallet)
        self.favorites = FavoritesSynchronizer(self.api, self.store, account_id)
        self.payment_preferences = PaymentPreferences(self.store, account_id)

        # Show whatever was persisted last time, then reconcile with the server.
        self.favorites.load_local()
        await self.favorites.load()
        logger.info(f"Signed in account {account_id}")

    async def sign_out(self) -> None:
        if not self.signed_in:
            return
        account_id = self.account_id
        self.appointments.close()
        self.favorites.close()
        self.wallet.clear()
        await self.api.aclose()
        self.store.clear(account_id)

        self.account_id = None
        self.api = None
        self.appointments = None
        self.favorites = None
        self.wallet = None
        self.payment_preferences = None
        logger.info(f"Signed out account {account_id}")
