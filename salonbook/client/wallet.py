"""Client-held projection of the account's wallet."""
from __future__ import annotations

import logging
from typing import Optional

from ..errors import BookingError, LedgerIntegrityError
from .api import BookingApi
from .schemas import WalletSnapshot

logger = logging.getLogger(__name__)


class WalletView:
    """Caches the last wallet snapshot confirmed by the system of record.

    Balances are never computed locally: every snapshot comes verbatim from a
    server response and is only checked against the replay invariant before
    it replaces the previous one.
    """

    def __init__(self, api: BookingApi):
        self.api = api
        self._snapshot: Optional[WalletSnapshot] = None
        self.error: Optional[str] = None

    @property
    def snapshot(self) -> Optional[WalletSnapshot]:
        return self._snapshot

    @property
    def balance_cents(self) -> Optional[int]:
        return self._snapshot.balance_cents if self._snapshot else None

    def adopt(self, snapshot: WalletSnapshot) -> None:
        try:
            snapshot.verify()
        except LedgerIntegrityError:
            logger.critical(f"Rejected wallet snapshot with balance {snapshot.balance_cents}")
            raise
        self._snapshot = snapshot
        self.error = None

    async def refresh(self) -> Optional[WalletSnapshot]:
        try:
            self.adopt(await self.api.fetch_wallet())
        except BookingError as exc:
            logger.warning(f"Failed to load wallet: {exc.message}")
            self.error = exc.message
            return None
        return self._snapshot

    async def add_funds(self, amount_cents: int, payment_reference: Optional[str] = None) -> Optional[WalletSnapshot]:
        try:
            self.adopt(await self.api.add_funds(amount_cents, payment_reference))
        except BookingError as exc:
            logger.warning(f"Failed to add funds: {exc.message}")
            self.error = exc.message
            return None
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None
        self.error = None
