"""Optimistic favorites cache.

Changes are applied to the in-memory set and the persistent store before the
remote call is made, then either confirmed or reverted to the snapshot taken
just before the change. Each service id carries a pending marker while its
call is in flight; a second change to the same id is refused until the first
settles.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import BookingError, CacheDivergence, PolicyViolation, TransportFailure
from .api import BookingApi
from .schemas import FavoriteDetail
from .store import FAVORITES_KEY, PreferenceStore

logger = logging.getLogger(__name__)

CLEAR_ALL = "*"


@dataclass
class SyncResult:
    ok: bool
    message: str
    is_favorite: Optional[bool] = None
    error: Optional[BookingError] = None


class FavoritesSynchronizer:
    def __init__(self, api: Optional[BookingApi], store: PreferenceStore, account_id: int):
        self.api = api
        self.store = store
        self.account_id = account_id
        self._ids: set[int] = set()
        self._details: dict[int, FavoriteDetail] = {}
        self._pending: set = set()
        self._closed = False

    # Snapshot accessors

    @property
    def favorite_ids(self) -> frozenset[int]:
        return frozenset(self._ids)

    @property
    def favorites(self) -> list[FavoriteDetail]:
        return [self._details[i] for i in sorted(self._details) if i in self._ids]

    def is_favorite(self, service_id: int) -> bool:
        return int(service_id) in self._ids

    def is_pending(self, service_id: int) -> bool:
        return int(service_id) in self._pending or CLEAR_ALL in self._pending

    def close(self) -> None:
        self._closed = True

    # Loading

    def load_local(self) -> None:
        self._ids = {int(i) for i in self.store.load(self.account_id, FAVORITES_KEY, [])}

    async def load(self) -> SyncResult:
        """Load from the server, falling back to the persisted set when offline."""
        if self.api is None:
            self.load_local()
            return SyncResult(ok=True, message="Loaded favorites from local storage")
        try:
            remote = await self.api.fetch_favorites()
        except TransportFailure as exc:
            logger.warning(f"Falling back to stored favorites: {exc.message}")
            self.load_local()
            return SyncResult(ok=False, message=exc.message, error=exc)
        except BookingError as exc:
            return SyncResult(ok=False, message=exc.message, error=exc)

        if self._closed:
            return SyncResult(ok=True, message="Ignored: favorites closed")
        self._ids = set(remote.favorite_service_ids)
        self._details = {d.service_id: d for d in remote.favorites}
        self._persist(self._ids)
        return SyncResult(ok=True, message=f"Loaded {len(self._ids)} favorites")

    # Operations

    async def toggle(self, service_id: int) -> SyncResult:
        service_id = int(service_id)
        refused = self._refuse_if_pending(service_id)
        if refused:
            return refused

        adding = service_id not in self._ids
        target = self._ids | {service_id} if adding else self._ids - {service_id}
        return await self._change(service_id, target, lambda: self.api.toggle_favorite(service_id))

    async def add(self, service_id: int) -> SyncResult:
        service_id = int(service_id)
        if service_id in self._ids:
            return SyncResult(ok=True, message="Already a favorite", is_favorite=True)
        refused = self._refuse_if_pending(service_id)
        if refused:
            return refused
        return await self._change(
            service_id, self._ids | {service_id}, lambda: self.api.add_favorite(service_id)
        )

    async def remove(self, service_id: int) -> SyncResult:
        service_id = int(service_id)
        refused = self._refuse_if_pending(service_id)
        if refused:
            return refused
        return await self._change(
            service_id, self._ids - {service_id}, lambda: self.api.remove_favorite(service_id)
        )

    async def clear_all(self) -> SyncResult:
        return await self.sync(set())

    async def sync(self, service_ids) -> SyncResult:
        """Replace the whole set, optimistically."""
        if self._pending:
            return self._refused(CLEAR_ALL)
        target = {int(i) for i in service_ids}
        snapshot = set(self._ids)

        self._pending.add(CLEAR_ALL)
        try:
            self._apply(target)
            if self.api is None:
                return SyncResult(ok=True, message="Favorites updated")
            try:
                outcome = await self.api.sync_favorites(sorted(target))
                if not outcome.ok:
                    raise BookingError("The server did not accept the favorites update")
            except BookingError as exc:
                if self._closed:
                    return SyncResult(ok=False, message=exc.message, error=exc)
                self._revert(snapshot)
                logger.warning(f"Favorites sync failed, reverted: {exc.message}")
                return SyncResult(ok=False, message=exc.message, error=exc)
        finally:
            self._pending.discard(CLEAR_ALL)

        if not target:
            self._details.clear()
        return SyncResult(ok=True, message="Favorites updated")

    # Internals

    def _refused(self, item) -> SyncResult:
        exc = PolicyViolation(
            "A change to this favorite is already in progress",
            check="pending",
            code="favorite_pending",
        )
        logger.info(f"Refused favorite change for {item}: update in flight")
        return SyncResult(ok=False, message=exc.message, error=exc)

    def _refuse_if_pending(self, service_id: int) -> Optional[SyncResult]:
        if self.is_pending(service_id):
            return self._refused(service_id)
        return None

    async def _change(self, service_id: int, target: set[int], call) -> SyncResult:
        will_be_favorite = service_id in target
        self._pending.add(service_id)
        try:
            self._apply_item(service_id, will_be_favorite)
            if self.api is None:
                return SyncResult(ok=True, message="Favorites updated", is_favorite=will_be_favorite)
            try:
                outcome = await call()
            except BookingError as exc:
                # A signed-out account must not be written back to the store.
                if self._closed:
                    return SyncResult(ok=False, message=exc.message, error=exc)
                self._revert_item(service_id, not will_be_favorite)
                logger.warning(f"Favorite change for {service_id} failed, reverted: {exc.message}")
                return SyncResult(ok=False, message=exc.message, error=exc)
        finally:
            self._pending.discard(service_id)

        if self._closed:
            return SyncResult(ok=True, message="Ignored: favorites closed", is_favorite=outcome.is_favorite)

        if outcome.is_favorite != will_be_favorite:
            # Server state wins.
            self._apply_item(service_id, outcome.is_favorite)
        if outcome.is_favorite and outcome.detail is not None:
            self._details[service_id] = outcome.detail
        elif not outcome.is_favorite:
            self._details.pop(service_id, None)
        return SyncResult(ok=True, message="Favorites updated", is_favorite=outcome.is_favorite)

    def _persist(self, ids: set[int]) -> None:
        self.store.save(self.account_id, FAVORITES_KEY, sorted(ids))

    def _apply(self, target: set[int]) -> None:
        self._ids = set(target)
        self._persist(self._ids)

    def _apply_item(self, service_id: int, member: bool) -> None:
        # Only the toggled id moves, so concurrent changes to other ids survive.
        if member:
            self._ids.add(service_id)
        else:
            self._ids.discard(service_id)
        self._persist(self._ids)

    def _revert_item(self, service_id: int, member: bool) -> None:
        try:
            self._apply_item(service_id, member)
        except Exception as exc:
            logger.critical(f"Could not revert favorite {service_id} for account {self.account_id}")
            raise CacheDivergence(f"Favorites cache could not be restored: {exc}") from exc

    def _revert(self, snapshot: set[int]) -> None:
        try:
            self._apply(snapshot)
        except Exception as exc:
            logger.critical(f"Could not restore favorites for account {self.account_id}")
            raise CacheDivergence(f"Favorites cache could not be restored: {exc}") from exc
