"""Client-local persistent store, keyed per account.

Values are JSON-serialisable. A session loads its account's entries on
sign-in and clears them on sign-out.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favorites"
PREFERRED_PAYMENT_METHOD_KEY = "preferred_payment_method"


class PreferenceStore:
    """Interface for per-account client-local storage."""

    def load(self, account_id: int, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def save(self, account_id: int, key: str, value: Any) -> None:
        raise NotImplementedError

    def clear(self, account_id: int) -> None:
        raise NotImplementedError


class MemoryPreferenceStore(PreferenceStore):
    def __init__(self):
        self._data: dict[int, dict[str, str]] = {}

    def load(self, account_id: int, key: str, default: Any = None) -> Any:
        raw = self._data.get(account_id, {}).get(key)
        return default if raw is None else json.loads(raw)

    def save(self, account_id: int, key: str, value: Any) -> None:
        # Stored serialised so callers never share mutable state with the store.
        self._data.setdefault(account_id, {})[key] = json.dumps(value)

    def clear(self, account_id: int) -> None:
        self._data.pop(account_id, None)


class JsonFilePreferenceStore(PreferenceStore):
    """One JSON document per account under ``directory``."""

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, account_id: int) -> Path:
        return self.directory / f"account_{account_id}.json"

    def _read(self, account_id: int) -> dict[str, Any]:
        path = self._path(account_id)
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable preference file {path}")
            return {}

    def load(self, account_id: int, key: str, default: Any = None) -> Any:
        return self._read(account_id).get(key, default)

    def save(self, account_id: int, key: str, value: Any) -> None:
        data = self._read(account_id)
        data[key] = value
        path = self._path(account_id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, path)

    def clear(self, account_id: int) -> None:
        self._path(account_id).unlink(missing_ok=True)


class PaymentPreferences:
    """Remembers the account's preferred payment method between sessions."""

    def __init__(self, store: PreferenceStore, account_id: int):
        self.store = store
        self.account_id = account_id

    @property
    def preferred_method_id(self) -> Optional[int]:
        return self.store.load(self.account_id, PREFERRED_PAYMENT_METHOD_KEY)

    def save_preferred_method(self, method_id: int) -> None:
        self.store.save(self.account_id, PREFERRED_PAYMENT_METHOD_KEY, int(method_id))
