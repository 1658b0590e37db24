"""Client-side core: appointment lifecycle, wallet cache and optimistic favorites."""
from .api import BookingApi
from .favorites import FavoritesSynchronizer, SyncResult
from .orchestrator import ActionResult, AppointmentLifecycle, CancelResult, ModifyResult
from .session import ClientSession
from .store import JsonFilePreferenceStore, MemoryPreferenceStore, PaymentPreferences, PreferenceStore
from .wallet import WalletView

__all__ = [
    "ActionResult",
    "AppointmentLifecycle",
    "BookingApi",
    "CancelResult",
    "ClientSession",
    "FavoritesSynchronizer",
    "JsonFilePreferenceStore",
    "MemoryPreferenceStore",
    "ModifyResult",
    "PaymentPreferences",
    "PreferenceStore",
    "SyncResult",
    "WalletView",
]
