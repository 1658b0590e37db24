from salonbook.client.store import (FAVORITES_KEY, JsonFilePreferenceStore,
                                    MemoryPreferenceStore, PaymentPreferences)


def test_json_store_round_trips_per_account(tmp_path):
    store = JsonFilePreferenceStore(tmp_path)

    store.save(1, FAVORITES_KEY, [2, 5])
    store.save(2, FAVORITES_KEY, [9])

    reopened = JsonFilePreferenceStore(tmp_path)
    assert reopened.load(1, FAVORITES_KEY) == [2, 5]
    assert reopened.load(2, FAVORITES_KEY) == [9]
    assert reopened.load(3, FAVORITES_KEY, []) == []


def test_json_store_clear_removes_only_that_account(tmp_path):
    store = JsonFilePreferenceStore(tmp_path)
    store.save(1, FAVORITES_KEY, [2])
    store.save(2, FAVORITES_KEY, [3])

    store.clear(1)
    store.clear(1)

    assert store.load(1, FAVORITES_KEY) is None
    assert store.load(2, FAVORITES_KEY) == [3]


def test_json_store_discards_corrupt_file(tmp_path):
    store = JsonFilePreferenceStore(tmp_path)
    (tmp_path / "account_1.json").write_text("{not json", encoding="utf-8")

    assert store.load(1, FAVORITES_KEY, []) == []

    store.save(1, FAVORITES_KEY, [4])
    assert store.load(1, FAVORITES_KEY) == [4]


def test_memory_store_returns_copies():
    store = MemoryPreferenceStore()
    value = [1, 2]
    store.save(1, FAVORITES_KEY, value)
    value.append(3)

    assert store.load(1, FAVORITES_KEY) == [1, 2]


def test_payment_preferences():
    store = MemoryPreferenceStore()
    preferences = PaymentPreferences(store, 1)

    assert preferences.preferred_method_id is None
    preferences.save_preferred_method(12)
    assert PaymentPreferences(store, 1).preferred_method_id == 12
    assert PaymentPreferences(store, 2).preferred_method_id is None
