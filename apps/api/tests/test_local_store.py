"""
Local JSON-blob store: seeding, transactions, corruption handling, data tools.
"""
import json
import time

import pytest

from core.exceptions import LocalStoreError, NotFoundError
from services.demo_data import DEMO_TRAINER_ID, ENTITY_COLLECTIONS
from services.local_store import AUTH_KEY, STORAGE_KEY, LocalStorageService


class TestKeyValue:

    def test_set_get_remove(self, empty_store):
        empty_store.set_item("k", "v")
        assert empty_store.get_item("k") == "v"
        empty_store.remove_item("k")
        assert empty_store.get_item("k") is None

    def test_remove_missing_is_noop(self, empty_store):
        empty_store.remove_item("never-set")


class TestBlob:

    def test_first_access_seeds_demo_data(self, store):
        data = store.snapshot()
        assert store.find(data, "trainer_profiles", DEMO_TRAINER_ID)["plan"] == "pro"
        assert len(data["student_profiles"]) == 4
        assert data["dataVersion"]

    def test_unseeded_store_starts_empty(self, empty_store):
        data = empty_store.snapshot()
        for name in ENTITY_COLLECTIONS:
            assert data[name] == []

    def test_transaction_persists_changes(self, store):
        with store.transaction() as data:
            store.require(data, "trainer_profiles", DEMO_TRAINER_ID, "Trainer").update(bio="new bio")
        again = LocalStorageService(str(store.directory))
        assert again.find(again.snapshot(), "trainer_profiles", DEMO_TRAINER_ID)["bio"] == "new bio"

    def test_transaction_discards_changes_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as data:
                data["exercises"].clear()
                raise RuntimeError("abort")
        assert len(store.snapshot()["exercises"]) == 6

    def test_require_raises_not_found(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.require(store.snapshot(), "profiles", "nobody", "Profile")
        assert exc.value.status_code == 404

    def test_where_filters_on_every_field(self, store):
        data = store.snapshot()
        active = store.where(data, "student_profiles", trainer_id=DEMO_TRAINER_ID, status="active")
        assert {s["id"] for s in active} == {"student_123", "student_1", "student_2"}

    def test_corrupt_blob_raises(self, store):
        store.set_item(STORAGE_KEY, "{not json")
        with pytest.raises(LocalStoreError):
            store.snapshot()

    def test_wrong_shape_raises(self, store):
        store.set_item(STORAGE_KEY, json.dumps({"users": {}}))
        with pytest.raises(LocalStoreError):
            store.snapshot()

    def test_missing_collections_are_filled_in(self, store):
        store.set_item(STORAGE_KEY, json.dumps({"users": []}))
        assert store.snapshot()["audit_logs"] == []


class TestAuthSession:

    def test_expired_session_is_removed(self, store):
        store.set_auth_session({"access_token": "x", "expires_at": (time.time() - 10) * 1000})
        assert store.get_auth_session() is None
        assert store.get_item(AUTH_KEY) is None

    def test_unreadable_session_is_discarded(self, store):
        store.set_item(AUTH_KEY, "garbage")
        assert store.get_auth_session() is None

    def test_current_trainer_falls_back_to_demo(self, store):
        assert store.get_current_trainer_id() == DEMO_TRAINER_ID


class TestDataTools:

    def test_empty_variation_drops_activity(self, store):
        data = store.add_data_variation("empty")
        assert data["sessions"] == []
        assert data["workout_plans"] == []
        assert len(data["profiles"]) > 0

    def test_minimal_variation_keeps_matching_plan_exercises(self, store):
        data = store.add_data_variation("minimal")
        assert len(data["sessions"]) == 2
        kept = {p["id"] for p in data["workout_plans"]}
        assert all(e["workout_plan_id"] in kept for e in data["workout_plan_exercises"])

    def test_unknown_variation_rejected(self, store):
        with pytest.raises(ValueError):
            store.add_data_variation("huge")

    def test_clear_data_reseeds_on_next_access(self, store):
        with store.transaction() as data:
            data["exercises"].clear()
        store.clear_data()
        assert store.get_item(STORAGE_KEY) is None
        assert len(store.snapshot()["exercises"]) == 6

    def test_export_has_every_collection_and_no_password_hashes(self, store):
        exported = store.export_data()
        for name in ENTITY_COLLECTIONS:
            assert isinstance(exported[name], list)
        assert all("password_hash" not in u for u in exported["users"])
        assert "exported_at" in exported

    def test_demo_credentials_are_copies(self, store):
        creds = store.get_demo_credentials()
        creds["admin"]["password"] = "changed"
        assert store.get_demo_credentials()["admin"]["password"] == "admin123"
