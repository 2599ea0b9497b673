"""
Local-storage persistence shim.

A persistent key-value store on disk (one JSON file per key) holding:
- STORAGE_KEY: the whole database as one JSON document, one array per entity
- AUTH_KEY: the current auth session

Every mutation goes through ``transaction()``: a read-modify-write of the
blob under a process-wide re-entrant lock, written to a temp file and
swapped in with ``os.replace`` so a crash never leaves a half-written blob.
Multiple processes sharing one directory are not supported.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from core.exceptions import LocalStoreError, NotFoundError
from services import demo_data
from services.demo_data import DATA_VERSION, ENTITY_COLLECTIONS

logger = logging.getLogger(__name__)

STORAGE_KEY = "fitcoach_data"
AUTH_KEY = "fitcoach_auth"

VARIATIONS = ("empty", "minimal", "full")

# Stores opened on the same directory share one lock
_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        if key not in _LOCKS:
            _LOCKS[key] = threading.RLock()
        return _LOCKS[key]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class LocalStorageService:
    """File-backed key-value store plus helpers for the database blob."""

    def __init__(self, directory: str, seed_demo_data: bool = True):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.seed_demo_data = seed_demo_data
        self._lock = _lock_for(self.directory)

    # ------------------------------------------------------------------
    # Key-value primitives
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=str(self.directory), prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    # ------------------------------------------------------------------
    # Database blob
    # ------------------------------------------------------------------

    def get_data(self) -> Optional[Dict[str, Any]]:
        """Parse the blob. None when absent; LocalStoreError when unreadable."""
        raw = self.get_item(STORAGE_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LocalStoreError(f"Local data is corrupt: {e}") from e
        if not isinstance(data, dict):
            raise LocalStoreError("Local data is corrupt: expected a JSON object")
        for name in ENTITY_COLLECTIONS:
            value = data.setdefault(name, [])
            if not isinstance(value, list):
                raise LocalStoreError(f"Local data is corrupt: '{name}' is not an array")
        return data

    def set_data(self, data: Dict[str, Any]) -> None:
        data["lastUpdated"] = now_iso()
        data.setdefault("dataVersion", DATA_VERSION)
        with self._lock:
            self.set_item(STORAGE_KEY, json.dumps(data, default=str))

    def initialize_data(self) -> Dict[str, Any]:
        """Create the blob on first use, seeding demo data when enabled."""
        with self._lock:
            data = self.get_data()
            if data is None:
                if self.seed_demo_data:
                    data = demo_data.create_mock_data()
                    logger.info(f"Seeded local demo data in {self.directory}")
                else:
                    data = demo_data.empty_data(now_iso())
                self.set_data(data)
            return data

    def snapshot(self) -> Dict[str, Any]:
        """A private copy of the current blob for read-only queries."""
        with self._lock:
            return self.initialize_data()

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """
        Locked read-modify-write of the blob.

        Changes made to the yielded dict are written when the block exits
        cleanly and discarded when it raises.
        """
        with self._lock:
            data = self.initialize_data()
            yield data
            self.set_data(data)

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    @staticmethod
    def find(data: Dict[str, Any], collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        for record in data[collection]:
            if record.get("id") == record_id:
                return record
        return None

    @staticmethod
    def require(data: Dict[str, Any], collection: str, record_id: str, resource: str) -> Dict[str, Any]:
        record = LocalStorageService.find(data, collection, record_id)
        if record is None:
            raise NotFoundError(resource, record_id)
        return record

    @staticmethod
    def where(data: Dict[str, Any], collection: str, **filters: Any) -> List[Dict[str, Any]]:
        return [
            r for r in data[collection]
            if all(r.get(k) == v for k, v in filters.items())
        ]

    # ------------------------------------------------------------------
    # Auth session
    # ------------------------------------------------------------------

    def get_auth_session(self) -> Optional[Dict[str, Any]]:
        """The stored session, or None when absent or expired (expired ones are removed)."""
        raw = self.get_item(AUTH_KEY)
        if raw is None:
            return None
        try:
            session = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable auth session")
            self.remove_item(AUTH_KEY)
            return None
        if time.time() * 1000 > session.get("expires_at", 0):
            self.remove_item(AUTH_KEY)
            return None
        return session

    def set_auth_session(self, session: Dict[str, Any]) -> None:
        self.set_item(AUTH_KEY, json.dumps(session, default=str))

    def clear_auth_session(self) -> None:
        self.remove_item(AUTH_KEY)

    # ------------------------------------------------------------------
    # Data management
    # ------------------------------------------------------------------

    def add_data_variation(self, variation: str) -> Dict[str, Any]:
        """
        Replace the blob with the demo dataset trimmed to ``variation``:
        'empty' drops sessions, payments and plans; 'minimal' keeps one or
        two of each; 'full' keeps everything.
        """
        if variation not in VARIATIONS:
            raise ValueError(f"Unknown data variation: {variation}")

        data = demo_data.create_mock_data()
        if variation == "empty":
            for name in ("sessions", "payment_intents", "diet_plans", "workout_plans", "workout_plan_exercises"):
                data[name] = []
        elif variation == "minimal":
            data["sessions"] = data["sessions"][:2]
            data["payment_intents"] = data["payment_intents"][:1]
            data["diet_plans"] = data["diet_plans"][:1]
            data["workout_plans"] = data["workout_plans"][:1]
            kept = {p["id"] for p in data["workout_plans"]}
            data["workout_plan_exercises"] = [
                e for e in data["workout_plan_exercises"] if e["workout_plan_id"] in kept
            ]

        with self._lock:
            self.set_data(data)
        logger.info(f"Local data replaced with '{variation}' variation")
        return data

    def clear_data(self) -> None:
        with self._lock:
            self.remove_item(STORAGE_KEY)
            self.remove_item(AUTH_KEY)
        logger.info("Local data cleared")

    def get_current_trainer_id(self) -> str:
        """The signed-in trainer, falling back to the demo trainer."""
        session = self.get_auth_session()
        if session:
            data = self.snapshot()
            profile = self.find(data, "profiles", session["user"]["id"])
            if profile and profile.get("role") == "trainer":
                return profile["id"]
        return demo_data.DEMO_TRAINER_ID

    @staticmethod
    def get_demo_credentials() -> Dict[str, Dict[str, str]]:
        return copy.deepcopy(demo_data.DEMO_CREDENTIALS)

    def export_data(self) -> Dict[str, Any]:
        """
        Export the blob in the remote schema's shape.

        Every entity array is present, even when empty. Password hashes
        never leave the store.
        """
        data = self.snapshot()
        exported: Dict[str, Any] = {}
        for name in ENTITY_COLLECTIONS:
            rows = copy.deepcopy(data.get(name) or [])
            if name == "users":
                for row in rows:
                    row.pop("password_hash", None)
            exported[name] = rows
        exported["exported_at"] = now_iso()
        exported["dataVersion"] = data.get("dataVersion", DATA_VERSION)
        return exported
