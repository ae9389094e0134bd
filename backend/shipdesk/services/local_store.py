from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from shipdesk.core.errors import StorageQuotaError

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "jp_shipments"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class LocalStorage:
    """A file-backed string key/value store with browser localStorage semantics.

    Every call re-reads the file, so two processes sharing a file behave like
    two tabs sharing localStorage: no locking, last writer wins.
    """

    def __init__(self, path: str | Path, *, max_bytes: int | None = DEFAULT_MAX_BYTES) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("local_storage_read_failed", extra={"path": str(self.path), "error": str(exc)})
            return {}
        try:
            data = json.loads(raw) if raw.strip() else {}
        except ValueError:
            logger.warning("local_storage_corrupt", extra={"path": str(self.path)})
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _save(self, data: dict[str, str]) -> None:
        encoded = json.dumps(data, ensure_ascii=False)
        size = len(encoded.encode("utf-8"))
        if self.max_bytes is not None and size > self.max_bytes:
            raise StorageQuotaError(f"Local storage quota exceeded ({size} > {self.max_bytes} bytes)")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(encoded, encoding="utf-8")
        except OSError as exc:
            raise StorageQuotaError(f"Local storage write failed: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class LocalShipmentStore:
    """Synchronous shipment adapter over one key of a :class:`LocalStorage`.

    The whole collection is a single JSON array; each mutation reads, modifies
    and writes that array. There is no change subscription, callers re-project
    after every mutation.
    """

    def __init__(self, storage: LocalStorage, *, key: str = DEFAULT_STORAGE_KEY) -> None:
        self.storage = storage
        self.key = key

    def read_all(self) -> list[dict[str, Any]]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("local_store_unreadable", extra={"key": self.key})
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def write_all(self, documents: list[dict[str, Any]]) -> None:
        self.storage.set_item(self.key, json.dumps(documents, ensure_ascii=False))

    def create(self, document: dict[str, Any]) -> dict[str, Any]:
        record = dict(document)
        # Newest first, as the dashboard lists them.
        self.write_all([record, *self.read_all()])
        return record

    def update(self, shipment_id: str, document: dict[str, Any]) -> dict[str, Any] | None:
        documents = self.read_all()
        for index, existing in enumerate(documents):
            if existing.get("id") == shipment_id:
                merged = {**existing, **document, "id": shipment_id}
                documents[index] = merged
                self.write_all(documents)
                return merged
        logger.info("local_store_update_missing", extra={"shipment_id": shipment_id})
        return None

    def delete(self, shipment_id: str) -> None:
        documents = self.read_all()
        remaining = [doc for doc in documents if doc.get("id") != shipment_id]
        if len(remaining) != len(documents):
            self.write_all(remaining)

    def find_first(self, predicate: Callable[[dict[str, Any]], bool]) -> dict[str, Any] | None:
        return next((doc for doc in self.read_all() if predicate(doc)), None)

    def find_by_field(self, field: str, value: Any, *, case_insensitive: bool = False) -> dict[str, Any] | None:
        if case_insensitive and isinstance(value, str):
            needle = value.lower()
            return self.find_first(lambda doc: str(doc.get(field) or "").lower() == needle)
        return self.find_first(lambda doc: doc.get(field) == value)
