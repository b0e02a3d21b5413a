"""
App Registry

Single source of truth for installed apps, shared by every control session.

- Readers (list/get) never block: they read an immutable snapshot.
- Writers are serialized by one lock; each write persists the full collection
  (temp file + fsync + os.replace) before the new snapshot is published, so a
  failed or interrupted persist is never observable as a committed write.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping

from pydantic import TypeAdapter, ValidationError

from agent.errors import InvalidRepoError, NotFoundError, StorageError
from agent.models import AppRecord

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(List[AppRecord])


class AppRegistry:
    """
    Persisted collection of AppRecords keyed by canonical id.
    """

    def __init__(self, path: Path, records: Mapping[str, AppRecord] = None):
        """
        Args:
            path: registry file (JSON array of app records)
            records: initial contents keyed by canonical id
        """
        self.path = Path(path)
        self._write_lock = threading.Lock()
        self._snapshot: Mapping[str, AppRecord] = MappingProxyType(dict(records or {}))

    @classmethod
    def load(cls, path: Path) -> "AppRegistry":
        """
        Read the registry file.

        An absent, unreadable or unparsable file yields an empty registry;
        startup never fails because of it.
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"Registry file {path} not found, starting empty")
            return cls(path)

        try:
            raw = path.read_text(encoding="utf-8")
            loaded = _RECORDS.validate_json(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Registry file {path} could not be parsed, starting empty: {e}")
            return cls(path)

        records: Dict[str, AppRecord] = {}
        for record in loaded:
            app_id = record.canonical_id
            if app_id is None:
                logger.warning(f"Skipping registry entry with unparseable repo: {record.repo}")
                continue
            if app_id in records:
                logger.warning(f"Duplicate registry entry for {app_id}, keeping the last one")
            records[app_id] = record

        logger.info(f"Loaded {len(records)} app(s) from {path}")
        return cls(path, records)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def list(self) -> List[AppRecord]:
        return [record.model_copy() for record in self._snapshot.values()]

    def get(self, app_id: str) -> AppRecord:
        record = self._snapshot.get(app_id)
        if record is None:
            raise NotFoundError(app_id)
        return record.model_copy()

    def contains(self, app_id: str) -> bool:
        return app_id in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def upsert(self, record: AppRecord) -> AppRecord:
        """Insert or replace the record stored under its canonical id"""
        app_id = record.canonical_id
        if app_id is None:
            raise InvalidRepoError(record.repo)

        with self._write_lock:
            updated = dict(self._snapshot)
            updated[app_id] = record.model_copy()
            self._commit(updated)

        logger.info(f"Registry upsert: {app_id}")
        return record

    def replace(self, app_id: str, record: AppRecord) -> AppRecord:
        """Replace the fields of an existing record; identity may not change"""
        new_id = record.canonical_id
        if new_id is None:
            raise InvalidRepoError(record.repo)
        if new_id != app_id:
            raise InvalidRepoError(record.repo, f"edit would change the app id from {app_id} to {new_id}")

        with self._write_lock:
            if app_id not in self._snapshot:
                raise NotFoundError(app_id)
            updated = dict(self._snapshot)
            updated[app_id] = record.model_copy()
            self._commit(updated)

        logger.info(f"Registry edit: {app_id}")
        return record

    def remove(self, app_id: str) -> AppRecord:
        with self._write_lock:
            if app_id not in self._snapshot:
                raise NotFoundError(app_id)
            updated = dict(self._snapshot)
            removed = updated.pop(app_id)
            self._commit(updated)

        logger.info(f"Registry remove: {app_id}")
        return removed

    def set_enabled(self, app_id: str, enabled: bool) -> AppRecord:
        with self._write_lock:
            current = self._snapshot.get(app_id)
            if current is None:
                raise NotFoundError(app_id)
            record = current.model_copy(update={"enabled": enabled})
            updated = dict(self._snapshot)
            updated[app_id] = record
            self._commit(updated)

        logger.info(f"Registry set_enabled: {app_id} -> {enabled}")
        return record

    # ------------------------------------------------------------------
    # Persistence (caller holds the write lock)
    # ------------------------------------------------------------------

    def _commit(self, records: Dict[str, AppRecord]) -> None:
        self._persist(list(records.values()))
        self._snapshot = MappingProxyType(records)

    def _persist(self, records: List[AppRecord]) -> None:
        payload = json.dumps([r.model_dump() for r in records], indent=2)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed to persist registry to {self.path}: {e}")
            raise StorageError(f"Failed to persist registry to {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
