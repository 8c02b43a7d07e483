"""Snapshot persistence for the record store.

The whole library is written as one JSON blob under one key of a key-value
slot. Writes are rate limited, probed for quota exhaustion first, and fall
back to a compacted payload when the probe fails.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Protocol

import structlog
from sqlalchemy import func
from sqlmodel import Session, select

from papertrack.codecs.base import coalesce_legacy_fields
from papertrack.db import StorageSlot, init_db
from papertrack.models import LibrarySnapshot, PaperRecord
from papertrack.scheduling import FailureTracker, Host, TaskHandle
from papertrack.services.notifications import Notifier
from papertrack.validation import build_record

logger = structlog.get_logger(__name__)

PROBE_PREFIX = "test_"
QUOTA_MESSAGE = "Storage quota exceeded. Please export your data and clear some papers to continue."


class QuotaExceededError(RuntimeError):
    """Raised by a storage slot when a write would exceed its quota."""


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> list[str]:
        ...


class MemoryStorage:
    """Dictionary-backed slot with an optional byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._quota = quota_bytes
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
            if used + len(value.encode("utf-8")) > self._quota:
                raise QuotaExceededError(f"quota of {self._quota} bytes exceeded")
        self._items[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class SQLiteStorage:
    """Key-value slot stored in the library's SQLite database."""

    def __init__(self, engine, quota_bytes: int | None = None) -> None:
        self._engine = engine
        self._quota = quota_bytes
        init_db(engine)

    def get(self, key: str) -> str | None:
        with Session(self._engine) as session:
            slot = session.get(StorageSlot, key)
            return slot.value if slot else None

    def set(self, key: str, value: str) -> None:
        with Session(self._engine) as session:
            if self._quota is not None:
                stmt = select(func.coalesce(func.sum(func.length(StorageSlot.value)), 0)).where(
                    StorageSlot.key != key
                )
                used = session.exec(stmt).one()
                if used + len(value) > self._quota:
                    raise QuotaExceededError(f"quota of {self._quota} bytes exceeded")
            slot = session.get(StorageSlot, key)
            if slot is None:
                slot = StorageSlot(key=key, value=value)
            slot.value = value
            session.add(slot)
            session.commit()

    def remove(self, key: str) -> None:
        with Session(self._engine) as session:
            slot = session.get(StorageSlot, key)
            if slot is not None:
                session.delete(slot)
                session.commit()

    def keys(self) -> list[str]:
        with Session(self._engine) as session:
            return list(session.exec(select(StorageSlot.key)).all())


class SnapshotSource(Protocol):
    """What the persistence layer reads from and restores into."""

    def snapshot(self) -> LibrarySnapshot:
        ...

    def restore(self, records: list[PaperRecord], next_id: int) -> None:
        ...


class SaveOutcome(str, Enum):
    SAVED = "saved"
    DEFERRED = "deferred"
    DEGRADED = "degraded"
    FAILED = "failed"


def compress_snapshot(snapshot: LibrarySnapshot) -> dict[str, Any]:
    """Drop empty-valued fields from every record."""
    return {
        "papers": [{key: value for key, value in paper.items() if value} for paper in snapshot.papers],
        "nextId": snapshot.next_id,
        "lastModified": snapshot.last_modified,
    }


class SnapshotPersistence:
    """``save`` / ``load`` for the single persisted snapshot."""

    def __init__(
        self,
        storage: KeyValueStorage,
        host: Host,
        failures: FailureTracker,
        notifier: Notifier,
        *,
        key: str,
        cooldown_ms: float = 1000,
    ) -> None:
        self._storage = storage
        self._host = host
        self._failures = failures
        self._notifier = notifier
        self._key = key
        self._cooldown_ms = cooldown_ms
        self._source: SnapshotSource | None = None
        self._last_save: float | None = None
        self._deferred: TaskHandle | None = None
        self.degraded = False
        self.last_outcome: SaveOutcome | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def has_deferred_save(self) -> bool:
        return self._deferred is not None

    def bind(self, source: SnapshotSource) -> None:
        self._source = source

    def save(self, *, force: bool = False) -> SaveOutcome:
        """Persist the current snapshot, at most once per cooldown window.

        Calls inside the window schedule a single trailing save at the window
        boundary. ``force`` skips the window, used by destructive operations.
        """
        now = self._host.now_ms()
        if force:
            self._cancel_deferred()
        elif self._last_save is not None and now - self._last_save < self._cooldown_ms:
            if self._deferred is None:
                wait = self._cooldown_ms - (now - self._last_save)
                self._deferred = self._host.call_later(wait, self._run_deferred)
            self.last_outcome = SaveOutcome.DEFERRED
            return SaveOutcome.DEFERRED
        self._last_save = now
        self.last_outcome = self._write()
        return self.last_outcome

    def flush(self) -> None:
        """Run a deferred save immediately."""
        if self._deferred is not None:
            self._cancel_deferred()
            self.save(force=True)

    def load(self) -> bool:
        source = self._require_source()
        stored = self._storage.get(self._key)
        if not stored:
            return False
        try:
            records, next_id = self._decode(stored)
        except SnapshotCorrupted as exc:
            logger.warning("persistence.corrupted", error=str(exc))
            self.clear()
            return False
        source.restore(records, next_id)
        logger.info("persistence.loaded", records=len(records), next_id=next_id)
        return True

    def clear(self) -> None:
        self._cancel_deferred()
        try:
            self._storage.remove(self._key)
        except Exception as exc:
            self._failures.record_failure(exc, "persistence.clear")

    # Internal helpers -----------------------------------------------------

    def _run_deferred(self) -> None:
        self._deferred = None
        self.save()

    def _cancel_deferred(self) -> None:
        if self._deferred is not None:
            self._deferred.cancel()
            self._deferred = None

    def _write(self) -> SaveOutcome:
        source = self._require_source()
        try:
            snapshot = source.snapshot()
            payload = json.dumps(snapshot.model_dump(by_alias=True))
        except Exception as exc:
            self._failures.record_failure(exc, "persistence.serialize")
            return SaveOutcome.FAILED

        probe_key = f"{PROBE_PREFIX}{int(self._host.now_ms())}"
        try:
            self._storage.set(probe_key, payload)
            self._storage.remove(probe_key)
        except QuotaExceededError:
            return self._write_compressed(snapshot)
        except Exception as exc:
            self._failures.record_failure(exc, "persistence.probe")
            return SaveOutcome.FAILED

        try:
            self._storage.set(self._key, payload)
        except QuotaExceededError:
            return self._write_compressed(snapshot)
        except Exception as exc:
            self._failures.record_failure(exc, "persistence.save")
            return SaveOutcome.FAILED
        self.degraded = False
        logger.debug("persistence.saved", records=len(snapshot.papers), bytes=len(payload))
        return SaveOutcome.SAVED

    def _write_compressed(self, snapshot: LibrarySnapshot) -> SaveOutcome:
        self._cleanup_probes()
        compressed = json.dumps(compress_snapshot(snapshot))
        try:
            self._storage.set(self._key, compressed)
        except QuotaExceededError as exc:
            self._failures.record_failure(exc, "persistence.save_compressed")
            self._notifier.notify(QUOTA_MESSAGE)
            return SaveOutcome.FAILED
        self.degraded = True
        logger.warning("persistence.degraded", records=len(snapshot.papers), bytes=len(compressed))
        return SaveOutcome.DEGRADED

    def _cleanup_probes(self) -> None:
        try:
            for key in self._storage.keys():
                if key.startswith(PROBE_PREFIX):
                    self._storage.remove(key)
        except Exception as exc:
            logger.warning("persistence.cleanup_failed", error=str(exc))

    def _decode(self, stored: str) -> tuple[list[PaperRecord], int]:
        try:
            data = json.loads(stored)
        except ValueError as exc:
            raise SnapshotCorrupted(f"invalid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise SnapshotCorrupted("snapshot is not an object")
        papers = data.get("papers")
        stored_next = data.get("nextId")
        if not isinstance(papers, list):
            raise SnapshotCorrupted("papers is not an array")
        if isinstance(stored_next, bool) or not isinstance(stored_next, (int, float)):
            raise SnapshotCorrupted("nextId is not a number")
        records = restore_records(papers)
        highest = max((record.id for record in records), default=0)
        return records, max(int(stored_next), highest + 1)

    def _require_source(self) -> SnapshotSource:
        if self._source is None:
            raise RuntimeError("SnapshotPersistence has no source bound")
        return self._source


class SnapshotCorrupted(ValueError):
    """The stored blob does not have the snapshot's top-level shape."""


def restore_records(papers: Iterable[Any]) -> list[PaperRecord]:
    """Re-validate stored payloads, migrating legacy shapes and repairing ids."""
    migrated: list[tuple[int | None, dict[str, Any]]] = []
    seen: set[int] = set()
    for item in papers:
        if not isinstance(item, Mapping):
            logger.warning("persistence.skip_entry", kind=type(item).__name__)
            continue
        record_id = _stored_id(item.get("id"))
        if record_id is not None and record_id in seen:
            record_id = None
        if record_id is not None:
            seen.add(record_id)
        migrated.append((record_id, coalesce_legacy_fields(item)))

    next_free = max(seen, default=0) + 1
    records: list[PaperRecord] = []
    for record_id, payload in migrated:
        if record_id is None:
            record_id = next_free
            next_free += 1
        records.append(build_record(record_id, payload))
    return records


def _stored_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None
