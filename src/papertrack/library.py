"""Application root: builds every component once and wires them together."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from papertrack.citations import CitationFormatter
from papertrack.db import create_engine_for_path, init_db
from papertrack.models import PaperDraft
from papertrack.persistence import KeyValueStorage, MemoryStorage, SnapshotPersistence, SQLiteStorage
from papertrack.rendering import LibraryStats, LibraryView, compute_stats
from papertrack.scheduling import FailureTracker, Host, InputDebouncer, ManualHost, UpdateScheduler
from papertrack.services import (
    BlobStore,
    Clipboard,
    CollectingNotifier,
    CopyResult,
    LocalBlobStore,
    MemoryBlobStore,
    Notifier,
    SystemClipboard,
    copy_citation,
)
from papertrack.settings import Settings
from papertrack.store import RecordStore

logger = structlog.get_logger(__name__)


class Library:
    """One tracker session.

    Owns the record store and hands it, the scheduler and the persistence
    layer to each other. Also acts as the scheduler's refresh target.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        host: Host | None = None,
        notifier: Notifier | None = None,
        storage: KeyValueStorage | None = None,
        blob_store: BlobStore | None = None,
        clipboard: Clipboard | None = None,
        fallback_clipboard: Clipboard | None = None,
        formatter: CitationFormatter | None = None,
    ) -> None:
        self.settings = settings
        self.host = host or ManualHost()
        self.notifier = notifier or CollectingNotifier()
        self.formatter = formatter or CitationFormatter()
        self.clipboard = clipboard
        self.fallback_clipboard = fallback_clipboard
        self.failures = FailureTracker(self.notifier, threshold=settings.max_consecutive_failures)
        self.scheduler = UpdateScheduler(
            self.host, self.failures, list_delay_ms=settings.list_refresh_ms
        )
        self.persistence = SnapshotPersistence(
            storage or MemoryStorage(settings.storage_quota_bytes),
            self.host,
            self.failures,
            self.notifier,
            key=settings.storage_key,
            cooldown_ms=settings.save_cooldown_ms,
        )
        self.store = RecordStore(
            self.scheduler,
            self.persistence,
            self.failures,
            self.notifier,
            formatter=self.formatter,
            blob_store=blob_store or MemoryBlobStore(),
        )
        self.view = LibraryView(self.formatter)
        self.inputs = InputDebouncer(
            self.host, self.store.update, delay_ms=settings.input_debounce_ms
        )
        self.scheduler.bind(self)
        self.persistence.bind(self.store)
        self.store.bind_inputs(self.inputs)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        host: Host | None = None,
        notifier: Notifier | None = None,
        clipboard: Clipboard | None = None,
    ) -> "Library":
        """Open the SQLite-backed library under ``settings.data_dir`` and load it."""
        settings.ensure_directories()
        engine = create_engine_for_path(settings.db_path)
        init_db(engine)
        library = cls(
            settings,
            host=host,
            notifier=notifier,
            storage=SQLiteStorage(engine, settings.storage_quota_bytes),
            blob_store=LocalBlobStore(settings, engine=engine),
            clipboard=clipboard if clipboard is not None else SystemClipboard(),
        )
        library.load()
        return library

    # Refresh target -------------------------------------------------------

    def refresh_record(self, record_id: int) -> None:
        record = self.store.find(record_id)
        if record is None:
            self.view.remove(record_id)
            return
        self.view.patch(record)

    def refresh_stats(self) -> None:
        self.view.update_stats(self.stats())

    def persist(self) -> None:
        self.persistence.save()

    def refresh_list(self) -> None:
        self.view.render_list(self.store.records())

    # Session operations ---------------------------------------------------

    def stats(self) -> LibraryStats:
        return compute_stats(self.store)

    def load(self) -> bool:
        loaded = self.persistence.load()
        self.scheduler.refresh_now()
        return loaded

    def flush(self) -> None:
        """Deliver pending input, run pending passes and write any deferred save."""
        self.inputs.flush()
        self.scheduler.flush()
        self.persistence.flush()

    def add(self, fields: Mapping[str, Any] | None = None) -> int:
        """Create a record and apply ``fields`` through the normal update path."""
        record_id = self.store.create()
        for name, value in (fields or {}).items():
            if value is not None:
                self.store.update(record_id, name, value)
        return record_id

    def insert_drafts(self, drafts: Iterable[PaperDraft]) -> list[int]:
        ids = self.store.bulk_insert(drafts)
        if ids:
            self.scheduler.request_refresh(ids[0] if len(ids) == 1 else None)
        return ids

    def copy_citation(self, record_id: int) -> CopyResult:
        record = self.store.get(record_id)
        had_citation = bool(record.citation)
        result = copy_citation(
            record,
            self.clipboard or _NullClipboard(),
            self.fallback_clipboard,
            formatter=self.formatter,
        )
        if result.message:
            self.notifier.notify(result.message)
        if result.text and not had_citation:
            self.scheduler.request_refresh(record_id)
        return result


class _NullClipboard:
    def write(self, text: str) -> bool:
        return False
