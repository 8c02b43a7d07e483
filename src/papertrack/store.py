"""Authoritative in-memory collection of paper records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from papertrack.citations import CitationFormatter, default_formatter
from papertrack.models import (
    CITATION_FIELDS,
    EDITABLE_FIELDS,
    LibrarySnapshot,
    PaperDraft,
    PaperRecord,
    PdfAttachment,
    resolve_field,
    utc_timestamp,
)
from papertrack.persistence import SnapshotPersistence
from papertrack.scheduling import FailureTracker, InputDebouncer, UpdateScheduler
from papertrack.services.attachments import BlobStore
from papertrack.services.notifications import Notifier
from papertrack.validation import build_record, validate

logger = structlog.get_logger(__name__)

CLEAR_PROMPT = "Are you sure you want to clear all data? This cannot be undone."


class RecordNotFoundError(LookupError):
    """Raised when an operation names a record id that is not in the store."""

    def __init__(self, record_id: int) -> None:
        super().__init__(f"Paper with id {record_id} not found")
        self.record_id = record_id


class RecordStore:
    """Ordered records plus the monotonic id counter.

    Mutations are synchronous; side effects (stats, persistence, view patches)
    are requested from the scheduler rather than performed inline, except for
    ``delete`` and ``clear`` which refresh and persist immediately.
    """

    def __init__(
        self,
        scheduler: UpdateScheduler,
        persistence: SnapshotPersistence,
        failures: FailureTracker,
        notifier: Notifier,
        *,
        formatter: CitationFormatter = default_formatter,
        blob_store: BlobStore | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._persistence = persistence
        self._failures = failures
        self._notifier = notifier
        self._formatter = formatter
        self._blob_store = blob_store
        self._inputs: InputDebouncer | None = None
        self._records: list[PaperRecord] = []
        self._index: dict[int, PaperRecord] = {}
        self._next_id = 1

    # Read access ----------------------------------------------------------

    @property
    def next_id(self) -> int:
        return self._next_id

    @property
    def formatter(self) -> CitationFormatter:
        return self._formatter

    def records(self) -> list[PaperRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(list(self._records))

    def get(self, record_id: int) -> PaperRecord:
        try:
            return self._index[record_id]
        except KeyError:
            raise RecordNotFoundError(record_id) from None

    def find(self, record_id: int) -> PaperRecord | None:
        return self._index.get(record_id)

    def bind_inputs(self, inputs: InputDebouncer) -> None:
        """Pending keystrokes for removed records are dropped on delete and clear."""
        self._inputs = inputs

    # Mutations ------------------------------------------------------------

    def create(self) -> int:
        record = self._append({})
        logger.info("store.created", record_id=record.id)
        self._scheduler.request_refresh(record.id)
        return record.id

    def update(self, record_id: int, field: str, raw_value: Any) -> bool:
        """Validate and commit one field.

        Returns False only when the record is missing or the field is not
        editable; an unchanged value still counts as an update.
        """
        record = self._index.get(record_id)
        if record is None:
            self._missing(record_id, "store.update")
            return False
        name = resolve_field(field)
        if name is None or name not in EDITABLE_FIELDS:
            logger.warning("store.unknown_field", record_id=record_id, field=field)
            self._failures.record_failure(f"unknown field {field!r}", "store.update")
            return False

        setattr(record, name, validate(name, raw_value))
        if name in CITATION_FIELDS:
            record.citation = validate("citation", self._formatter.cached(record).plain_text)
        logger.debug("store.updated", record_id=record_id, field=name)
        self._scheduler.request_refresh(record_id)
        return True

    def delete(self, record_id: int) -> bool:
        record = self._index.get(record_id)
        if record is None:
            self._missing(record_id, "store.delete")
            return False
        if not self._notifier.confirm(f'Delete "{record.title or "Untitled Paper"}"?'):
            return False

        self._records.remove(record)
        del self._index[record_id]
        if self._inputs is not None:
            self._inputs.cancel(record_id)
        if self._blob_store is not None and record.pdf is not None:
            with self._failures.guard("store.delete_blob"):
                self._blob_store.delete(record_id)
        logger.info("store.deleted", record_id=record_id)
        self._scheduler.refresh_now()
        self._persistence.save(force=True)
        return True

    def clear(self) -> bool:
        if not self._notifier.confirm(CLEAR_PROMPT):
            return False
        if self._blob_store is not None:
            for record in self._records:
                if record.pdf is not None:
                    with self._failures.guard("store.clear_blob"):
                        self._blob_store.delete(record.id)
        if self._inputs is not None:
            self._inputs.cancel()
        count = len(self._records)
        self._records = []
        self._index = {}
        self._next_id = 1
        self._persistence.clear()
        self._scheduler.refresh_now()
        logger.info("store.cleared", removed=count)
        return True

    def bulk_insert(self, drafts: Iterable[PaperDraft | Mapping[str, Any]]) -> list[int]:
        """Append many records without scheduling; the caller refreshes once."""
        ids: list[int] = []
        for draft in drafts:
            payload = draft.to_payload() if isinstance(draft, PaperDraft) else dict(draft)
            record = self._append(payload)
            if not record.citation:
                record.citation = validate("citation", self._formatter.cached(record).plain_text)
            ids.append(record.id)
        logger.info("store.bulk_inserted", count=len(ids))
        return ids

    # Attachments ----------------------------------------------------------

    def attach_pdf(self, record_id: int, data: bytes, filename: str) -> bool:
        record = self._index.get(record_id)
        if record is None:
            self._missing(record_id, "store.attach_pdf")
            return False
        if self._blob_store is None:
            raise RuntimeError("No blob store configured")
        try:
            stored = self._blob_store.put(record_id, data, filename)
        except Exception as exc:
            self._failures.record_failure(exc, "store.attach_pdf")
            return False
        if not stored:
            return False
        record.pdf = PdfAttachment(
            has_pdf=True,
            source="local",
            path=self._blob_store.location(record_id) or "",
            filename=filename,
        )
        self._scheduler.request_refresh(record_id)
        return True

    def detach_pdf(self, record_id: int) -> bool:
        record = self._index.get(record_id)
        if record is None:
            self._missing(record_id, "store.detach_pdf")
            return False
        if record.pdf is None:
            return False
        if self._blob_store is not None:
            with self._failures.guard("store.detach_pdf"):
                self._blob_store.delete(record_id)
        record.pdf = None
        self._scheduler.request_refresh(record_id)
        return True

    def open_pdf(self, record_id: int) -> bytes | None:
        record = self._index.get(record_id)
        if record is None or record.pdf is None or self._blob_store is None:
            return None
        return self._blob_store.get(record_id)

    # Persistence source ---------------------------------------------------

    def snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(
            papers=[record.to_payload() for record in self._records],
            next_id=self._next_id,
            last_modified=utc_timestamp(),
        )

    def restore(self, records: list[PaperRecord], next_id: int) -> None:
        self._records = list(records)
        self._index = {record.id: record for record in self._records}
        self._next_id = next_id

    # Internal helpers -----------------------------------------------------

    def _append(self, payload: Mapping[str, Any]) -> PaperRecord:
        record = build_record(self._next_id, payload)
        self._next_id += 1
        self._records.append(record)
        self._index[record.id] = record
        return record

    def _missing(self, record_id: int, context: str) -> None:
        logger.warning("store.record_missing", record_id=record_id, context=context)
        self._failures.record_failure(RecordNotFoundError(record_id), context)
