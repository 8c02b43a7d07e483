"""Blob storage for PDF attachments, keyed by paper record id."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import structlog
from sqlmodel import Session

from papertrack.db import AttachmentRecord, create_engine_for_path, init_db
from papertrack.settings import Settings
from papertrack.utils import safe_filename

logger = structlog.get_logger(__name__)


class BlobStore(Protocol):
    """High-level contract for attachment storage."""

    def put(self, record_id: int, data: bytes, filename: str) -> bool:
        ...

    def get(self, record_id: int) -> bytes | None:
        ...

    def delete(self, record_id: int) -> bool:
        ...

    def location(self, record_id: int) -> str | None:
        ...


class MemoryBlobStore:
    """Keeps blobs in a dict; used by tests and throwaway sessions."""

    def __init__(self) -> None:
        self._blobs: dict[int, tuple[str, bytes]] = {}

    def put(self, record_id: int, data: bytes, filename: str) -> bool:
        self._blobs[record_id] = (filename, data)
        return True

    def get(self, record_id: int) -> bytes | None:
        entry = self._blobs.get(record_id)
        return entry[1] if entry else None

    def delete(self, record_id: int) -> bool:
        return self._blobs.pop(record_id, None) is not None

    def location(self, record_id: int) -> str | None:
        entry = self._blobs.get(record_id)
        return f"memory://{record_id}/{entry[0]}" if entry else None


class LocalBlobStore:
    """Writes PDFs under ``<data_dir>/pdfs/<record id>/`` and indexes them in SQLite."""

    def __init__(self, settings: Settings, engine=None) -> None:
        self._root = settings.attachments_dir
        self._root.mkdir(parents=True, exist_ok=True)
        self._engine = engine or create_engine_for_path(settings.db_path)
        init_db(self._engine)

    def put(self, record_id: int, data: bytes, filename: str) -> bool:
        directory = self._root / str(record_id)
        directory.mkdir(parents=True, exist_ok=True)
        for stale in directory.iterdir():
            stale.unlink(missing_ok=True)
        target = directory / safe_filename(filename, default="attachment.pdf")
        target.write_bytes(data)
        checksum = hashlib.sha256(data).hexdigest()

        with Session(self._engine) as session:
            record = session.get(AttachmentRecord, record_id)
            if record is None:
                record = AttachmentRecord(
                    record_id=record_id, filename=target.name, path=str(target), checksum=checksum
                )
            record.filename = target.name
            record.path = str(target)
            record.checksum = checksum
            record.size = len(data)
            record.stored_at = datetime.now(timezone.utc)
            session.add(record)
            session.commit()
        logger.info("attachments.stored", record_id=record_id, path=str(target), bytes=len(data))
        return True

    def get(self, record_id: int) -> bytes | None:
        path = self._path_for(record_id)
        if path is None or not path.exists():
            return None
        return path.read_bytes()

    def delete(self, record_id: int) -> bool:
        with Session(self._engine) as session:
            record = session.get(AttachmentRecord, record_id)
            if record is None:
                return False
            Path(record.path).unlink(missing_ok=True)
            session.delete(record)
            session.commit()
        directory = self._root / str(record_id)
        if directory.exists() and not any(directory.iterdir()):
            directory.rmdir()
        logger.info("attachments.deleted", record_id=record_id)
        return True

    def location(self, record_id: int) -> str | None:
        path = self._path_for(record_id)
        return str(path) if path else None

    def _path_for(self, record_id: int) -> Path | None:
        with Session(self._engine) as session:
            record = session.get(AttachmentRecord, record_id)
            return Path(record.path) if record else None
