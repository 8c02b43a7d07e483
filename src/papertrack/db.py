"""SQLite persistence layer for papertrack."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlmodel import Field, SQLModel, create_engine


class StorageSlot(SQLModel, table=True):
    """One key-value slot; the library snapshot lives in a single row."""

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AttachmentRecord(SQLModel, table=True):
    """Index of PDF blobs kept on disk, one per paper record."""

    record_id: int = Field(primary_key=True)
    filename: str
    path: str
    checksum: str
    size: int = 0
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def create_engine_for_path(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


