import hashlib
from pathlib import Path

from sqlmodel import Session

from papertrack.db import AttachmentRecord
from papertrack.services.attachments import LocalBlobStore, MemoryBlobStore
from papertrack.settings import Settings


def test_local_blob_store_round_trip(tmp_path: Path) -> None:
    store = LocalBlobStore(Settings(data_dir=tmp_path))

    assert store.put(1, b"%PDF-1.4 data", "../My Paper.pdf")

    location = Path(store.location(1))
    assert location == tmp_path / "pdfs" / "1" / "My-Paper.pdf"
    assert store.get(1) == b"%PDF-1.4 data"
    with Session(store._engine) as session:
        record = session.get(AttachmentRecord, 1)
        assert record.checksum == hashlib.sha256(b"%PDF-1.4 data").hexdigest()
        assert record.size == len(b"%PDF-1.4 data")


def test_local_blob_store_overwrite_replaces_file(tmp_path: Path) -> None:
    store = LocalBlobStore(Settings(data_dir=tmp_path))
    store.put(1, b"old", "old.pdf")
    store.put(1, b"new", "new.pdf")

    directory = tmp_path / "pdfs" / "1"
    assert [path.name for path in directory.iterdir()] == ["new.pdf"]
    assert store.get(1) == b"new"


def test_local_blob_store_delete(tmp_path: Path) -> None:
    store = LocalBlobStore(Settings(data_dir=tmp_path))
    store.put(2, b"data", "a.pdf")

    assert store.delete(2) is True
    assert store.get(2) is None
    assert store.location(2) is None
    assert not (tmp_path / "pdfs" / "2").exists()
    assert store.delete(2) is False


def test_memory_blob_store() -> None:
    store = MemoryBlobStore()
    store.put(1, b"x", "a.pdf")
    assert store.get(1) == b"x"
    assert store.location(1) == "memory://1/a.pdf"
    assert store.delete(1) is True
    assert store.delete(1) is False
