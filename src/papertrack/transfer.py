"""Import and export of whole files in CSV, JSON or BibTeX."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

import structlog

from papertrack.codecs import (
    EXTENSIONS,
    FILE_SUFFIX,
    CodecError,
    DecodeResult,
    decode_bibtex,
    decode_csv,
    decode_json,
    encode_bibtex,
    encode_csv,
    encode_json,
)
from papertrack.models import PaperRecord
from papertrack.settings import Settings

if TYPE_CHECKING:
    from papertrack.library import Library

logger = structlog.get_logger(__name__)

EXPORT_FORMATS = ("csv", "json", "bibtex")


class ImportRejected(ValueError):
    """The file was refused before any record was created."""


@dataclass(slots=True)
class ImportSummary:
    format: str
    imported: int
    skipped: int = 0
    ids: list[int] = field(default_factory=list)


def detect_format(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    try:
        return EXTENSIONS[suffix]
    except KeyError:
        raise ImportRejected("Please select a CSV, JSON or BibTeX file") from None


def decode_text(fmt: str, text: str, settings: Settings) -> DecodeResult:
    try:
        if fmt == "csv":
            return decode_csv(
                text,
                max_rows=settings.csv_max_rows,
                max_line_length=settings.csv_max_line_length,
            )
        if fmt == "json":
            return decode_json(text)
        if fmt == "bibtex":
            return decode_bibtex(text)
    except CodecError as exc:
        raise ImportRejected(f"Error reading {fmt.upper()} file. Please check the file format") from exc
    raise ImportRejected(f"Unsupported format: {fmt}")


def import_bytes(library: "Library", filename: str, data: bytes) -> ImportSummary:
    """Validate, decode and insert an uploaded file as one batch."""
    fmt = detect_format(filename)
    if len(data) > library.settings.import_max_bytes:
        raise ImportRejected("File is too large. Please select a file smaller than 10MB")
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ImportRejected("Error reading file") from exc

    result = decode_text(fmt, text, library.settings)
    if not result.drafts:
        raise ImportRejected(f"No valid papers found in the {fmt.upper()} file")
    ids = library.insert_drafts(result.drafts)
    summary = ImportSummary(format=fmt, imported=len(ids), skipped=result.skipped, ids=ids)
    logger.info("transfer.imported", filename=filename, format=fmt, imported=len(ids), skipped=result.skipped)
    library.notifier.notify(f"Successfully imported {len(ids)} papers")
    return summary


def import_file(library: "Library", path: Path) -> ImportSummary:
    fmt = detect_format(path.name)
    if not path.is_file():
        raise ImportRejected(f"File not found: {path}")
    if path.stat().st_size > library.settings.import_max_bytes:
        raise ImportRejected("File is too large. Please select a file smaller than 10MB")
    logger.debug("transfer.reading", path=str(path), format=fmt)
    return import_bytes(library, path.name, path.read_bytes())


def export_text(records: Sequence[PaperRecord], fmt: str) -> str:
    if fmt == "csv":
        return encode_csv(records)
    if fmt == "json":
        return encode_json(records)
    if fmt == "bibtex":
        return encode_bibtex(records)
    raise ValueError(f"Unsupported export format: {fmt}")


def default_export_name(fmt: str, today: date | None = None) -> str:
    stamp = (today or date.today()).isoformat()
    return f"papers_{stamp}.{FILE_SUFFIX[fmt]}"


def export_file(library: "Library", fmt: str, destination: Path | None = None) -> Path:
    """Write every record to ``destination`` (default ``papers_<date>.<ext>`` in cwd)."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    destination = destination or Path.cwd() / default_export_name(fmt)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(export_text(library.store.records(), fmt), encoding="utf-8")
    logger.info("transfer.exported", path=str(destination), format=fmt, records=len(library.store))
    return destination
