"""CSV encode/decode.

Decoding uses a character scanner instead of a regular expression so that
adversarial input cannot trigger catastrophic backtracking; line length and
row count are bounded.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import structlog

from papertrack.codecs.base import CodecError, DecodeResult
from papertrack.models import PaperDraft, PaperRecord

logger = structlog.get_logger(__name__)

MAX_LINE_LENGTH = 10_000
MAX_ROWS = 1000
MIN_COLUMNS = 3
NEW_LAYOUT_MIN_COLUMNS = 20


@dataclass(frozen=True, slots=True)
class Column:
    header: str
    attribute: str
    quoted: bool = True


NEW_LAYOUT: tuple[Column, ...] = (
    Column("Item Type", "item_type", quoted=False),
    Column("Title", "title"),
    Column("Authors", "authors"),
    Column("Year", "year", quoted=False),
    Column("Keywords", "keywords"),
    Column("Journal/Venue", "journal"),
    Column("Volume", "volume"),
    Column("Issue", "issue"),
    Column("Pages", "pages"),
    Column("DOI/URL", "doi"),
    Column("ISSN", "issn"),
    Column("Chapter/Topic", "chapter"),
    Column("Abstract", "abstract"),
    Column("Relevance", "relevance"),
    Column("Status", "status", quoted=False),
    Column("Priority", "priority", quoted=False),
    Column("Rating", "rating", quoted=False),
    Column("Date Added", "date_added", quoted=False),
    Column("Key Points", "key_points"),
    Column("Notes", "notes"),
    Column("Language", "language"),
    Column("Citation", "citation"),
    Column("PDF", "pdf"),
)

LEGACY_LAYOUT: tuple[Column, ...] = (
    Column("Title", "title"),
    Column("Authors", "authors"),
    Column("Year", "year", quoted=False),
    Column("Journal/Venue", "journal"),
    Column("Keywords", "keywords"),
    Column("Status", "status", quoted=False),
    Column("Priority", "priority", quoted=False),
    Column("Rating", "rating", quoted=False),
    Column("Date Added", "date_added", quoted=False),
    Column("Key Points", "key_points"),
    Column("Notes", "notes"),
    Column("Citation", "citation"),
    Column("DOI/URL", "doi"),
    Column("Chapter/Topic", "chapter"),
)

LAYOUTS = {"new": NEW_LAYOUT, "legacy": LEGACY_LAYOUT}


def quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _cell(record: PaperRecord, column: Column) -> str:
    if column.attribute == "relevance":
        value = record.notes
    elif column.attribute == "pdf":
        value = record.pdf.filename if record.pdf and record.pdf.has_pdf else ""
    else:
        value = str(getattr(record, column.attribute) or "")
    return quote(value) if column.quoted else value


def encode_csv(records: Iterable[PaperRecord], layout: str = "new") -> str:
    columns = LAYOUTS[layout]
    lines = [",".join(column.header for column in columns)]
    for record in records:
        lines.append(",".join(_cell(record, column) for column in columns))
    return "\n".join(lines) + "\n"


def parse_csv_line(line: str, max_length: int = MAX_LINE_LENGTH) -> list[str]:
    """Split one logical CSV line into fields."""
    if len(line) > max_length:
        raise CodecError("CSV line too long")
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current))
    return fields


def iter_logical_lines(text: str) -> Iterator[str]:
    """Yield lines, keeping newlines that sit inside quoted fields."""
    current: list[str] = []
    in_quotes = False
    for char in text:
        if char == '"':
            in_quotes = not in_quotes
        if char == "\n" and not in_quotes:
            line = "".join(current)
            yield line[:-1] if line.endswith("\r") else line
            current = []
            continue
        current.append(char)
    if current:
        line = "".join(current)
        yield line[:-1] if line.endswith("\r") else line


def detect_layout(column_count: int) -> tuple[Column, ...]:
    return NEW_LAYOUT if column_count >= NEW_LAYOUT_MIN_COLUMNS else LEGACY_LAYOUT


def _row_to_draft(values: list[str], columns: tuple[Column, ...]) -> PaperDraft:
    data: dict[str, Any] = {}
    relevance = ""
    for column, raw in zip(columns, values):
        value = raw.strip()
        if column.attribute == "relevance":
            relevance = value
        elif column.attribute == "pdf":
            if value:
                data["pdf"] = {"hasPdf": True, "source": "import", "path": value, "filename": value}
        else:
            data[column.attribute] = value
    if not data.get("notes") and relevance:
        data["notes"] = relevance
    return PaperDraft(**data)


def decode_csv(
    text: str,
    *,
    max_rows: int = MAX_ROWS,
    max_line_length: int = MAX_LINE_LENGTH,
) -> DecodeResult:
    lines = iter_logical_lines(text.lstrip("\ufeff"))
    header_line = next((line for line in lines if line.strip()), None)
    if header_line is None:
        raise CodecError("CSV file is empty")
    header = parse_csv_line(header_line, max_line_length)
    columns = detect_layout(len(header))
    logger.debug("csv.layout", columns=len(header), layout="new" if columns is NEW_LAYOUT else "legacy")

    result = DecodeResult()
    rows = 0
    for line in lines:
        if not line.strip():
            continue
        if rows >= max_rows:
            logger.warning("csv.row_limit", limit=max_rows)
            break
        rows += 1
        try:
            values = parse_csv_line(line, max_line_length)
        except CodecError as exc:
            logger.warning("csv.row_skipped", row=rows, reason=str(exc))
            result.skipped += 1
            continue
        if len(values) < MIN_COLUMNS:
            result.skipped += 1
            continue
        result.drafts.append(_row_to_draft(values, columns))
    return result
