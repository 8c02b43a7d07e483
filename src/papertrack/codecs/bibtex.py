"""BibTeX encode/decode.

The decoder is permissive and line oriented: it is not a BibTeX grammar.
Each ``key = {value}`` must sit on one line, several may share a line, and a
braced value ends at its matching close brace (one level of nesting).
"""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog

from papertrack.citations import split_authors
from papertrack.codecs.base import DecodeResult
from papertrack.models import ITEM_TYPES, PaperDraft, PaperRecord

logger = structlog.get_logger(__name__)

KEY_TITLE_WORDS = 3
KEY_TITLE_MAX = 20
MIN_KEY_WORD_LENGTH = 3

# Applied in this order; no later step may touch what an earlier one wrote.
ESCAPES: tuple[tuple[str, str], ...] = (
    ("\\", "\\textbackslash "),
    ("{", "\\{"),
    ("}", "\\}"),
    ("$", "\\$"),
    ("&", "\\&"),
    ("%", "\\%"),
    ("#", "\\#"),
    ("^", "\\^{}"),
    ("_", "\\_"),
    ("~", "\\~{}"),
)

ENTRY_TYPE_ALIASES = {
    "conference": "inproceedings",
    "inbook": "book",
    "incollection": "book",
    "mastersthesis": "phdthesis",
    "report": "techreport",
    "online": "misc",
}
SKIPPED_ENTRY_TYPES = {"comment", "string", "preamble"}

FIELD = re.compile(
    r"([A-Za-z][\w-]*)\s*=\s*"
    r"(?:\{((?:[^{}\\]|\\.|\{(?:[^{}\\]|\\.)*\})*)\}"
    r'|"((?:[^"\\]|\\.)*)"'
    r"|(\w+))"
)
ENTRY_START = re.compile(r"(?m)^\s*@")
WORD = re.compile(r"[A-Za-z0-9]+")


def escape(value: str) -> str:
    for raw, escaped in ESCAPES:
        value = value.replace(raw, escaped)
    return value


def unescape(value: str) -> str:
    for raw, escaped in reversed(ESCAPES):
        value = value.replace(escaped, raw)
    return value


def first_author_surname(authors: str) -> str:
    authors = authors.strip()
    if not authors:
        return ""
    if "," in authors:
        surname = authors.split(",", 1)[0]
    else:
        surname = authors.split(" and ", 1)[0].split()[-1]
    return "".join(WORD.findall(surname)).lower()


def citation_key(authors: str, year: str, title: str) -> str:
    """``<surname><year><first three title words of 3+ chars>``, lowercased.

    The title part is capped at 20 characters.
    """
    words = [word.lower() for word in WORD.findall(title) if len(word) >= MIN_KEY_WORD_LENGTH]
    title_part = "".join(words[:KEY_TITLE_WORDS])[:KEY_TITLE_MAX]
    return f"{first_author_surname(authors)}{year}{title_part}"


def resolve_entry_type(item_type: str, *, journal: str, year: str, chapter: str) -> str:
    if item_type in ITEM_TYPES:
        return item_type
    if journal and year:
        return "article"
    if chapter:
        return "inbook"
    return "misc"


def note_text(record: PaperRecord) -> str:
    parts = [
        ("Status", record.status),
        ("Priority", record.priority),
        ("Rating", record.rating),
        ("Relevance", record.notes),
    ]
    return ", ".join(f"{label}: {value}" for label, value in parts if value)


def _single_line(value: str) -> str:
    return " ".join(value.split())


def record_to_bibtex(record: PaperRecord, key: str) -> str:
    entry_type = resolve_entry_type(
        record.item_type, journal=record.journal, year=record.year, chapter=record.chapter
    )
    venue_field = "booktitle" if entry_type == "inproceedings" else "journal"
    doi = record.doi
    fields = [
        ("title", record.title),
        ("author", " and ".join(split_authors(record.authors))),
        (venue_field, record.journal),
        ("year", record.year),
        ("volume", record.volume),
        ("number", record.issue),
        ("pages", record.pages.replace("-", "--")),
        ("doi", doi if doi and not doi.startswith("http") else ""),
        ("url", doi if doi.startswith("http") else ""),
        ("issn", record.issn),
        ("chapter", record.chapter),
        ("keywords", record.keywords),
        ("abstract", record.abstract),
        ("language", record.language),
        ("note", note_text(record)),
    ]
    body = ",\n".join(
        f"  {name} = {{{escape(_single_line(value))}}}" for name, value in fields if value
    )
    return f"@{entry_type}{{{key},\n{body}\n}}"


def encode_bibtex(records: Iterable[PaperRecord]) -> str:
    entries: list[str] = []
    used: dict[str, int] = {}
    for record in records:
        base = citation_key(record.authors, record.year, record.title) or f"paper{record.id}"
        count = used.get(base, 0)
        used[base] = count + 1
        # a, b, c ... for repeated keys, as reference managers do.
        key = base if count == 0 else f"{base}{chr(ord('a') + (count - 1) % 26)}"
        entries.append(record_to_bibtex(record, key))
    return "\n\n".join(entries) + ("\n" if entries else "")


def _parse_fields(body: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in body.splitlines():
        for match in FIELD.finditer(line):
            name = match.group(1).lower()
            raw = next(group for group in match.groups()[1:] if group is not None)
            fields[name] = unescape(raw.strip())
    return fields


def _fields_to_draft(entry_type: str, fields: dict[str, str]) -> PaperDraft:
    item_type = ENTRY_TYPE_ALIASES.get(entry_type, entry_type)
    if item_type not in ITEM_TYPES:
        item_type = "misc"
    authors = ", ".join(part.strip() for part in fields.get("author", "").split(" and ") if part.strip())
    notes = [fields["note"]] if fields.get("note") else []
    for extra in ("publisher", "address"):
        if fields.get(extra):
            notes.append(f"{extra.capitalize()}: {fields[extra]}")
    return PaperDraft(
        item_type=item_type,
        title=fields.get("title"),
        authors=authors or None,
        year=fields.get("year"),
        journal=fields.get("journal") or fields.get("booktitle"),
        volume=fields.get("volume"),
        issue=fields.get("number"),
        pages=fields["pages"].replace("--", "-") if fields.get("pages") else None,
        doi=fields.get("doi") or fields.get("url"),
        issn=fields.get("issn") or fields.get("isbn"),
        chapter=fields.get("chapter"),
        keywords=fields.get("keywords"),
        abstract=fields.get("abstract"),
        language=fields.get("language"),
        notes=", ".join(notes) or None,
    )


def decode_bibtex(text: str) -> DecodeResult:
    result = DecodeResult()
    for block in ENTRY_START.split(text)[1:]:
        header, brace, rest = block.partition("{")
        entry_type = header.strip().lower()
        if not brace or not entry_type or entry_type in SKIPPED_ENTRY_TYPES:
            continue
        _, _, body = rest.partition(",")
        fields = _parse_fields(body)
        if not fields.get("title"):
            logger.debug("bibtex.entry_dropped", entry_type=entry_type)
            continue
        result.drafts.append(_fields_to_draft(entry_type, fields))
    return result
