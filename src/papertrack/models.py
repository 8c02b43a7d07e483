"""Core data models used throughout the papertrack application."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

ITEM_TYPES = ("article", "inproceedings", "book", "techreport", "phdthesis", "misc")
STATUSES = ("to-read", "reading", "read", "skimmed")
PRIORITIES = ("low", "medium", "high")
RATINGS = ("1", "2", "3", "4", "5")

# Fields whose values feed the APA citation; any change invalidates the cache.
CITATION_FIELDS = ("title", "authors", "year", "journal", "volume", "issue", "pages", "doi")


def today_iso() -> str:
    return date.today().isoformat()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Base model serialising to the camelCase keys of the stored snapshot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PdfAttachment(CamelModel):
    """Association between a record and a blob held by the attachment store."""

    has_pdf: bool = False
    source: str = ""
    path: str = ""
    filename: str = ""


class PaperRecord(CamelModel):
    """One tracked paper.

    Values are always stored in their validated form; see
    :mod:`papertrack.validation`. The citation cache and its fingerprint are
    private attributes and never appear in ``model_dump`` output.
    """

    id: int
    item_type: str = "article"
    title: str = ""
    authors: str = ""
    year: str = ""
    journal: str = ""
    volume: str = ""
    issue: str = ""
    pages: str = ""
    doi: str = ""
    issn: str = ""
    chapter: str = ""
    keywords: str = ""
    abstract: str = ""
    notes: str = ""
    key_points: str = ""
    status: str = "to-read"
    priority: str = "medium"
    rating: str = ""
    date_added: str = Field(default_factory=today_iso)
    language: str = "en"
    citation: str = ""
    pdf: PdfAttachment | None = None

    _citation_cache: Any = PrivateAttr(default=None)
    _fingerprint: str | None = PrivateAttr(default=None)

    def to_payload(self) -> dict[str, Any]:
        """Serialise with camelCase keys, the shape used by every export path."""
        return self.model_dump(by_alias=True)

    @property
    def keyword_list(self) -> list[str]:
        return [part.strip() for part in self.keywords.split(",") if part.strip()]


class PaperDraft(CamelModel):
    """Partial, untrusted record produced by a decoder or by smart input.

    Every field is optional; validation and defaulting happen when the draft
    is committed to the store.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    item_type: Any = None
    title: Any = None
    authors: Any = None
    year: Any = None
    journal: Any = None
    volume: Any = None
    issue: Any = None
    pages: Any = None
    doi: Any = None
    issn: Any = None
    chapter: Any = None
    keywords: Any = None
    abstract: Any = None
    notes: Any = None
    key_points: Any = None
    status: Any = None
    priority: Any = None
    rating: Any = None
    date_added: Any = None
    language: Any = None
    citation: Any = None
    pdf: Any = None

    def to_payload(self) -> dict[str, Any]:
        return {name: value for name, value in self.model_dump().items() if value is not None}

    @property
    def has_title(self) -> bool:
        return isinstance(self.title, str) and bool(self.title.strip())


class LibrarySnapshot(CamelModel):
    """The single persisted blob: every record plus the id counter."""

    papers: list[dict[str, Any]] = Field(default_factory=list)
    next_id: int = 1
    last_modified: str = Field(default_factory=utc_timestamp)


def _build_field_lookup() -> dict[str, str]:
    lookup: dict[str, str] = {}
    for name, info in PaperRecord.model_fields.items():
        lookup[name] = name
        if info.alias:
            lookup[info.alias] = name
    return lookup


FIELD_LOOKUP = _build_field_lookup()
EDITABLE_FIELDS = frozenset(FIELD_LOOKUP.values()) - {"id", "pdf", "citation"}


def resolve_field(name: str) -> str | None:
    """Map a camelCase or snake_case field name onto the model attribute."""
    return FIELD_LOOKUP.get(name)
