"""Summary-card rendering with a per-record fragment cache."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable
from urllib.parse import urlsplit

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from papertrack.citations import CitationFormatter, default_formatter
from papertrack.models import PaperRecord
from papertrack.validation import parse_leading_int

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
MAX_URL_LENGTH = 2000

DANGEROUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"javascript:",
        r"data:",
        r"vbscript:",
        r"onload",
        r"onerror",
        r"onclick",
        r"file:",
        r"ftp:",
        r"blob:",
        r"about:",
    )
)
SUSPICIOUS_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "internal", "local")


@dataclass(slots=True)
class LibraryStats:
    total: int = 0
    read: int = 0
    reading: int = 0
    to_read: int = 0
    skimmed: int = 0


def compute_stats(records: Iterable[PaperRecord]) -> LibraryStats:
    stats = LibraryStats()
    for record in records:
        stats.total += 1
        if record.status == "read":
            stats.read += 1
        elif record.status == "reading":
            stats.reading += 1
        elif record.status == "to-read":
            stats.to_read += 1
        elif record.status == "skimmed":
            stats.skimmed += 1
    return stats


def safe_url(value: str | None) -> str | None:
    """Return ``value`` if it is an http(s) link safe to put in an href."""
    if not value:
        return None
    try:
        parts = urlsplit(value.strip())
        hostname = (parts.hostname or "").lower()
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not hostname:
        return None
    lowered = value.lower()
    if any(pattern.search(lowered) for pattern in DANGEROUS_PATTERNS):
        return None
    if any(host in hostname for host in SUSPICIOUS_HOSTS):
        return None
    if len(value) > MAX_URL_LENGTH:
        return None
    return value


@dataclass(slots=True)
class PaperCard:
    id: int
    title: str
    status_label: str
    priority: str
    stars: str
    authors: str
    year: str
    journal: str
    keywords: list[str] = field(default_factory=list)
    key_points: str = ""
    notes: str = ""
    url: str | None = None
    citation_html: Markup = Markup("")
    has_pdf: bool = False

    @classmethod
    def from_record(
        cls, record: PaperRecord, formatter: CitationFormatter = default_formatter
    ) -> "PaperCard":
        rating = parse_leading_int(record.rating) or 0
        return cls(
            id=record.id,
            title=record.title or "Untitled Paper",
            status_label=(record.status or "to-read").replace("-", " ", 1),
            priority=record.priority or "medium",
            stars="★" * max(0, min(rating, 5)),
            authors=record.authors,
            year=record.year or "Year not specified",
            journal=record.journal,
            keywords=record.keyword_list,
            key_points=record.key_points,
            notes=record.notes,
            url=safe_url(record.doi),
            citation_html=Markup(formatter.cached(record).html_text),
            has_pdf=record.pdf is not None,
        )


def build_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


class LibraryView:
    """Holds one rendered fragment per record and the current display order.

    ``patch`` touches a single fragment; ``render_list`` rebuilds all of them.
    """

    def __init__(
        self,
        formatter: CitationFormatter = default_formatter,
        environment: Environment | None = None,
    ) -> None:
        self._formatter = formatter
        self._env = environment or build_environment()
        self._card_template = self._env.get_template("paper_card.html")
        self._page_template = self._env.get_template("library.html")
        self._fragments: dict[int, str] = {}
        self._order: list[int] = []
        self.stats = LibraryStats()
        self.patch_count = 0
        self.list_render_count = 0

    def render_card(self, record: PaperRecord) -> str:
        card = PaperCard.from_record(record, self._formatter)
        return self._card_template.render(card=card)

    def patch(self, record: PaperRecord) -> None:
        self._fragments[record.id] = self.render_card(record)
        if record.id not in self._order:
            self._order.append(record.id)
        self.patch_count += 1

    def remove(self, record_id: int) -> None:
        self._fragments.pop(record_id, None)
        if record_id in self._order:
            self._order.remove(record_id)

    def update_stats(self, stats: LibraryStats) -> None:
        self.stats = stats

    def render_list(self, records: Iterable[PaperRecord]) -> None:
        fragments: dict[int, str] = {}
        order: list[int] = []
        for record in records:
            fragments[record.id] = self.render_card(record)
            order.append(record.id)
        self._fragments = fragments
        self._order = order
        self.list_render_count += 1
        logger.debug("view.list_rendered", cards=len(order))

    def fragment(self, record_id: int) -> str | None:
        return self._fragments.get(record_id)

    @property
    def order(self) -> list[int]:
        return list(self._order)

    def page(self) -> str:
        cards = [Markup(self._fragments[record_id]) for record_id in self._order]
        return self._page_template.render(cards=cards, stats=self.stats)
