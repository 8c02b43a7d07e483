"""APA 7 citation formatting with a per-record fingerprint cache."""

from __future__ import annotations

import html
import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from papertrack.models import CITATION_FIELDS, PaperRecord

logger = structlog.get_logger(__name__)

EN_DASH = "–"
MAX_LISTED_AUTHORS = 20
ARXIV_ID = re.compile(r"arxiv\.org/abs/([0-9]+\.[0-9]+)")
# A comma-separated token made only of initials ("J.", "J. R.", "J.-P.") belongs
# to the surname before it rather than starting a new author.
INITIALS = re.compile(r"^(?:[A-Z]\.[\s-]*)+$")

AuthorSplitter = Callable[[str], list[str]]


@dataclass(slots=True, frozen=True)
class Citation:
    plain_text: str
    html_text: str

    def __bool__(self) -> bool:
        return bool(self.plain_text)


EMPTY_CITATION = Citation(plain_text="", html_text="")


def split_authors(authors: str) -> list[str]:
    """Split a flat author string into individual "Last, F." entries.

    This is a heuristic: tokens between commas are grouped so that a token of
    bare initials stays with the surname before it. Names with suffixes or
    full given names separated by commas are not recognised.
    """
    tokens = [token.strip() for token in authors.split(",")]
    entries: list[str] = []
    for token in tokens:
        if not token:
            continue
        if entries and INITIALS.match(token) and "," not in entries[-1]:
            entries[-1] = f"{entries[-1]}, {token}"
        else:
            entries.append(token)
    return entries


def format_author_list(entries: list[str]) -> str:
    if not entries:
        return ""
    if len(entries) == 1:
        return entries[0]
    if len(entries) == 2:
        return f"{entries[0]}, & {entries[1]}"
    if len(entries) <= MAX_LISTED_AUTHORS:
        return f"{', '.join(entries[:-1])}, & {entries[-1]}"
    return f"{', '.join(entries[:MAX_LISTED_AUTHORS - 1])}, ... {entries[-1]}"


def render_doi(doi: str) -> str:
    if doi.startswith("http"):
        return doi
    if doi.startswith("10."):
        return f"https://doi.org/{doi}"
    return doi


def citation_fingerprint(record: PaperRecord) -> str:
    return "\x1f".join(str(getattr(record, field) or "") for field in CITATION_FIELDS)


class _Segments:
    """Accumulates plain text while remembering which spans are emphasised."""

    def __init__(self) -> None:
        self._parts: list[tuple[str, bool]] = []

    def add(self, text: str, *, emphasis: bool = False) -> None:
        if text:
            self._parts.append((text, emphasis))

    def build(self) -> Citation:
        plain = "".join(text for text, _ in self._parts)
        marked = "".join(
            f"<em>{html.escape(text)}</em>" if emphasis else html.escape(text)
            for text, emphasis in self._parts
        )
        return Citation(plain_text=plain, html_text=marked)


class CitationFormatter:
    """Formats records as APA 7 references.

    ``computations`` counts how many times a citation was actually built, which
    lets callers observe cache hits.
    """

    def __init__(self, splitter: AuthorSplitter = split_authors) -> None:
        self._splitter = splitter
        self.computations = 0

    def format(self, record: PaperRecord) -> Citation:
        authors = (record.authors or "").strip()
        title = (record.title or "").strip()
        if not authors or not title:
            return EMPTY_CITATION
        self.computations += 1

        author_text = format_author_list(self._splitter(authors))
        year = f"({record.year})" if record.year else "(n.d.)"
        journal = (record.journal or "").strip()
        doi = (record.doi or "").strip()

        out = _Segments()
        out.add(f"{author_text} {year}. {title}. ")
        if journal and "arxiv" in journal.lower():
            match = ARXIV_ID.search(doi) if doi else None
            out.add("arXiv preprint", emphasis=True)
            if match:
                out.add(f" arXiv:{match.group(1)}")
            out.add(f". {doi}")
            citation = out.build()
            return Citation(
                plain_text=citation.plain_text.strip(),
                html_text=citation.html_text.strip(),
            )

        if journal:
            out.add(journal, emphasis=True)
            if record.volume:
                out.add(", ")
                out.add(record.volume, emphasis=True)
            if record.issue:
                out.add(f"({record.issue})")
            if record.pages:
                out.add(f", {record.pages.replace('-', EN_DASH)}")
        else:
            # Drop the trailing separator added after the title.
            out = _Segments()
            out.add(f"{author_text} {year}. {title}")
        if doi:
            out.add(f". {render_doi(doi)}")
        out.add(".")
        return out.build()

    def cached(self, record: PaperRecord) -> Citation:
        """Return the record's citation, rebuilding only when its inputs changed."""
        fingerprint = citation_fingerprint(record)
        if record._fingerprint == fingerprint and record._citation_cache is not None:
            return record._citation_cache
        citation = self.format(record)
        record._citation_cache = citation
        record._fingerprint = fingerprint
        logger.debug("citation.rebuilt", record_id=record.id)
        return citation


default_formatter = CitationFormatter()


def format_citation(record: PaperRecord) -> Citation:
    return default_formatter.format(record)
