"""Free-text "smart input": structured JSON becomes a draft, anything else a prompt."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from papertrack.models import PaperDraft

if TYPE_CHECKING:
    from papertrack.library import Library

logger = structlog.get_logger(__name__)

MAX_INPUT_LENGTH = 10_000
MAX_PROMPT_INPUT = 1000
PAPER_KEYS = ("title", "authors", "year", "journal", "keywords", "abstract", "url", "relevance")

PROMPT_TEMPLATE = """I'm using a Research Paper Tracker app and need you to extract paper information. The user provided: "{text}"

Please analyze this and return the information in this exact JSON format:

{{
  "title": "Full paper title",
  "authors": "Author names in APA format (Last, F. M., Last, F. M., & Last, F. M.)",
  "year": "Publication year",
  "journal": "Journal or venue name",
  "keywords": "keyword1, keyword2, keyword3, keyword4",
  "abstract": "Key findings, methodology, and main contributions in 2-3 sentences",
  "url": "DOI link or paper URL",
  "relevance": "Why this paper might be relevant to research (1-2 sentences)"
}}

Please ensure the JSON is properly formatted and fill in as much information as possible. If you cannot find certain fields, use empty strings but keep the JSON structure intact."""


class SmartInputError(ValueError):
    """Empty or oversized input."""


@dataclass(slots=True)
class SmartInputResult:
    draft: PaperDraft | None = None
    prompt: str | None = None

    @property
    def is_draft(self) -> bool:
        return self.draft is not None


def sanitize_prompt_input(text: str) -> str:
    cleaned = text.replace("<", "").replace(">", "")
    cleaned = cleaned.replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
    return cleaned[:MAX_PROMPT_INPUT]


def build_prompt(text: str) -> str:
    return PROMPT_TEMPLATE.format(text=sanitize_prompt_input(text))


def draft_from_mapping(data: Mapping[str, Any]) -> PaperDraft:
    """Map the prompt's JSON keys onto record fields."""

    def text(key: str) -> str:
        value = data.get(key)
        return "" if value is None else str(value)

    return PaperDraft(
        title=text("title"),
        authors=text("authors"),
        year=text("year"),
        journal=text("journal"),
        keywords=text("keywords"),
        key_points=text("abstract"),
        doi=text("url"),
        notes=text("relevance"),
    )


def parse_smart_input(raw: str) -> SmartInputResult:
    text = (raw or "").strip()
    if not text:
        raise SmartInputError("Please enter a paper title, URL, DOI, or citation information!")
    if len(text) > MAX_INPUT_LENGTH:
        raise SmartInputError("Input is too long. Please limit to 10,000 characters.")
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, Mapping) and any(key in data for key in PAPER_KEYS):
        logger.debug("smart_input.draft", keys=sorted(data))
        return SmartInputResult(draft=draft_from_mapping(data))
    return SmartInputResult(prompt=build_prompt(text))


def add_from_draft(library: "Library", draft: PaperDraft) -> int:
    """Insert a previewed draft; the citation is generated on insert."""
    (record_id,) = library.insert_drafts([draft])
    library.notifier.notify("Paper added successfully to your library!")
    return record_id
