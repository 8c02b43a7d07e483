"""JSON encode/decode: a ``metadata`` header plus a ``papers`` array."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Sequence

import structlog
from pydantic import ValidationError

from papertrack.codecs.base import CodecError, DecodeResult, coalesce_legacy_fields, legacy_fields
from papertrack.models import PaperDraft, PaperRecord, utc_timestamp

logger = structlog.get_logger(__name__)

FORMAT_VERSION = "2.0"

FIELD_ORDER = (
    "id",
    "itemType",
    "title",
    "authors",
    "year",
    "keywords",
    "journal",
    "volume",
    "issue",
    "pages",
    "doi",
    "issn",
    "chapter",
    "abstract",
    "status",
    "priority",
    "rating",
    "dateAdded",
    "keyPoints",
    "notes",
    "language",
    "citation",
    "pdf",
)


def record_to_json(record: PaperRecord) -> dict[str, Any]:
    payload = record.to_payload()
    ordered = {key: payload[key] for key in FIELD_ORDER}
    ordered.update(legacy_fields(record))
    return ordered


def encode_json(records: Sequence[PaperRecord], *, exported_at: str | None = None) -> str:
    document = {
        "metadata": {
            "exportedAt": exported_at or utc_timestamp(),
            "formatVersion": FORMAT_VERSION,
            "recordCount": len(records),
            "application": "papertrack",
        },
        "papers": [record_to_json(record) for record in records],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def decode_json(text: str) -> DecodeResult:
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise CodecError(f"Invalid JSON: {exc}") from exc
    papers = document.get("papers") if isinstance(document, Mapping) else None
    if not isinstance(papers, list):
        raise CodecError("JSON export must contain a 'papers' array")

    result = DecodeResult()
    for index, item in enumerate(papers):
        if not isinstance(item, Mapping):
            logger.warning("json.entry_skipped", index=index, kind=type(item).__name__)
            result.skipped += 1
            continue
        try:
            result.drafts.append(PaperDraft.model_validate(coalesce_legacy_fields(item)))
        except ValidationError as exc:
            logger.warning("json.entry_invalid", index=index, error=str(exc))
            result.skipped += 1
    return result
