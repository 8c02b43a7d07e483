"""Per-field coercion rules shared by every mutation path.

``validate`` never raises: whatever it is given, it returns a value inside the
field's domain, falling back to the field default when the input is unusable.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any
from urllib.parse import urlsplit

import structlog

from papertrack.models import (
    ITEM_TYPES,
    PRIORITIES,
    STATUSES,
    PaperRecord,
    PdfAttachment,
    resolve_field,
    today_iso,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_LENGTH = 1000
DOI_MAX_LENGTH = 200
URL_MAX_LENGTH = 500
PREPRINT_YEARS = 2

FIELD_LIMITS: dict[str, int] = {
    "title": 500,
    "authors": 500,
    "journal": 300,
    "volume": 50,
    "issue": 50,
    "pages": 50,
    "issn": 50,
    "chapter": 200,
    "keywords": 500,
    "abstract": 2000,
    "notes": 1000,
    "key_points": 2000,
    "citation": 1000,
    "language": 50,
    "doi": URL_MAX_LENGTH,
}

ENUM_DEFAULTS: dict[str, tuple[tuple[str, ...], str]] = {
    "item_type": (ITEM_TYPES, "article"),
    "status": (STATUSES, "to-read"),
    "priority": (PRIORITIES, "medium"),
}

LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
DOI_PREFIX = re.compile(r"^10\.\d{4,}")


def current_max_year() -> int:
    return date.today().year + PREPRINT_YEARS


def sanitize_text(value: Any, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Trim and truncate; anything that is not text-like becomes empty."""
    if value is None or isinstance(value, (dict, list, tuple, set, bytes)):
        return ""
    return str(value).strip()[:max_length]


def parse_leading_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float("inf") else None
    if not isinstance(value, str):
        return None
    match = LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def validate_year(value: Any) -> str:
    year = parse_leading_int(value)
    if year is None or not 0 <= year <= current_max_year():
        return ""
    return str(year)


def validate_rating(value: Any) -> str:
    rating = parse_leading_int(value)
    if rating is None or not 1 <= rating <= 5:
        return ""
    return str(rating)


def validate_enum(field: str, value: Any) -> str:
    choices, default = ENUM_DEFAULTS[field]
    candidate = value.strip() if isinstance(value, str) else value
    return candidate if candidate in choices else default


def validate_doi(value: Any) -> str:
    text = sanitize_text(value, max_length=URL_MAX_LENGTH * 4)
    if not text:
        return ""
    if text.startswith(("http://", "https://")) and not is_well_formed_url(text):
        logger.debug("validation.malformed_url", value=text[:80])
    elif DOI_PREFIX.match(text):
        return text[:DOI_MAX_LENGTH]
    return text[:URL_MAX_LENGTH]


def is_well_formed_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
        # Accessing the port validates it.
        parts.port
    except ValueError:
        return False
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


def validate_date(value: Any) -> str:
    text = sanitize_text(value, max_length=32)
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return today_iso()


def validate(field_name: str, raw_value: Any) -> Any:
    """Coerce ``raw_value`` into the domain of ``field_name``."""
    field = resolve_field(field_name) or field_name
    if field == "year":
        return validate_year(raw_value)
    if field == "rating":
        return validate_rating(raw_value)
    if field in ENUM_DEFAULTS:
        return validate_enum(field, raw_value)
    if field == "doi":
        return validate_doi(raw_value)
    if field == "date_added":
        return validate_date(raw_value)
    if field == "pdf":
        return coerce_attachment(raw_value)
    if field == "language":
        return sanitize_text(raw_value, FIELD_LIMITS["language"]) or "en"
    return sanitize_text(raw_value, FIELD_LIMITS.get(field, DEFAULT_MAX_LENGTH))


def coerce_attachment(value: Any) -> PdfAttachment | None:
    if isinstance(value, PdfAttachment):
        return value if value.has_pdf else None
    if not isinstance(value, Mapping):
        return None
    has_pdf = value.get("hasPdf", value.get("has_pdf", value.get("hasPDF")))
    attachment = PdfAttachment(
        has_pdf=bool(has_pdf),
        source=sanitize_text(value.get("source"), 50),
        path=sanitize_text(value.get("path"), URL_MAX_LENGTH),
        filename=sanitize_text(value.get("filename"), 255),
    )
    return attachment if attachment.has_pdf else None


def sanitize_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate every known field of an untrusted mapping.

    Unknown keys are dropped; missing keys are left out so that the model
    defaults apply.
    """
    clean: dict[str, Any] = {}
    for key, value in payload.items():
        field = resolve_field(key)
        if field is None or field == "id":
            continue
        clean[field] = validate(field, value)
    return clean


def build_record(record_id: int, payload: Mapping[str, Any]) -> PaperRecord:
    return PaperRecord(id=record_id, **sanitize_payload(payload))
