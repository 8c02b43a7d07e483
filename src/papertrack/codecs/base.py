"""Shared pieces of the import/export codecs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from papertrack.models import PaperDraft, PaperRecord

LEGACY_PDF_KEYS = ("hasPDF", "pdfSource", "pdfPath", "pdfFilename")


class CodecError(ValueError):
    """A whole file is structurally unusable; nothing from it is imported."""


@dataclass(slots=True)
class DecodeResult:
    drafts: list[PaperDraft] = field(default_factory=list)
    skipped: int = 0


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coalesce_legacy_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Fold legacy duplicate fields into the current record shape.

    Running it on an already-current payload returns an equivalent payload.
    """
    data = dict(payload)
    legacy_pdf = {key: data.pop(key) for key in LEGACY_PDF_KEYS if key in data}
    path = str(legacy_pdf.get("pdfPath") or "")
    filename = str(legacy_pdf.get("pdfFilename") or "") or (PurePath(path).name if path else "")
    has_pdf = bool(legacy_pdf.get("hasPDF")) or bool(path or filename)
    if not isinstance(data.get("pdf"), Mapping) and has_pdf:
        data["pdf"] = {
            "hasPdf": True,
            "source": legacy_pdf.get("pdfSource") or "",
            "path": path or filename,
            "filename": filename,
        }

    relevance = data.pop("relevance", None)
    if _blank(data.get("notes")) and not _blank(relevance):
        data["notes"] = relevance
    url = data.pop("url", None)
    if _blank(data.get("doi")) and not _blank(url):
        data["doi"] = url
    return data


def legacy_fields(record: PaperRecord) -> dict[str, Any]:
    """Duplicate fields older readers of our exports still look for."""
    pdf = record.pdf
    return {
        "relevance": record.notes,
        "url": record.doi,
        "hasPDF": bool(pdf and pdf.has_pdf),
        "pdfSource": pdf.source if pdf else "",
        "pdfPath": pdf.path if pdf else "",
        "pdfFilename": pdf.filename if pdf else "",
    }
