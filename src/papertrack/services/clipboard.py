"""Clipboard access through the platform's command-line tools."""

from __future__ import annotations

import platform
import subprocess
from dataclasses import dataclass
from typing import Protocol

import structlog

from papertrack.citations import CitationFormatter, default_formatter
from papertrack.models import PaperRecord

logger = structlog.get_logger(__name__)

SUBPROCESS_TIMEOUT = 5
NO_CITATION_MESSAGE = (
    "Cannot generate citation - please ensure title, authors, year, and journal are filled in"
)
MANUAL_COPY_MESSAGE = "Copy failed. Please select and copy the text manually."


class Clipboard(Protocol):
    def write(self, text: str) -> bool:
        ...


class SystemClipboard:
    """Writes via ``pbcopy``, ``xclip``/``xsel`` or ``clip`` depending on the OS."""

    def __init__(self, timeout: float = SUBPROCESS_TIMEOUT) -> None:
        self._timeout = timeout

    def write(self, text: str) -> bool:
        system = platform.system()
        try:
            if system == "Darwin":
                self._run(["pbcopy"], text.encode("utf-8"))
            elif system == "Linux":
                try:
                    self._run(["xclip", "-selection", "clipboard"], text.encode("utf-8"))
                except FileNotFoundError:
                    self._run(["xsel", "--clipboard", "--input"], text.encode("utf-8"))
            elif system == "Windows":
                self._run(["clip"], text.encode("utf-16"))
            else:
                logger.debug("clipboard.unsupported_platform", system=system)
                return False
        except (FileNotFoundError, subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            logger.debug("clipboard.write_failed", system=system, error=str(exc))
            return False
        return True

    def _run(self, command: list[str], payload: bytes) -> None:
        subprocess.run(command, input=payload, check=True, shell=False, timeout=self._timeout)


class MemoryClipboard:
    """Holds the last copied text; ``available=False`` simulates a failing clipboard."""

    def __init__(self, *, available: bool = True) -> None:
        self.available = available
        self.text: str | None = None

    def write(self, text: str) -> bool:
        if not self.available:
            return False
        self.text = text
        return True


@dataclass(slots=True)
class CopyResult:
    copied: bool
    text: str
    message: str = ""


def copy_citation(
    record: PaperRecord,
    clipboard: Clipboard,
    fallback: Clipboard | None = None,
    *,
    formatter: CitationFormatter = default_formatter,
) -> CopyResult:
    """Copy the record's citation, generating it first when the field is empty.

    When neither clipboard accepts the text the result carries it back so the
    caller can show it for manual copying.
    """
    if not record.citation:
        citation = formatter.cached(record)
        if not citation:
            return CopyResult(copied=False, text="", message=NO_CITATION_MESSAGE)
        record.citation = citation.plain_text

    text = record.citation
    for target in (clipboard, fallback):
        if target is None:
            continue
        try:
            if target.write(text):
                logger.info("clipboard.copied", record_id=record.id, chars=len(text))
                return CopyResult(copied=True, text=text)
        except Exception as exc:
            logger.warning("clipboard.error", record_id=record.id, error=str(exc))
    return CopyResult(copied=False, text=text, message=MANUAL_COPY_MESSAGE)
