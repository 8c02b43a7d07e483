"""File selection collaborators used by the import and attach actions."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class FilePicker(Protocol):
    def pick_file(self) -> Path | None:
        ...


class StaticFilePicker:
    """Returns a path chosen up front (a CLI argument or an uploaded temp file)."""

    def __init__(self, path: Path | str | None) -> None:
        self._path = Path(path) if path is not None else None

    def pick_file(self) -> Path | None:
        if self._path is None or not self._path.is_file():
            return None
        return self._path
