"""User-facing notices and confirmation prompts."""

from __future__ import annotations

from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Blocking notice + yes/no confirmation, supplied by the surface in use."""

    def notify(self, message: str) -> None:
        ...

    def confirm(self, message: str) -> bool:
        ...


class CollectingNotifier:
    """Keeps notices in memory and answers confirmations with a fixed reply."""

    def __init__(self, *, auto_confirm: bool = True) -> None:
        self.messages: list[str] = []
        self.prompts: list[str] = []
        self._auto_confirm = auto_confirm

    def notify(self, message: str) -> None:
        logger.info("notice", message=message)
        self.messages.append(message)

    def confirm(self, message: str) -> bool:
        self.prompts.append(message)
        return self._auto_confirm

    def drain(self) -> list[str]:
        messages, self.messages = self.messages, []
        return messages
