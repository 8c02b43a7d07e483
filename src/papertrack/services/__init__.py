"""Collaborators the core talks to through narrow interfaces."""

from .attachments import BlobStore, LocalBlobStore, MemoryBlobStore
from .clipboard import Clipboard, CopyResult, MemoryClipboard, SystemClipboard, copy_citation
from .files import FilePicker, StaticFilePicker
from .notifications import CollectingNotifier, Notifier

__all__ = [
    "BlobStore",
    "Clipboard",
    "CollectingNotifier",
    "CopyResult",
    "FilePicker",
    "LocalBlobStore",
    "MemoryBlobStore",
    "MemoryClipboard",
    "Notifier",
    "StaticFilePicker",
    "SystemClipboard",
    "copy_citation",
]
