"""
Session transcript and diagnostic log.

Both are append-only. The transcript is kept newest-first for UI
rendering, the diagnostic log oldest-first.
"""

import itertools
import logging
from collections import deque
from typing import Any, Callable, Iterator

from rabbithole.models.transcript import TranscriptEntry

logger = logging.getLogger(__name__)

IMEI_MASK = "*********"
ACCOUNT_KEY_MASK = "*******************"


def mask_credentials(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a payload with imei/accountKey replaced by fixed placeholders."""
    masked = dict(data)
    if "imei" in masked:
        masked["imei"] = IMEI_MASK
    if "accountKey" in masked:
        masked["accountKey"] = ACCOUNT_KEY_MASK
    return masked


def _notify(listeners: list[Callable[[Any], None]], item: Any) -> None:
    for listener in list(listeners):
        try:
            listener(item)
        except Exception:
            logger.exception("Transcript listener failed")


class Transcript:
    def __init__(self) -> None:
        self._entries: deque[TranscriptEntry] = deque()
        self._ids = itertools.count(1)
        self._listeners: list[Callable[[TranscriptEntry], None]] = []

    def add(self, content: str, origin: str, kind: str) -> TranscriptEntry:
        entry = TranscriptEntry(id=str(next(self._ids)), origin=origin, kind=kind, content=content)
        self._entries.appendleft(entry)
        _notify(self._listeners, entry)
        return entry

    def add_listener(self, listener: Callable[[TranscriptEntry], None]) -> Callable[[], None]:
        """Call listener for every new entry. Returns a cleanup function."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    @property
    def entries(self) -> list[TranscriptEntry]:
        """Newest first."""
        return list(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class DiagnosticLog:
    def __init__(self) -> None:
        self._lines: list[str] = []
        self._listeners: list[Callable[[str], None]] = []

    def append(self, line: str) -> None:
        self._lines.append(line)
        logger.info(line)
        _notify(self._listeners, line)

    def add_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    @property
    def lines(self) -> list[str]:
        """Oldest first."""
        return list(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __len__(self) -> int:
        return len(self._lines)
