from __future__ import annotations

import datetime as _dt
from threading import RLock
from typing import List

from .contracts import Notice, NoticeLevel

_MAX_NOTICES = 50


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_description(description: str) -> str:
    # Notices are shown to the user; never echo whole transcripts into them.
    description = (description or "").replace("\n", " ").strip()
    if len(description) > 200:
        description = description[:200] + "…"
    return description


class NoticeLog:
    """Bounded, drainable list of user-visible notices for one note view."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: List[Notice] = []

    def push(self, title: str, description: str = "", level: NoticeLevel = "info") -> Notice:
        notice = Notice(
            ts_iso=_ts_iso(),
            level=level,
            title=title,
            description=_sanitize_description(description),
        )
        with self._lock:
            self._items.append(notice)
            if len(self._items) > _MAX_NOTICES:
                self._items = self._items[-_MAX_NOTICES:]
        return notice

    def items(self) -> List[Notice]:
        with self._lock:
            return list(self._items)

    def drain(self) -> List[Notice]:
        with self._lock:
            items, self._items = self._items, []
        return items
