"""Client side of the incremental update protocol.

A client keeps an ordered buffer (newest first) and a ``last_fetched_at``
watermark, asks for items newer than the watermark, and merges what comes
back. New items are only ever prepended: an older post that arrives late is
placed at the front of the new block rather than slotted into the history,
so items the reader has already seen never move.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from src.ingest.models import NewsItem


def merge_new_items(existing: list[NewsItem], incoming: Iterable[NewsItem]) -> list[NewsItem]:
    """Prepend unseen *incoming* items, newest first, ahead of *existing*."""
    seen = {item.id for item in existing}
    fresh: list[NewsItem] = []
    for item in incoming:
        if item.id in seen:
            continue
        seen.add(item.id)
        fresh.append(item)

    if not fresh:
        return list(existing)

    fresh.sort(key=lambda item: item.timestamp, reverse=True)
    return fresh + list(existing)


class IncrementalFeed:
    """Client-held feed buffer with an optional pending queue.

    With ``auto_merge`` the items from each poll are merged immediately.
    Without it they wait in ``pending`` until ``flush()``, which applies the
    same merge rule.
    """

    def __init__(
        self,
        items: Optional[list[NewsItem]] = None,
        last_fetched_at: Optional[datetime] = None,
        auto_merge: bool = True,
    ) -> None:
        self.items: list[NewsItem] = list(items or [])
        self.last_fetched_at = last_fetched_at
        self.auto_merge = auto_merge
        self.pending: list[NewsItem] = []

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    def apply(self, incoming: Iterable[NewsItem], fetched_at: Optional[datetime]) -> int:
        """Record one poll result. Returns how many unseen items it brought."""
        known = {item.id for item in self.items} | {item.id for item in self.pending}
        unseen = []
        for item in incoming:
            if item.id in known:
                continue
            known.add(item.id)
            unseen.append(item)

        if fetched_at is not None:
            self.last_fetched_at = fetched_at

        if self.auto_merge:
            self.items = merge_new_items(self.items, unseen)
        else:
            self.pending.extend(unseen)
        return len(unseen)

    def flush(self) -> int:
        """Merge the pending queue into the visible buffer."""
        count = len(self.pending)
        if count:
            self.items = merge_new_items(self.items, self.pending)
            self.pending = []
        return count

    def since_param(self) -> Optional[str]:
        """The ``since`` query value for the next poll."""
        return self.last_fetched_at.isoformat() if self.last_fetched_at else None
