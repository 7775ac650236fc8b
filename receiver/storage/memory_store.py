"""Bounded in-memory store for recent analysis records."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List

from receiver.core.models import AnalysisRecord


class RecordStore:
    """
    Most-recent-first buffer holding at most `max_items` records.

    `add` is O(1); the oldest record falls off the tail once capacity is exceeded.
    `list` returns a copy taken under the lock, so readers never see a partial update.
    One plain Lock serves readers and writers; reads only copy a bounded list.
    """

    def __init__(self, max_items: int) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.max_items = max_items
        self._items: Deque[AnalysisRecord] = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def add(self, record: AnalysisRecord) -> None:
        with self._lock:
            # deque(maxlen) drops from the opposite end on appendleft.
            self._items.appendleft(record)

    def list(self) -> List[AnalysisRecord]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
