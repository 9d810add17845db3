"""
Sliding Window Buffer — the last W feature vectors, oldest first.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Iterable, Iterator, List

from .features import FeatureVector

logger = logging.getLogger(__name__)


class FeatureWindow:
    """FIFO ring buffer; appending past capacity evicts the oldest vector."""

    def __init__(self, size: int = 10, vectors: Iterable[FeatureVector] = ()):
        if size < 1:
            raise ValueError("window size must be >= 1")
        self.size = size
        self._vectors: Deque[FeatureVector] = deque(maxlen=size)
        for v in vectors:
            self._vectors.append(v)

    def append(self, vector: FeatureVector) -> None:
        self._vectors.append(vector)

    def is_full(self) -> bool:
        return len(self._vectors) == self.size

    def clear(self) -> None:
        self._vectors.clear()

    def snapshot(self) -> List[FeatureVector]:
        return list(self._vectors)

    def to_rows(self) -> List[List[float]]:
        """JSON-friendly form used for persistence and PREDICT payloads."""
        return [v.as_list() for v in self._vectors]

    @classmethod
    def from_rows(cls, rows: Any, size: int) -> "FeatureWindow":
        """
        Rebuild from persisted rows. Malformed rows are dropped; if more than
        *size* rows were saved (e.g. the window was shrunk) the newest win.
        """
        window = cls(size)
        if not isinstance(rows, list):
            return window
        for row in rows:
            try:
                window.append(FeatureVector.from_list(list(row)))
            except (TypeError, ValueError):
                logger.warning("Dropping malformed persisted feature row: %r", row)
        return window

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[FeatureVector]:
        return iter(self._vectors)
