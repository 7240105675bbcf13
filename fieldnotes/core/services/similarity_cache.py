import hashlib
import logging
from collections import OrderedDict
from typing import List, Optional, Sequence

import numpy as np

from fieldnotes.core.domain.note import Note

logger = logging.getLogger(__name__)


class SimilarityCache:
    """
    Bounded cache of similarity search results.

    Keys are fingerprints of a truncated query-vector prefix plus the requested
    result count. When full, the oldest inserted entry is evicted (insertion
    order, not access order). Not locked: concurrent writes are last-write-wins.
    """

    def __init__(self, capacity: int = 20, prefix_length: int = 10):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.prefix_length = prefix_length
        self._entries: "OrderedDict[str, List[Note]]" = OrderedDict()

    def fingerprint(self, vector: Sequence[float], limit: int) -> str:
        prefix = np.asarray(vector[: self.prefix_length], dtype=np.float32)
        digest = hashlib.sha1(prefix.tobytes()).hexdigest()
        return f"{digest}:{limit}"

    def get(self, fingerprint: str) -> Optional[List[Note]]:
        results = self._entries.get(fingerprint)
        return list(results) if results is not None else None

    def put(self, fingerprint: str, results: List[Note]) -> None:
        if fingerprint not in self._entries and len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Similarity cache full, evicted %s", evicted)
        self._entries[fingerprint] = list(results)

    def clear(self) -> None:
        if self._entries:
            logger.debug("Clearing %d similarity cache entries", len(self._entries))
        self._entries.clear()

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def __len__(self) -> int:
        return len(self._entries)
