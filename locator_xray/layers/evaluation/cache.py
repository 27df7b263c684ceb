"""Evaluation Cache - read-through snapshots keyed by context and expression."""

import logging
from typing import Dict, NamedTuple, Optional

from locator_xray.layers.evaluation.models import EvaluationResult

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    state_id: str
    platform: str
    expression: str

    def __str__(self) -> str:
        return f"{self.state_id}:{self.platform}:{self.expression}"


class EvaluationCache:
    """
    Mapping of ``CacheKey`` to immutable ``EvaluationResult`` snapshots.

    Entries are only ever written whole by ``put``; there is no partial
    update path.
    """

    def __init__(self):
        self._entries: Dict[CacheKey, EvaluationResult] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> Optional[EvaluationResult]:
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result

    def put(self, key: CacheKey, result: EvaluationResult) -> None:
        self._entries[key] = result
        logger.debug(f"[EvaluationCache] Stored {key}: {result.number_of_matches} matches")

    def invalidate(self, key: CacheKey) -> bool:
        """Drop a single entry. Returns True if something was removed."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
