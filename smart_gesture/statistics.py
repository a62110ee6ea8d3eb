# smart_gesture/statistics.py
"""
Per-label error and confidence statistics for the common and custom recognizers.

Statistics are grouped by scope: ``INDEXED_SCOPE`` (``None``) for indexed
labels and a classifier profile's ``full_path`` for named labels.
Confidences are running sums and are compared as such.
"""
from dataclasses import dataclass
from dataclasses import field
from typing import Any, Dict, Optional

import enum
import logging

from .labels import Label
from .labels import Scope

logger = logging.getLogger(__name__)

# Sentinel for reset(); None is the indexed scope.
ALL_SCOPES = object()


class Recognizer(enum.Enum):
    COMMON = "common"
    CUSTOM = "custom"


@dataclass
class ErrorCount:
    common_err_count: int = 0
    user_err_count: int = 0


@dataclass
class Confidence:
    common_confidence: float = 0.0
    user_confidence: float = 0.0


@dataclass
class GestureStatCollection:
    """Statistics for a single scope."""
    exists: bool = False
    stats: Dict[Label, ErrorCount] = field(default_factory=dict)
    confidences: Dict[Label, Confidence] = field(default_factory=dict)

    def ensure(self, label: Label) -> None:
        if label not in self.stats:
            self.stats[label] = ErrorCount()
        if label not in self.confidences:
            self.confidences[label] = Confidence()


class GestureStatistics:
    """
    Store of ``GestureStatCollection`` objects keyed by scope.

    ``exists`` for a scope only becomes true after a complete bootstrap pass
    over the smart-train exemplars; before that, lookups should be read as
    "no data".
    """

    def __init__(self):
        self._collections: Dict[Scope, GestureStatCollection] = {}

    def collection(self, scope: Scope) -> GestureStatCollection:
        """Returns the collection for ``scope``, creating an empty one if needed."""
        if scope not in self._collections:
            self._collections[scope] = GestureStatCollection()
        return self._collections[scope]

    def has_scope(self, scope: Scope) -> bool:
        return scope in self._collections

    def ensure(self, scope: Scope, label: Label) -> None:
        self.collection(scope).ensure(label)

    def record_mismatch(self, scope: Scope, label: Label, recognizer: Recognizer) -> None:
        """Counts one wrong answer of ``recognizer`` that returned ``label``."""
        collection = self.collection(scope)
        collection.ensure(label)
        counts = collection.stats[label]
        if recognizer is Recognizer.COMMON:
            counts.common_err_count += 1
        else:
            counts.user_err_count += 1
        logger.debug(
            f"Mismatch recorded for {label} in scope {scope!r} ({recognizer.value}): "
            f"common={counts.common_err_count} user={counts.user_err_count}"
        )

    def record_confidence(
        self, scope: Scope, label: Label, recognizer: Recognizer, score: float
    ) -> None:
        """Adds ``score`` to the running confidence sum of a correct answer."""
        collection = self.collection(scope)
        collection.ensure(label)
        confidence = collection.confidences[label]
        if recognizer is Recognizer.COMMON:
            confidence.common_confidence += score
        else:
            confidence.user_confidence += score

    def error_count(self, scope: Scope, label: Label) -> Optional[ErrorCount]:
        collection = self._collections.get(scope)
        if collection is None:
            return None
        return collection.stats.get(label)

    def confidence(self, scope: Scope, label: Label) -> Optional[Confidence]:
        collection = self._collections.get(scope)
        if collection is None:
            return None
        return collection.confidences.get(label)

    def favors_common(self, scope: Scope, label: Label) -> bool:
        """
        Decides whether the common recognizer should be trusted for ``label``.

        Error counts are compared first; on a tie the confidence sums decide.
        A label without statistics favors the common recognizer.

        Returns:
            False when the common recognizer made more errors than the custom
            one, or the same number of errors with a lower confidence sum.
            True otherwise.
        """
        counts = self.error_count(scope, label)
        if counts is None:
            return True
        if counts.common_err_count > counts.user_err_count:
            return False
        if counts.common_err_count == counts.user_err_count:
            confidence = self.confidence(scope, label)
            if confidence is not None and confidence.common_confidence < confidence.user_confidence:
                return False
        return True

    def custom_is_worse(self, scope: Scope, label: Label) -> bool:
        """True if the custom recognizer has more recorded errors for ``label``."""
        counts = self.error_count(scope, label)
        if counts is None:
            return False
        return counts.common_err_count < counts.user_err_count

    def exists(self, scope: Scope) -> bool:
        collection = self._collections.get(scope)
        return collection is not None and collection.exists

    def mark_complete(self, scope: Scope) -> None:
        self.collection(scope).exists = True

    def reset(self, scope: Any = ALL_SCOPES) -> None:
        """
        Clears statistics.

        Args:
            scope: Scope to clear. Every scope is cleared when omitted.
        """
        if scope is ALL_SCOPES:
            self._collections.clear()
            logger.info("All gesture statistics cleared.")
        else:
            self._collections.pop(scope, None)
            logger.info(f"Gesture statistics cleared for scope {scope!r}.")

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of all statistics, for logging and debug endpoints."""
        result: Dict[str, Any] = {}
        for scope, collection in self._collections.items():
            key = "indexed" if scope is None else scope
            result[key] = {
                "exists": collection.exists,
                "stats": {
                    str(label): {
                        "common_err_count": counts.common_err_count,
                        "user_err_count": counts.user_err_count,
                    }
                    for label, counts in collection.stats.items()
                },
                "confidences": {
                    str(label): {
                        "common_confidence": conf.common_confidence,
                        "user_confidence": conf.user_confidence,
                    }
                    for label, conf in collection.confidences.items()
                },
            }
        return result
