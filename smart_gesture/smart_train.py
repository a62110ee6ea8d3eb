# smart_gesture/smart_train.py
"""
Smart-train exemplar selection.

Samples recognized during a smart-train session are kept only when their
score is high enough. Once enough exemplars were accepted, the session is
drained and the samples are submitted to the custom recognizer.
"""
from dataclasses import dataclass
from dataclasses import field
from typing import Dict, Iterator, List, Optional, Tuple

import bisect
import logging

from .constants import COMMON_PASS_THRESHOLD
from .constants import SMART_TRAIN_KEY_EPSILON
from .constants import SMART_TRAIN_MIN_SAMPLES
from .constants import SMART_TRAIN_PASS_THRESHOLD
from .labels import Label
from .sample import Sample

logger = logging.getLogger(__name__)


@dataclass
class SmartTrainActionBundle:
    """Samples of one drained session, walked by a cursor while they are submitted."""
    target: Label
    samples: List[Sample]
    cursor: int = 0
    progress: float = 0.0

    def __iter__(self) -> Iterator[Sample]:
        while self.cursor < len(self.samples):
            sample = self.samples[self.cursor]
            self.cursor += 1
            yield sample

    @property
    def done(self) -> bool:
        return self.cursor >= len(self.samples)


@dataclass
class _Session:
    keys: List[float] = field(default_factory=list)
    samples: List[Sample] = field(default_factory=list)
    offers: int = 0

    def insert(self, key: float, sample: Sample) -> float:
        while self._contains(key):
            key += SMART_TRAIN_KEY_EPSILON
        position = bisect.bisect_left(self.keys, key)
        self.keys.insert(position, key)
        self.samples.insert(position, sample)
        return key

    def _contains(self, key: float) -> bool:
        position = bisect.bisect_left(self.keys, key)
        return position < len(self.keys) and self.keys[position] == key

    def __len__(self):
        return len(self.keys)


class SmartTrainSelector:
    """
    Filters offered samples down to high-confidence training exemplars.

    The first sample offered in a session must score above
    ``first_threshold``; later ones above ``threshold``. A rejected first
    offer still opens the session.
    """

    def __init__(
        self,
        first_threshold: float = COMMON_PASS_THRESHOLD,
        threshold: float = SMART_TRAIN_PASS_THRESHOLD,
        min_samples: int = SMART_TRAIN_MIN_SAMPLES,
    ):
        self.first_threshold = first_threshold
        self.threshold = threshold
        self.min_samples = min_samples
        self._sessions: Dict[Label, _Session] = {}

    def offer(self, label: Label, sample: Sample, score: float) -> bool:
        """
        Offers a sample recognized as ``label`` with ``score``.

        Returns:
            True if the sample was accepted into the session.
        """
        session = self._sessions.get(label)
        if session is None:
            session = self._sessions[label] = _Session()
        required = self.first_threshold if session.offers == 0 else self.threshold
        session.offers += 1
        if score <= required:
            logger.debug(
                f"Smart-train sample for {label} rejected: score {score:.4f} <= {required}"
            )
            return False
        key = session.insert(score, sample)
        logger.debug(
            f"Smart-train sample for {label} accepted with key {key:.4f} ({len(session)} pending)"
        )
        return True

    def pending(self, label: Label) -> int:
        session = self._sessions.get(label)
        return len(session) if session else 0

    def scores(self, label: Label) -> List[float]:
        """Keys of the pending samples for ``label``, highest first."""
        session = self._sessions.get(label)
        return list(reversed(session.keys)) if session else []

    def drain(self, label: Label) -> Optional[List[Sample]]:
        """
        Closes the session for ``label`` and returns its samples.

        Samples are returned in submission order, lowest score first.
        With fewer than ``min_samples`` accepted samples nothing is returned
        and the session stays open.
        """
        session = self._sessions.get(label)
        count = len(session) if session else 0
        if count < self.min_samples:
            logger.info(
                f"Smart-train for {label} needs {self.min_samples} samples, has {count}; session kept open."
            )
            return None
        del self._sessions[label]
        logger.info(
            f"Smart-train session for {label} drained with {count} samples "
            f"(scores: {', '.join(f'{k:.4f}' for k in session.keys)})"
        )
        return list(session.samples)

    def clear(self, label: Optional[Label] = None) -> None:
        if label is None:
            self._sessions.clear()
        else:
            self._sessions.pop(label, None)


class SmartTrainExemplars:
    """Every drained exemplar set, kept per label for the statistics bootstrap."""

    def __init__(self):
        self._by_label: Dict[Label, List[Sample]] = {}

    def add(self, label: Label, samples: List[Sample]) -> None:
        self._by_label.setdefault(label, []).extend(samples)

    def items(self) -> List[Tuple[Label, List[Sample]]]:
        return [(label, list(samples)) for label, samples in self._by_label.items()]

    def labels(self) -> List[Label]:
        return list(self._by_label.keys())

    def clear(self) -> None:
        self._by_label.clear()

    def __len__(self):
        return sum(len(samples) for samples in self._by_label.values())

    def __contains__(self, label):
        return label in self._by_label
