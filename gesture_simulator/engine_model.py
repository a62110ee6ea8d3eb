# gesture_simulator/engine_model.py
"""
Simulated recognition engine.

Models the recognizers behind an ``EngineBinding`` closely enough to exercise
the smart-gesture library without the native engine. A sample is reduced to
its mean angular rotation; every built-in and developer-defined gesture has a
fixed template direction, and matching is cosine similarity against it.
Custom gestures and signatures are matched against stored exemplars.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import hashlib
import logging
import math
import random
import time

from smart_gesture.constants import CommonGesture
from smart_gesture.constants import ERROR_SIGN_INCONSISTENT
from smart_gesture.constants import ERROR_SIGN_TOO_SHORT
from smart_gesture.constants import SecurityLevel
from smart_gesture.labels import ClassifierProfile
from smart_gesture.labels import IndexedLabel
from smart_gesture.labels import Label
from smart_gesture.labels import NamedLabel
from smart_gesture.sample import Sample

logger = logging.getLogger("SimulatedEngine")

Vector = Tuple[float, float, float]

_S3 = 1.0 / math.sqrt(3.0)
COMMON_TEMPLATES: Dict[int, Vector] = {
    CommonGesture.HEART: (1.0, 0.0, 0.0),
    CommonGesture.DOWN: (0.0, -1.0, 0.0),
    CommonGesture.C: (0.0, 0.0, 1.0),
    CommonGesture.S: (-1.0, 0.0, 0.0),
    CommonGesture.UP: (0.0, 1.0, 0.0),
    CommonGesture.RIGHT: (0.0, 0.0, -1.0),
    CommonGesture.LEFT: (_S3, _S3, _S3),
}

# Developer-defined scores are reported on a wider scale than built-in ones.
PREDEFINED_SCORE_SCALE = 1.5

CUSTOM_MATCH_THRESHOLD = 0.8
SIMILARITY_THRESHOLD = 0.9
SIGNATURE_CONSISTENCY_THRESHOLD = 0.9
SIGNATURE_MIN_ENTRIES = 20
SIGNATURE_PROGRESS_STEP = 0.2
SIGNATURE_MAX_TRIES = 5
SIGNATURE_LOCK_SECONDS = 30
WEAK_SIGNATURE_MAGNITUDE = 0.2


def normalize(vector: Sequence[float]) -> Vector:
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0.0:
        return (0.0, 0.0, 0.0)
    return (vector[0] / norm, vector[1] / norm, vector[2] / norm)


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    na = math.sqrt(sum(v * v for v in a))
    nb = math.sqrt(sum(v * v for v in b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (na * nb)


def sample_feature(sample: Sample) -> Vector:
    """Mean angular rotation of a sample."""
    rotations = sample.rotations()
    if not rotations:
        return (0.0, 0.0, 0.0)
    n = float(len(rotations))
    return (
        sum(r[0] for r in rotations) / n,
        sum(r[1] for r in rotations) / n,
        sum(r[2] for r in rotations) / n,
    )


def named_template(name: str, profile: Optional[ClassifierProfile] = None) -> Vector:
    """Stable template direction for a developer-defined gesture."""
    key = f"{profile.full_path if profile else ''}/{name}".encode("utf-8")
    digest = hashlib.sha256(key).digest()
    raw = [(digest[i] - 127.5) / 127.5 for i in range(3)]
    return normalize(raw)


def template_for(label: Label, profile: Optional[ClassifierProfile] = None) -> Optional[Vector]:
    if isinstance(label, IndexedLabel):
        return COMMON_TEMPLATES.get(label.index)
    return named_template(label.name, profile)


def make_sample(
    direction: Sequence[float],
    entries: int = 40,
    magnitude: float = 1.0,
    noise: float = 0.0,
    rng: Optional[random.Random] = None,
    interval_ms: float = 16.0,
) -> Sample:
    """
    Synthesizes a sample whose rotations point along ``direction``.

    Useful for tests and for driving the simulator by hand.
    """
    rng = rng or random.Random(0)
    unit = normalize(direction)
    rows = []
    for i in range(entries):
        jitter = [rng.gauss(0.0, noise) if noise else 0.0 for _ in range(3)]
        rows.append((
            i * interval_ms,
            unit[0] * magnitude + jitter[0],
            unit[1] * magnitude + jitter[1],
            unit[2] * magnitude + jitter[2],
        ))
    return Sample.from_readings(rows)


class _Signature:
    def __init__(self, feature: Vector):
        self.features: List[Vector] = [feature]

    @property
    def progress(self) -> float:
        return min(1.0, len(self.features) * SIGNATURE_PROGRESS_STEP)

    @property
    def complete(self) -> bool:
        return self.progress >= 1.0


class SimulatedEngine:
    """
    In-memory recognition engine.

    Args:
        score_noise: Standard deviation of gaussian jitter added to common
            recognizer scores. Zero keeps the engine deterministic.
        seed: Seed for the jitter generator.
    """

    def __init__(self, score_noise: float = 0.0, seed: Optional[int] = None):
        self.score_noise = score_noise
        self._rng = random.Random(seed)
        self.custom_gestures: Dict[Label, List[Vector]] = {}
        self.signatures: Dict[int, _Signature] = {}
        self.tries_left = SIGNATURE_MAX_TRIES
        self._locked_until = 0.0
        self.request_counts: Dict[str, int] = {}
        self.started_at = time.time()

    def _count(self, operation: str) -> None:
        self.request_counts[operation] = self.request_counts.get(operation, 0) + 1

    def _jitter(self, score: float) -> float:
        if self.score_noise <= 0.0:
            return score
        return score + self._rng.gauss(0.0, self.score_noise)

    def classify_common(
        self,
        sample: Sample,
        labels: Sequence[Label],
        profile: Optional[ClassifierProfile] = None,
    ) -> Optional[Dict[str, Any]]:
        """Best matching built-in or developer-defined gesture among ``labels``."""
        self._count("classify_common")
        feature = sample_feature(sample)
        best: Optional[Tuple[Label, float]] = None
        for label in labels:
            template = template_for(label, profile)
            if template is None:
                continue
            similarity = cosine(feature, template)
            if best is None or similarity > best[1]:
                best = (label, similarity)
        if best is None:
            return None
        label, similarity = best
        similarity = max(0.0, similarity)
        if isinstance(label, NamedLabel):
            score = self._jitter(similarity * PREDEFINED_SCORE_SCALE)
            return {"label": label, "score": score, "confidence": similarity}
        return {"label": label, "score": self._jitter(similarity), "confidence": 0.0}

    def classify_custom(self, sample: Sample, labels: Sequence[Label]) -> Optional[Dict[str, Any]]:
        self._count("classify_custom")
        feature = sample_feature(sample)
        best: Optional[Tuple[Label, float]] = None
        for label in labels:
            for exemplar in self.custom_gestures.get(label, []):
                similarity = cosine(feature, exemplar)
                if best is None or similarity > best[1]:
                    best = (label, similarity)
        if best is None or best[1] < CUSTOM_MATCH_THRESHOLD:
            return None
        return {"label": best[0], "confidence": best[1]}

    def set_custom_gesture(self, label: Label, samples: Sequence[Sample]) -> int:
        self._count("set_custom_gesture")
        self.custom_gestures[label] = [sample_feature(s) for s in samples if s]
        logger.info(f"Custom gesture {label} set with {len(self.custom_gestures[label])} exemplars.")
        return len(self.custom_gestures[label])

    def is_two_gesture_similar(self, first: Sample, second: Sample) -> bool:
        self._count("is_two_gesture_similar")
        return cosine(sample_feature(first), sample_feature(second)) >= SIMILARITY_THRESHOLD

    def train_signature(self, index: int, sample: Sample) -> Dict[str, Any]:
        """
        Adds one training sample to signature ``index``.

        The first sample opens the signature at 20% progress. Later samples
        must point the same way as the first one, otherwise
        ``ERROR_SIGN_INCONSISTENT`` is reported with the progress unchanged.
        """
        self._count("train_signature")
        signature = self.signatures.get(index)
        current = signature.progress if signature else 0.0
        if len(sample) < SIGNATURE_MIN_ENTRIES:
            return {"index": index, "progress": current, "error_code": ERROR_SIGN_TOO_SHORT}

        feature = sample_feature(sample)
        magnitude = math.sqrt(sum(v * v for v in feature))
        weak = magnitude < WEAK_SIGNATURE_MAGNITUDE

        if signature is None:
            self.signatures[index] = _Signature(feature)
            progress = self.signatures[index].progress
        elif cosine(feature, signature.features[0]) < SIGNATURE_CONSISTENCY_THRESHOLD:
            return {"index": index, "progress": current, "error_code": ERROR_SIGN_INCONSISTENT}
        else:
            if not signature.complete:
                signature.features.append(feature)
            progress = signature.progress

        level = SecurityLevel.NONE
        if progress >= 1.0:
            level = SecurityLevel.POOR if weak else SecurityLevel.NORMAL
        return {
            "index": index,
            "progress": progress,
            "error_code": None,
            "security_level": int(level),
            "security_too_low": weak,
        }

    def identify_signature(self, sample: Sample, indexes: Sequence[int]) -> Dict[str, Any]:
        self._count("identify_signature")
        now = time.monotonic()
        if now < self._locked_until:
            return {
                "matched": False,
                "tries_left": 0,
                "seconds_to_reset": int(math.ceil(self._locked_until - now)),
            }
        feature = sample_feature(sample)
        best: Optional[Tuple[int, float]] = None
        for index in indexes:
            signature = self.signatures.get(index)
            if signature is None or not signature.complete:
                continue
            similarity = max(cosine(feature, f) for f in signature.features)
            if best is None or similarity > best[1]:
                best = (index, similarity)
        if best is not None and best[1] >= SIGNATURE_CONSISTENCY_THRESHOLD:
            self.tries_left = SIGNATURE_MAX_TRIES
            return {"matched": True, "index": best[0], "tries_left": self.tries_left}

        self.tries_left -= 1
        seconds_to_reset = 0
        if self.tries_left <= 0:
            self._locked_until = now + SIGNATURE_LOCK_SECONDS
            self.tries_left = SIGNATURE_MAX_TRIES
            seconds_to_reset = SIGNATURE_LOCK_SECONDS
            logger.warning(f"Signature identification locked for {SIGNATURE_LOCK_SECONDS} s.")
        return {
            "matched": False,
            "tries_left": self.tries_left if not seconds_to_reset else 0,
            "seconds_to_reset": seconds_to_reset,
        }

    def delete_label(self, index: int) -> bool:
        self._count("delete_label")
        removed_signature = self.signatures.pop(index, None) is not None
        removed_custom = self.custom_gestures.pop(IndexedLabel(index), None) is not None
        return removed_signature or removed_custom

    def status(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self.started_at, 3),
            "custom_gestures": {str(label): len(v) for label, v in self.custom_gestures.items()},
            "signatures": {str(i): round(s.progress, 2) for i, s in self.signatures.items()},
            "tries_left": self.tries_left,
            "request_counts": dict(self.request_counts),
        }
