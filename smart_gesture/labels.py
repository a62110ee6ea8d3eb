# smart_gesture/labels.py
"""
Target labels, classifier profiles and typed recognizer scores.

Indexed labels (built-in common gestures and user signature slots) and named
labels (developer-defined gestures of a classifier profile) live in separate
namespaces and never compare equal to each other.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .constants import COMMON_PASS_THRESHOLD
from .constants import CommonGesture
from .constants import PREDEFINED_PASS_THRESHOLD


@dataclass(frozen=True)
class IndexedLabel:
    """A gesture identified by an integer slot."""
    index: int

    @property
    def is_common(self) -> bool:
        return CommonGesture.is_common(self.index)

    def __str__(self):
        if self.is_common:
            return CommonGesture(self.index).name
        return f"#{self.index}"


@dataclass(frozen=True)
class NamedLabel:
    """A developer-defined gesture identified by name within a classifier profile."""
    name: str

    def __str__(self):
        return self.name


Label = Union[IndexedLabel, NamedLabel]


@dataclass(frozen=True)
class ClassifierProfile:
    """
    Developer-defined classifier and sub-classifier selection.

    Statistics for named gestures are kept per profile, keyed by
    ``full_path``.
    """
    classifier: str = ""
    sub_classifier: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.classifier)

    @property
    def full_path(self) -> str:
        return f"{self.classifier}_{self.sub_classifier}"


# Scope key under which statistics for indexed labels are kept.
# Named labels use ClassifierProfile.full_path.
Scope = Optional[str]
INDEXED_SCOPE: Scope = None


@dataclass(frozen=True)
class CommonScore:
    """Score on the 0..1 scale produced for indexed common gestures."""
    value: float

    @property
    def passed(self) -> bool:
        return self.value >= COMMON_PASS_THRESHOLD

    def __float__(self):
        return float(self.value)


@dataclass(frozen=True)
class PredefinedScore:
    """Score on the developer-defined scale; passing scores are above 1.0."""
    value: float

    @property
    def passed(self) -> bool:
        return self.value > PREDEFINED_PASS_THRESHOLD

    def __float__(self):
        return float(self.value)


Score = Union[CommonScore, PredefinedScore]
