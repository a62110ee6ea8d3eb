# smart_gesture/engine_binding.py
"""
Recognition engine binding interface.

The recognition engine is an external collaborator. Every concrete binding
(native shared library, simulated engine) implements ``EngineBinding`` so the
arbitration and training policy is written once against this interface.
"""
from dataclasses import dataclass
from typing import Any, Optional, Sequence, TypeVar

import abc
import asyncio
import logging

from .constants import ENGINE_CALL_TIMEOUT_SECONDS
from .constants import SecurityLevel
from .labels import ClassifierProfile
from .labels import Label
from .labels import Score
from .sample import Sample

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CommonResult:
    """
    Answer of the common (built-in or developer-defined) recognizer.

    ``label`` is None when the engine could not name any gesture.
    ``confidence`` is only meaningful for developer-defined gestures.
    """
    label: Optional[Label]
    score: Score
    confidence: float = 0.0

    @property
    def passed(self) -> bool:
        return self.label is not None and self.score.passed


@dataclass(frozen=True)
class CustomResult:
    """Best match of the custom (user-trained) recognizer."""
    label: Label
    confidence: float = 0.0


@dataclass(frozen=True)
class TrainingResult:
    index: int
    progress: float
    error_code: Optional[int] = None
    security_level: SecurityLevel = SecurityLevel.NONE
    security_too_low: bool = False
    timed_out: bool = False

    @property
    def failed(self) -> bool:
        return bool(self.error_code)


@dataclass(frozen=True)
class SignatureMatch:
    matched: bool
    index: Optional[int] = None
    error_code: Optional[int] = None
    tries_left: int = 0
    seconds_to_reset: int = 0


class EngineBinding(abc.ABC):
    """
    Asynchronous interface to a recognition engine.

    Engines deliver results through completion callbacks on threads of their
    choosing. Implementations resolve a loop future from the callback and
    wait for it through ``_wait_result``, which bounds the wait and falls
    back to a "no match" value instead of blocking forever.
    """

    def __init__(self, call_timeout: float = ENGINE_CALL_TIMEOUT_SECONDS):
        self.call_timeout = call_timeout

    @abc.abstractmethod
    async def connect(self) -> None:
        """Loads or connects to the engine."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Releases the engine."""

    @property
    @abc.abstractmethod
    def is_connected(self) -> bool:
        ...

    @abc.abstractmethod
    async def classify_common(
        self,
        sample: Sample,
        labels: Sequence[Label],
        profile: Optional[ClassifierProfile] = None,
    ) -> Optional[CommonResult]:
        """
        Classifies ``sample`` against built-in or developer-defined gestures.

        Indexed labels are classified with the built-in recognizer and yield a
        ``CommonScore``. Named labels need ``profile`` and yield a
        ``PredefinedScore``.
        """

    @abc.abstractmethod
    async def classify_custom(
        self, sample: Sample, labels: Sequence[Label]
    ) -> Optional[CustomResult]:
        """Classifies ``sample`` with the custom recognizer, None when nothing matched."""

    @abc.abstractmethod
    async def train_signature(self, index: int, sample: Sample) -> TrainingResult:
        ...

    @abc.abstractmethod
    async def identify_signature(
        self, sample: Sample, indexes: Sequence[int]
    ) -> SignatureMatch:
        ...

    @abc.abstractmethod
    async def delete_label(self, index: int) -> bool:
        ...

    @abc.abstractmethod
    async def set_custom_gesture(self, label: Label, samples: Sequence[Sample]) -> None:
        """Replaces the custom recognizer's exemplars for ``label``."""

    @abc.abstractmethod
    async def is_two_gesture_similar(self, first: Sample, second: Sample) -> bool:
        ...

    async def _wait_result(
        self, future: "asyncio.Future[T]", operation: str, fallback: Any
    ) -> Any:
        """
        Waits for a callback-resolved future for at most ``call_timeout`` seconds.

        Args:
            future: Future resolved by the engine's completion callback.
            operation: Name of the engine call, for logging.
            fallback: Value returned when the engine does not answer in time.

        Returns:
            The future's result, or ``fallback`` on timeout.
        """
        try:
            return await asyncio.wait_for(future, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Engine call '{operation}' did not complete within {self.call_timeout:.2f}s; "
                f"treating it as no match."
            )
            return fallback
