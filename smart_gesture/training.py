# smart_gesture/training.py
"""
Signature training policy and the persisted training progress state.
"""
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from typing import Any, Dict, Optional

import json
import logging
import math
import os

from .constants import COMMON_MISTOUCH_THRESHOLD
from .constants import ERROR_MESSAGES
from .constants import ERROR_SIGN_TOO_FEW_WORD
from .constants import SECURITY_TOO_LOW_LIMIT
from .constants import SecurityLevel
from .constants import TRAIN_DATA_THRESHOLD_RATIO
from .constants import TRAIN_FAIL_RESET_COUNT
from .constants import TRAIN_FIRST_PROGRESS
from .constants import TRAIN_PROGRESS_RESET_FLOOR
from .engine_binding import EngineBinding
from .exceptions import PersistenceError
from .sample import Sample

logger = logging.getLogger(__name__)


@dataclass
class TrainingProgressState:
    """
    Cumulative training bookkeeping, persisted between sessions.

    ``use_user_gesture`` and ``use_predefined_user_gesture`` flag the labels
    for which the custom recognizer has been trained and may be consulted.
    """
    train_progress: Dict[int, float] = field(default_factory=dict)
    use_user_gesture: Dict[int, bool] = field(default_factory=dict)
    use_predefined_user_gesture: Dict[str, bool] = field(default_factory=dict)
    user_gesture_count: Dict[int, int] = field(default_factory=dict)
    common_gesture_count: Dict[int, int] = field(default_factory=dict)
    failed_gesture_count: Dict[int, int] = field(default_factory=dict)

    @staticmethod
    def _inc(counter: Dict[int, int], target: int) -> int:
        counter[target] = counter.get(target, 0) + 1
        return counter[target]

    def inc_user_gesture_count(self, target: int) -> int:
        return self._inc(self.user_gesture_count, target)

    def inc_common_gesture_count(self, target: int) -> int:
        return self._inc(self.common_gesture_count, target)

    def inc_failed_gesture_count(self, target: int) -> int:
        return self._inc(self.failed_gesture_count, target)

    def total(self) -> int:
        return (
            sum(self.user_gesture_count.values())
            + sum(self.common_gesture_count.values())
            + sum(self.failed_gesture_count.values())
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingProgressState":
        def int_keys(name, cast):
            return {int(k): cast(v) for k, v in data.get(name, {}).items()}

        return cls(
            train_progress=int_keys("train_progress", float),
            use_user_gesture=int_keys("use_user_gesture", bool),
            use_predefined_user_gesture={
                str(k): bool(v) for k, v in data.get("use_predefined_user_gesture", {}).items()
            },
            user_gesture_count=int_keys("user_gesture_count", int),
            common_gesture_count=int_keys("common_gesture_count", int),
            failed_gesture_count=int_keys("failed_gesture_count", int),
        )

    @classmethod
    def load(cls, path: str) -> "TrainingProgressState":
        """
        Loads the state from ``path``.

        A missing file yields a fresh state.

        Raises:
            PersistenceError: If the file cannot be read or does not hold a
                valid training state.
        """
        if not os.path.exists(path):
            logger.info(f"No training state at {path}; starting fresh.")
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            state = cls.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise PersistenceError(f"Failed to load training state: {e}", path=path) from e
        logger.info(
            f"Training state loaded from {path}: user={sum(state.user_gesture_count.values())}, "
            f"common={sum(state.common_gesture_count.values())}, "
            f"failed={sum(state.failed_gesture_count.values())}, total={state.total()}"
        )
        return state

    def save(self, path: str) -> None:
        directory = os.path.dirname(path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to save training state: {e}", path=path) from e
        logger.debug(f"Training state saved to {path}.")


@dataclass(frozen=True)
class TrainingOutcome:
    """
    What to report for one training sample.

    ``ignored`` outcomes (mistouches) are not reported at all. ``reset`` means
    the partially trained label was deleted and training restarts from zero.
    """
    sample_id: int
    index: int
    progress: float
    error_code: Optional[int] = None
    security_level: SecurityLevel = SecurityLevel.NONE
    reset: bool = False
    ignored: bool = False

    @property
    def error_message(self) -> Optional[str]:
        if not self.error_code:
            return None
        return ERROR_MESSAGES.get(self.error_code, f"Engine error {self.error_code}")


class SignatureTrainer:
    """
    Incremental signature training with automatic reset.

    Consecutive training failures are counted. Once ``TRAIN_FAIL_RESET_COUNT``
    is reached, or a failure happens below ``TRAIN_PROGRESS_RESET_FLOOR``
    progress, the label is deleted from the engine and the counter restarts.
    Samples much shorter than the first accepted one are reported as
    ``ERROR_SIGN_TOO_FEW_WORD``; failures on very short samples are treated
    as mistouches and ignored.
    """

    def __init__(self, binding: EngineBinding):
        self.binding = binding
        self.fail_count = 0
        self.security_too_low_count = 0
        self.first_train_data_size = 0

    @property
    def is_low_secure_signature(self) -> bool:
        return self.security_too_low_count > SECURITY_TOO_LOW_LIMIT

    def reset_failures(self) -> None:
        self.fail_count = 0

    async def train(self, sample_id: int, index: int, sample: Sample) -> TrainingOutcome:
        result = await self.binding.train_signature(index, sample)
        progress = result.progress
        size = len(sample)

        if result.timed_out:
            logger.warning(f"Training sample {sample_id} for signature {index} got no answer; ignored.")
            return TrainingOutcome(
                sample_id=sample_id, index=index, progress=progress, ignored=True
            )

        if result.security_too_low:
            self.security_too_low_count += 1
            logger.warning(
                f"Signature security too low for index {index} "
                f"({self.security_too_low_count} times)."
            )

        if math.isclose(progress, TRAIN_FIRST_PROGRESS, abs_tol=1e-6):
            if self.first_train_data_size == 0:
                self.first_train_data_size = size
                logger.debug(f"First training sample size for index {index}: {size}")
        elif progress >= 1.0:
            self.first_train_data_size = 0
            if not result.security_too_low:
                self.security_too_low_count = 0

        if not result.failed:
            logger.info(f"Signature {index} trained, progress {progress:.2f}.")
            self.fail_count = 0
            # Weak results keep accumulating until a strong one is seen.
            if not result.security_too_low:
                self.security_too_low_count = 0
            return TrainingOutcome(
                sample_id=sample_id, index=index, progress=progress,
                security_level=result.security_level,
            )

        error_code = result.error_code
        logger.info(
            f"Training signature {index} failed with {error_code} "
            f"(progress {progress:.2f}, failures {self.fail_count}, size {size})."
        )

        if size <= COMMON_MISTOUCH_THRESHOLD:
            logger.debug(f"Training sample of {size} entries treated as mistouch.")
            return TrainingOutcome(
                sample_id=sample_id, index=index, progress=progress,
                error_code=error_code, ignored=True,
            )

        if self.first_train_data_size == 0 or progress < TRAIN_FIRST_PROGRESS:
            return TrainingOutcome(
                sample_id=sample_id, index=index, progress=0.0, error_code=error_code
            )

        reported_error = error_code
        if size >= self.first_train_data_size * TRAIN_DATA_THRESHOLD_RATIO:
            if progress >= TRAIN_PROGRESS_RESET_FLOOR:
                self.fail_count += 1
        else:
            self.fail_count += 1
            reported_error = ERROR_SIGN_TOO_FEW_WORD

        if self.fail_count >= TRAIN_FAIL_RESET_COUNT or progress < TRAIN_PROGRESS_RESET_FLOOR:
            logger.warning(
                f"Resetting signature {index} after {self.fail_count} consecutive failures "
                f"at progress {progress:.2f}."
            )
            await self.binding.delete_label(index)
            self.fail_count = 0
            return TrainingOutcome(
                sample_id=sample_id, index=index, progress=0.0,
                error_code=error_code, reset=True,
            )

        return TrainingOutcome(
            sample_id=sample_id, index=index, progress=progress, error_code=reported_error
        )
