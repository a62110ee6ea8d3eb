# smart_gesture/config.py
"""
Runtime configuration for a gesture session.
"""
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import fields
from typing import Any, Dict, Optional

import json
import logging
import os

from .constants import CACHE_SIZE
from .constants import COMMON_PASS_THRESHOLD
from .constants import DEFAULT_STATE_FILENAME
from .constants import ENGINE_CALL_TIMEOUT_SECONDS
from .constants import SAMPLING_INTERVAL_MS
from .constants import SMART_TRAIN_MIN_SAMPLES
from .constants import SMART_TRAIN_PASS_THRESHOLD
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class GestureConfig:
    """Tunable knobs of a ``GestureManager`` session."""
    cache_size: int = CACHE_SIZE
    smart_train_first_threshold: float = COMMON_PASS_THRESHOLD
    smart_train_threshold: float = SMART_TRAIN_PASS_THRESHOLD
    smart_train_min_samples: int = SMART_TRAIN_MIN_SAMPLES
    engine_call_timeout: float = ENGINE_CALL_TIMEOUT_SECONDS
    sampling_interval_ms: float = SAMPLING_INTERVAL_MS
    state_file: str = os.path.join(
        os.path.expanduser("~"), ".smart_gesture", DEFAULT_STATE_FILENAME
    )

    def validate(self) -> None:
        if self.cache_size <= 0:
            raise ConfigurationError(f"cache_size must be positive, got {self.cache_size}")
        if self.smart_train_min_samples <= 0:
            raise ConfigurationError(
                f"smart_train_min_samples must be positive, got {self.smart_train_min_samples}"
            )
        if self.engine_call_timeout <= 0:
            raise ConfigurationError(
                f"engine_call_timeout must be positive, got {self.engine_call_timeout}"
            )
        if self.sampling_interval_ms <= 0:
            raise ConfigurationError(
                f"sampling_interval_ms must be positive, got {self.sampling_interval_ms}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GestureConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(sorted(unknown))}")
        config = cls(**{k: v for k, v in data.items() if k in known})
        config.validate()
        return config

    @classmethod
    def load(cls, path: Optional[str]) -> "GestureConfig":
        """Loads a configuration file; a missing path or file yields the defaults."""
        if not path or not os.path.exists(path):
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to read configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {path} must hold a JSON object.")
        logger.info(f"Loaded gesture configuration from {path}.")
        return cls.from_dict(data)

    def save(self, path: str) -> None:
        directory = os.path.dirname(path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Failed to write configuration {path}: {e}") from e
