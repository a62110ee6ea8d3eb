"""
Smart Gesture Library
=====================

Arbitration between a built-in ("common") gesture recognizer and a
player-trained ("custom") recognizer, with smart training, signature
training and per-label statistics. Recognition itself is delegated to an
engine reached through an ``EngineBinding``: the native bridge library or
the TCP gesture simulator.
"""

# Import the constants module and alias it as 'const' for patterned access
from . import constants as const

from .manager import GestureManager
from .manager import GestureTriggerEvent
from .manager import EVENTS
from .arbitration import ArbitrationEngine
from .arbitration import ArbitrationResult
from .capture import MotionCapture
from .config import GestureConfig
from .engine_binding import (
    EngineBinding,
    CommonResult,
    CustomResult,
    TrainingResult,
    SignatureMatch,
)
from .native_binding import NativeEngineBinding
from .simulator_binding import SimulatorEngineBinding
from .labels import (
    IndexedLabel,
    NamedLabel,
    ClassifierProfile,
    CommonScore,
    PredefinedScore,
    INDEXED_SCOPE,
)
from .sample import Sample, SampleCache, new_sample_id
from .smart_train import SmartTrainActionBundle, SmartTrainExemplars, SmartTrainSelector
from .statistics import GestureStatistics, Recognizer
from .training import SignatureTrainer, TrainingOutcome, TrainingProgressState

from .exceptions import (
    SmartGestureError,
    EngineError,
    CommunicationError,
    ParameterError,
    ConfigurationError,
    SimulatorError,
    PersistenceError,
)

from .constants import *

__version__ = "0.1.0"

__all__ = [
    "const",

    # Session
    "GestureManager",
    "GestureTriggerEvent",
    "EVENTS",
    "GestureConfig",
    "MotionCapture",

    # Arbitration and training
    "ArbitrationEngine",
    "ArbitrationResult",
    "GestureStatistics",
    "Recognizer",
    "SmartTrainActionBundle",
    "SmartTrainExemplars",
    "SmartTrainSelector",
    "SignatureTrainer",
    "TrainingOutcome",
    "TrainingProgressState",

    # Engine bindings
    "EngineBinding",
    "NativeEngineBinding",
    "SimulatorEngineBinding",
    "CommonResult",
    "CustomResult",
    "TrainingResult",
    "SignatureMatch",

    # Data types
    "IndexedLabel",
    "NamedLabel",
    "ClassifierProfile",
    "CommonScore",
    "PredefinedScore",
    "INDEXED_SCOPE",
    "Sample",
    "SampleCache",
    "new_sample_id",

    # Exceptions
    "SmartGestureError",
    "EngineError",
    "CommunicationError",
    "ParameterError",
    "ConfigurationError",
    "SimulatorError",
    "PersistenceError",
]

# `from smart_gesture import *` also brings in every constant.
_constants_to_export = [
    item for item in dir(const) if not item.startswith("_") and item.isupper()
]
__all__.extend(_constants_to_export)
del _constants_to_export
__all__.extend(["Mode", "CommonGesture", "SecurityLevel"])
