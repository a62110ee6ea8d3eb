# smart_gesture/constants.py
"""
Constants for the smart-gesture library.
Includes recognition thresholds, sample layout, training policy limits,
built-in gesture indexes and engine error codes.
"""
import enum

# Sample layout
ENTRY_WIDTH = 10  # Scalars per sensor entry: time offset, rotation x/y/z, padding

# Motion capture
SAMPLING_INTERVAL_MS = 16.0  # About 60 entries per second
CAPTURE_JOIN_TIMEOUT_SECONDS = 1.0

# Sample cache
CACHE_SIZE = 10

# Recognition thresholds
COMMON_PASS_THRESHOLD = 0.9       # Indexed common gestures, 0..1 scale
PREDEFINED_PASS_THRESHOLD = 1.0   # Developer-defined gestures, confidence scale (strictly greater)
SMART_TRAIN_PASS_THRESHOLD = 0.8

# Engine configuration thresholds
THRESHOLD_TRAINING_MATCH_THRESHOLD = 0.98
THRESHOLD_VERIFY_MATCH_THRESHOLD = 0.98

# Smart train selector
SMART_TRAIN_KEY_EPSILON = 0.0001
SMART_TRAIN_MIN_SAMPLES = 3

# Signature training policy
COMMON_MISTOUCH_THRESHOLD = 30       # Entries; about 0.5 s of motion
TRAIN_DATA_THRESHOLD_RATIO = 0.65    # Minimum size relative to the first training sample
TRAIN_FAIL_RESET_COUNT = 3
TRAIN_PROGRESS_RESET_FLOOR = 0.5
TRAIN_FIRST_PROGRESS = 0.2
SECURITY_TOO_LOW_LIMIT = 2           # Signature is weak once the counter exceeds this

# Engine calls
ENGINE_CALL_TIMEOUT_SECONDS = 2.0

# Persisted training state
DEFAULT_STATE_FILENAME = "train_data.json"

# Engine error codes reported with training results
ERROR_SIGN_WITH_MISTOUCH = -200
ERROR_SIGN_TOO_SHORT = -201
ERROR_SIGN_TOO_LONG = -202
ERROR_SIGN_TOO_FEW_WORD = -204
ERROR_SIGN_TOO_FEW_WRIST = -205
ERROR_SIGN_TOO_DIVERSE = -207
ERROR_SIGN_INCONSISTENT = -209

ERROR_MESSAGES = {
    ERROR_SIGN_WITH_MISTOUCH: "Sign with mistouch",
    ERROR_SIGN_TOO_SHORT: "Sign too short",
    ERROR_SIGN_TOO_LONG: "Sign too long",
    ERROR_SIGN_TOO_FEW_WORD: "Sign too few words",
    ERROR_SIGN_TOO_FEW_WRIST: "Sign too few wrist movement",
    ERROR_SIGN_TOO_DIVERSE: "Too many kinds of signature",
    ERROR_SIGN_INCONSISTENT: "Input too different from the first one",
}


class Mode(enum.IntFlag):
    """Identification/training mode flags for incoming gestures."""
    NONE = 0x00
    IDENTIFY_COMMON = 0x01
    IDENTIFY_PLAYER_SIGNATURE = 0x02
    SMART_TRAIN = 0x04
    DEVELOPER_DEFINED = 0x08
    TRAIN_PLAYER_SIGNATURE = 0x10
    SMART_IDENTIFY = 0x20
    ADD_PLAYER_GESTURE = 0x40
    IDENTIFY_PLAYER_GESTURE = 0x80
    SMART_TRAIN_DEVELOPER_DEFINED = 0x100
    SMART_IDENTIFY_DEVELOPER_DEFINED = 0x200


class CommonGesture(enum.IntEnum):
    """Built-in gestures recognized without per-user training."""
    NONE = -1
    _START = 100
    HEART = 101
    DOWN = 102
    C = 103
    S = 104
    UP = 105
    RIGHT = 106
    LEFT = 107
    _END = 108

    @classmethod
    def is_common(cls, index: int) -> bool:
        return cls._START < index < cls._END


class SecurityLevel(enum.IntEnum):
    """Strength rating of a trained signature, as reported by the engine."""
    NONE = 0
    VERY_POOR = 1
    POOR = 2
    NORMAL = 3
    HIGH = 4
    VERY_HIGH = 5


# Built-ins the statistics bootstrap compares against
STAT_BOOTSTRAP_GESTURES = [CommonGesture.HEART, CommonGesture.DOWN, CommonGesture.C]
