# smart_gesture/exceptions.py
"""
Custom exceptions for the smart-gesture library.

Recognizer outcomes (training error codes, "no match", evicted samples) are
reported as values. These exceptions cover transport, configuration and
persistence failures.
"""


class SmartGestureError(Exception):
    """Base exception class for all smart-gesture library errors."""
    def __init__(self, message, *args, error_code=None, label=None, **kwargs):
        super().__init__(message, *args)
        self.message = message
        self.error_code = error_code
        self.label = label

    def __str__(self):
        base_message = super().__str__()

        details = []
        if self.label is not None:
            details.append(f"Label: {self.label}")
        if self.error_code is not None:
            details.append(f"Error Code: {self.error_code}")

        if details:
            return f"{base_message} ({', '.join(details)})"
        return base_message


class EngineError(SmartGestureError):
    """The recognition engine could not be loaded or rejected a call."""


class CommunicationError(SmartGestureError):
    """Transport errors talking to an engine, e.g. timeouts or dropped connections."""


class ParameterError(SmartGestureError):
    """Exception for invalid parameters provided to API functions."""


class ConfigurationError(SmartGestureError):
    """Errors related to library or engine configuration."""


class SimulatorError(SmartGestureError):
    """Errors related to the simulated engine or communication with it."""


class PersistenceError(SmartGestureError):
    """The persisted training state could not be read or written."""

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path

    def __str__(self):
        base_msg = super().__str__()
        if self.path is not None:
            return f"{base_msg} - Path: {self.path}"
        return base_msg
