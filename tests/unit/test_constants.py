"""Unit tests for the constants module and the package exports."""

import smart_gesture
from smart_gesture import const
from smart_gesture.constants import CommonGesture


def test_common_gesture_range():
    assert CommonGesture.is_common(CommonGesture.HEART)
    assert CommonGesture.is_common(CommonGesture.LEFT)
    assert not CommonGesture.is_common(CommonGesture._END)
    assert not CommonGesture.is_common(1)


def test_every_exported_name_resolves():
    for name in smart_gesture.__all__:
        assert hasattr(smart_gesture, name), name


def test_error_messages_cover_error_codes():
    codes = [getattr(const, name) for name in dir(const) if name.startswith("ERROR_SIGN_")]
    assert sorted(codes) == sorted(const.ERROR_MESSAGES)
