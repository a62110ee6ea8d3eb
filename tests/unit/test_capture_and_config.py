"""Unit tests for `MotionCapture` and `GestureConfig`."""

import json
import threading
import time

import pytest
from unittest.mock import MagicMock

from smart_gesture.capture import MotionCapture
from smart_gesture.config import GestureConfig
from smart_gesture.exceptions import ConfigurationError
from smart_gesture.exceptions import ParameterError


class TestMotionCapture:
    def test_capture_produces_sample(self):
        on_sample = MagicMock()
        capture = MotionCapture(lambda: (0.1, 0.2, 0.3), on_sample, interval_ms=2)
        capture.start()
        assert capture.is_capturing
        time.sleep(0.05)
        sample = capture.stop()

        assert not capture.is_capturing
        assert sample is not None and len(sample) > 0
        assert sample.rotations()[0] == pytest.approx((0.1, 0.2, 0.3))
        times = [entry[0] for entry in sample.entries]
        assert times == sorted(times)
        on_sample.assert_called_once_with(sample)

    def test_empty_capture_is_dropped(self):
        on_sample = MagicMock()
        gate = threading.Event()

        def reader():
            gate.wait(1.0)
            raise RuntimeError("sensor gone")

        capture = MotionCapture(reader, on_sample, interval_ms=2)
        capture.start()
        gate.set()
        assert capture.stop() is None
        on_sample.assert_not_called()

    def test_stop_without_start(self):
        assert MotionCapture(lambda: (0, 0, 0), MagicMock()).stop() is None

    def test_invalid_interval(self):
        with pytest.raises(ParameterError):
            MotionCapture(lambda: (0, 0, 0), MagicMock(), interval_ms=0)


class TestGestureConfig:
    def test_defaults_validate(self):
        GestureConfig().validate()

    @pytest.mark.parametrize("field, value", [
        ("cache_size", 0),
        ("smart_train_min_samples", 0),
        ("engine_call_timeout", 0),
        ("sampling_interval_ms", -1),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigurationError):
            GestureConfig(**{field: value}).validate()

    def test_round_trip_through_file(self, tmp_path):
        path = tmp_path / "cfg" / "gesture.json"
        config = GestureConfig(cache_size=20, smart_train_min_samples=5)
        config.save(str(path))
        assert GestureConfig.load(str(path)) == config

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "gesture.json"
        path.write_text(json.dumps({"cache_size": 4, "colour": "blue"}))
        assert GestureConfig.load(str(path)).cache_size == 4

    def test_missing_file_gives_defaults(self, tmp_path):
        assert GestureConfig.load(str(tmp_path / "none.json")) == GestureConfig()
        assert GestureConfig.load(None) == GestureConfig()

    def test_bad_file_raises(self, tmp_path):
        path = tmp_path / "gesture.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            GestureConfig.load(str(path))
