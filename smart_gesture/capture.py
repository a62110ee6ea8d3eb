# smart_gesture/capture.py
"""
Background motion capture.

A daemon thread polls the controller's angular rotation at a fixed tick while
the trigger is held, and turns the readings into a ``Sample`` when capture
stops.
"""
from typing import Callable, List, Optional, Tuple

import logging
import threading
import time

from .constants import CAPTURE_JOIN_TIMEOUT_SECONDS
from .constants import SAMPLING_INTERVAL_MS
from .exceptions import ParameterError
from .sample import Sample

logger = logging.getLogger(__name__)

RotationReader = Callable[[], Tuple[float, float, float]]
SampleHandler = Callable[[Sample], None]


class MotionCapture:
    """
    Polls ``read_rotation`` every ``interval_ms`` between ``start()`` and ``stop()``.

    Each reading is stored with its elapsed time in milliseconds since capture
    started. An empty capture is dropped without calling ``on_sample``.
    """

    def __init__(
        self,
        read_rotation: RotationReader,
        on_sample: SampleHandler,
        interval_ms: float = SAMPLING_INTERVAL_MS,
    ):
        if interval_ms <= 0:
            raise ParameterError(f"Sampling interval must be positive, got {interval_ms} ms.")
        self.read_rotation = read_rotation
        self.on_sample = on_sample
        self.interval_ms = interval_ms
        self._readings: List[Tuple[float, float, float, float]] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_capturing(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_capturing:
            logger.debug("Capture already running; start ignored.")
            return
        with self._lock:
            self._readings = []
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._collect, name="motion-capture", daemon=True
        )
        self._thread.start()
        logger.debug("Motion capture started.")

    def _collect(self) -> None:
        started = time.monotonic()
        interval = self.interval_ms / 1000.0
        while not self._stop_event.is_set():
            try:
                x, y, z = self.read_rotation()
            except Exception as e:
                logger.error(f"Rotation reader failed; capture stopped: {e}", exc_info=True)
                break
            elapsed_ms = (time.monotonic() - started) * 1000.0
            with self._lock:
                self._readings.append((elapsed_ms, x, y, z))
            self._stop_event.wait(interval)

    def stop(self) -> Optional[Sample]:
        """
        Stops capturing and reports the sample.

        Returns:
            The captured sample, or None if nothing was captured.
        """
        thread = self._thread
        if thread is None:
            return None
        self._stop_event.set()
        thread.join(timeout=CAPTURE_JOIN_TIMEOUT_SECONDS)
        if thread.is_alive():
            logger.warning("Motion capture thread did not stop in time.")
        self._thread = None

        with self._lock:
            readings, self._readings = self._readings, []
        if not readings:
            logger.debug("Empty capture dropped.")
            return None

        sample = Sample.from_readings(readings)
        logger.debug(f"Motion capture stopped with {len(sample)} entries.")
        self.on_sample(sample)
        return sample
