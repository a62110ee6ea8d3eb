# smart_gesture/native_binding.py
"""
Engine binding over the vendor's native bridge library, loaded with ctypes.

The bridge exposes a C interface: an engine handle created from a database
path, asynchronous calls that report through C callbacks, and a few
synchronous queries. Callbacks may fire on an engine thread, so results are
handed to the event loop with ``call_soon_threadsafe``.
"""
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import asyncio
import ctypes
import ctypes.util
import logging
import os

from .constants import ENGINE_CALL_TIMEOUT_SECONDS
from .constants import ENTRY_WIDTH
from .constants import SecurityLevel
from .constants import THRESHOLD_TRAINING_MATCH_THRESHOLD
from .constants import THRESHOLD_VERIFY_MATCH_THRESHOLD
from .engine_binding import CommonResult
from .engine_binding import CustomResult
from .engine_binding import EngineBinding
from .engine_binding import SignatureMatch
from .engine_binding import TrainingResult
from .exceptions import ConfigurationError
from .exceptions import EngineError
from .exceptions import ParameterError
from .labels import ClassifierProfile
from .labels import CommonScore
from .labels import IndexedLabel
from .labels import Label
from .labels import NamedLabel
from .labels import PredefinedScore
from .sample import Sample

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_NAME = "AirsigBridgeDll"
RESULT_BUFFER_SIZE = 1024
# Seconds a timed-out call keeps its callback alive for a late answer.
LATE_CALLBACK_GRACE_SECONDS = 60.0

_c_float_p = ctypes.POINTER(ctypes.c_float)
_c_int_p = ctypes.POINTER(ctypes.c_int)

IDENTIFY_SIG_RESULT = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_void_p, ctypes.c_int, ctypes.c_int
)
ADD_SIG_RESULT = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_void_p, ctypes.c_float, ctypes.c_void_p
)
VERIFY_GES_RESULT = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_float, ctypes.c_float
)
VERIFY_PRED_GES_RESULT = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_float, ctypes.c_float
)

# name -> (restype, argtypes)
_PROTOTYPES = {
    "GetControllerHelperObjectWithConfig": (
        ctypes.c_void_p,
        [ctypes.c_char_p, ctypes.c_int, ctypes.c_float, ctypes.c_float],
    ),
    "Shutdown": (None, [ctypes.c_void_p]),
    "GetActionIndex": (ctypes.c_int, [ctypes.c_void_p]),
    "GetErrorType": (ctypes.c_int, [ctypes.c_void_p]),
    "GetASGesture": (ctypes.c_int, [ctypes.c_void_p]),
    "GetResultGesture": (None, [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int]),
    "IdentifySignature": (
        None,
        [ctypes.c_void_p, _c_float_p, ctypes.c_int, ctypes.c_int,
         _c_int_p, ctypes.c_int, IDENTIFY_SIG_RESULT],
    ),
    "AddSignature": (
        None,
        [ctypes.c_void_p, ctypes.c_int, _c_float_p, ctypes.c_int, ctypes.c_int,
         ADD_SIG_RESULT],
    ),
    "DeleteAction": (ctypes.c_bool, [ctypes.c_void_p, ctypes.c_int]),
    "VerifyGesture": (
        None,
        [ctypes.c_void_p, _c_int_p, ctypes.c_int, _c_float_p, ctypes.c_int,
         ctypes.c_int, VERIFY_GES_RESULT],
    ),
    "VerifyPredefinedGesture": (
        None,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int, ctypes.c_char_p,
         ctypes.c_int, ctypes.c_char_p, _c_int_p, ctypes.c_int, _c_float_p,
         ctypes.c_int, ctypes.c_int, VERIFY_PRED_GES_RESULT],
    ),
    "IsTwoGestureSimilar": (
        ctypes.c_bool,
        [ctypes.c_void_p, _c_float_p, ctypes.c_int, ctypes.c_int, _c_float_p,
         ctypes.c_int, ctypes.c_int],
    ),
    "SetCustomGesture": (
        None,
        [ctypes.c_void_p, ctypes.c_int, _c_float_p, ctypes.c_int, _c_int_p,
         _c_int_p],
    ),
    "SetCustomGestureStr": (
        None,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int, _c_float_p,
         ctypes.c_int, _c_int_p, _c_int_p],
    ),
    "IdentifyCustomGesture": (
        ctypes.c_void_p,
        [ctypes.c_void_p, _c_int_p, ctypes.c_int, _c_float_p, ctypes.c_int,
         ctypes.c_int],
    ),
    "IdentifyCustomGestureStr": (
        ctypes.c_void_p,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int, _c_int_p, _c_float_p,
         ctypes.c_int, ctypes.c_int],
    ),
    "GetASCustomGestureRecognizeGestureInt": (ctypes.c_int, [ctypes.c_void_p]),
    "GetASCustomGestureRecognizeGestureConfidence": (ctypes.c_float, [ctypes.c_void_p]),
    "GetASCustomGestureRecognizeGestureStr": (
        None, [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int]
    ),
    "DeleteASCustomGestureRecognizeGesture": (None, [ctypes.c_void_p]),
}


def _float_array(values: Sequence[float]):
    return (ctypes.c_float * len(values))(*values)


def _int_array(values: Sequence[int]):
    return (ctypes.c_int * len(values))(*values)


def _pack_names(names: Sequence[str]) -> Tuple[bytes, List[int]]:
    encoded = [name.encode("ascii") for name in names]
    return b"".join(encoded), [len(e) for e in encoded]


def _pack_samples(samples: Sequence[Sample]):
    flat: List[float] = []
    counts: List[int] = []
    for sample in samples:
        flat.extend(sample.to_flat())
        counts.append(len(sample))
    return _float_array(flat), _int_array(counts), _int_array([ENTRY_WIDTH] * len(samples))


def _decode_buffer(buffer) -> str:
    return buffer.value.decode("ascii", errors="ignore").rstrip("\x00").strip()


class NativeEngineBinding(EngineBinding):
    """
    Binding to the engine's native bridge library.

    Callback objects are kept referenced until the engine has answered,
    otherwise ctypes would release them while the engine still holds them.
    Callbacks of timed-out calls are dropped on their late answer, or after
    ``LATE_CALLBACK_GRACE_SECONDS``.
    """

    def __init__(
        self,
        database_path: str,
        library_path: Optional[str] = None,
        training_match_threshold: float = THRESHOLD_TRAINING_MATCH_THRESHOLD,
        verify_match_threshold: float = THRESHOLD_VERIFY_MATCH_THRESHOLD,
        call_timeout: float = ENGINE_CALL_TIMEOUT_SECONDS,
    ):
        """
        Initializes the native binding.

        Args:
            database_path: Directory holding the engine's ``airsig_*.db`` files.
            library_path: Path of the bridge shared library. When omitted, the
                library is looked up by name on the system search path.
            training_match_threshold: Engine-side training match threshold.
            verify_match_threshold: Engine-side verification match threshold.
            call_timeout: Bounded wait for callback-delivered results, in seconds.
        """
        super().__init__(call_timeout=call_timeout)
        self.database_path = database_path
        self.library_path = library_path
        self.training_match_threshold = training_match_threshold
        self.verify_match_threshold = verify_match_threshold
        self._lib: Optional[ctypes.CDLL] = None
        self._handle: Optional[int] = None
        self._pending_callbacks: Dict[asyncio.Future, object] = {}

    def _load_library(self) -> ctypes.CDLL:
        path = self.library_path or ctypes.util.find_library(DEFAULT_LIBRARY_NAME)
        if not path:
            raise ConfigurationError(
                f"Native engine library '{DEFAULT_LIBRARY_NAME}' not found. "
                f"Pass library_path explicitly."
            )
        try:
            lib = ctypes.CDLL(path)
        except OSError as e:
            raise EngineError(f"Failed to load native engine library '{path}': {e}") from e
        for name, (restype, argtypes) in _PROTOTYPES.items():
            try:
                function = getattr(lib, name)
            except AttributeError as e:
                raise EngineError(
                    f"Native engine library '{path}' does not export '{name}'."
                ) from e
            function.restype = restype
            function.argtypes = argtypes
        return lib

    async def connect(self) -> None:
        if self.is_connected:
            logger.info("Native engine already loaded.")
            return
        if not os.path.isdir(self.database_path):
            raise ConfigurationError(
                f"Engine database folder does not exist: {self.database_path}"
            )
        self._lib = self._load_library()
        path_bytes = self.database_path.encode("ascii")
        handle = self._lib.GetControllerHelperObjectWithConfig(
            path_bytes,
            len(path_bytes),
            self.training_match_threshold,
            self.verify_match_threshold,
        )
        if not handle:
            self._lib = None
            raise EngineError(
                f"Native engine refused to initialize with database {self.database_path}."
            )
        self._handle = handle
        logger.info(f"Native engine initialized from {self.database_path}.")

    async def disconnect(self) -> None:
        if self._lib is not None and self._handle:
            self._lib.Shutdown(self._handle)
            logger.info("Native engine shut down.")
        self._handle = None
        self._lib = None
        self._pending_callbacks.clear()

    @property
    def is_connected(self) -> bool:
        return self._lib is not None and bool(self._handle)

    def _require_engine(self) -> ctypes.CDLL:
        if not self.is_connected:
            raise EngineError("Native engine is not loaded. Call connect() first.")
        return self._lib

    def _resolver(self, future: asyncio.Future) -> Callable[[object], None]:
        loop = future.get_loop()

        def resolve(value):
            def _set():
                if future.done():
                    logger.debug("Late engine answer for a timed-out call dropped.")
                    self._release(future)
                else:
                    future.set_result(value)
            loop.call_soon_threadsafe(_set)
        return resolve

    def _hold(self, callback, future: asyncio.Future):
        self._pending_callbacks[future] = callback
        loop = future.get_loop()

        def on_done(f: asyncio.Future):
            if f.cancelled():
                # The engine may still answer a timed-out call.
                loop.call_later(LATE_CALLBACK_GRACE_SECONDS, self._release, f)
            else:
                self._release(f)

        future.add_done_callback(on_done)
        return callback

    def _release(self, future: asyncio.Future) -> None:
        self._pending_callbacks.pop(future, None)

    async def _run_sync(self, operation: str, fallback, function, *args):
        """Runs a blocking bridge call in the default executor with the same bounded wait."""
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, function, *args)
        return await self._wait_result(future, operation, fallback)

    async def classify_common(
        self,
        sample: Sample,
        labels: Sequence[Label],
        profile: Optional[ClassifierProfile] = None,
    ) -> Optional[CommonResult]:
        lib = self._require_engine()
        if not labels:
            return None
        data = _float_array(sample.to_flat())
        future = asyncio.get_running_loop().create_future()
        resolve = self._resolver(future)

        if all(isinstance(label, IndexedLabel) for label in labels):
            def on_verify(gesture, score, conf):
                index = lib.GetASGesture(gesture) if gesture else None
                label = IndexedLabel(index) if index is not None else None
                resolve(CommonResult(label=label, score=CommonScore(score), confidence=conf))

            callback = self._hold(VERIFY_GES_RESULT(on_verify), future)
            indexes = [label.index for label in labels]
            lib.VerifyGesture(
                self._handle, _int_array(indexes), len(indexes),
                data, len(sample), ENTRY_WIDTH, callback,
            )
            return await self._wait_result(future, "VerifyGesture", None)

        if not all(isinstance(label, NamedLabel) for label in labels):
            raise ParameterError("Cannot classify indexed and named labels in the same call.")
        if profile is None or not profile.is_valid:
            raise ParameterError("Developer-defined gestures need a classifier profile.")

        def on_verify_predefined(gesture_obj, score, conf):
            buffer = ctypes.create_string_buffer(RESULT_BUFFER_SIZE)
            lib.GetResultGesture(gesture_obj, buffer, RESULT_BUFFER_SIZE)
            name = _decode_buffer(buffer)
            resolve(CommonResult(
                label=NamedLabel(name) if name else None,
                score=PredefinedScore(score),
                confidence=conf,
            ))

        callback = self._hold(VERIFY_PRED_GES_RESULT(on_verify_predefined), future)
        classifier = profile.classifier.encode("ascii")
        sub_classifier = profile.sub_classifier.encode("ascii")
        names, lengths = _pack_names([label.name for label in labels])
        lib.VerifyPredefinedGesture(
            self._handle,
            classifier, len(classifier),
            sub_classifier, len(sub_classifier),
            names, _int_array(lengths), len(lengths),
            data, len(sample), ENTRY_WIDTH,
            callback,
        )
        return await self._wait_result(future, "VerifyPredefinedGesture", None)

    async def classify_custom(
        self, sample: Sample, labels: Sequence[Label]
    ) -> Optional[CustomResult]:
        lib = self._require_engine()
        if not labels:
            return None
        data = _float_array(sample.to_flat())

        if all(isinstance(label, IndexedLabel) for label in labels):
            indexes = [label.index for label in labels]

            def identify():
                result = lib.IdentifyCustomGesture(
                    self._handle, _int_array(indexes), len(indexes),
                    data, len(sample), ENTRY_WIDTH,
                )
                if not result:
                    return None
                try:
                    match = lib.GetASCustomGestureRecognizeGestureInt(result)
                    confidence = lib.GetASCustomGestureRecognizeGestureConfidence(result)
                finally:
                    lib.DeleteASCustomGestureRecognizeGesture(result)
                if match not in indexes:
                    return None
                return CustomResult(label=IndexedLabel(match), confidence=confidence)
        else:
            names, lengths = _pack_names([label.name for label in labels])

            def identify():
                result = lib.IdentifyCustomGestureStr(
                    self._handle, names, len(lengths), _int_array(lengths),
                    data, len(sample), ENTRY_WIDTH,
                )
                if not result:
                    return None
                buffer = ctypes.create_string_buffer(RESULT_BUFFER_SIZE)
                try:
                    lib.GetASCustomGestureRecognizeGestureStr(result, buffer, RESULT_BUFFER_SIZE)
                    confidence = lib.GetASCustomGestureRecognizeGestureConfidence(result)
                finally:
                    lib.DeleteASCustomGestureRecognizeGesture(result)
                name = _decode_buffer(buffer)
                if not name:
                    return None
                return CustomResult(label=NamedLabel(name), confidence=confidence)

        return await self._run_sync("IdentifyCustomGesture", None, identify)

    async def train_signature(self, index: int, sample: Sample) -> TrainingResult:
        lib = self._require_engine()
        future = asyncio.get_running_loop().create_future()
        resolve = self._resolver(future)

        def on_added(action, error, progress, security_level):
            error_code = lib.GetErrorType(error) if error else None
            resolve(TrainingResult(
                index=lib.GetActionIndex(action) if action else index,
                progress=progress,
                error_code=error_code or None,
                security_level=SecurityLevel.NONE,
            ))

        callback = self._hold(ADD_SIG_RESULT(on_added), future)
        lib.AddSignature(
            self._handle, index, _float_array(sample.to_flat()),
            len(sample), ENTRY_WIDTH, callback,
        )
        return await self._wait_result(
            future, "AddSignature", TrainingResult(index=index, progress=0.0, timed_out=True)
        )

    async def identify_signature(
        self, sample: Sample, indexes: Sequence[int]
    ) -> SignatureMatch:
        lib = self._require_engine()
        future = asyncio.get_running_loop().create_future()
        resolve = self._resolver(future)

        def on_identified(match, error, tries_left, seconds_to_reset):
            error_code = lib.GetErrorType(error) if error else 0
            if error_code:
                resolve(SignatureMatch(
                    matched=False, error_code=error_code,
                    tries_left=tries_left, seconds_to_reset=seconds_to_reset,
                ))
            elif match:
                resolve(SignatureMatch(
                    matched=True, index=lib.GetActionIndex(match),
                    tries_left=tries_left, seconds_to_reset=seconds_to_reset,
                ))
            else:
                resolve(SignatureMatch(matched=False))

        callback = self._hold(IDENTIFY_SIG_RESULT(on_identified), future)
        lib.IdentifySignature(
            self._handle, _float_array(sample.to_flat()), len(sample), ENTRY_WIDTH,
            _int_array(indexes), len(indexes), callback,
        )
        return await self._wait_result(
            future, "IdentifySignature", SignatureMatch(matched=False)
        )

    async def delete_label(self, index: int) -> bool:
        lib = self._require_engine()
        return bool(await self._run_sync(
            "DeleteAction", False, lib.DeleteAction, self._handle, index
        ))

    async def set_custom_gesture(self, label: Label, samples: Sequence[Sample]) -> None:
        lib = self._require_engine()
        data, counts, widths = _pack_samples(samples)
        if isinstance(label, IndexedLabel):
            await self._run_sync(
                "SetCustomGesture", None,
                lib.SetCustomGesture, self._handle, label.index, data,
                len(samples), counts, widths,
            )
        else:
            name = label.name.encode("ascii")
            await self._run_sync(
                "SetCustomGestureStr", None,
                lib.SetCustomGestureStr, self._handle, name, len(name), data,
                len(samples), counts, widths,
            )
        logger.info(f"Set {len(samples)} custom exemplars for {label}.")

    async def is_two_gesture_similar(self, first: Sample, second: Sample) -> bool:
        lib = self._require_engine()
        return bool(await self._run_sync(
            "IsTwoGestureSimilar", False,
            lib.IsTwoGestureSimilar, self._handle,
            _float_array(first.to_flat()), len(first), ENTRY_WIDTH,
            _float_array(second.to_flat()), len(second), ENTRY_WIDTH,
        ))
