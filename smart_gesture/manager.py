# smart_gesture/manager.py
"""
GestureManager: the session object applications talk to.

A manager owns the sample cache, the statistics store, the smart-train
selector, the signature trainer and the persisted training state, all bound
to one ``EngineBinding``. Captured samples are dispatched according to the
current ``Mode`` flags and results are delivered to registered observers.
"""
from dataclasses import dataclass
from dataclasses import field
from typing import Any, Callable, Dict, List, Optional, Sequence

import asyncio
import concurrent.futures
import logging

from .arbitration import ArbitrationEngine
from .arbitration import ArbitrationResult
from .capture import MotionCapture
from .capture import RotationReader
from .config import GestureConfig
from .constants import CommonGesture
from .constants import Mode
from .engine_binding import EngineBinding
from .exceptions import ParameterError
from .exceptions import PersistenceError
from .labels import ClassifierProfile
from .labels import INDEXED_SCOPE
from .labels import IndexedLabel
from .labels import Label
from .labels import NamedLabel
from .sample import Sample
from .sample import SampleCache
from .sample import new_sample_id
from .smart_train import SmartTrainActionBundle
from .smart_train import SmartTrainExemplars
from .smart_train import SmartTrainSelector
from .statistics import GestureStatistics
from .training import SignatureTrainer
from .training import TrainingProgressState

logger = logging.getLogger(__name__)

EVENT_GESTURE_TRIGGERED = "gesture_triggered"
EVENT_COMMON_MATCH = "common_match"
EVENT_DEVELOPER_DEFINED_MATCH = "developer_defined_match"
EVENT_SMART_IDENTIFY_MATCH = "smart_identify_match"
EVENT_SMART_IDENTIFY_DEVELOPER_DEFINED_MATCH = "smart_identify_developer_defined_match"
EVENT_PLAYER_SIGNATURE_TRAINED = "player_signature_trained"
EVENT_PLAYER_SIGNATURE_MATCH = "player_signature_match"
EVENT_PLAYER_GESTURE_ADD = "player_gesture_add"
EVENT_PLAYER_GESTURE_MATCH = "player_gesture_match"

EVENTS = (
    EVENT_GESTURE_TRIGGERED,
    EVENT_COMMON_MATCH,
    EVENT_DEVELOPER_DEFINED_MATCH,
    EVENT_SMART_IDENTIFY_MATCH,
    EVENT_SMART_IDENTIFY_DEVELOPER_DEFINED_MATCH,
    EVENT_PLAYER_SIGNATURE_TRAINED,
    EVENT_PLAYER_SIGNATURE_MATCH,
    EVENT_PLAYER_GESTURE_ADD,
    EVENT_PLAYER_GESTURE_MATCH,
)


@dataclass
class GestureTriggerEvent:
    """
    Passed to ``gesture_triggered`` observers before a sample is processed.

    Observers may set ``proceed`` to False to skip processing, or change
    ``mode`` and ``targets`` for this sample only.
    """
    sample_id: int
    mode: Mode
    targets: List[int] = field(default_factory=list)
    proceed: bool = True


class GestureManager:
    """
    Gesture recognition session bound to one recognition engine.

    Usage:
        async with GestureManager(SimulatorEngineBinding()) as manager:
            manager.add_observer("smart_identify_match", on_match)
            await manager.set_mode(Mode.SMART_IDENTIFY)
            manager.set_target([CommonGesture.HEART, CommonGesture.C])
            await manager.on_sample_recorded(sample)
    """

    def __init__(
        self,
        binding: EngineBinding,
        config: Optional[GestureConfig] = None,
    ):
        self.binding = binding
        self.config = config or GestureConfig()
        self.config.validate()
        self.binding.call_timeout = self.config.engine_call_timeout

        self.cache = SampleCache(self.config.cache_size)
        self.statistics = GestureStatistics()
        self.selector = SmartTrainSelector(
            first_threshold=self.config.smart_train_first_threshold,
            threshold=self.config.smart_train_threshold,
            min_samples=self.config.smart_train_min_samples,
        )
        self.exemplars = SmartTrainExemplars()
        self.named_exemplars = SmartTrainExemplars()
        self.progress = TrainingProgressState()
        self.trainer = SignatureTrainer(binding)
        self.arbitration = ArbitrationEngine(binding, self.statistics, self.progress)

        self.mode = Mode.NONE
        self.targets: List[int] = []
        self.developer_defined_targets: List[str] = []
        self.profile = ClassifierProfile()

        self.custom_gesture_cache: Dict[int, List[Sample]] = {}
        self.training_candidates: List[Sample] = []
        self._observers: Dict[str, List[Callable[..., Any]]] = {name: [] for name in EVENTS}
        # One recognition or training session at a time.
        self._session_lock = asyncio.Lock()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def start(self) -> None:
        connected_here = not self.binding.is_connected
        if connected_here:
            await self.binding.connect()
        try:
            self.load()
        except PersistenceError:
            if connected_here:
                await self.binding.disconnect()
            raise
        self.cache.clear()
        logger.info("Gesture manager started.")

    async def close(self) -> None:
        if self.binding.is_connected:
            await self.binding.disconnect()
        logger.info("Gesture manager closed.")

    # Observers

    def add_observer(self, event: str, callback: Callable[..., Any]) -> None:
        if event not in self._observers:
            raise ParameterError(f"Unknown event '{event}'. Known events: {', '.join(EVENTS)}")
        if callback not in self._observers[event]:
            self._observers[event].append(callback)

    def remove_observer(self, event: str, callback: Callable[..., Any]) -> None:
        if event in self._observers and callback in self._observers[event]:
            self._observers[event].remove(callback)

    async def _fire(self, event: str, *args) -> None:
        for callback in list(self._observers[event]):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(*args)
                else:
                    callback(*args)
            except Exception as e:
                logger.error(f"Observer for '{event}' failed: {e}", exc_info=True)

    # Configuration

    @property
    def is_low_secure_signature(self) -> bool:
        return self.trainer.is_low_secure_signature

    async def set_mode(self, mode: Mode) -> None:
        """
        Sets the mode flags for incoming gestures.

        Leaving a smart-train mode completes the smart training of the label
        that was being collected.
        """
        mode = Mode(mode)
        if mode == self.mode:
            logger.debug(f"Mode {mode!r} unchanged.")
            return
        previous = self.mode
        logger.info(f"Mode changed from {previous!r} to {mode!r}.")
        self.mode = mode

        if (previous & Mode.SMART_TRAIN_DEVELOPER_DEFINED) and not (mode & Mode.SMART_TRAIN_DEVELOPER_DEFINED):
            if self.developer_defined_targets:
                await self.smart_train(NamedLabel(self.developer_defined_targets[0]))
        if (previous & Mode.SMART_TRAIN) and not (mode & Mode.SMART_TRAIN):
            if self.targets:
                await self.smart_train(IndexedLabel(self.targets[0]))

        self._reset_training_session()

    def set_target(self, indexes: Sequence[int]) -> None:
        """Sets the gesture indexes the next gestures are matched against."""
        indexes = [int(i) for i in indexes]
        if indexes == self.targets:
            logger.debug("Targets unchanged.")
            return
        self.targets = indexes
        logger.info(f"Targets: {', '.join(str(i) for i in self.targets)}")
        self._reset_training_session()

    async def set_developer_defined_target(self, names: Optional[Sequence[str]]) -> None:
        previous = self.developer_defined_targets[0] if self.developer_defined_targets else None
        self.developer_defined_targets = list(names or [])
        logger.info(f"Developer-defined targets: {', '.join(self.developer_defined_targets)}")
        if (self.mode & Mode.SMART_TRAIN_DEVELOPER_DEFINED) and previous is not None:
            await self.smart_train(NamedLabel(previous))

    def set_classifier(self, classifier: str, sub_classifier: str = "") -> None:
        self.profile = ClassifierProfile(classifier or "", sub_classifier or "")
        logger.info(f"Classifier set to '{self.profile.full_path}'.")

    def _reset_training_session(self) -> None:
        self.trainer.reset_failures()
        self.training_candidates.clear()

    # Sample intake

    async def on_sample_recorded(self, sample: Sample) -> Optional[int]:
        """
        Entry point for a finished capture.

        Returns:
            The id assigned to the sample, or None for an empty sample.
        """
        if not sample:
            logger.debug("Empty sample ignored.")
            return None
        sample_id = new_sample_id()
        self.cache.put(sample_id, sample)
        logger.debug(f"Gesture {sample_id} received with {len(sample)} entries.")

        event = GestureTriggerEvent(sample_id=sample_id, mode=self.mode, targets=list(self.targets))
        await self._fire(EVENT_GESTURE_TRIGGERED, sample_id, event)
        if event.proceed:
            await self.perform_action_with_gesture(event.mode, event.targets, sample_id, sample)
        else:
            logger.debug(f"Gesture {sample_id} skipped by trigger observer.")
        return sample_id

    def sample_handler(
        self, loop: asyncio.AbstractEventLoop
    ) -> Callable[[Sample], "concurrent.futures.Future"]:
        """
        Returns a callback for ``MotionCapture`` that hands samples captured on
        the capture thread to this manager on ``loop``.
        """
        def handle(sample: Sample):
            return asyncio.run_coroutine_threadsafe(self.on_sample_recorded(sample), loop)
        return handle

    def create_capture(
        self, read_rotation: RotationReader, loop: asyncio.AbstractEventLoop
    ) -> MotionCapture:
        """Motion capture polling at the configured interval and feeding this manager."""
        return MotionCapture(
            read_rotation,
            self.sample_handler(loop),
            interval_ms=self.config.sampling_interval_ms,
        )

    # Dispatch

    async def perform_action_with_gesture(
        self,
        mode: Mode,
        targets: Sequence[int],
        sample_id: int,
        sample: Optional[Sample] = None,
    ) -> None:
        """
        Processes a sample according to ``mode``.

        When ``sample`` is omitted it is fetched from the cache; a sample that
        was already evicted is reported as unavailable and skipped. Samples
        arriving while another one is being processed wait for it to finish.
        """
        if sample is None:
            sample = self.cache.get(sample_id)
        if not sample:
            logger.warning(f"Sample {sample_id} is not available; action skipped.")
            return
        targets = [int(t) for t in targets]

        async with self._session_lock:
            await self._dispatch(Mode(mode), targets, sample_id, sample)

    async def _dispatch(self, mode: Mode, targets: List[int], sample_id: int, sample: Sample) -> None:
        if mode & Mode.IDENTIFY_PLAYER_SIGNATURE:
            await self._identify_player_signature(sample_id, sample, targets)
        if mode & Mode.IDENTIFY_COMMON:
            await self._identify_common(sample_id, sample, targets)
        if mode & Mode.TRAIN_PLAYER_SIGNATURE:
            await self._train_player_signature(sample_id, sample, targets)
        if mode & Mode.SMART_TRAIN:
            await self._collect_smart_train(sample_id, sample, targets)
        if mode & Mode.SMART_IDENTIFY:
            await self._smart_identify(sample_id, sample, targets)
        if mode & Mode.ADD_PLAYER_GESTURE:
            await self._add_player_gesture(sample_id, sample, targets)
        if mode & Mode.IDENTIFY_PLAYER_GESTURE:
            await self._identify_player_gesture(sample_id, sample, targets)
        if mode & Mode.DEVELOPER_DEFINED:
            await self._identify_developer_defined(sample_id, sample)
        if mode & Mode.SMART_IDENTIFY_DEVELOPER_DEFINED:
            await self._smart_identify_developer_defined(sample_id, sample)
        if mode & Mode.SMART_TRAIN_DEVELOPER_DEFINED:
            await self._collect_smart_train_developer_defined(sample_id, sample)

    async def _identify_player_signature(self, sample_id, sample, targets) -> None:
        match = await self.binding.identify_signature(sample, targets)
        logger.info(f"Signature identification for {sample_id}: matched={match.matched} index={match.index}")
        await self._fire(EVENT_PLAYER_SIGNATURE_MATCH, sample_id, match.matched, match.index or 0)

    async def _identify_common(self, sample_id, sample, targets) -> None:
        labels = [IndexedLabel(t) for t in targets if CommonGesture.is_common(t)]
        if not labels:
            logger.warning(f"Common identify for {sample_id} has no built-in targets; skipped.")
            return
        common = await self.binding.classify_common(sample, labels)
        if common is not None and common.passed:
            await self._fire(EVENT_COMMON_MATCH, sample_id, CommonGesture(common.label.index), float(common.score))
        else:
            score = float(common.score) if common is not None else 0.0
            await self._fire(EVENT_COMMON_MATCH, sample_id, CommonGesture.NONE, score)

    async def _train_player_signature(self, sample_id, sample, targets) -> None:
        if not targets:
            logger.warning(f"Signature training for {sample_id} has no target index; skipped.")
            return
        outcome = await self.trainer.train(sample_id, targets[0], sample)
        if outcome.ignored:
            return
        self.progress.train_progress[outcome.index] = outcome.progress
        await self._fire(EVENT_PLAYER_SIGNATURE_TRAINED, sample_id, outcome)

    async def _collect_smart_train(self, sample_id, sample, targets) -> None:
        if not targets:
            logger.warning(f"Smart train for {sample_id} has no target; skipped.")
            return
        target = IndexedLabel(targets[0])
        common = await self.binding.classify_common(sample, [target])
        score = float(common.score) if common is not None and common.label == target else 0.0
        self.selector.offer(target, sample, score)
        if common is not None and common.passed:
            await self._fire(EVENT_COMMON_MATCH, sample_id, CommonGesture(common.label.index), score)
        else:
            await self._fire(EVENT_COMMON_MATCH, sample_id, CommonGesture.NONE, score)

    async def _smart_identify(self, sample_id, sample, targets) -> None:
        result = await self.arbitration.identify_indexed(sample_id, sample, targets)
        if result is None:
            return
        gesture = self._as_common_gesture(result)
        await self._fire(EVENT_SMART_IDENTIFY_MATCH, sample_id, gesture)

    @staticmethod
    def _as_common_gesture(result: ArbitrationResult):
        if result.label is None:
            return CommonGesture.NONE
        index = result.label.index
        return CommonGesture(index) if CommonGesture.is_common(index) else index

    async def _add_player_gesture(self, sample_id, sample, targets) -> None:
        counts: Dict[int, int] = {}
        for index in targets:
            self.custom_gesture_cache.setdefault(index, []).append(sample)
            counts[index] = len(self.custom_gesture_cache[index])
        await self._fire(EVENT_PLAYER_GESTURE_ADD, sample_id, counts)

    async def _identify_player_gesture(self, sample_id, sample, targets) -> None:
        custom = await self.binding.classify_custom(sample, [IndexedLabel(t) for t in targets])
        match = custom.label.index if custom is not None else None
        logger.info(f"Player gesture identification for {sample_id}: {match}")
        await self._fire(EVENT_PLAYER_GESTURE_MATCH, sample_id, match)

    async def _identify_developer_defined(self, sample_id, sample) -> None:
        if not self.profile.is_valid:
            logger.warning("No classifier set for developer-defined gestures; identification skipped.")
            return
        if not self.developer_defined_targets:
            logger.warning(f"Developer-defined identify for {sample_id} has no targets; skipped.")
            return
        labels = [NamedLabel(n) for n in self.developer_defined_targets]
        common = await self.binding.classify_common(sample, labels, self.profile)
        name = common.label.name if common is not None and common.label is not None else ""
        score = float(common.score) if common is not None else 0.0
        await self._fire(EVENT_DEVELOPER_DEFINED_MATCH, sample_id, name, score)

    async def _smart_identify_developer_defined(self, sample_id, sample) -> None:
        result = await self.arbitration.identify_named(
            sample_id, sample, self.developer_defined_targets, self.profile
        )
        if result is None:
            return
        name = result.label.name if result.label is not None else ""
        await self._fire(EVENT_SMART_IDENTIFY_DEVELOPER_DEFINED_MATCH, sample_id, name)

    async def _collect_smart_train_developer_defined(self, sample_id, sample) -> None:
        if not self.profile.is_valid or not self.developer_defined_targets:
            logger.warning(
                f"Developer-defined smart train for {sample_id} needs a classifier and a target; skipped."
            )
            return
        target = NamedLabel(self.developer_defined_targets[0])
        common = await self.binding.classify_common(sample, [target], self.profile)
        score = float(common.score) if common is not None and common.label == target else 0.0
        self.selector.offer(target, sample, score)
        name = common.label.name if common is not None and common.label is not None else ""
        await self._fire(EVENT_DEVELOPER_DEFINED_MATCH, sample_id, name, score)

    # Smart training

    async def smart_train(self, label: Label) -> bool:
        """
        Drains the smart-train session of ``label`` and trains the custom recognizer.

        Returns:
            True if the custom recognizer was trained.
        """
        samples = self.selector.drain(label)
        if samples is None:
            return False
        exemplars = self.named_exemplars if isinstance(label, NamedLabel) else self.exemplars
        exemplars.add(label, samples)

        if isinstance(label, IndexedLabel) and not label.is_common:
            logger.warning(f"Smart train target {label} is not a built-in gesture; training skipped.")
            return False

        bundle = SmartTrainActionBundle(target=label, samples=samples)
        for sample in bundle:
            await self._add_training_candidate(sample)

        if isinstance(label, IndexedLabel):
            self.progress.use_user_gesture[label.index] = True
        else:
            self.progress.use_predefined_user_gesture[label.name] = True

        accepted = list(self.training_candidates)
        await self.binding.set_custom_gesture(label, accepted)
        self.training_candidates.clear()
        logger.info(f"Smart train for {label} completed with {len(accepted)} of {len(samples)} samples.")
        return True

    async def _add_training_candidate(self, sample: Sample) -> bool:
        """Accepts the first candidate, then only samples similar to an accepted one."""
        if not self.training_candidates:
            self.training_candidates.append(sample)
            return True
        for previous in list(self.training_candidates):
            if await self.binding.is_two_gesture_similar(previous, sample):
                self.training_candidates.append(sample)
                return True
        logger.debug("Smart-train candidate rejected: not similar to any accepted sample.")
        return False

    def reset_smart_train(self) -> None:
        self.progress.use_user_gesture.clear()
        self.progress.use_predefined_user_gesture.clear()
        self.selector.clear()
        self.exemplars.clear()
        self.named_exemplars.clear()
        # Statistics were measured against the custom gestures being dropped.
        self.statistics.reset()
        logger.info("Smart training flags and statistics cleared.")

    async def update_gesture_stat(self, force: bool = False) -> bool:
        return await self.arbitration.update_statistics(INDEXED_SCOPE, self.exemplars, force=force)

    async def update_developer_defined_gesture_stat(self, force: bool = False) -> bool:
        if not self.profile.is_valid:
            logger.warning("No classifier set; developer-defined statistics not updated.")
            return False
        return await self.arbitration.update_statistics(
            self.profile.full_path, self.named_exemplars, profile=self.profile, force=force
        )

    # Player records

    async def delete_player_record(self, index: int) -> bool:
        deleted = await self.binding.delete_label(index)
        self.progress.train_progress.pop(index, None)
        logger.info(f"Player record {index} deleted: {deleted}")
        return deleted

    async def set_player_gesture(
        self, targets: Sequence[int], clear_on_set: bool = True
    ) -> Dict[int, int]:
        """
        Submits the cached player gestures of ``targets`` to the custom recognizer.

        Returns:
            Number of samples submitted per index.
        """
        result: Dict[int, int] = {}
        for index in targets:
            cached = self.custom_gesture_cache.get(index)
            if not cached:
                continue
            result[index] = len(cached)
            await self.binding.set_custom_gesture(IndexedLabel(index), list(cached))
            if clear_on_set:
                cached.clear()
        return result

    # Persistence

    def load(self) -> None:
        self.progress = TrainingProgressState.load(self.config.state_file)
        self.arbitration.progress = self.progress

    def save(self) -> None:
        self.progress.save(self.config.state_file)
        logger.info(f"Training state saved to {self.config.state_file}.")
