# smart_gesture/arbitration.py
"""
Arbitration between the common and custom recognizers.

For each identification request the common recognizer answers first. The
per-label statistics then decide whether its answer is trusted or the custom
recognizer is consulted, and which answer wins when the two disagree.
"""
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Union

import enum
import logging

from .constants import STAT_BOOTSTRAP_GESTURES
from .engine_binding import CommonResult
from .engine_binding import CustomResult
from .engine_binding import EngineBinding
from .labels import ClassifierProfile
from .labels import INDEXED_SCOPE
from .labels import IndexedLabel
from .labels import Label
from .labels import NamedLabel
from .labels import PredefinedScore
from .labels import Scope
from .sample import Sample
from .smart_train import SmartTrainExemplars
from .statistics import GestureStatistics
from .statistics import Recognizer
from .training import TrainingProgressState

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDENTIFY_COMMON = "identify_common"
    HAVE_COMMON_RESULT = "have_common_result"
    CHECK_STATS = "check_stats"
    CONSULT_CUSTOM = "consult_custom"
    REPORT = "report"


@dataclass(frozen=True)
class ArbitrationResult:
    """
    Final answer of one identification request.

    ``label`` is None for "no match". ``source`` names the recognizer whose
    answer was reported.
    """
    sample_id: int
    label: Optional[Label]
    source: Optional[Recognizer] = None
    common: Optional[CommonResult] = None
    custom: Optional[CustomResult] = None

    @property
    def matched(self) -> bool:
        return self.label is not None


ArbitrationObserver = Callable[[ArbitrationResult], None]


@dataclass
class _Request:
    sample_id: int
    sample: Sample
    scope: Scope
    common_targets: List[Label]
    custom_candidates: List[Label]
    profile: Optional[ClassifierProfile] = None
    common: Optional[CommonResult] = None
    custom: Optional[CustomResult] = None
    label: Optional[Label] = None
    source: Optional[Recognizer] = None
    common_passed: bool = False


def _as_indexed(target: Union[int, IndexedLabel]) -> IndexedLabel:
    return target if isinstance(target, IndexedLabel) else IndexedLabel(int(target))


def _as_named(target: Union[str, NamedLabel]) -> NamedLabel:
    return target if isinstance(target, NamedLabel) else NamedLabel(str(target))


class ArbitrationEngine:
    """
    Runs the identification state machine against an ``EngineBinding``.

    Live identification only reads the statistics. They change through
    ``update_statistics`` (the bootstrap pass over smart-train exemplars)
    or through explicit calls on the ``GestureStatistics`` store.
    """

    def __init__(
        self,
        binding: EngineBinding,
        statistics: GestureStatistics,
        progress: TrainingProgressState,
    ):
        self.binding = binding
        self.statistics = statistics
        self.progress = progress

    def indexed_custom_candidates(self, exclude: Optional[IndexedLabel] = None) -> List[Label]:
        return [
            IndexedLabel(index)
            for index, enabled in self.progress.use_user_gesture.items()
            if enabled and (exclude is None or index != exclude.index)
        ]

    async def identify_indexed(
        self,
        sample_id: int,
        sample: Sample,
        targets: Iterable[Union[int, IndexedLabel]],
        observer: Optional[ArbitrationObserver] = None,
        base_label: Optional[IndexedLabel] = None,
    ) -> Optional[ArbitrationResult]:
        """
        Smart identification among built-in gestures.

        Args:
            sample_id: Id of the sample being identified.
            sample: The captured sample.
            targets: Candidate gesture indexes. Only built-in gesture indexes
                are considered.
            observer: Called exactly once with the final result.
            base_label: Label the sample is known to represent, if any. It is
                excluded from the custom candidates and receives the
                user/failed counters.

        Returns:
            The result, or None if no target is a built-in gesture (no
            recognizer is called in that case).
        """
        valid = [label for label in map(_as_indexed, targets) if label.is_common]
        if not valid:
            logger.warning(
                f"Smart identify for sample {sample_id} has no valid built-in targets; skipped."
            )
            return None
        request = _Request(
            sample_id=sample_id,
            sample=sample,
            scope=INDEXED_SCOPE,
            common_targets=list(valid),
            custom_candidates=self.indexed_custom_candidates(exclude=base_label),
        )
        result = await self._run(request)
        if not request.common_passed:
            counter_target = base_label.index if base_label is not None else 0
            if result.source is Recognizer.CUSTOM:
                self.progress.inc_user_gesture_count(counter_target)
            else:
                self.progress.inc_failed_gesture_count(counter_target)
        self._notify(observer, result)
        return result

    async def identify_named(
        self,
        sample_id: int,
        sample: Sample,
        targets: Iterable[Union[str, NamedLabel]],
        profile: ClassifierProfile,
        observer: Optional[ArbitrationObserver] = None,
    ) -> Optional[ArbitrationResult]:
        """
        Smart identification among developer-defined gestures of ``profile``.

        Returns None without calling any recognizer when there are no
        targets or the profile has no classifier.
        """
        named = [_as_named(t) for t in targets]
        if not named:
            logger.warning(f"Smart identify for sample {sample_id} has no targets; skipped.")
            return None
        if profile is None or not profile.is_valid:
            logger.warning(f"Smart identify for sample {sample_id} has no classifier; skipped.")
            return None
        request = _Request(
            sample_id=sample_id,
            sample=sample,
            scope=profile.full_path,
            common_targets=list(named),
            custom_candidates=list(named),
            profile=profile,
        )
        result = await self._run(request)
        self._notify(observer, result)
        return result

    async def _run(self, request: _Request) -> ArbitrationResult:
        state = State.IDENTIFY_COMMON
        while state is not State.REPORT:
            logger.debug(f"Sample {request.sample_id}: {state.value}")
            if state is State.IDENTIFY_COMMON:
                request.common = await self.binding.classify_common(
                    request.sample, request.common_targets, request.profile
                )
                state = State.HAVE_COMMON_RESULT

            elif state is State.HAVE_COMMON_RESULT:
                common = request.common
                request.common_passed = (
                    common is not None
                    and common.passed
                    and common.label in request.common_targets
                )
                if request.common_passed:
                    request.label = common.label
                    request.source = Recognizer.COMMON
                    state = State.CHECK_STATS
                else:
                    logger.debug(
                        f"Sample {request.sample_id}: common recognizer found no match, trying custom."
                    )
                    state = State.CONSULT_CUSTOM

            elif state is State.CHECK_STATS:
                if self.statistics.favors_common(request.scope, request.common.label):
                    state = State.REPORT
                else:
                    logger.debug(
                        f"Sample {request.sample_id}: statistics disfavor common answer "
                        f"{request.common.label}, consulting custom recognizer."
                    )
                    state = State.CONSULT_CUSTOM

            elif state is State.CONSULT_CUSTOM:
                self._consult_outcome(request, await self._classify_custom(request))
                state = State.REPORT

        return ArbitrationResult(
            sample_id=request.sample_id,
            label=request.label,
            source=request.source,
            common=request.common,
            custom=request.custom,
        )

    async def _classify_custom(self, request: _Request) -> Optional[CustomResult]:
        if not request.custom_candidates:
            logger.debug(f"Sample {request.sample_id}: no custom gestures to consult.")
            return None
        custom = await self.binding.classify_custom(request.sample, request.custom_candidates)
        if custom is not None and custom.label not in request.custom_candidates:
            logger.debug(
                f"Sample {request.sample_id}: custom answer {custom.label} is not a candidate; ignored."
            )
            return None
        return custom

    def _consult_outcome(self, request: _Request, custom: Optional[CustomResult]) -> None:
        request.custom = custom
        if custom is None:
            # Keeps the common answer from CHECK_STATS, or "no match".
            return
        if not request.common_passed:
            request.label = custom.label
            request.source = Recognizer.CUSTOM
            return
        if custom.label == request.common.label:
            request.label = custom.label
            request.source = Recognizer.CUSTOM
            return
        if self.statistics.custom_is_worse(request.scope, custom.label):
            logger.debug(
                f"Sample {request.sample_id}: custom answer {custom.label} has a worse record; "
                f"keeping common answer {request.common.label}."
            )
            return
        request.label = custom.label
        request.source = Recognizer.CUSTOM

    @staticmethod
    def _notify(observer: Optional[ArbitrationObserver], result: ArbitrationResult) -> None:
        logger.info(
            f"Sample {result.sample_id} identified as {result.label} "
            f"({result.source.value if result.source else 'no match'})."
        )
        if observer is None:
            return
        try:
            observer(result)
        except Exception as e:
            logger.error(f"Arbitration observer failed: {e}", exc_info=True)

    async def update_statistics(
        self,
        scope: Scope,
        exemplars: SmartTrainExemplars,
        common_targets: Optional[Sequence[Label]] = None,
        custom_candidates: Optional[Sequence[Label]] = None,
        profile: Optional[ClassifierProfile] = None,
        force: bool = False,
    ) -> bool:
        """
        Bootstraps the statistics of ``scope`` from stored smart-train exemplars.

        Each exemplar is classified by both recognizers. A wrong answer counts
        as a mismatch for the label that was returned; a right answer adds its
        confidence to that label.

        Args:
            scope: ``INDEXED_SCOPE`` or a profile's ``full_path``.
            exemplars: Drained smart-train samples, keyed by their true label.
            common_targets: Labels for the common recognizer. Defaults to the
                built-in bootstrap gestures for the indexed scope.
            custom_candidates: Labels for the custom recognizer. Defaults to
                the labels flagged for custom recognition.
            profile: Classifier profile, required for named scopes.
            force: Recomputes even if the scope was already bootstrapped.

        Returns:
            True if a pass was run.
        """
        if self.statistics.exists(scope) and not force:
            logger.debug(f"Statistics for scope {scope!r} already exist; pass skipped.")
            return False
        if scope is not INDEXED_SCOPE and (profile is None or not profile.is_valid):
            logger.warning(f"Statistics pass for scope {scope!r} needs a valid classifier profile.")
            return False

        if common_targets is None:
            if scope is INDEXED_SCOPE:
                common_targets = [IndexedLabel(int(g)) for g in STAT_BOOTSTRAP_GESTURES]
            else:
                common_targets = [
                    NamedLabel(name)
                    for name, enabled in self.progress.use_predefined_user_gesture.items()
                    if enabled
                ]
        if custom_candidates is None:
            if scope is INDEXED_SCOPE:
                custom_candidates = self.indexed_custom_candidates()
            else:
                custom_candidates = list(common_targets)

        self.statistics.collection(scope)
        processed = 0
        for true_label, samples in exemplars.items():
            for sample in samples:
                await self._bootstrap_common(scope, true_label, sample, common_targets, profile)
                await self._bootstrap_custom(scope, true_label, sample, custom_candidates)
                processed += 1

        self.statistics.mark_complete(scope)
        logger.info(f"Statistics for scope {scope!r} computed from {processed} exemplars.")
        return True

    async def _bootstrap_common(
        self,
        scope: Scope,
        true_label: Label,
        sample: Sample,
        targets: Sequence[Label],
        profile: Optional[ClassifierProfile],
    ) -> None:
        if not targets:
            return
        common = await self.binding.classify_common(sample, targets, profile)
        if common is None or common.label is None:
            return
        named = isinstance(common.score, PredefinedScore)
        if not named and not common.passed:
            return
        self.statistics.ensure(scope, common.label)
        if common.label != true_label:
            self.statistics.record_mismatch(scope, common.label, Recognizer.COMMON)
            logger.debug(f"Tried {true_label} but common matched {common.label}: common error +1")
        else:
            score = common.confidence if named else float(common.score)
            self.statistics.record_confidence(scope, common.label, Recognizer.COMMON, score)

    async def _bootstrap_custom(
        self,
        scope: Scope,
        true_label: Label,
        sample: Sample,
        candidates: Sequence[Label],
    ) -> None:
        if not candidates:
            return
        custom = await self.binding.classify_custom(sample, candidates)
        if custom is None:
            return
        self.statistics.ensure(scope, custom.label)
        if custom.label != true_label:
            self.statistics.record_mismatch(scope, custom.label, Recognizer.CUSTOM)
            logger.debug(f"Tried {true_label} but custom matched {custom.label}: user error +1")
        else:
            self.statistics.record_confidence(scope, custom.label, Recognizer.CUSTOM, custom.confidence)

