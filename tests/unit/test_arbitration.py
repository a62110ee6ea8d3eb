"""Unit tests for `ArbitrationEngine`, with the engine binding mocked."""

import pytest
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

from smart_gesture.arbitration import ArbitrationEngine
from smart_gesture.constants import CommonGesture
from smart_gesture.engine_binding import CommonResult
from smart_gesture.engine_binding import CustomResult
from smart_gesture.labels import ClassifierProfile
from smart_gesture.labels import CommonScore
from smart_gesture.labels import INDEXED_SCOPE
from smart_gesture.labels import IndexedLabel
from smart_gesture.labels import NamedLabel
from smart_gesture.labels import PredefinedScore
from smart_gesture.smart_train import SmartTrainExemplars
from smart_gesture.statistics import GestureStatistics
from smart_gesture.statistics import Recognizer
from smart_gesture.training import TrainingProgressState

HEART = IndexedLabel(CommonGesture.HEART)
DOWN = IndexedLabel(CommonGesture.DOWN)
C = IndexedLabel(CommonGesture.C)
PROFILE = ClassifierProfile("wand", "fire")


def _common(label, score):
    return CommonResult(label=label, score=CommonScore(score))


@pytest.fixture
def statistics():
    return GestureStatistics()


@pytest.fixture
def progress():
    state = TrainingProgressState()
    state.use_user_gesture[CommonGesture.HEART] = True
    state.use_user_gesture[CommonGesture.DOWN] = True
    return state


@pytest.fixture
def engine(binding, statistics, progress):
    return ArbitrationEngine(binding, statistics, progress)


def _disfavor_common(statistics, label, scope=INDEXED_SCOPE):
    statistics.record_mismatch(scope, label, Recognizer.COMMON)


@pytest.mark.asyncio
async def test_no_valid_targets_calls_nothing(engine, binding, sample):
    result = await engine.identify_indexed(1, sample, [1, 2, 3])
    assert result is None
    binding.classify_common.assert_not_awaited()
    binding.classify_custom.assert_not_awaited()


@pytest.mark.asyncio
async def test_trusted_common_answer_skips_custom(engine, binding, sample):
    binding.classify_common.return_value = _common(HEART, 0.95)
    observer = MagicMock()

    result = await engine.identify_indexed(7, sample, [HEART, DOWN], observer=observer)

    assert result.label == HEART
    assert result.source is Recognizer.COMMON
    assert binding.classify_custom.await_count == 0
    observer.assert_called_once_with(result)


@pytest.mark.asyncio
async def test_non_common_targets_are_filtered_out(engine, binding, sample):
    binding.classify_common.return_value = _common(HEART, 0.95)
    await engine.identify_indexed(1, sample, [5, CommonGesture.HEART])
    _, labels, _ = binding.classify_common.await_args.args
    assert labels == [HEART]


@pytest.mark.asyncio
async def test_disfavored_common_consults_custom_and_custom_wins(engine, binding, statistics, sample):
    _disfavor_common(statistics, HEART)
    binding.classify_common.return_value = _common(HEART, 0.95)
    binding.classify_custom.return_value = CustomResult(label=DOWN, confidence=0.9)
    before = statistics.snapshot()

    result = await engine.identify_indexed(1, sample, [HEART, DOWN])

    assert result.label == DOWN
    assert result.source is Recognizer.CUSTOM
    # Live identification never writes statistics.
    assert statistics.snapshot() == before


@pytest.mark.asyncio
async def test_disagreement_keeps_common_when_custom_is_worse(engine, binding, statistics, sample):
    statistics.record_mismatch(INDEXED_SCOPE, HEART, Recognizer.COMMON)
    statistics.record_confidence(INDEXED_SCOPE, HEART, Recognizer.CUSTOM, 1.0)
    statistics.record_mismatch(INDEXED_SCOPE, HEART, Recognizer.CUSTOM)
    statistics.record_mismatch(INDEXED_SCOPE, DOWN, Recognizer.CUSTOM)
    binding.classify_common.return_value = _common(HEART, 0.95)
    binding.classify_custom.return_value = CustomResult(label=DOWN, confidence=0.9)

    result = await engine.identify_indexed(1, sample, [HEART, DOWN])

    assert result.label == HEART
    assert result.source is Recognizer.COMMON
    assert result.custom.label == DOWN


@pytest.mark.asyncio
async def test_agreement_is_reported_as_custom(engine, binding, statistics, sample):
    _disfavor_common(statistics, HEART)
    binding.classify_common.return_value = _common(HEART, 0.95)
    binding.classify_custom.return_value = CustomResult(label=HEART, confidence=0.9)
    result = await engine.identify_indexed(1, sample, [HEART])
    assert result.label == HEART
    assert result.source is Recognizer.CUSTOM


@pytest.mark.asyncio
async def test_failed_common_falls_back_to_custom(engine, binding, progress, sample):
    binding.classify_common.return_value = _common(HEART, 0.5)
    binding.classify_custom.return_value = CustomResult(label=DOWN, confidence=0.9)

    result = await engine.identify_indexed(1, sample, [HEART, DOWN])

    assert result.label == DOWN
    assert result.source is Recognizer.CUSTOM
    assert progress.user_gesture_count == {0: 1}
    assert progress.failed_gesture_count == {}


@pytest.mark.asyncio
async def test_no_match_from_either_recognizer(engine, binding, progress, sample):
    binding.classify_common.return_value = _common(HEART, 0.5)
    binding.classify_custom.return_value = None
    observer = MagicMock()

    result = await engine.identify_indexed(1, sample, [HEART], observer=observer)

    assert not result.matched
    assert result.source is None
    assert progress.failed_gesture_count == {0: 1}
    observer.assert_called_once()


@pytest.mark.asyncio
async def test_base_label_excluded_from_custom_candidates(engine, binding, progress, sample):
    binding.classify_common.return_value = None
    await engine.identify_indexed(1, sample, [HEART], base_label=HEART)
    _, candidates = binding.classify_custom.await_args.args
    assert candidates == [DOWN]
    assert progress.failed_gesture_count == {CommonGesture.HEART: 1}


@pytest.mark.asyncio
async def test_custom_answer_outside_candidates_is_ignored(engine, binding, sample):
    binding.classify_common.return_value = None
    binding.classify_custom.return_value = CustomResult(label=C, confidence=0.99)
    result = await engine.identify_indexed(1, sample, [HEART])
    assert not result.matched


@pytest.mark.asyncio
async def test_observer_failure_does_not_propagate(engine, binding, sample):
    binding.classify_common.return_value = _common(HEART, 0.95)
    observer = MagicMock(side_effect=RuntimeError("boom"))
    result = await engine.identify_indexed(1, sample, [HEART], observer=observer)
    assert result.label == HEART


@pytest.mark.asyncio
async def test_named_identify_requires_profile(engine, binding, sample):
    assert await engine.identify_named(1, sample, ["fireball"], ClassifierProfile()) is None
    assert await engine.identify_named(1, sample, [], PROFILE) is None
    binding.classify_common.assert_not_awaited()


@pytest.mark.asyncio
async def test_named_identify_uses_predefined_scale(engine, binding, statistics, sample):
    fireball = NamedLabel("fireball")
    binding.classify_common.return_value = CommonResult(
        label=fireball, score=PredefinedScore(1.0), confidence=0.6
    )
    binding.classify_custom.return_value = CustomResult(label=fireball, confidence=0.9)

    result = await engine.identify_named(1, sample, ["fireball", "ice"], PROFILE)

    # A score of exactly 1.0 does not pass on the developer-defined scale.
    assert result.source is Recognizer.CUSTOM
    _, labels, profile = binding.classify_common.await_args.args
    assert labels == [fireball, NamedLabel("ice")]
    assert profile == PROFILE


@pytest.mark.asyncio
async def test_named_scope_statistics_are_per_profile(engine, binding, statistics, sample):
    fireball = NamedLabel("fireball")
    statistics.record_mismatch(PROFILE.full_path, fireball, Recognizer.COMMON)
    binding.classify_common.return_value = CommonResult(
        label=fireball, score=PredefinedScore(1.4), confidence=0.9
    )
    binding.classify_custom.return_value = None

    result = await engine.identify_named(1, sample, ["fireball"], ClassifierProfile("wand", "ice"))
    assert result.source is Recognizer.COMMON
    binding.classify_custom.assert_not_awaited()

    result = await engine.identify_named(2, sample, ["fireball"], PROFILE)
    assert result.source is Recognizer.COMMON
    binding.classify_custom.assert_awaited_once()


class TestUpdateStatistics:
    @pytest.mark.asyncio
    async def test_bootstrap_records_mismatches_and_confidences(self, engine, binding, statistics, sample):
        exemplars = SmartTrainExemplars()
        exemplars.add(HEART, [sample, sample])
        binding.classify_common = AsyncMock(side_effect=[_common(HEART, 0.95), _common(DOWN, 0.92)])
        binding.classify_custom = AsyncMock(side_effect=[
            CustomResult(label=HEART, confidence=0.8),
            CustomResult(label=HEART, confidence=0.7),
        ])

        ran = await engine.update_statistics(INDEXED_SCOPE, exemplars)

        assert ran
        assert statistics.exists(INDEXED_SCOPE)
        assert statistics.error_count(INDEXED_SCOPE, DOWN).common_err_count == 1
        assert statistics.confidence(INDEXED_SCOPE, HEART).common_confidence == pytest.approx(0.95)
        assert statistics.confidence(INDEXED_SCOPE, HEART).user_confidence == pytest.approx(1.5)
        _, targets, _ = binding.classify_common.await_args_list[0].args
        assert targets == [HEART, DOWN, C]

    @pytest.mark.asyncio
    async def test_failed_common_result_is_not_recorded(self, engine, binding, statistics, sample):
        exemplars = SmartTrainExemplars()
        exemplars.add(HEART, [sample])
        binding.classify_common.return_value = _common(DOWN, 0.5)
        await engine.update_statistics(INDEXED_SCOPE, exemplars, custom_candidates=[])
        assert statistics.error_count(INDEXED_SCOPE, DOWN) is None

    @pytest.mark.asyncio
    async def test_existing_scope_is_skipped_unless_forced(self, engine, binding, statistics, sample):
        exemplars = SmartTrainExemplars()
        exemplars.add(HEART, [sample])
        statistics.mark_complete(INDEXED_SCOPE)

        assert not await engine.update_statistics(INDEXED_SCOPE, exemplars)
        binding.classify_common.assert_not_awaited()

        assert await engine.update_statistics(INDEXED_SCOPE, exemplars, force=True)
        binding.classify_common.assert_awaited()

    @pytest.mark.asyncio
    async def test_named_scope_uses_confidence(self, engine, binding, statistics, progress, sample):
        fireball = NamedLabel("fireball")
        progress.use_predefined_user_gesture["fireball"] = True
        exemplars = SmartTrainExemplars()
        exemplars.add(fireball, [sample])
        binding.classify_common.return_value = CommonResult(
            label=fireball, score=PredefinedScore(0.7), confidence=0.4
        )
        binding.classify_custom.return_value = CustomResult(label=fireball, confidence=0.9)

        assert await engine.update_statistics(PROFILE.full_path, exemplars, profile=PROFILE)

        confidence = statistics.confidence(PROFILE.full_path, fireball)
        assert confidence.common_confidence == pytest.approx(0.4)
        assert confidence.user_confidence == pytest.approx(0.9)
        assert not statistics.favors_common(PROFILE.full_path, fireball)

    @pytest.mark.asyncio
    async def test_named_scope_needs_profile(self, engine, binding, sample):
        assert not await engine.update_statistics("wand_fire", SmartTrainExemplars())
