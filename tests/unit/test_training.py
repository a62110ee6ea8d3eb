"""Unit tests for `SignatureTrainer` and `TrainingProgressState`."""

import json

import pytest
from unittest.mock import AsyncMock

from smart_gesture.constants import ERROR_SIGN_INCONSISTENT
from smart_gesture.constants import ERROR_SIGN_TOO_FEW_WORD
from smart_gesture.constants import SecurityLevel
from smart_gesture.engine_binding import TrainingResult
from smart_gesture.exceptions import PersistenceError
from smart_gesture.sample import Sample
from smart_gesture.training import SignatureTrainer
from smart_gesture.training import TrainingProgressState

INDEX = 1


def _sample(entries: int) -> Sample:
    return Sample.from_readings((i * 16.0, 1.0, 0.0, 0.0) for i in range(entries))


def _ok(progress, level=SecurityLevel.NONE, too_low=False):
    return TrainingResult(
        index=INDEX, progress=progress, security_level=level, security_too_low=too_low
    )


def _fail(progress, code=ERROR_SIGN_INCONSISTENT):
    return TrainingResult(index=INDEX, progress=progress, error_code=code)


@pytest.fixture
def trainer(binding):
    return SignatureTrainer(binding)


@pytest.mark.asyncio
async def test_successful_training_reports_progress(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    outcome = await trainer.train(10, INDEX, _sample(60))
    assert outcome.progress == 0.2
    assert outcome.error_code is None
    assert not outcome.reset
    assert trainer.first_train_data_size == 60


@pytest.mark.asyncio
async def test_short_failure_is_ignored_as_mistouch(trainer, binding):
    binding.train_signature.return_value = _fail(0.6)
    outcome = await trainer.train(10, INDEX, _sample(30))
    assert outcome.ignored
    assert trainer.fail_count == 0
    binding.delete_label.assert_not_awaited()


@pytest.mark.asyncio
async def test_failure_before_first_sample_reports_zero(trainer, binding):
    binding.train_signature.return_value = _fail(0.0)
    outcome = await trainer.train(10, INDEX, _sample(60))
    assert outcome.progress == 0.0
    assert outcome.error_code == ERROR_SIGN_INCONSISTENT
    assert trainer.fail_count == 0


@pytest.mark.asyncio
async def test_three_failures_delete_label_exactly_once(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    await trainer.train(1, INDEX, _sample(60))
    binding.train_signature.return_value = _ok(0.6)
    await trainer.train(2, INDEX, _sample(60))

    binding.train_signature.return_value = _fail(0.6)
    first = await trainer.train(3, INDEX, _sample(60))
    second = await trainer.train(4, INDEX, _sample(60))
    assert not first.reset and not second.reset
    assert trainer.fail_count == 2
    binding.delete_label.assert_not_awaited()

    third = await trainer.train(5, INDEX, _sample(60))
    assert third.reset
    assert third.progress == 0.0
    assert trainer.fail_count == 0
    binding.delete_label.assert_awaited_once_with(INDEX)


@pytest.mark.asyncio
async def test_failure_below_reset_floor_resets_immediately(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    await trainer.train(1, INDEX, _sample(60))
    binding.train_signature.return_value = _fail(0.4)
    outcome = await trainer.train(2, INDEX, _sample(60))
    assert outcome.reset
    binding.delete_label.assert_awaited_once_with(INDEX)


@pytest.mark.asyncio
async def test_much_shorter_sample_reports_too_few_words(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    await trainer.train(1, INDEX, _sample(100))
    binding.train_signature.return_value = _fail(0.6)
    outcome = await trainer.train(2, INDEX, _sample(50))
    assert outcome.error_code == ERROR_SIGN_TOO_FEW_WORD
    assert outcome.error_message == "Sign too few words"
    assert trainer.fail_count == 1


@pytest.mark.asyncio
async def test_success_resets_failure_counter(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    await trainer.train(1, INDEX, _sample(60))
    binding.train_signature.return_value = _fail(0.6)
    await trainer.train(2, INDEX, _sample(60))
    assert trainer.fail_count == 1
    binding.train_signature.return_value = _ok(0.8)
    await trainer.train(3, INDEX, _sample(60))
    assert trainer.fail_count == 0


@pytest.mark.asyncio
async def test_low_security_signature(trainer, binding):
    binding.train_signature = AsyncMock(side_effect=[
        TrainingResult(index=INDEX, progress=0.6, error_code=ERROR_SIGN_INCONSISTENT, security_too_low=True)
        for _ in range(3)
    ])
    for i in range(3):
        await trainer.train(i, INDEX, _sample(20))
    assert trainer.security_too_low_count == 3
    assert trainer.is_low_secure_signature

    binding.train_signature.side_effect = None
    binding.train_signature.return_value = _ok(1.0, level=SecurityLevel.NORMAL)
    outcome = await trainer.train(9, INDEX, _sample(60))
    assert outcome.security_level is SecurityLevel.NORMAL
    assert not trainer.is_low_secure_signature


@pytest.mark.asyncio
async def test_weak_successful_steps_accumulate(trainer, binding):
    for i, progress in enumerate([0.2, 0.4, 0.6, 0.8, 1.0]):
        binding.train_signature.return_value = _ok(progress, too_low=True)
        outcome = await trainer.train(i, INDEX, _sample(60))
        assert outcome.error_code is None
    assert trainer.security_too_low_count == 5
    assert trainer.is_low_secure_signature


@pytest.mark.asyncio
async def test_unanswered_training_call_leaves_counters_alone(trainer, binding):
    binding.train_signature.return_value = _ok(0.2)
    await trainer.train(1, INDEX, _sample(60))
    trainer.fail_count = 2
    trainer.security_too_low_count = 2

    binding.train_signature.return_value = TrainingResult(index=INDEX, progress=0.0, timed_out=True)
    outcome = await trainer.train(2, INDEX, _sample(60))

    assert outcome.ignored
    assert trainer.fail_count == 2
    assert trainer.security_too_low_count == 2
    assert trainer.first_train_data_size == 60
    binding.delete_label.assert_not_awaited()


class TestTrainingProgressState:
    def test_counters(self):
        state = TrainingProgressState()
        state.inc_user_gesture_count(101)
        state.inc_common_gesture_count(101)
        state.inc_failed_gesture_count(0)
        assert state.inc_failed_gesture_count(0) == 2
        assert state.total() == 4

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "state" / "train_data.json"
        state = TrainingProgressState()
        state.train_progress[1] = 0.6
        state.use_user_gesture[101] = True
        state.use_predefined_user_gesture["fireball"] = True
        state.inc_user_gesture_count(101)
        state.save(str(path))

        loaded = TrainingProgressState.load(str(path))
        assert loaded == state
        assert list(loaded.use_user_gesture) == [101]

    def test_missing_file_gives_fresh_state(self, tmp_path):
        assert TrainingProgressState.load(str(tmp_path / "none.json")) == TrainingProgressState()

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            TrainingProgressState.load(str(path))

    def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2]))
        with pytest.raises(PersistenceError):
            TrainingProgressState.load(str(path))
