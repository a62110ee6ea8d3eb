"""Unit tests for `GestureStatistics`."""

from smart_gesture.constants import CommonGesture
from smart_gesture.labels import INDEXED_SCOPE
from smart_gesture.labels import IndexedLabel
from smart_gesture.labels import NamedLabel
from smart_gesture.statistics import GestureStatistics
from smart_gesture.statistics import Recognizer

HEART = IndexedLabel(CommonGesture.HEART)
PROFILE_SCOPE = "wand_fire"


def _stats_with(common_err, user_err, common_conf=0.0, user_conf=0.0, label=HEART, scope=INDEXED_SCOPE):
    stats = GestureStatistics()
    for _ in range(common_err):
        stats.record_mismatch(scope, label, Recognizer.COMMON)
    for _ in range(user_err):
        stats.record_mismatch(scope, label, Recognizer.CUSTOM)
    stats.ensure(scope, label)
    if common_conf:
        stats.record_confidence(scope, label, Recognizer.COMMON, common_conf)
    if user_conf:
        stats.record_confidence(scope, label, Recognizer.CUSTOM, user_conf)
    return stats


def test_label_without_statistics_favors_common():
    stats = GestureStatistics()
    assert stats.favors_common(INDEXED_SCOPE, HEART)
    assert not stats.custom_is_worse(INDEXED_SCOPE, HEART)


def test_more_common_errors_disfavor_common():
    assert not _stats_with(3, 1).favors_common(INDEXED_SCOPE, HEART)


def test_fewer_common_errors_favor_common():
    assert _stats_with(1, 3).favors_common(INDEXED_SCOPE, HEART)


def test_tie_broken_by_confidence():
    assert not _stats_with(2, 2, common_conf=1.5, user_conf=2.5).favors_common(INDEXED_SCOPE, HEART)
    assert _stats_with(2, 2, common_conf=2.5, user_conf=1.5).favors_common(INDEXED_SCOPE, HEART)
    assert _stats_with(2, 2, common_conf=2.0, user_conf=2.0).favors_common(INDEXED_SCOPE, HEART)


def test_custom_is_worse():
    assert _stats_with(0, 1).custom_is_worse(INDEXED_SCOPE, HEART)
    assert not _stats_with(1, 1).custom_is_worse(INDEXED_SCOPE, HEART)


def test_ensure_is_idempotent():
    stats = GestureStatistics()
    stats.record_mismatch(INDEXED_SCOPE, HEART, Recognizer.COMMON)
    stats.record_confidence(INDEXED_SCOPE, HEART, Recognizer.CUSTOM, 0.7)
    stats.ensure(INDEXED_SCOPE, HEART)
    stats.ensure(INDEXED_SCOPE, HEART)
    assert stats.error_count(INDEXED_SCOPE, HEART).common_err_count == 1
    assert stats.confidence(INDEXED_SCOPE, HEART).user_confidence == 0.7


def test_confidence_is_a_running_sum():
    stats = GestureStatistics()
    for value in (0.9, 0.95, 0.92):
        stats.record_confidence(INDEXED_SCOPE, HEART, Recognizer.COMMON, value)
    assert abs(stats.confidence(INDEXED_SCOPE, HEART).common_confidence - 2.77) < 1e-9


def test_scopes_are_separate():
    stats = GestureStatistics()
    label = NamedLabel("fireball")
    stats.record_mismatch(PROFILE_SCOPE, label, Recognizer.COMMON)
    assert stats.error_count(INDEXED_SCOPE, label) is None
    assert stats.error_count(PROFILE_SCOPE, label).common_err_count == 1
    assert not stats.favors_common(PROFILE_SCOPE, label)


def test_exists_only_after_mark_complete():
    stats = GestureStatistics()
    stats.ensure(INDEXED_SCOPE, HEART)
    assert stats.has_scope(INDEXED_SCOPE)
    assert not stats.exists(INDEXED_SCOPE)
    stats.mark_complete(INDEXED_SCOPE)
    assert stats.exists(INDEXED_SCOPE)


def test_reset_one_scope_or_all():
    stats = GestureStatistics()
    stats.mark_complete(INDEXED_SCOPE)
    stats.mark_complete(PROFILE_SCOPE)
    stats.reset(PROFILE_SCOPE)
    assert stats.exists(INDEXED_SCOPE)
    assert not stats.has_scope(PROFILE_SCOPE)
    stats.reset(INDEXED_SCOPE)
    assert not stats.has_scope(INDEXED_SCOPE)
    stats.mark_complete(PROFILE_SCOPE)
    stats.reset()
    assert not stats.has_scope(PROFILE_SCOPE)


def test_snapshot_uses_readable_keys():
    stats = _stats_with(1, 0, common_conf=0.5)
    snapshot = stats.snapshot()
    assert snapshot["indexed"]["stats"]["HEART"]["common_err_count"] == 1
    assert snapshot["indexed"]["confidences"]["HEART"]["common_confidence"] == 0.5
