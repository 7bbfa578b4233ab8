"""Tests for HistoryLog undo/redo, branch truncation and snapshots."""

import pytest

from policydesk.exceptions import HistoryError
from policydesk.history import HistoryLog
from policydesk.models import DispatchResult, Intent, IntentType


def _record(log, intent_type=IntentType.HELP, n=0):
    intent = Intent(type=intent_type, params={"n": n}, confidence=0.9)
    return log.record(intent, DispatchResult(success=True, intent=intent))


def test_initial_state():
    log = HistoryLog()
    assert log.cursor == -1
    assert log.size() == 0
    assert log.current() is None
    assert log.can_undo() is False
    assert log.can_redo() is False
    assert log.undo() is None
    assert log.redo() is None


def test_entry_ids_are_timestamped():
    entry = _record(HistoryLog())
    millis, suffix = entry.id.split("-")
    assert millis.isdigit()
    assert len(suffix) == 9


@pytest.mark.parametrize("k,m", [(1, 0), (1, 1), (3, 1), (5, 3), (5, 5)])
def test_undo_algebra(k, m):
    log = HistoryLog()
    entries = [_record(log, n=i) for i in range(k)]
    for _ in range(m):
        log.undo()

    assert log.size() == k
    expected_index = k - 1 - m
    if expected_index < 0:
        assert log.current() is None
    else:
        assert log.current() == entries[expected_index]


def test_undo_is_noop_at_floor():
    log = HistoryLog()
    _record(log)
    assert log.undo() is None
    assert log.cursor == -1
    assert log.undo() is None
    assert log.cursor == -1


def test_redo_after_undo_returns_entry():
    log = HistoryLog()
    first = _record(log, n=1)
    second = _record(log, n=2)
    assert log.undo() == first
    assert log.can_redo() is True
    assert log.redo() == second
    assert log.redo() is None
    assert log.cursor == 1


def test_record_truncates_redo_branch():
    log = HistoryLog()
    entry1 = _record(log, n=1)
    _record(log, n=2)
    log.undo()
    entry3 = _record(log, n=3)

    assert log.size() == 2
    assert log.recent(2) == [entry1, entry3]
    assert log.can_redo() is False


def test_record_from_floor_discards_everything():
    log = HistoryLog()
    _record(log, n=1)
    _record(log, n=2)
    log.undo()
    log.undo()
    entry = _record(log, n=3)
    assert log.recent(10) == [entry]
    assert log.cursor == 0


def test_length_cap_trims_oldest():
    log = HistoryLog(max_size=3)
    entries = [_record(log, n=i) for i in range(5)]
    assert log.size() == 3
    assert log.recent(3) == entries[2:]
    assert log.cursor == 2


def test_recent_and_search():
    log = HistoryLog()
    a = _record(log, IntentType.ANALYZE)
    _record(log, IntentType.PRICING)
    c = _record(log, IntentType.ANALYZE)
    assert log.recent(0) == []
    assert len(log.recent(100)) == 3
    assert log.search_by_intent_type("analyze") == [a, c]
    assert log.search_by_intent_type(IntentType.EXPORT) == []


def test_snapshot_round_trip_through_dict():
    log = HistoryLog()
    entries = [_record(log, n=i) for i in range(3)]
    log.undo()
    data = log.snapshot().model_dump()

    restored = HistoryLog()
    restored.restore_snapshot(data)
    assert restored.cursor == 1
    assert [e.id for e in restored.recent(3)] == [e.id for e in entries]


def test_restore_applies_length_cap():
    source = HistoryLog()
    for i in range(5):
        _record(source, n=i)
    source.undo()
    source.undo()  # cursor 2

    small = HistoryLog(max_size=2)
    small.restore_snapshot(source.snapshot())
    assert small.size() == 2
    assert small.cursor == -1


def test_restore_rejects_bad_cursor():
    log = HistoryLog()
    with pytest.raises(HistoryError):
        log.restore_snapshot({"entries": [], "cursor": 3})


def test_entries_are_immutable():
    entry = _record(HistoryLog())
    with pytest.raises(Exception):
        entry.duration_ms = 5.0


def test_clear_resets_cursor():
    log = HistoryLog()
    _record(log)
    log.clear()
    assert log.cursor == -1
    assert len(log) == 0
