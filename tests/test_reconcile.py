from datetime import timedelta

from chatpoll.reconcile import find_new, reconcile
from conftest import T0, make_message


def _msgs(*pairs):
    return [make_message(mid, T0 + timedelta(seconds=mid), content) for mid, content in pairs]


def test_new_messages_are_those_after_cursor_in_order() -> None:
    snap = _msgs((1, "a"), (2, "b"), (3, "c"), (4, "d"))
    result = reconcile(snap, [], 2)
    assert [m.message_id for m in result.new_messages] == [3, 4]
    assert result.edited_messages == []
    assert result.last_processed_id == 4


def test_everything_is_new_without_cursor() -> None:
    snap = _msgs((5, "a"), (6, "b"))
    assert [m.message_id for m in find_new(snap, None)] == [5, 6]


def test_edit_detected_by_changed_content() -> None:
    prev = _msgs((1, "a"), (2, "b"), (3, "c"))
    snap = _msgs((1, "a"), (2, "B!"), (3, "c"), (4, "d"))

    result = reconcile(snap, prev, 3)

    assert [m.message_id for m in result.new_messages] == [4]
    assert [(m.message_id, m.content) for m in result.edited_messages] == [(2, "B!")]


def test_edits_follow_snapshot_order() -> None:
    prev = _msgs((1, "a"), (2, "b"), (3, "c"))
    snap = _msgs((1, "A"), (2, "b"), (3, "C"))
    result = reconcile(snap, prev, 3)
    assert [m.message_id for m in result.edited_messages] == [1, 3]


def test_message_missing_from_previous_is_not_an_edit() -> None:
    prev = _msgs((2, "b"))
    snap = _msgs((1, "a"), (2, "b"))
    result = reconcile(snap, prev, 2)
    assert result.new_messages == []
    assert result.edited_messages == []


def test_new_and_edited_are_disjoint() -> None:
    # A stale previous snapshot that somehow contains an id above the cursor.
    prev = _msgs((5, "old"))
    snap = _msgs((4, "x"), (5, "new"))
    result = reconcile(snap, prev, 4)
    assert [m.message_id for m in result.new_messages] == [5]
    assert result.edited_messages == []


def test_empty_snapshot_keeps_cursor() -> None:
    result = reconcile([], _msgs((1, "a")), 9)
    assert result.last_processed_id == 9
    assert result.snapshot == ()
    assert result.new_messages == []


def test_cursor_never_moves_backwards() -> None:
    snap = _msgs((3, "a"), (4, "b"))
    result = reconcile(snap, [], 10)
    assert result.last_processed_id == 10
    assert result.new_messages == []


def test_full_snapshot_is_carried_forward() -> None:
    snap = _msgs((1, "a"), (2, "b"))
    result = reconcile(snap, [], 1)
    assert result.snapshot == tuple(snap)
