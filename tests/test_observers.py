"""Unit tests for the progress observers."""
from __future__ import annotations

from poa_sync.models import EmailTask, TaskStatus
from poa_sync.observers import CompositeObserver, ProgressObserver, TaskBoard, can_transition


def _board(*ids):
    board = TaskBoard(echo_status=False)
    board.queue([EmailTask(id=i) for i in ids])
    return board


class TestTransitions:

    def test_forward_only(self):
        assert can_transition(TaskStatus.QUEUED, TaskStatus.FETCHING)
        assert can_transition(TaskStatus.PARSING, TaskStatus.HELD)
        assert not can_transition(TaskStatus.WRITING, TaskStatus.FETCHING)

    def test_terminal_is_final(self):
        assert not can_transition(TaskStatus.DONE, TaskStatus.ERROR)
        assert not can_transition(TaskStatus.HELD, TaskStatus.DONE)
        assert can_transition(TaskStatus.DONE, TaskStatus.DONE)


class TestTaskBoard:

    def test_queue_replaces_list(self):
        board = _board("a", "b")
        board.queue([EmailTask(id="c")])
        assert list(board.tasks) == ["c"]
        assert board.tasks["c"].subject == "In queue..."

    def test_partial_update(self):
        board = _board("a")
        board.update_task("a", {"status": TaskStatus.FETCHING})
        board.update_task("a", {"subject": "Hello"})
        task = board.tasks["a"]
        assert task.status == TaskStatus.FETCHING
        assert task.subject == "Hello"

    def test_status_string_accepted(self):
        board = _board("a")
        board.update_task("a", {"status": "parsing"})
        assert board.tasks["a"].status == TaskStatus.PARSING

    def test_backward_update_rejected(self):
        board = _board("a")
        board.update_task("a", {"status": TaskStatus.WRITING})
        board.update_task("a", {"status": TaskStatus.FETCHING, "error": "late"})
        assert board.tasks["a"].status == TaskStatus.WRITING
        assert board.tasks["a"].error is None
        assert board.rejected == [("a", "writing", "fetching")]

    def test_post_terminal_update_rejected(self):
        board = _board("a")
        board.update_task("a", {"status": TaskStatus.ERROR, "error": "boom"})
        board.update_task("a", {"status": TaskStatus.DONE})
        assert board.tasks["a"].status == TaskStatus.ERROR

    def test_unknown_task_ignored(self):
        board = _board("a")
        board.update_task("zzz", {"status": TaskStatus.DONE})
        assert "zzz" not in board.tasks

    def test_bulk(self):
        board = _board("a", "b", "c")
        board.update_tasks_bulk(["a", "c"], {"status": TaskStatus.BUILDING_REQUEST})
        assert board.with_status("building_request") == [board.tasks["a"], board.tasks["c"]]
        assert board.counts() == {"building_request": 2, "queued": 1}

    def test_events_recorded(self):
        board = _board("a")
        board.update_task("a", {"status": TaskStatus.FETCHING})
        assert [(e.task_id, e.status) for e in board.events] == [
            ("a", TaskStatus.QUEUED), ("a", TaskStatus.FETCHING),
        ]

    def test_messages(self):
        board = TaskBoard(echo_status=False)
        assert board.last_message == ""
        board.status("one")
        board.status("two")
        assert board.messages == ["one", "two"]
        assert board.last_message == "two"


class TestComposite:

    def test_forwards_to_every_observer(self):
        a, b = TaskBoard(echo_status=False), TaskBoard(echo_status=False)
        obs = CompositeObserver(a, None, b)
        obs.status("hi")
        obs.queue([EmailTask(id="x")])
        obs.update_task("x", {"status": TaskStatus.FETCHING})
        obs.update_tasks_bulk(["x"], {"status": TaskStatus.PARSING})
        for board in (a, b):
            assert board.messages == ["hi"]
            assert board.tasks["x"].status == TaskStatus.PARSING

    def test_observers_do_not_share_task_objects(self):
        a, b = TaskBoard(echo_status=False), TaskBoard(echo_status=False)
        CompositeObserver(a, b).queue([EmailTask(id="x")])
        a.update_task("x", {"status": TaskStatus.FETCHING})
        assert b.tasks["x"].status == TaskStatus.QUEUED

    def test_base_observer_is_noop(self):
        obs = ProgressObserver()
        obs.status("x")
        obs.queue([EmailTask(id="a")])
        obs.update_tasks_bulk(["a"], {"status": TaskStatus.DONE})
