"""
Progress observers – the pipeline's only output channel besides the store.

The pipeline calls four methods:
  status(message)                   fire-and-forget narration
  queue(tasks)                      replaces the task list once per run
  update_task(id, patch)            partial update of one task
  update_tasks_bulk(ids, patch)     same patch for many tasks

``TaskBoard`` keeps the task list in memory, refuses backward or
post-terminal status changes, and records every accepted change as a
TaskEvent so hosts can consume a plain event stream.
"""

import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass

from poa_sync.models import STATUS_RANK, EmailTask, TaskStatus

log = logging.getLogger(__name__)


class ProgressObserver:
    """No-op base; override what you need."""

    def status(self, message: str) -> None:
        pass

    def queue(self, tasks: list[EmailTask]) -> None:
        pass

    def update_task(self, task_id: str, patch: dict) -> None:
        pass

    def update_tasks_bulk(self, task_ids: list[str], patch: dict) -> None:
        for task_id in task_ids:
            self.update_task(task_id, patch)


class CompositeObserver(ProgressObserver):
    """Forwards every call to each wrapped observer in order."""

    def __init__(self, *observers):
        self.observers = [o for o in observers if o is not None]

    def status(self, message):
        for o in self.observers:
            o.status(message)

    def queue(self, tasks):
        for o in self.observers:
            o.queue([EmailTask(**vars(t)) for t in tasks])

    def update_task(self, task_id, patch):
        for o in self.observers:
            o.update_task(task_id, dict(patch))

    def update_tasks_bulk(self, task_ids, patch):
        for o in self.observers:
            o.update_tasks_bulk(list(task_ids), dict(patch))


@dataclass
class TaskEvent:
    task_id: str
    status: TaskStatus
    subject: str
    error: str | None = None


def can_transition(current: TaskStatus, new: TaskStatus) -> bool:
    if current == new:
        return True
    if current.is_terminal:
        return False
    return STATUS_RANK[new] > STATUS_RANK[current]


class TaskBoard(ProgressObserver):
    """In-memory task list with forward-only status transitions."""

    def __init__(self, echo_status: bool = True):
        self.tasks: OrderedDict[str, EmailTask] = OrderedDict()
        self.messages: list[str] = []
        self.events: list[TaskEvent] = []
        self.rejected: list[tuple[str, str, str]] = []
        self._echo = echo_status

    def status(self, message):
        self.messages.append(message)
        if self._echo:
            log.info("%s", message)

    def queue(self, tasks):
        self.tasks = OrderedDict((t.id, t) for t in tasks)
        for t in tasks:
            self.events.append(TaskEvent(t.id, t.status, t.subject, t.error))

    def update_task(self, task_id, patch):
        task = self.tasks.get(task_id)
        if task is None:
            log.warning("Update for unknown task %s ignored", task_id)
            return
        new_status = patch.get("status")
        if new_status is not None:
            new_status = TaskStatus(new_status)
            if not can_transition(task.status, new_status):
                log.warning("Task %s: %s -> %s rejected", task_id, task.status.value, new_status.value)
                self.rejected.append((task_id, task.status.value, new_status.value))
                return
            task.status = new_status
        if "subject" in patch:
            task.subject = patch["subject"]
        if "error" in patch:
            task.error = patch["error"]
        self.events.append(TaskEvent(task_id, task.status, task.subject, task.error))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def counts(self) -> Counter:
        return Counter(t.status.value for t in self.tasks.values())

    def with_status(self, status) -> list[EmailTask]:
        status = TaskStatus(status)
        return [t for t in self.tasks.values() if t.status == status]

    @property
    def last_message(self) -> str:
        return self.messages[-1] if self.messages else ""
