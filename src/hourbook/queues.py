"""Ordered task queues: the general backlog and per-date daily subsets.

Position 0 is the highest priority. A queue never holds the same id twice and
positions are dense. Daily queues may hold bare id references to tasks that
live in the general queue of the same list kind; those are resolved on read.

Every mutation is one read-modify-write of a single queue document. Due-date
promotion writes a second document (the daily queue) after the first; it is
idempotent, so a crash in between is repaired by the next promotion.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from typing import Callable

from hourbook.errors import NotFound, Ok, Result, ValidationError, returns_result
from hourbook.hours import now_iso, parse_date
from hourbook.models import TASK_NOT_FOUND_TEXT, ListKind, PositionMode, QueueItem, Scope, Task
from hourbook.persistence import DocumentStore, StoreKey, read_json, write_json
from hourbook.projects import normalize_project_list

logger = logging.getLogger(__name__)

GENERAL_CATEGORY = "tasks"
DAILY_CATEGORY = "daily-lists"
QUEUE_COMMENT = "Queue structure - first element is highest priority"


@dataclass(frozen=True)
class Move:
    previous_position: int
    new_position: int
    relative_position: int | None = None  # type-relative moves only


class TaskQueue:
    """An indexable sequence of queue items with an id -> position map."""

    def __init__(self, items: list[QueueItem] | None = None):
        self.items: list[QueueItem] = []
        self._index: dict[str, int] = {}
        for item in items or []:
            if item.id in self._index:
                logger.warning("Dropping duplicate queue entry %s", item.id)
                continue
            self._index[item.id] = len(self.items)
            self.items.append(item)

    def _reindex(self) -> None:
        self._index = {item.id: i for i, item in enumerate(self.items)}

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._index

    def ids(self) -> list[str]:
        return [item.id for item in self.items]

    def position(self, task_id: str) -> int | None:
        return self._index.get(task_id)

    def get(self, task_id: str) -> QueueItem | None:
        pos = self._index.get(task_id)
        return None if pos is None else self.items[pos]

    def insert(self, item: QueueItem, position: int | None = None) -> int:
        """Insert at *position* clamped into ``[0, len]``; default appends."""
        if item.id in self._index:
            raise ValidationError(f"Task {item.id} is already in this queue")
        pos = len(self.items) if position is None else max(0, min(position, len(self.items)))
        self.items.insert(pos, item)
        self._reindex()
        return pos

    def pop(self, task_id: str) -> QueueItem:
        item = self.items.pop(self._index[task_id])
        self._reindex()
        return item

    def move(self, task_id: str, position: int) -> Move:
        current = self._index[task_id]
        target = max(0, min(position, len(self.items) - 1))
        if target != current:
            item = self.items.pop(current)
            self.items.insert(target, item)
            self._reindex()
        return Move(current, target)

    def prepend(self, items: list[QueueItem]) -> None:
        """Put *items* at the front as a block, keeping their relative order."""
        fresh = [i for i in items if i.id not in self._index]
        self.items[:0] = fresh
        self._reindex()

    def to_dict(self) -> dict:
        return {"_comment": QUEUE_COMMENT, "tasks": [item.to_dict() for item in self.items]}

    @classmethod
    def from_dict(cls, d: dict) -> TaskQueue:
        return cls([QueueItem.from_dict(t) for t in d.get("tasks", [])])


def _coerce_task(task: Task | str) -> Task:
    if isinstance(task, str):
        task = Task(id="", text=task)
    text = (task.text or "").strip()
    if not text:
        raise ValidationError("Task text cannot be empty")
    due = parse_date(task.due_date) if task.due_date else None
    return dataclasses.replace(
        task,
        id=task.id or str(uuid.uuid4()),
        text=text,
        due_date=due,
        projects=normalize_project_list(task.projects),
    )


def _type_relative_index(daily_flags: list[bool], is_daily: bool, position: int) -> int:
    """Absolute index for the *position*-th slot among tasks of the same kind.

    With none of that kind present, recurring daily tasks go first and regular
    tasks last.
    """
    matching = [i for i, flag in enumerate(daily_flags) if flag == is_daily]
    if not matching:
        return 0 if is_daily else len(daily_flags)
    if position >= len(matching):
        return matching[-1] + 1
    return matching[position]


class TaskQueueManager:
    """Owns every task queue, addressed by ``(list kind, scope)``."""

    def __init__(self, store: DocumentStore, clock: Callable[[], str] = now_iso):
        self.store = store
        self.clock = clock

    # ---- storage ----

    @staticmethod
    def key(list_kind: ListKind, scope: Scope) -> StoreKey:
        if scope.is_daily:
            return StoreKey(DAILY_CATEGORY, f"{scope.date}-{list_kind.value}")
        return StoreKey(GENERAL_CATEGORY, list_kind.value)

    def load(self, list_kind: ListKind | str, scope: Scope | str) -> TaskQueue:
        """Read a queue; a missing document is an empty queue."""
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        raw = read_json(self.store, self.key(list_kind, scope))
        return TaskQueue() if raw is None else TaskQueue.from_dict(raw)

    def _save(self, list_kind: ListKind, scope: Scope, queue: TaskQueue) -> None:
        write_json(self.store, self.key(list_kind, scope), queue.to_dict())

    # ---- reads ----

    @returns_result
    def tasks(self, list_kind: ListKind | str, scope: Scope | str) -> Result[list[Task]]:
        """Tasks in priority order; daily references are filled from the general queue.

        References whose task no longer exists are skipped.
        """
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        queue = self.load(list_kind, scope)
        general = self._general_index(list_kind) if scope.is_daily else {}
        out: list[Task] = []
        for item in queue.items:
            task = general.get(item.id) if item.is_reference else item.task
            if task is None:
                logger.debug("Skipping dangling reference %s in %s/%s", item.id, list_kind, scope)
                continue
            out.append(task)
        return Ok(out)

    @returns_result
    def get(self, list_kind: ListKind | str, scope: Scope | str, task_id: str) -> Result[Task]:
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        item = self.load(list_kind, scope).get(task_id)
        if item is None:
            raise NotFound(f"Task not found with ID: \"{task_id}\"")
        task = item.task or self._general_index(list_kind).get(item.id)
        if task is None:
            raise NotFound(f"Task {task_id} is referenced but no longer exists")
        return Ok(task)

    def lookup(self, list_kind: ListKind | str, date: str) -> dict[str, Task]:
        """id -> Task for one date: daily full-data items shadow general ones."""
        list_kind = ListKind.parse(list_kind)
        found = self._general_index(list_kind)
        for item in self.load(list_kind, Scope.daily(date)).items:
            if item.task is not None:
                found[item.id] = item.task
        return found

    def find(self, list_kind: ListKind | str, date: str, task_id: str) -> Task | None:
        return self.lookup(list_kind, date).get(task_id)

    def _general_index(self, list_kind: ListKind) -> dict[str, Task]:
        queue = self.load(list_kind, Scope.general())
        return {item.id: item.task for item in queue.items if not item.is_reference}

    def _daily_flags(self, list_kind: ListKind, queue: TaskQueue) -> list[bool]:
        """Per position: does the item recur daily? References read the general task."""
        general: dict[str, Task] | None = None
        flags = []
        for item in queue.items:
            task = item.task
            if item.is_reference:
                if general is None:
                    general = self._general_index(list_kind)
                task = general.get(item.id)
            flags.append(bool(task and task.is_daily))
        return flags

    def _materialize(self, list_kind: ListKind, item: QueueItem) -> Task:
        """Full data for *item*, copying a referenced general task into it."""
        if item.is_reference:
            source = self._general_index(list_kind).get(item.id)
            if source is None:
                raise NotFound(f"Task {item.id} is referenced but no longer exists")
            item.task = dataclasses.replace(source)
        return item.task

    # ---- mutations ----

    @returns_result
    def append(
        self,
        list_kind: ListKind | str,
        scope: Scope | str,
        task: Task | str,
        position: int | None = None,
        mode: PositionMode | str = PositionMode.ABSOLUTE,
    ) -> Result[Task]:
        """Insert *task* at *position* (default: end). Generates an id if missing.

        In type-relative mode *position* counts only tasks of the same kind
        (daily recurring or regular) as *task*. A due date on a general task
        also promotes it into that date's daily queue.
        """
        list_kind, scope, mode = ListKind.parse(list_kind), Scope.parse(scope), PositionMode.parse(mode)
        if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
            raise ValidationError("position must be an integer")
        new_task = _coerce_task(task)

        queue = self.load(list_kind, scope)
        if mode is PositionMode.TYPE_RELATIVE and position is not None:
            if position < 0:
                raise ValidationError("position must be non-negative in type-relative mode")
            position = _type_relative_index(self._daily_flags(list_kind, queue), new_task.is_daily, position)
        pos = queue.insert(QueueItem(new_task.id, new_task), position)
        self._save(list_kind, scope, queue)
        logger.info("Added %s to %s/%s at %d", new_task.id, list_kind, scope, pos)

        if new_task.due_date and not scope.is_daily:
            self._promote_one(list_kind, new_task.due_date, new_task.id)
        return Ok(new_task)

    @returns_result
    def remove(self, list_kind: ListKind | str, scope: Scope | str, task_id: str) -> Result[Task]:
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        queue = self.load(list_kind, scope)
        if task_id not in queue:
            raise NotFound(f"Task not found with ID: \"{task_id}\"")
        item = queue.pop(task_id)
        self._save(list_kind, scope, queue)
        logger.info("Removed %s from %s/%s", task_id, list_kind, scope)

        if not item.is_reference:
            return Ok(item.task)
        return Ok(self._general_index(list_kind).get(task_id) or Task(id=task_id, text=TASK_NOT_FOUND_TEXT))

    @returns_result
    def update(
        self,
        list_kind: ListKind | str,
        scope: Scope | str,
        task_id: str,
        *,
        text: str | None = None,
        due_date: str | None = None,
        notes: str | None = None,
        projects: list[str] | None = None,
        is_daily: bool | None = None,
    ) -> Result[Task]:
        """Patch the given fields; ``None`` leaves a field alone.

        ``due_date=""`` clears the due date and ``projects=[]`` clears the tags.
        Updating a daily reference first copies the general task into the daily
        queue, so the change applies to that day only.
        """
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        if text is not None and not text.strip():
            raise ValidationError("Task text cannot be empty")
        new_due = parse_date(due_date) if due_date else due_date
        new_projects = normalize_project_list(projects) if projects is not None else None

        queue = self.load(list_kind, scope)
        item = queue.get(task_id)
        if item is None:
            raise NotFound(f"Task not found with ID: \"{task_id}\"")
        task = self._materialize(list_kind, item)

        if text is not None:
            task.text = text.strip()
        if new_due is not None:
            task.due_date = new_due or None
        if notes is not None:
            task.notes = notes.strip() or None
        if new_projects is not None:
            task.projects = new_projects
        if is_daily is not None:
            task.is_daily = bool(is_daily)

        self._save(list_kind, scope, queue)
        logger.info("Updated %s in %s/%s", task_id, list_kind, scope)

        if new_due and not scope.is_daily:
            self._promote_one(list_kind, new_due, task_id)
        return Ok(task)

    @returns_result
    def reorder(
        self,
        list_kind: ListKind | str,
        scope: Scope | str,
        task_id: str,
        new_position: int,
        mode: PositionMode | str = PositionMode.ABSOLUTE,
    ) -> Result[Move]:
        """Move a task to *new_position* (clamped to the last index).

        In type-relative mode *new_position* is counted among the other tasks
        of the same kind (daily recurring or regular). Moving onto the current
        position succeeds without writing anything.
        """
        list_kind, scope, mode = ListKind.parse(list_kind), Scope.parse(scope), PositionMode.parse(mode)
        if isinstance(new_position, bool) or not isinstance(new_position, int) or new_position < 0:
            raise ValidationError("newPosition must be a non-negative integer")

        queue = self.load(list_kind, scope)
        if task_id not in queue:
            raise NotFound(f"Task not found with ID: \"{task_id}\"")
        if mode is PositionMode.TYPE_RELATIVE:
            flags = self._daily_flags(list_kind, queue)
            is_daily = flags.pop(queue.position(task_id))
            relative = min(new_position, flags.count(is_daily))
            target = _type_relative_index(flags, is_daily, new_position)
            move = dataclasses.replace(queue.move(task_id, target), relative_position=relative)
        else:
            move = queue.move(task_id, new_position)
        if move.previous_position == move.new_position:
            return Ok(move)

        self._save(list_kind, scope, queue)
        logger.info(
            "Moved %s in %s/%s from %d to %d",
            task_id, list_kind, scope, move.previous_position, move.new_position,
        )
        return Ok(move)

    @returns_result
    def complete(self, list_kind: ListKind | str, scope: Scope | str, task_id: str) -> Result[Task]:
        """Mark done with a timestamp. The task keeps its position."""
        return Ok(self._set_completed(list_kind, scope, task_id, True))

    @returns_result
    def reopen(self, list_kind: ListKind | str, scope: Scope | str, task_id: str) -> Result[Task]:
        """Undo ``complete``."""
        return Ok(self._set_completed(list_kind, scope, task_id, False))

    def _set_completed(self, list_kind, scope, task_id: str, done: bool) -> Task:
        list_kind, scope = ListKind.parse(list_kind), Scope.parse(scope)
        queue = self.load(list_kind, scope)
        item = queue.get(task_id)
        if item is None:
            raise NotFound(f"Task not found with ID: \"{task_id}\"")
        task = self._materialize(list_kind, item)
        if task.completed == done:
            return task

        task.completed = done
        task.completed_at = self.clock() if done else None
        self._save(list_kind, scope, queue)
        logger.info("%s %s in %s/%s", "Completed" if done else "Reopened", task_id, list_kind, scope)
        return task

    @returns_result
    def auto_promote_due(self, list_kind: ListKind | str, date: str) -> Result[list[Task]]:
        """Prepend general tasks due on *date*, and recurring daily tasks, that
        the daily queue lacks.

        Promoted tasks keep their general-queue order and sit above existing
        daily items. Running it again changes nothing.
        """
        list_kind, date = ListKind.parse(list_kind), parse_date(date)
        general = self.load(list_kind, Scope.general())
        daily_scope = Scope.daily(date)
        daily = self.load(list_kind, daily_scope)

        due = [
            item.task
            for item in general.items
            if not item.is_reference
            and (item.task.due_date == date or item.task.is_daily)
            and item.id not in daily
        ]
        if due:
            daily.prepend([QueueItem(t.id) for t in due])
            self._save(list_kind, daily_scope, daily)
            logger.info("Promoted %d due task(s) into %s/%s", len(due), list_kind, daily_scope)
        return Ok(due)

    def _promote_one(self, list_kind: ListKind, date: str, task_id: str) -> bool:
        scope = Scope.daily(date)
        daily = self.load(list_kind, scope)
        if task_id in daily:
            return False
        daily.prepend([QueueItem(task_id)])
        self._save(list_kind, scope, daily)
        logger.info("Promoted %s into %s/%s", task_id, list_kind, scope)
        return True
