"""Read-only join of schedule entries against live task state."""

from __future__ import annotations

import logging

from hourbook.hours import HOURS, parse_date
from hourbook.models import (
    TASK_NOT_FOUND_TEXT,
    Entry,
    ListKind,
    RangeEntry,
    ResolvedDocument,
    ResolvedEntry,
    ResolvedRange,
    ScheduleDocument,
    Task,
    TaskRef,
    TextEntry,
)
from hourbook.queues import TaskQueueManager

logger = logging.getLogger(__name__)


class EntryResolver:
    """Turns a stored schedule document into display-ready entries.

    Task references are looked up in the daily queue for the document's date,
    then in the general queue. A reference that matches nothing resolves to a
    placeholder; resolution never fails and never writes.
    """

    def __init__(self, queues: TaskQueueManager):
        self.queues = queues

    def resolve(self, doc: ScheduleDocument, date: str) -> ResolvedDocument:
        date = parse_date(date)
        tasks: dict[ListKind, dict[str, Task]] = {}

        def find(ref: TaskRef) -> Task | None:
            if ref.list_kind not in tasks:
                tasks[ref.list_kind] = self.queues.lookup(ref.list_kind, date)
            task = tasks[ref.list_kind].get(ref.task_id)
            if task is None:
                logger.debug("Dangling task reference %s (%s) on %s", ref.task_id, ref.list_kind, date)
            return task

        slots = {hour: self._resolve_slot(hour, doc.slots.get(hour), find) for hour in HOURS}
        ranges = [self._resolve_range(r, find) for r in doc.ranges]
        return ResolvedDocument(slots=slots, ranges=ranges)

    @staticmethod
    def _resolve_slot(hour: str, entry: Entry | None, find) -> ResolvedEntry | None:
        if isinstance(entry, TaskRef):
            task = find(entry)
            return ResolvedEntry(
                hour=hour,
                text=task.text if task else TASK_NOT_FOUND_TEXT,
                type="task",
                task_id=entry.task_id,
                list_kind=entry.list_kind,
                completed=task.completed if task else False,
                lifecycle=entry.lifecycle,
            )
        if isinstance(entry, TextEntry) and not entry.is_blank():
            return ResolvedEntry(hour=hour, text=entry.text, type="text", lifecycle=entry.lifecycle)
        return None

    @staticmethod
    def _resolve_range(entry: RangeEntry, find) -> ResolvedRange:
        payload = entry.payload
        if isinstance(payload, TaskRef):
            task = find(payload)
            return ResolvedRange(
                start=entry.start,
                end=entry.end,
                text=task.text if task else TASK_NOT_FOUND_TEXT,
                type="task",
                task_id=payload.task_id,
                list_kind=payload.list_kind,
                completed=task.completed if task else False,
                lifecycle=payload.lifecycle,
            )
        return ResolvedRange(
            start=entry.start, end=entry.end, text=payload.text, type="text", lifecycle=payload.lifecycle
        )
