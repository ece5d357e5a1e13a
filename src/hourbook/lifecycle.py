"""Plan lifecycle: plans go from active to completed, missed or rescheduled.

Every non-blank entry of a plan document is a plan. It joins the lifecycle
lazily: the first lifecycle operation on its day stamps it with a plan id,
the ``active`` status and timestamps. Acting on a plan marks it completed and
logs a copy into the same hour (or range) of that day's journal.

These functions change documents in memory only; the caller saves them.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from hourbook.errors import NotFound, ValidationError
from hourbook.hours import HOURS, slot_start
from hourbook.models import (
    EMPTY,
    EntryMode,
    Lifecycle,
    LogRef,
    PlanSource,
    PlanStatus,
    ScheduleDocument,
    Task,
    TaskRef,
    TextEntry,
)

logger = logging.getLogger(__name__)

# A plan is missed once its last hour has passed.
SLOT_LENGTH = timedelta(hours=1)


class PlanAction(enum.StrEnum):
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"

    @classmethod
    def parse(cls, raw: str | PlanAction) -> PlanAction:
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError('Invalid action. Use "in-progress" or "complete".') from None


class TextPlanStatus(enum.StrEnum):
    COMPLETED = "completed"
    NOT_FOUND = "not-found"
    ALREADY_COMPLETED = "already-completed"
    NOT_COMPLETABLE = "not-completable"


@dataclass(frozen=True)
class PlanItem:
    source: PlanSource
    entry: TextEntry | TaskRef

    @property
    def plan_id(self) -> str | None:
        return self.entry.lifecycle.plan_id if self.entry.lifecycle else None

    @property
    def status(self) -> PlanStatus:
        lc = self.entry.lifecycle
        return lc.status if lc and lc.status else PlanStatus.ACTIVE

    @property
    def entry_type(self) -> str:
        return "task" if isinstance(self.entry, TaskRef) else "text"

    def to_dict(self) -> dict:
        where = {"hour": self.source.hour} if not self.source.is_range else {
            "start": self.source.start, "end": self.source.end,
        }
        return {**where, "type": self.entry_type, **self.entry.to_raw()}


@dataclass(frozen=True)
class PlanActionOutcome:
    action: PlanAction
    entry_type: str
    logged_created: bool
    plan_status: PlanStatus = PlanStatus.COMPLETED
    task: Task | None = None
    task_completion_changed: bool | None = None

    def to_dict(self) -> dict:
        d = {
            "action": self.action.value,
            "entryType": self.entry_type,
            "loggedCreated": self.logged_created,
            "planStatus": self.plan_status.value,
        }
        if self.entry_type == "task":
            d["taskCompletionChanged"] = bool(self.task_completion_changed)
        return d


@dataclass(frozen=True)
class TextPlanOutcome:
    status: TextPlanStatus
    logged_created: bool = False

    def to_dict(self) -> dict:
        return {"status": self.status.value, "loggedCreated": self.logged_created}


@dataclass(frozen=True)
class Replanned:
    old_plan_id: str
    new_plan_id: str


def plan_items(doc: ScheduleDocument) -> list[PlanItem]:
    """Non-blank slots in day order, then ranges in stored order."""
    items = [
        PlanItem(PlanSource(hour=hour), entry)
        for hour in HOURS
        if not (entry := doc.slots.get(hour, EMPTY)).is_blank()
    ]
    items += [PlanItem(PlanSource(start=r.start, end=r.end), r.payload) for r in doc.ranges]
    return items


def ensure_defaults(doc: ScheduleDocument, now: str) -> bool:
    """Give every plan an id, a status and timestamps. Returns True if anything changed."""
    changed = False
    for item in plan_items(doc):
        lc = item.entry.lifecycle or Lifecycle(EntryMode.PLANNED)
        if lc.plan_id and lc.status and lc.created_at and lc.updated_at:
            continue
        filled = dataclasses.replace(
            lc,
            mode=EntryMode.PLANNED,
            plan_id=lc.plan_id or str(uuid.uuid4()),
            status=lc.status or PlanStatus.ACTIVE,
            created_at=lc.created_at or now,
            updated_at=lc.updated_at or now,
        )
        doc.place(item.source, item.entry.with_lifecycle(filled))
        changed = True
    return changed


def deadline(date: str, source: PlanSource) -> datetime:
    return slot_start(date, source.last_hour) + SLOT_LENGTH


def _as_datetime(now: str) -> datetime:
    return datetime.fromisoformat(now).replace(tzinfo=None)


def mark_missed(
    plan: ScheduleDocument, journal: ScheduleDocument | None, date: str, now: str
) -> list[PlanItem]:
    """Mark active plans whose last hour is over as missed.

    A task plan is not missed while the day's journal references that task.
    Returns the plans that were marked.
    """
    logged = journal.task_ids() if journal is not None else set()
    current = _as_datetime(now)
    marked = []
    for item in plan_items(plan):
        if item.entry.lifecycle is None or item.status is not PlanStatus.ACTIVE:
            continue
        if isinstance(item.entry, TaskRef) and item.entry.task_id in logged:
            continue
        if current <= deadline(date, item.source):
            continue
        lc = dataclasses.replace(
            item.entry.lifecycle, status=PlanStatus.MISSED, missed_at=now, updated_at=now
        )
        plan.place(item.source, item.entry.with_lifecycle(lc))
        marked.append(PlanItem(item.source, item.entry.with_lifecycle(lc)))
        logger.info("Plan %s at %s on %s missed", lc.plan_id, item.source, date)
    return marked


def find_plan(
    doc: ScheduleDocument, *, source: PlanSource | None = None, plan_id: str | None = None
) -> PlanItem | None:
    for item in plan_items(doc):
        if source is not None and item.source != source:
            continue
        if plan_id is not None and item.plan_id != plan_id:
            continue
        return item
    return None


def apply_plan(
    plan: ScheduleDocument, journal: ScheduleDocument, date: str, item: PlanItem, now: str
) -> bool:
    """Mark *item* completed and log it into the journal. Returns True if a
    journal entry was written.

    The logged copy goes into the same slot, or the range with the same
    bounds, only when that spot is free; an identical logged copy counts as
    already written.
    """
    ref = LogRef(date, item.source)
    lc = item.entry.lifecycle or Lifecycle(EntryMode.PLANNED)
    done = dataclasses.replace(lc, status=PlanStatus.COMPLETED, updated_at=now, completed_by=ref)
    plan.place(item.source, item.entry.with_lifecycle(done))

    logged = item.entry.with_lifecycle(Lifecycle(EntryMode.LOGGED, completed_by=ref))
    existing = journal.entry_at(item.source)
    if existing == logged:
        return False
    if existing is not None and not existing.is_blank():
        logger.info("Journal %s on %s is taken; plan %s not logged", item.source, date, lc.plan_id)
        return False
    journal.place(item.source, logged)
    return True


def replan(plan: ScheduleDocument, plan_id: str, target: PlanSource, now: str) -> Replanned:
    """Move a plan to *target*: the old entry stays as ``rescheduled`` and a
    new active plan linked to it is written at *target*, which must be free."""
    item = find_plan(plan, plan_id=plan_id)
    if item is None:
        raise NotFound(f"Plan not found for ID: \"{plan_id}\"")
    if item.status in (PlanStatus.COMPLETED, PlanStatus.RESCHEDULED):
        raise ValidationError(f"Plan {plan_id} is already {item.status.value}")
    existing = plan.entry_at(target)
    if existing is not None and not existing.is_blank():
        raise ValidationError(f"{target} already holds an entry. Clear it first.")

    new_id = str(uuid.uuid4())
    old = dataclasses.replace(
        item.entry.lifecycle, status=PlanStatus.RESCHEDULED, replanned_to=new_id, updated_at=now
    )
    plan.place(item.source, item.entry.with_lifecycle(old))
    new = Lifecycle(
        EntryMode.PLANNED,
        plan_id=new_id,
        status=PlanStatus.ACTIVE,
        created_at=now,
        updated_at=now,
        replanned_from=plan_id,
    )
    plan.place(target, item.entry.with_lifecycle(new))
    logger.info("Replanned %s from %s to %s as %s", plan_id, item.source, target, new_id)
    return Replanned(plan_id, new_id)
