"""Application facade wiring queues, schedules and resolution over one store."""

from __future__ import annotations

import logging
from typing import Callable

from hourbook import lifecycle
from hourbook.config import Settings
from hourbook.errors import Err, NotFound, Ok, Result, returns_result
from hourbook.hours import now_iso, parse_date
from hourbook.lifecycle import (
    PlanAction,
    PlanActionOutcome,
    PlanItem,
    Replanned,
    TextPlanOutcome,
    TextPlanStatus,
)
from hourbook.models import (
    ListKind,
    PlanSource,
    PlanStatus,
    PositionMode,
    ResolvedDocument,
    ScheduleDocument,
    ScheduleKind,
    Scope,
    Task,
    TaskRef,
)
from hourbook.persistence import DocumentStore, JsonFileStore
from hourbook.projects import ProjectView, build_project_view
from hourbook.queues import TaskQueueManager
from hourbook.resolver import EntryResolver
from hourbook.schedules import ScheduleStore

logger = logging.getLogger(__name__)


class Planner:
    """Entry point used by the CLI and the MCP server.

    Adds the cross-component behaviour on top of the queue manager and the
    schedule store: a general task with a due date gets a plan for that date,
    and lands in the due slot when that slot is free. Plans move through
    their lifecycle here too, since acting on a plan touches the plan, the
    journal and the task queues of the same day.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        due_slot: str = "8am",
        default_list: ListKind = ListKind.HAVE_TO_DO,
        clock: Callable[[], str] = now_iso,
    ):
        self.store = store
        self.clock = clock
        self.queues = TaskQueueManager(store, clock)
        self.schedules = ScheduleStore(store)
        self.resolver = EntryResolver(self.queues)
        self.due_slot = due_slot
        self.default_list = default_list

    @classmethod
    def from_settings(cls, settings: Settings) -> Planner:
        return cls(
            JsonFileStore(settings.data_dir),
            due_slot=settings.due_slot,
            default_list=settings.default_list,
        )

    def init(self) -> bool:
        return self.schedules.seed_journal_format()

    # ---- tasks ----

    @returns_result
    def add_task(
        self,
        list_kind: ListKind | str,
        scope: Scope | str,
        text: str,
        *,
        position: int | None = None,
        due_date: str | None = None,
        notes: str | None = None,
        is_daily: bool = False,
        projects: list[str] | None = None,
        position_mode: PositionMode | str = PositionMode.ABSOLUTE,
    ) -> Result[Task]:
        task = Task(
            id="", text=text, due_date=due_date, notes=notes,
            is_daily=is_daily, projects=list(projects or []),
        )
        result = self.queues.append(list_kind, scope, task, position, position_mode)
        if result.ok and result.value.due_date and not Scope.parse(scope).is_daily:
            self._place_due(ListKind.parse(list_kind), result.value)
        return result

    @returns_result
    def update_task(
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
        result = self.queues.update(
            list_kind, scope, task_id,
            text=text, due_date=due_date, notes=notes, projects=projects, is_daily=is_daily,
        )
        if result.ok and due_date and not Scope.parse(scope).is_daily:
            self._place_due(ListKind.parse(list_kind), result.value)
        return result

    def _place_due(self, list_kind: ListKind, task: Task) -> None:
        date = task.due_date
        self.schedules.create_for_date(date, ScheduleKind.PLAN)
        doc = self.schedules.load(date, ScheduleKind.PLAN)
        if doc is not None and doc.slots[self.due_slot].is_blank():
            self.schedules.set_slot(date, ScheduleKind.PLAN, self.due_slot, TaskRef(task.id, list_kind))
            logger.info("Placed due task %s at %s on %s", task.id, self.due_slot, date)

    @returns_result
    def today(self, list_kind: ListKind | str, date: str) -> Result[list[Task]]:
        """Promote tasks due on *date* and recurring daily tasks, then return that day's queue."""
        promoted = self.queues.auto_promote_due(list_kind, date)
        if not promoted.ok:
            return promoted
        return self.queues.tasks(list_kind, Scope.daily(date))

    @returns_result
    def unscheduled(self, list_kind: ListKind | str, date: str, kind: ScheduleKind | str) -> Result[list[Task]]:
        """Today's tasks that no slot or range of the day's document references yet."""
        todays = self.today(list_kind, date)
        if not todays.ok:
            return todays
        doc = self.schedules.load(date, kind)
        placed = doc.task_ids() if doc else set()
        return Ok([t for t in todays.value if t.id not in placed])

    @returns_result
    def project_view(self, date: str) -> Result[ProjectView]:
        """Tasks grouped by project tag across both backlogs and the day's lists."""
        date = parse_date(date)
        general: dict[ListKind, list[Task]] = {}
        todays: dict[ListKind, list[Task]] = {}
        for kind in ListKind:
            general[kind] = self.queues.tasks(kind, Scope.general()).unwrap()
            todays[kind] = self.today(kind, date).unwrap()
        return Ok(build_project_view(date, general, todays))

    # ---- schedules ----

    @returns_result
    def resolved(self, date: str, kind: ScheduleKind | str) -> Result[ResolvedDocument]:
        doc = self.schedules.load(date, kind)
        if doc is None:
            return Err(NotFound(f"No {ScheduleKind.parse(kind).value} exists for date {date}."))
        return Ok(self.resolver.resolve(doc, date))

    @returns_result
    def read(self, dates: list[str], kind: ScheduleKind | str, *, resolve: bool = False) -> Result[dict]:
        """JSON-ready documents by canonical date, raw or resolved; missing ones are None."""
        docs = self.schedules.read_many(dates, kind)
        if not docs.ok:
            return docs
        out: dict[str, dict | None] = {}
        for date, doc in docs.value.items():
            if doc is None:
                out[date] = None
            elif resolve:
                out[date] = self.resolver.resolve(doc, date).to_dict()
            else:
                out[date] = doc.to_raw()
        return Ok(out)

    # ---- plan lifecycle ----

    def _plan_for(self, date: str) -> ScheduleDocument:
        plan = self.schedules.load(date, ScheduleKind.PLAN)
        if plan is None:
            raise NotFound(f"No plan exists for date {date}.")
        return plan

    def _refresh(self, date: str, plan: ScheduleDocument, journal: ScheduleDocument | None) -> list[PlanItem]:
        """Stamp new plans and mark overdue ones missed; returns the newly missed."""
        now = self.clock()
        lifecycle.ensure_defaults(plan, now)
        return lifecycle.mark_missed(plan, journal, date, now)

    @returns_result
    def plans(self, date: str) -> Result[list[PlanItem]]:
        """Every plan of the day with its lifecycle state, after missed-plan marking."""
        date = parse_date(date)
        plan = self._plan_for(date)
        before = plan.to_raw()
        self._refresh(date, plan, self.schedules.load(date, ScheduleKind.JOURNAL))
        if plan.to_raw() != before:
            self.schedules.save(date, ScheduleKind.PLAN, plan)
        return Ok(lifecycle.plan_items(plan))

    @returns_result
    def mark_missed(self, date: str) -> Result[list[PlanItem]]:
        """Mark the day's overdue active plans as missed and return them."""
        date = parse_date(date)
        plan = self._plan_for(date)
        before = plan.to_raw()
        missed = self._refresh(date, plan, self.schedules.load(date, ScheduleKind.JOURNAL))
        if plan.to_raw() != before:
            self.schedules.save(date, ScheduleKind.PLAN, plan)
        return Ok(missed)

    def _open_day(self, date: str) -> tuple[ScheduleDocument, ScheduleDocument]:
        """The day's plan and journal; the journal is created when missing."""
        plan = self._plan_for(date)
        self.schedules.create_for_date(date, ScheduleKind.JOURNAL).unwrap()
        journal = self.schedules.load(date, ScheduleKind.JOURNAL)
        self._refresh(date, plan, journal)
        return plan, journal

    @returns_result
    def plan_action(
        self,
        date: str,
        source: PlanSource | str,
        action: PlanAction | str,
        *,
        plan_id: str | None = None,
    ) -> Result[PlanActionOutcome]:
        """Act on the plan at *source*: log it into the journal and mark it completed.

        ``complete`` on a task plan also completes the task on that day's list.
        """
        date, source, action = parse_date(date), PlanSource.parse(source), PlanAction.parse(action)
        plan, journal = self._open_day(date)
        item = lifecycle.find_plan(plan, source=source, plan_id=plan_id)
        if item is None:
            raise NotFound("Plan entry not found for the provided planId/source.")

        logged = lifecycle.apply_plan(plan, journal, date, item, self.clock())
        task, changed = None, None
        if action is PlanAction.COMPLETE and isinstance(item.entry, TaskRef):
            task, changed = self._complete_planned_task(item.entry, date)

        self.schedules.save(date, ScheduleKind.PLAN, plan)
        if logged:
            self.schedules.save(date, ScheduleKind.JOURNAL, journal)
        logger.info("Plan at %s on %s: %s", source, date, action.value)
        return Ok(PlanActionOutcome(action, item.entry_type, logged, task=task, task_completion_changed=changed))

    def _complete_planned_task(self, ref: TaskRef, date: str) -> tuple[Task | None, bool]:
        """Complete the task on *date*'s list, or in the backlog when it is not there."""
        self.queues.auto_promote_due(ref.list_kind, date)
        task = self.queues.find(ref.list_kind, date, ref.task_id)
        if task is None:
            logger.warning("Planned task %s no longer exists", ref.task_id)
            return None, False
        if task.completed:
            return task, False
        daily = Scope.daily(date)
        scope = daily if ref.task_id in self.queues.load(ref.list_kind, daily) else Scope.general()
        return self.queues.complete(ref.list_kind, scope, ref.task_id).unwrap(), True

    @returns_result
    def complete_text_plan(
        self, date: str, source: PlanSource | str, *, plan_id: str | None = None
    ) -> Result[TextPlanOutcome]:
        """Complete a text plan. Lookup and status problems are outcomes, not errors."""
        date, source = parse_date(date), PlanSource.parse(source)
        plan, journal = self._open_day(date)
        item = lifecycle.find_plan(plan, source=source, plan_id=plan_id)
        if item is None or item.entry_type != "text":
            return Ok(TextPlanOutcome(TextPlanStatus.NOT_FOUND))
        if item.status is PlanStatus.COMPLETED:
            return Ok(TextPlanOutcome(TextPlanStatus.ALREADY_COMPLETED))
        if item.status not in (PlanStatus.ACTIVE, PlanStatus.MISSED):
            return Ok(TextPlanOutcome(TextPlanStatus.NOT_COMPLETABLE))

        logged = lifecycle.apply_plan(plan, journal, date, item, self.clock())
        self.schedules.save(date, ScheduleKind.PLAN, plan)
        if logged:
            self.schedules.save(date, ScheduleKind.JOURNAL, journal)
        return Ok(TextPlanOutcome(TextPlanStatus.COMPLETED, logged))

    @returns_result
    def replan(self, date: str, plan_id: str, target: PlanSource | str) -> Result[Replanned]:
        """Move a plan to another hour or range of the same day."""
        date, target = parse_date(date), PlanSource.parse(target)
        plan = self._plan_for(date)
        self._refresh(date, plan, self.schedules.load(date, ScheduleKind.JOURNAL))
        replanned = lifecycle.replan(plan, plan_id, target, self.clock())
        self.schedules.save(date, ScheduleKind.PLAN, plan)
        return Ok(replanned)
