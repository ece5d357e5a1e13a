"""MCP server for hourbook: exposes journal, plan and task tools to AI assistants."""

from __future__ import annotations

import json
from typing import Any

from mcp.server.fastmcp import FastMCP

from hourbook.config import load_settings
from hourbook.errors import Result
from hourbook.hours import today
from hourbook.logging_setup import setup_logging
from hourbook.models import Entry, Task
from hourbook.planner import Planner

mcp = FastMCP(
    "hourbook",
    instructions="""\
hourbook keeps an hour-by-hour journal and day plan plus prioritized task lists.

Key concepts:
- **Hours**: Every day has 24 named slots running from 7am through 6am the next \
morning ("7am", "8am", ..., "11pm", "12am", ..., "6am"). 12am and later belong to the \
same day as the preceding evening.
- **Journal vs plan**: Two documents per date. The journal records what happened, \
the plan what is intended. Both must be created (create_day) before entries are written.
- **Entries**: A slot holds text or a reference to a task ({"taskId", "listType"}). \
Task references are shown with the task's live text and completion state. Text can \
be appended to a text slot, never to a task reference.
- **Ranges**: An entry spanning several slots, keyed by its start and end hour. \
Setting a range with the same start and end replaces it.
- **Task lists**: Two list types, "have-to-do" and "want-to-do". Each has a general \
backlog and a daily list per date. Position 0 is the highest priority.
- **Due dates**: A backlog task with a due date is pulled to the top of that day's \
list automatically, and placed in the plan when its due hour is free.
- **Daily tasks**: A backlog task with isDaily recurs on every day's list. With \
position_mode "type-relative", a position counts only tasks of the same kind \
(daily or regular).
- **Projects**: Tasks carry project slugs (e.g. "thesis"). view_projects groups every \
task of the backlogs and the day's lists by project.
- **Plan lifecycle**: Every plan entry is a plan with a planId and a planStatus \
(active, completed, missed, rescheduled). A plan whose hour has passed is marked \
missed. plan_action logs the plan into the same hour of the journal and completes it; \
"complete" also completes a planned task. replan moves a plan to another hour.

Dates are YYYY-MM-DD (YYYYMMDD and MMDDYY are also accepted). Omitting a date means today.

Typical workflow:
1. Use list_today to see what needs doing today
2. Use create_day and update_entry to plan hours, referencing tasks by ID
3. Use append_to_entry to journal as the day goes
4. Use complete_task when something is done
5. Use list_plans and plan_action to keep the plan and the journal in step
6. Use read_days to review one or more days
""",
)


def _get_planner() -> Planner:
    return Planner.from_settings(load_settings())


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2)


def _error(result: Result) -> str:
    return f"Error: {result.error}"


def _entry_to_json(entry: Entry | None) -> Any:
    return None if entry is None else entry.to_raw()


def _task_list(tasks: list[Task]) -> list[dict]:
    return [dict(t.to_dict(), position=i) for i, t in enumerate(tasks)]


def _scope(date: str | None) -> str:
    return f"daily:{date}" if date else "general"


# ---------------------------------------------------------------------------
# Journal and plan tools
# ---------------------------------------------------------------------------


@mcp.tool()
def create_day(kind: str, date: str | None = None) -> str:
    """Create the journal or plan for a date. Does nothing if it already exists.

    Args:
        kind: "journal" or "plan"
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    day = date or today()
    result = planner.schedules.create_for_date(day, kind)
    if not result.ok:
        return _error(result)
    if result.value.created:
        return f"Created {kind} for {day}."
    return f"{kind} for {day} already exists."


@mcp.tool()
def read_days(kind: str, dates: list[str] | None = None, resolve: bool = True) -> str:
    """Read journal or plan documents for one or more dates.

    Missing documents are returned as null.

    Args:
        kind: "journal" or "plan"
        dates: Dates to read (YYYY-MM-DD); defaults to today
        resolve: Replace task references with live task text and completion state
    """
    planner = _get_planner()
    result = planner.read(dates or [today()], kind, resolve=resolve)
    if not result.ok:
        return _error(result)
    return _dump(result.value)


@mcp.tool()
def update_entry(
    kind: str,
    hour: str,
    text: str | None = None,
    task_id: str | None = None,
    list_type: str | None = None,
    date: str | None = None,
) -> str:
    """Replace one hour's entry with text or a task reference.

    Args:
        kind: "journal" or "plan"
        hour: Hour slot, e.g. "9am" or "12am"
        text: Entry text (omit when referencing a task)
        task_id: Task ID to reference instead of text
        list_type: "have-to-do" or "want-to-do" (required with task_id)
        date: Date (YYYY-MM-DD); defaults to today
    """
    if task_id and text:
        return "Error: give either text or task_id, not both."
    planner = _get_planner()
    entry: dict = {"taskId": task_id} if task_id else {"text": text or ""}
    if task_id and list_type is not None:
        entry["listType"] = list_type
    result = planner.schedules.set_slot(date or today(), kind, hour, entry)
    if not result.ok:
        return _error(result)
    return _dump({"previous": _entry_to_json(result.value.previous), "new": _entry_to_json(result.value.new)})


@mcp.tool()
def append_to_entry(kind: str, hour: str, text: str, date: str | None = None) -> str:
    """Append a line of text to an hour. Fails on hours holding a task reference.

    Args:
        kind: "journal" or "plan"
        hour: Hour slot, e.g. "9am"
        text: Text to add on a new line
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.schedules.append_text_to_slot(date or today(), kind, hour, text)
    if not result.ok:
        return _error(result)
    return _dump({"previous": _entry_to_json(result.value.previous), "new": _entry_to_json(result.value.new)})


@mcp.tool()
def delete_entry(kind: str, hour: str, date: str | None = None) -> str:
    """Clear one hour.

    Args:
        kind: "journal" or "plan"
        hour: Hour slot, e.g. "9am"
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.schedules.clear_slot(date or today(), kind, hour)
    if not result.ok:
        return _error(result)
    return _dump({"deletedEntry": _entry_to_json(result.value.deleted_entry)})


@mcp.tool()
def set_range(
    kind: str,
    start: str,
    end: str,
    text: str | None = None,
    task_id: str | None = None,
    list_type: str | None = None,
    date: str | None = None,
) -> str:
    """Add or replace the entry spanning start through end (start must come before end).

    Args:
        kind: "journal" or "plan"
        start: First hour slot, e.g. "9am"
        end: Last hour slot, e.g. "11am"
        text: Entry text (omit when referencing a task)
        task_id: Task ID to reference instead of text
        list_type: "have-to-do" or "want-to-do" (required with task_id)
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    raw: dict = {"start": start, "end": end}
    if task_id:
        raw["taskId"] = task_id
        if list_type is not None:
            raw["listType"] = list_type
    else:
        raw["text"] = text or ""
    result = planner.schedules.set_range(date or today(), kind, raw)
    if not result.ok:
        return _error(result)
    change = result.value
    out = {"created": change.created, "range": change.new.to_raw()}
    if change.previous is not None:
        out["previous"] = change.previous.to_raw()
    return _dump(out)


@mcp.tool()
def remove_range(kind: str, start: str, end: str, date: str | None = None) -> str:
    """Remove the range spanning start through end.

    Args:
        kind: "journal" or "plan"
        start: First hour slot of the range
        end: Last hour slot of the range
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.schedules.remove_range(date or today(), kind, start, end)
    if not result.ok:
        return _error(result)
    return _dump({"removed": result.value.removed})


# ---------------------------------------------------------------------------
# Task tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_task(
    text: str,
    list_type: str | None = None,
    date: str | None = None,
    position: int | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    is_daily: bool = False,
    projects: list[str] | None = None,
    position_mode: str = "absolute",
) -> str:
    """Add a task to the general backlog, or to one day's list when date is given.

    Args:
        text: Task text
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list receives the task; omit for the general backlog
        position: Queue position (0 = top); defaults to the end
        due_date: Due date (YYYY-MM-DD); the task is promoted to that day's list
        notes: Markdown notes for the task
        is_daily: Recur on every day's list
        projects: Project tags, e.g. ["thesis"]
        position_mode: "absolute" or "type-relative" (position among same-kind tasks)
    """
    planner = _get_planner()
    result = planner.add_task(
        list_type or planner.default_list, _scope(date), text,
        position=position, due_date=due_date, notes=notes,
        is_daily=is_daily, projects=projects, position_mode=position_mode,
    )
    if not result.ok:
        return _error(result)
    return _dump(result.value.to_dict())


@mcp.tool()
def list_tasks(list_type: str | None = None, date: str | None = None) -> str:
    """List a queue in priority order.

    Args:
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list to show; omit for the general backlog
    """
    planner = _get_planner()
    result = planner.queues.tasks(list_type or planner.default_list, _scope(date))
    if not result.ok:
        return _error(result)
    return _dump(_task_list(result.value))


@mcp.tool()
def list_today(list_type: str | None = None, date: str | None = None) -> str:
    """Pull tasks due on the day into its list, then return that list.

    Args:
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.today(list_type or planner.default_list, date or today())
    if not result.ok:
        return _error(result)
    return _dump(_task_list(result.value))


@mcp.tool()
def update_task(
    task_id: str,
    text: str | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    projects: list[str] | None = None,
    is_daily: bool | None = None,
    list_type: str | None = None,
    date: str | None = None,
) -> str:
    """Update fields of an existing task. Only provided fields are changed.

    Updating a task on a day's list changes that day's copy only.

    Args:
        task_id: Task ID
        text: New task text
        due_date: New due date (YYYY-MM-DD); "" clears it
        notes: New markdown notes
        projects: Replacement project tags; [] removes them all
        is_daily: Whether the task recurs on every day's list
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list holds the task; omit for the general backlog
    """
    planner = _get_planner()
    result = planner.update_task(
        list_type or planner.default_list, _scope(date), task_id,
        text=text, due_date=due_date, notes=notes, projects=projects, is_daily=is_daily,
    )
    if not result.ok:
        return _error(result)
    return _dump(result.value.to_dict())


@mcp.tool()
def delete_task(task_id: str, list_type: str | None = None, date: str | None = None) -> str:
    """Remove a task from a queue.

    Args:
        task_id: Task ID
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list holds the task; omit for the general backlog
    """
    planner = _get_planner()
    result = planner.queues.remove(list_type or planner.default_list, _scope(date), task_id)
    if not result.ok:
        return _error(result)
    return _dump({"deleted": result.value.to_dict()})


@mcp.tool()
def move_task(
    task_id: str,
    new_position: int,
    list_type: str | None = None,
    date: str | None = None,
    position_mode: str = "absolute",
) -> str:
    """Move a task to a new priority position (0 = top).

    Args:
        task_id: Task ID
        new_position: Target position; values past the end move the task last
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list holds the task; omit for the general backlog
        position_mode: "absolute" or "type-relative" (position among same-kind tasks)
    """
    planner = _get_planner()
    result = planner.queues.reorder(
        list_type or planner.default_list, _scope(date), task_id, new_position, position_mode
    )
    if not result.ok:
        return _error(result)
    move = result.value
    out = {"previousPosition": move.previous_position, "newPosition": move.new_position}
    if move.relative_position is not None:
        out["relativePosition"] = move.relative_position
    return _dump(out)


@mcp.tool()
def complete_task(
    task_id: str, list_type: str | None = None, date: str | None = None, undo: bool = False
) -> str:
    """Mark a task as done with the current timestamp (or not done, with undo).

    Args:
        task_id: Task ID
        list_type: "have-to-do" or "want-to-do"; defaults to the configured list
        date: Day whose list holds the task; omit for the general backlog
        undo: Mark the task as not done instead
    """
    planner = _get_planner()
    kind = list_type or planner.default_list
    if undo:
        result = planner.queues.reopen(kind, _scope(date), task_id)
    else:
        result = planner.queues.complete(kind, _scope(date), task_id)
    if not result.ok:
        return _error(result)
    return _dump(result.value.to_dict())


@mcp.tool()
def view_projects(date: str | None = None, project: str | None = None) -> str:
    """Tasks grouped by project across both lists, backlog and the day's lists.

    Each group has a "unified" list (one entry per task, the day's copy winning;
    open tasks first) plus the per-list breakdown and totals. Untagged tasks
    are in "unassigned".

    Args:
        date: Date (YYYY-MM-DD); defaults to today
        project: Return only this project's group
    """
    planner = _get_planner()
    result = planner.project_view(date or today())
    if not result.ok:
        return _error(result)
    view = result.value
    if project is None:
        return _dump(view.to_dict())
    group = view.get(project)
    if group is None:
        return f"Error: no tasks tagged '{project}'."
    return _dump(group.to_dict())


# ---------------------------------------------------------------------------
# Plan lifecycle tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_plans(date: str | None = None) -> str:
    """List the day's plans with planId and planStatus. Overdue plans are marked missed first.

    Args:
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.plans(date or today())
    if not result.ok:
        return _error(result)
    return _dump([item.to_dict() for item in result.value])


@mcp.tool()
def plan_action(action: str, where: str, date: str | None = None, plan_id: str | None = None) -> str:
    """Act on a plan: log it into the same hour of the journal and mark it completed.

    "complete" on a task plan also completes the task. Nothing is logged when
    the journal hour already holds an entry.

    Args:
        action: "in-progress" or "complete"
        where: Hour ("9am") or range ("9am-11am") of the plan
        date: Date (YYYY-MM-DD); defaults to today
        plan_id: Only act if the plan at where has this ID
    """
    planner = _get_planner()
    result = planner.plan_action(date or today(), where, action, plan_id=plan_id)
    if not result.ok:
        return _error(result)
    return _dump(result.value.to_dict())


@mcp.tool()
def complete_text_plan(where: str, date: str | None = None, plan_id: str | None = None) -> str:
    """Complete a text plan and log it into the journal.

    Returns a status: "completed", "not-found", "already-completed" or "not-completable".

    Args:
        where: Hour ("9am") or range ("9am-11am") of the plan
        date: Date (YYYY-MM-DD); defaults to today
        plan_id: Only complete the plan with this ID
    """
    planner = _get_planner()
    result = planner.complete_text_plan(date or today(), where, plan_id=plan_id)
    if not result.ok:
        return _error(result)
    return _dump(result.value.to_dict())


@mcp.tool()
def replan(plan_id: str, to: str, date: str | None = None) -> str:
    """Move a plan to another hour or range of the same day.

    The old entry stays, marked rescheduled; a new active plan is written at the target.

    Args:
        plan_id: ID of the plan to move (see list_plans)
        to: Target hour ("2pm") or range ("2pm-4pm"); must be empty
        date: Date (YYYY-MM-DD); defaults to today
    """
    planner = _get_planner()
    result = planner.replan(date or today(), plan_id, to)
    if not result.ok:
        return _error(result)
    moved = result.value
    return _dump({"oldPlanId": moved.old_plan_id, "newPlanId": moved.new_plan_id})


def main():
    """Entry point for the MCP server."""
    settings = load_settings()
    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
