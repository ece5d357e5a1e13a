"""Typer CLI for hourbook."""

from __future__ import annotations

from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hourbook.config import load_settings
from hourbook.errors import HourbookError, Result, ValidationError
from hourbook.hours import slots_between
from hourbook.hours import today as today_iso
from hourbook.logging_setup import setup_logging
from hourbook.models import TASK_NOT_FOUND_TEXT, PositionMode, ScheduleKind, Task
from hourbook.planner import Planner
from hourbook.projects import format_task_text_with_projects, normalize_project_list

app = typer.Typer(
    name="hourbook",
    help="Hourly journal, day planner and prioritized task queues for the command line.",
    no_args_is_help=True,
)
task_app = typer.Typer(help="Prioritized task queues (general backlog and daily lists).", no_args_is_help=True)
app.add_typer(task_app, name="task")
console = Console()

ProjectOpt = Annotated[Optional[list[str]], typer.Option("--project", "-P", help="Project tag (repeatable)")]
RelativeOpt = Annotated[
    bool, typer.Option("--relative", help="Count the position among tasks of the same kind (daily or regular)")
]
ListOpt = Annotated[Optional[str], typer.Option("--list", "-l", help="have-to-do or want-to-do")]
DateOpt = Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD, YYYYMMDD or MMDDYY)")]
PlanIdOpt = Annotated[Optional[str], typer.Option("--plan-id", help="Only act if the plan has this ID")]


def _get_planner() -> Planner:
    settings = load_settings()
    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)
    return Planner.from_settings(settings)


def _fail(message: str) -> None:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(1)


def _unwrap(result: Result):
    if not result.ok:
        _fail(str(result.error))
    return result.value


def _list_kind(planner: Planner, raw: str | None) -> str:
    return raw or planner.default_list.value


def _scope(date: str | None) -> str:
    """``--date`` selects that day's list; without it the general backlog."""
    return f"daily:{date}" if date else "general"


def _complete_task_id(incomplete: str) -> list[str]:
    """Shell completion for task IDs in the default general list."""
    try:
        planner = Planner.from_settings(load_settings())
        tasks = planner.queues.load(planner.default_list, "general").items
    except HourbookError:
        return []
    q = incomplete.lower()
    return [item.id for item in tasks if item.id.lower().startswith(q)]


def _resolve_id(planner: Planner, list_kind: str, scope: str, raw: str) -> str:
    """Accept a unique id prefix, as printed by ``task list``."""
    raw = raw.strip()
    try:
        ids = planner.queues.load(list_kind, scope).ids()
    except ValidationError as e:
        _fail(str(e))
    if raw in ids:
        return raw
    matches = [i for i in ids if i.startswith(raw)]
    if len(matches) > 1:
        _fail(f"Task ID '{raw}' is ambiguous: {', '.join(m[:8] for m in matches)}")
    return matches[0] if matches else raw


def _task_table(tasks: list[Task], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Task")
    table.add_column("Due")
    table.add_column("Done")
    for pos, t in enumerate(tasks):
        style = "dim" if t.completed else None
        table.add_row(
            str(pos),
            t.id[:8],
            escape(format_task_text_with_projects(t.text, t.projects)),
            t.due_date or ("daily" if t.is_daily else "-"),
            "x" if t.completed else "",
            style=style,
        )
    return table


# ---------------------------------------------------------------------------
# Top-level commands
# ---------------------------------------------------------------------------


@app.command()
def init() -> None:
    """Create the data directory and seed the journal format template."""
    planner = _get_planner()
    if planner.init():
        console.print("[green]Initialized hourbook (journal format template created).[/green]")
    else:
        console.print("Journal format template already exists.")


@app.command()
def projects(
    date: DateOpt = None,
    project: Annotated[Optional[str], typer.Option("--project", "-P", help="Show only this project")] = None,
) -> None:
    """Tasks grouped by project across both lists, backlog and today."""
    planner = _get_planner()
    day = date or today_iso()
    view = _unwrap(planner.project_view(day))
    groups = view.projects + [view.unassigned]
    if project:
        group = view.get(project)
        if group is None:
            _fail(f"No tasks tagged '{project}'.")
        groups = [group]

    shown = False
    for group in groups:
        tasks = group.unified()
        if not tasks:
            continue
        totals = group.totals()
        title = group.tagged or "(no project)"
        console.print(_task_table(tasks, f"{title}  backlog {totals['general']}, today {totals['today']}"))
        shown = True
    if not shown:
        console.print("No tasks found.")


# ---------------------------------------------------------------------------
# Task queues
# ---------------------------------------------------------------------------


@task_app.command("add")
def task_add(
    text: str,
    list_kind: ListOpt = None,
    date: DateOpt = None,
    position: Annotated[Optional[int], typer.Option("--position", "-p", help="Queue position (0 = top)")] = None,
    due: Annotated[Optional[str], typer.Option("--due", help="Due date; the task is promoted to that day")] = None,
    notes: Annotated[Optional[str], typer.Option(help="Markdown notes for the task")] = None,
    daily: Annotated[bool, typer.Option("--daily", help="Recurs on every day's list")] = False,
    project: ProjectOpt = None,
    relative: RelativeOpt = False,
) -> None:
    """Add a task to the general backlog, or to one day's list with --date."""
    planner = _get_planner()
    task = _unwrap(
        planner.add_task(
            _list_kind(planner, list_kind), _scope(date), text,
            position=position, due_date=due, notes=notes, is_daily=daily, projects=project,
            position_mode=PositionMode.TYPE_RELATIVE if relative else PositionMode.ABSOLUTE,
        )
    )
    console.print(f"[green]Added '{escape(task.text)}' as {task.id}[/green]")
    if task.due_date:
        console.print(f"  Due {task.due_date}")
    if task.is_daily:
        console.print("  Recurs daily")
    if task.projects:
        console.print(f"  Projects: {', '.join(task.projects)}")


@task_app.command("list")
def task_list(
    list_kind: ListOpt = None,
    date: DateOpt = None,
    pending: Annotated[bool, typer.Option("--pending", help="Hide completed tasks")] = False,
) -> None:
    """List a queue in priority order."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    tasks = _unwrap(planner.queues.tasks(kind, scope))
    if pending:
        tasks = [t for t in tasks if not t.completed]
    if not tasks:
        console.print("No tasks found.")
        return
    console.print(_task_table(tasks, f"{kind} ({scope})"))


@task_app.command("today")
def task_today(list_kind: ListOpt = None, date: DateOpt = None) -> None:
    """Pull in tasks due today, then show today's list."""
    planner = _get_planner()
    kind = _list_kind(planner, list_kind)
    day = date or today_iso()
    tasks = _unwrap(planner.today(kind, day))
    if not tasks:
        console.print("Nothing on today's list.")
        return
    console.print(_task_table(tasks, f"{kind} for {day}"))


@task_app.command("show")
def task_show(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    list_kind: ListOpt = None,
    date: DateOpt = None,
) -> None:
    """Show all details for a single task."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    task_id = _resolve_id(planner, kind, scope, task_id)
    t = _unwrap(planner.queues.get(kind, scope, task_id))

    console.print(f"\n[bold]{t.id}[/bold]  {escape(t.text)}")
    console.print(f"  List:       {kind} ({scope})")
    console.print(f"  Completed:  {'yes' if t.completed else 'no'}")
    if t.completed_at:
        console.print(f"  Completed at: {t.completed_at}")
    if t.due_date:
        console.print(f"  Due:        {t.due_date}")
    if t.is_daily:
        console.print("  Recurs:     daily")
    if t.projects:
        console.print(f"  Projects:   {', '.join(t.projects)}")
    if t.notes:
        console.print("\n  [dim]-- Notes --[/dim]")
        for line in t.notes.splitlines():
            console.print(f"  {escape(line)}")
    console.print()


@task_app.command("update")
def task_update(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    text: Annotated[Optional[str], typer.Option(help="New task text")] = None,
    due: Annotated[Optional[str], typer.Option("--due", help="New due date ('' clears it)")] = None,
    notes: Annotated[Optional[str], typer.Option(help="New markdown notes")] = None,
    add_project: Annotated[Optional[list[str]], typer.Option("--add-project", help="Add a project tag")] = None,
    remove_project: Annotated[Optional[list[str]], typer.Option("--remove-project", help="Remove a project tag")] = None,
    daily: Annotated[Optional[bool], typer.Option("--daily/--not-daily", help="Recur on every day's list")] = None,
    list_kind: ListOpt = None,
    date: DateOpt = None,
) -> None:
    """Update fields of an existing task."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    task_id = _resolve_id(planner, kind, scope, task_id)
    projects = None
    if add_project or remove_project:
        current = _unwrap(planner.queues.get(kind, scope, task_id)).projects
        dropped = set(normalize_project_list(remove_project))
        projects = [p for p in normalize_project_list([*current, *(add_project or [])]) if p not in dropped]
    _unwrap(
        planner.update_task(
            kind, scope, task_id,
            text=text, due_date=due, notes=notes, projects=projects, is_daily=daily,
        )
    )
    console.print(f"[green]Updated {task_id}.[/green]")


@task_app.command("delete")
def task_delete(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    list_kind: ListOpt = None,
    date: DateOpt = None,
) -> None:
    """Remove a task from a queue."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    task_id = _resolve_id(planner, kind, scope, task_id)
    task = _unwrap(planner.queues.remove(kind, scope, task_id))
    console.print(f"[green]Deleted '{escape(task.text)}' ({task_id}).[/green]")


@task_app.command("move")
def task_move(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    position: Annotated[int, typer.Argument(help="New position (0 = top)")],
    list_kind: ListOpt = None,
    date: DateOpt = None,
    relative: RelativeOpt = False,
) -> None:
    """Move a task to a new priority position."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    task_id = _resolve_id(planner, kind, scope, task_id)
    mode = PositionMode.TYPE_RELATIVE if relative else PositionMode.ABSOLUTE
    move = _unwrap(planner.queues.reorder(kind, scope, task_id, position, mode))
    if move.previous_position == move.new_position:
        console.print(f"{task_id} is already at position {move.new_position}.")
    else:
        console.print(f"[green]Moved {task_id} from {move.previous_position} to {move.new_position}.[/green]")


@task_app.command("done")
def task_done(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    undo: Annotated[bool, typer.Option("--undo", help="Mark the task as not done again")] = False,
    list_kind: ListOpt = None,
    date: DateOpt = None,
) -> None:
    """Mark a task as done with the current timestamp."""
    planner = _get_planner()
    kind, scope = _list_kind(planner, list_kind), _scope(date)
    task_id = _resolve_id(planner, kind, scope, task_id)
    if undo:
        _unwrap(planner.queues.reopen(kind, scope, task_id))
        console.print(f"[green]Reopened {task_id}.[/green]")
        return
    task = _unwrap(planner.queues.complete(kind, scope, task_id))
    console.print(f"[green]Completed {task_id} at {task.completed_at}[/green]")


# ---------------------------------------------------------------------------
# Journal and plan documents
# ---------------------------------------------------------------------------


def _entry_payload(text: str | None, task: str | None, list_kind: str | None, planner: Planner):
    if task and text:
        _fail("Give either text or --task, not both.")
    if task:
        return {"taskId": task, "listType": _list_kind(planner, list_kind)}
    return {"text": text or ""}


def _status(entry) -> str:
    lc = entry.lifecycle
    if lc is None or lc.status is None:
        return ""
    return f" ({lc.status.value})"


def _schedule_app(kind: ScheduleKind) -> typer.Typer:
    sub = typer.Typer(help=f"Hour-by-hour {kind.value} documents (7am through 6am).", no_args_is_help=True)
    label = kind.value

    @sub.command("create")
    def create(date: DateOpt = None) -> None:
        """Create the document for a date (today by default)."""
        planner = _get_planner()
        day = date or today_iso()
        created = _unwrap(planner.schedules.create_for_date(day, kind))
        if created.created:
            console.print(f"[green]Created {label} for {day}.[/green]")
        else:
            console.print(f"{label.capitalize()} for {day} already exists.")

    @sub.command("show")
    def show(
        date: DateOpt = None,
        raw: Annotated[bool, typer.Option("--raw", help="Print the stored JSON without resolving tasks")] = False,
    ) -> None:
        """Show a day hour by hour."""
        planner = _get_planner()
        day = date or today_iso()
        if raw:
            docs = _unwrap(planner.read([day], kind))
            (doc,) = docs.values()
            if doc is None:
                _fail(f"No {label} exists for date {day}. Create one first.")
            console.print_json(data=doc)
            return

        resolved = _unwrap(planner.resolved(day, kind))
        table = Table(title=f"{label.capitalize()} for {day}")
        table.add_column("Hour", justify="right")
        table.add_column("Entry")
        for hour, entry in resolved.slots.items():
            if entry is None:
                table.add_row(hour, "")
            elif entry.type == "task":
                mark = "[x]" if entry.completed else "[ ]"
                style = "red" if entry.text == TASK_NOT_FOUND_TEXT else None
                table.add_row(hour, escape(f"{mark} {entry.text}{_status(entry)}"), style=style)
            else:
                table.add_row(hour, escape(f"{entry.text}{_status(entry)}"))
        console.print(table)

        if resolved.ranges:
            rt = Table(title="Ranges")
            rt.add_column("From")
            rt.add_column("To")
            rt.add_column("Hours", justify="right")
            rt.add_column("Entry")
            for r in resolved.ranges:
                text = f"{'[x]' if r.completed else '[ ]'} {r.text}" if r.type == "task" else r.text
                hours = len(slots_between(r.start, r.end))
                rt.add_row(r.start, r.end, str(hours), escape(f"{text}{_status(r)}"))
            console.print(rt)

    @sub.command("set")
    def set_entry(
        hour: str,
        text: Annotated[Optional[str], typer.Argument(help="Entry text")] = None,
        task: Annotated[Optional[str], typer.Option("--task", help="Reference a task ID instead of text")] = None,
        list_kind: ListOpt = None,
        date: DateOpt = None,
    ) -> None:
        """Replace one hour's entry with text or a task reference."""
        planner = _get_planner()
        day = date or today_iso()
        _unwrap(planner.schedules.set_slot(day, kind, hour, _entry_payload(text, task, list_kind, planner)))
        console.print(f"[green]Set {hour} on {day}.[/green]")

    @sub.command("append")
    def append(hour: str, text: str, date: DateOpt = None) -> None:
        """Add a line of text to an hour."""
        planner = _get_planner()
        day = date or today_iso()
        change = _unwrap(planner.schedules.append_text_to_slot(day, kind, hour, text))
        console.print(f"[green]{hour}:[/green] {escape(change.new.text)}")

    @sub.command("clear")
    def clear(hour: str, date: DateOpt = None) -> None:
        """Empty one hour."""
        planner = _get_planner()
        day = date or today_iso()
        cleared = _unwrap(planner.schedules.clear_slot(day, kind, hour))
        if cleared.deleted_entry is None:
            console.print(f"{hour} was already empty.")
        else:
            console.print(f"[green]Cleared {hour} on {day}.[/green]")

    @sub.command("range-set")
    def range_set(
        start: str,
        end: str,
        text: Annotated[Optional[str], typer.Argument(help="Entry text")] = None,
        task: Annotated[Optional[str], typer.Option("--task", help="Reference a task ID instead of text")] = None,
        list_kind: ListOpt = None,
        date: DateOpt = None,
    ) -> None:
        """Add or replace the entry spanning START through END."""
        planner = _get_planner()
        day = date or today_iso()
        payload = {"start": start, "end": end, **_entry_payload(text, task, list_kind, planner)}
        change = _unwrap(planner.schedules.set_range(day, kind, payload))
        verb = "Added" if change.created else "Updated"
        console.print(f"[green]{verb} range {start}-{end} on {day}.[/green]")

    @sub.command("range-remove")
    def range_remove(start: str, end: str, date: DateOpt = None) -> None:
        """Remove the range spanning START through END."""
        planner = _get_planner()
        day = date or today_iso()
        removal = _unwrap(planner.schedules.remove_range(day, kind, start, end))
        if removal.removed:
            console.print(f"[green]Removed range {start}-{end} on {day}.[/green]")
        else:
            console.print(f"No range {start}-{end} on {day}.")

    @sub.command("unscheduled")
    def unscheduled(list_kind: ListOpt = None, date: DateOpt = None) -> None:
        """Today's tasks not yet placed in this document."""
        planner = _get_planner()
        day = date or today_iso()
        tasks = _unwrap(planner.unscheduled(_list_kind(planner, list_kind), day, kind))
        if not tasks:
            console.print("Every task for the day is scheduled.")
            return
        console.print(_task_table(tasks, f"Unscheduled in {label} for {day}"))

    if kind is ScheduleKind.PLAN:
        _add_lifecycle_commands(sub)
    return sub


def _resolve_plan_id(planner: Planner, day: str, raw: str) -> str:
    """Accept a unique plan id prefix, as printed by ``plan status``."""
    ids = [item.plan_id for item in _unwrap(planner.plans(day)) if item.plan_id]
    if raw in ids:
        return raw
    matches = [i for i in ids if i.startswith(raw)]
    if len(matches) > 1:
        _fail(f"Plan ID '{raw}' is ambiguous: {', '.join(m[:8] for m in matches)}")
    return matches[0] if matches else raw


def _add_lifecycle_commands(sub: typer.Typer) -> None:
    @sub.command("status")
    def status(date: DateOpt = None) -> None:
        """Plans of the day with their state; overdue plans are marked missed."""
        planner = _get_planner()
        day = date or today_iso()
        missed = _unwrap(planner.mark_missed(day))
        if missed:
            console.print(f"[yellow]{len(missed)} plan(s) marked missed.[/yellow]")
        items = _unwrap(planner.plans(day))
        if not items:
            console.print("Nothing planned.")
            return
        resolved = _unwrap(planner.resolved(day, ScheduleKind.PLAN))
        texts = {h: e.text for h, e in resolved.slots.items() if e is not None}
        texts.update({f"{r.start}-{r.end}": r.text for r in resolved.ranges})
        table = Table(title=f"Plans for {day}")
        table.add_column("Where", justify="right")
        table.add_column("Plan ID")
        table.add_column("Entry")
        table.add_column("Status")
        styles = {"completed": "dim", "missed": "red", "rescheduled": "dim"}
        for item in items:
            table.add_row(
                str(item.source),
                (item.plan_id or "")[:8],
                escape(texts.get(str(item.source), "")),
                item.status.value,
                style=styles.get(item.status.value),
            )
        console.print(table)

    def act(where: str, date: str | None, plan_id: str | None, action: str) -> None:
        planner = _get_planner()
        day = date or today_iso()
        if plan_id:
            plan_id = _resolve_plan_id(planner, day, plan_id)
        outcome = _unwrap(planner.plan_action(day, where, action, plan_id=plan_id))
        console.print(f"[green]Plan at {where} on {day} is {outcome.plan_status.value}.[/green]")
        if outcome.logged_created:
            console.print(f"  Logged into the journal at {where}")
        else:
            console.print(f"  Journal at {where} already holds an entry; nothing logged")
        if outcome.task_completion_changed:
            console.print(f"  Completed task '{escape(outcome.task.text)}'")

    @sub.command("start")
    def start(where: str, date: DateOpt = None, plan_id: PlanIdOpt = None) -> None:
        """Start the plan at WHERE (an hour or START-END): log it in the journal."""
        act(where, date, plan_id, "in-progress")

    @sub.command("done")
    def done(where: str, date: DateOpt = None, plan_id: PlanIdOpt = None) -> None:
        """Complete the plan at WHERE; a planned task is completed too."""
        act(where, date, plan_id, "complete")

    @sub.command("replan")
    def replan(
        plan_id: str,
        target: Annotated[str, typer.Argument(help="New hour or START-END range")],
        date: DateOpt = None,
    ) -> None:
        """Move a plan to another hour or range of the same day."""
        planner = _get_planner()
        day = date or today_iso()
        plan_id = _resolve_plan_id(planner, day, plan_id)
        moved = _unwrap(planner.replan(day, plan_id, target))
        console.print(f"[green]Replanned {moved.old_plan_id[:8]} to {target} as {moved.new_plan_id[:8]}.[/green]")


app.add_typer(_schedule_app(ScheduleKind.PLAN), name="plan")
app.add_typer(_schedule_app(ScheduleKind.JOURNAL), name="journal")


if __name__ == "__main__":
    app()
