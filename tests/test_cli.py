import pytest
from typer.testing import CliRunner

from hourbook.cli import app
from hourbook.persistence import JsonFileStore
from hourbook.planner import Planner

runner = CliRunner()
DAY = "2025-11-25"


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _planner(workdir):
    return Planner(JsonFileStore(workdir / ".hourbook"))


def _general_ids(workdir, kind="have-to-do"):
    return [t.id for t in _planner(workdir).queues.tasks(kind, "general").value]


def test_init_seeds_template(workdir):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.stdout
    assert "Initialized" in result.stdout
    assert (workdir / ".hourbook" / "journal" / "format.json").exists()

    again = runner.invoke(app, ["init"])
    assert "already exists" in again.stdout


def test_task_add_and_list(workdir):
    result = runner.invoke(app, ["task", "add", "Write report"])
    assert result.exit_code == 0, result.stdout
    assert "Added 'Write report'" in result.stdout

    runner.invoke(app, ["task", "add", "Buy milk", "--position", "0"])
    listing = runner.invoke(app, ["task", "list"])
    assert listing.exit_code == 0
    assert listing.stdout.index("Buy milk") < listing.stdout.index("Write report")

    other = runner.invoke(app, ["task", "list", "--list", "want-to-do"])
    assert "No tasks found." in other.stdout


def test_task_move_and_done(workdir):
    for text in ("A", "B", "C"):
        runner.invoke(app, ["task", "add", text])
    a, b, c = _general_ids(workdir)

    moved = runner.invoke(app, ["task", "move", c[:8], "0"])
    assert moved.exit_code == 0, moved.stdout
    assert "from 2 to 0" in moved.stdout
    assert _general_ids(workdir) == [c, a, b]

    same = runner.invoke(app, ["task", "move", c, "0"])
    assert "already at position 0" in same.stdout

    done = runner.invoke(app, ["task", "done", a])
    assert done.exit_code == 0
    assert _planner(workdir).queues.get("have-to-do", "general", a).value.completed

    runner.invoke(app, ["task", "done", a, "--undo"])
    assert not _planner(workdir).queues.get("have-to-do", "general", a).value.completed


def test_task_update_show_delete(workdir):
    runner.invoke(app, ["task", "add", "Draft"])
    (tid,) = _general_ids(workdir)

    updated = runner.invoke(app, ["task", "update", tid, "--text", "Final", "--notes", "see email"])
    assert updated.exit_code == 0, updated.stdout

    shown = runner.invoke(app, ["task", "show", tid])
    assert "Final" in shown.stdout
    assert "see email" in shown.stdout

    deleted = runner.invoke(app, ["task", "delete", tid])
    assert "Deleted 'Final'" in deleted.stdout
    assert _general_ids(workdir) == []


def test_unknown_task_fails(workdir):
    result = runner.invoke(app, ["task", "done", "nope"])
    assert result.exit_code == 1
    assert "Task not found" in result.stdout


def test_invalid_list_kind_fails(workdir):
    result = runner.invoke(app, ["task", "list", "--list", "maybe"])
    assert result.exit_code == 1
    assert "Invalid list kind" in result.stdout


def test_due_task_shows_up_today(workdir):
    runner.invoke(app, ["task", "add", "Pay rent", "--due", DAY])
    today = runner.invoke(app, ["task", "today", "--date", DAY])
    assert today.exit_code == 0, today.stdout
    assert "Pay rent" in today.stdout

    plan = runner.invoke(app, ["plan", "show", "--date", DAY])
    assert plan.exit_code == 0, plan.stdout
    assert "Pay rent" in plan.stdout


def test_plan_append_and_raw_show(workdir):
    assert runner.invoke(app, ["plan", "create", "--date", DAY]).exit_code == 0
    runner.invoke(app, ["plan", "append", "8am", "gym", "--date", DAY])
    runner.invoke(app, ["plan", "append", "8am", "run", "--date", "112525"])

    raw = runner.invoke(app, ["plan", "show", "--date", DAY, "--raw"])
    assert raw.exit_code == 0, raw.stdout
    assert "gym\\nrun" in raw.stdout


def test_plan_needs_create_first(workdir):
    result = runner.invoke(app, ["plan", "set", "9am", "meeting", "--date", DAY])
    assert result.exit_code == 1
    assert "Create one first" in result.stdout


def test_journal_needs_init(workdir):
    result = runner.invoke(app, ["journal", "create", "--date", DAY])
    assert result.exit_code == 1
    assert "Journal format template not found" in result.stdout

    runner.invoke(app, ["init"])
    assert runner.invoke(app, ["journal", "create", "--date", DAY]).exit_code == 0


def test_append_to_task_slot_is_refused(workdir):
    runner.invoke(app, ["task", "add", "Write report"])
    (tid,) = _general_ids(workdir)
    runner.invoke(app, ["plan", "create", "--date", DAY])
    assert runner.invoke(app, ["plan", "set", "9am", "--task", tid, "--date", DAY]).exit_code == 0

    result = runner.invoke(app, ["plan", "append", "9am", "notes", "--date", DAY])
    assert result.exit_code == 1
    assert "Cannot append text to a task reference" in result.stdout


def test_ranges_and_clear(workdir):
    runner.invoke(app, ["plan", "create", "--date", DAY])

    bad = runner.invoke(app, ["plan", "range-set", "9am", "8am", "backwards", "--date", DAY])
    assert bad.exit_code == 1
    assert "Range start must be before end" in bad.stdout

    added = runner.invoke(app, ["plan", "range-set", "9am", "11am", "deep work", "--date", DAY])
    assert "Added range 9am-11am" in added.stdout
    updated = runner.invoke(app, ["plan", "range-set", "9am", "11am", "focus", "--date", DAY])
    assert "Updated range 9am-11am" in updated.stdout

    removed = runner.invoke(app, ["plan", "range-remove", "9am", "11am", "--date", DAY])
    assert "Removed range" in removed.stdout
    missing = runner.invoke(app, ["plan", "range-remove", "9am", "11am", "--date", DAY])
    assert "No range" in missing.stdout

    runner.invoke(app, ["plan", "set", "7am", "coffee", "--date", DAY])
    assert "Cleared 7am" in runner.invoke(app, ["plan", "clear", "7am", "--date", DAY]).stdout
    assert "already empty" in runner.invoke(app, ["plan", "clear", "7am", "--date", DAY]).stdout


def test_unscheduled(workdir):
    runner.invoke(app, ["task", "add", "Placed", "--date", DAY])
    runner.invoke(app, ["task", "add", "Floating", "--date", DAY])
    placed = _planner(workdir).queues.tasks("have-to-do", f"daily:{DAY}").value[0]
    runner.invoke(app, ["plan", "create", "--date", DAY])
    runner.invoke(app, ["plan", "set", "9am", "--task", placed.id, "--date", DAY])

    result = runner.invoke(app, ["plan", "unscheduled", "--date", DAY])
    assert result.exit_code == 0, result.stdout
    assert "Floating" in result.stdout
    assert "Placed" not in result.stdout


def test_plan_set_without_text_stores_empty_slot(workdir):
    runner.invoke(app, ["plan", "create", "--date", DAY])
    runner.invoke(app, ["plan", "set", "9am", "meeting", "--date", DAY])
    result = runner.invoke(app, ["plan", "set", "9am", "--date", DAY])
    assert result.exit_code == 0, result.stdout
    raw = _planner(workdir).read([DAY], "plan").value[DAY]
    assert raw["9am"] == ""


def test_task_add_daily_with_projects(workdir):
    runner.invoke(app, ["task", "add", "Report"])
    result = runner.invoke(
        app, ["task", "add", "Stretch", "--daily", "-P", "Health", "--position", "0", "--relative"]
    )
    assert result.exit_code == 0, result.stdout
    assert "Recurs daily" in result.stdout
    assert "Projects: health" in result.stdout
    tasks = _planner(workdir).queues.tasks("have-to-do", "general").value
    assert [t.text for t in tasks] == ["Stretch", "Report"]

    listing = runner.invoke(app, ["task", "list"])
    assert "(health) Stretch" in listing.stdout
    assert "daily" in listing.stdout


def test_task_update_projects(workdir):
    runner.invoke(app, ["task", "add", "Draft", "-P", "thesis", "-P", "home"])
    (tid,) = _general_ids(workdir)
    result = runner.invoke(
        app, ["task", "update", tid, "--add-project", "Reading", "--remove-project", "home", "--daily"]
    )
    assert result.exit_code == 0, result.stdout
    task = _planner(workdir).queues.get("have-to-do", "general", tid).value
    assert task.projects == ["reading", "thesis"]
    assert task.is_daily


def test_task_move_relative(workdir):
    runner.invoke(app, ["task", "add", "Stretch", "--daily"])
    runner.invoke(app, ["task", "add", "A"])
    runner.invoke(app, ["task", "add", "B"])
    stretch, a, b = _general_ids(workdir)
    moved = runner.invoke(app, ["task", "move", b, "0", "--relative"])
    assert moved.exit_code == 0, moved.stdout
    assert _general_ids(workdir) == [stretch, b, a]


def test_projects_command(workdir):
    runner.invoke(app, ["task", "add", "Outline", "-P", "thesis"])
    runner.invoke(app, ["task", "add", "Groceries"])

    result = runner.invoke(app, ["projects", "--date", DAY])
    assert result.exit_code == 0, result.stdout
    assert "(thesis)" in result.stdout
    assert "(no project)" in result.stdout
    assert "Groceries" in result.stdout

    only = runner.invoke(app, ["projects", "--date", DAY, "-P", "thesis"])
    assert "Outline" in only.stdout
    assert "Groceries" not in only.stdout

    missing = runner.invoke(app, ["projects", "--date", DAY, "-P", "garden"])
    assert missing.exit_code == 1
    assert "No tasks tagged 'garden'" in missing.stdout


def test_plan_lifecycle_commands(workdir):
    runner.invoke(app, ["init"])
    runner.invoke(app, ["task", "add", "Write intro", "--date", DAY])
    task = _planner(workdir).queues.tasks("have-to-do", f"daily:{DAY}").value[0]
    runner.invoke(app, ["plan", "create", "--date", DAY])
    runner.invoke(app, ["plan", "set", "9am", "gym", "--date", DAY])
    runner.invoke(app, ["plan", "set", "11am", "--task", task.id, "--date", DAY])

    status = runner.invoke(app, ["plan", "status", "--date", DAY])
    assert status.exit_code == 0, status.stdout
    assert "gym" in status.stdout

    done = runner.invoke(app, ["plan", "done", "11am", "--date", DAY])
    assert done.exit_code == 0, done.stdout
    assert "Logged into the journal at 11am" in done.stdout
    assert "Completed task 'Write intro'" in done.stdout
    assert _planner(workdir).queues.get("have-to-do", f"daily:{DAY}", task.id).value.completed

    plan_id = _planner(workdir).plans(DAY).value[0].plan_id
    moved = runner.invoke(app, ["plan", "replan", plan_id[:8], "2pm-4pm", "--date", DAY])
    assert moved.exit_code == 0, moved.stdout
    assert "Replanned" in moved.stdout
    shown = runner.invoke(app, ["plan", "show", "--date", DAY])
    assert "rescheduled" in shown.stdout
    assert "Hours" in shown.stdout

    busy = runner.invoke(app, ["plan", "replan", plan_id, "11am", "--date", DAY])
    assert busy.exit_code == 1


def test_plan_start_needs_a_plan_there(workdir):
    runner.invoke(app, ["init"])
    runner.invoke(app, ["plan", "create", "--date", DAY])
    result = runner.invoke(app, ["plan", "start", "9am", "--date", DAY])
    assert result.exit_code == 1
    assert "Plan entry not found" in result.stdout


def test_journal_has_no_lifecycle_commands(workdir):
    result = runner.invoke(app, ["journal", "status"])
    assert result.exit_code != 0
