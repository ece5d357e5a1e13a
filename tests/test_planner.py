import pytest

from hourbook.errors import NotFound, ValidationError
from hourbook.lifecycle import TextPlanStatus
from hourbook.models import ListKind, PlanStatus, TaskRef, TextEntry
from hourbook.persistence import MemoryStore, StoreKey, read_json
from hourbook.planner import Planner

DAY = "2025-11-25"


@pytest.fixture
def planner():
    return Planner(MemoryStore(), clock=lambda: "2025-11-25T10:00:00")


def test_init_seeds_journal_template_once(planner):
    assert planner.init() is True
    assert planner.init() is False
    assert planner.schedules.create_for_date(DAY, "journal").value.created


def test_due_task_lands_in_plan_and_daily_list(planner):
    task = planner.add_task("have-to-do", "general", "Pay rent", due_date=DAY).value

    plan = planner.schedules.read(DAY, "plan").value
    assert plan.slots["8am"] == TaskRef(task.id, ListKind.HAVE_TO_DO)
    assert [t.id for t in planner.queues.tasks("have-to-do", f"daily:{DAY}").value] == [task.id]


def test_due_task_does_not_overwrite_busy_slot(planner):
    planner.schedules.create_for_date(DAY, "plan")
    planner.schedules.set_slot(DAY, "plan", "8am", {"text": "dentist"})
    planner.add_task("have-to-do", "general", "Pay rent", due_date=DAY)

    assert planner.schedules.read(DAY, "plan").value.slots["8am"] == TextEntry("dentist")


def test_due_slot_is_configurable():
    planner = Planner(MemoryStore(), due_slot="5pm")
    task = planner.add_task("want-to-do", "general", "Call mom", due_date=DAY).value
    assert planner.schedules.read(DAY, "plan").value.slots["5pm"] == TaskRef(task.id, ListKind.WANT_TO_DO)


def test_daily_task_with_due_date_skips_plan_setup(planner):
    planner.add_task("have-to-do", f"daily:{DAY}", "Just today", due_date=DAY)
    assert planner.schedules.load(DAY, "plan") is None


def test_update_task_sets_up_due_date(planner):
    task = planner.add_task("have-to-do", "general", "Renew passport").value
    planner.update_task("have-to-do", "general", task.id, due_date="112525")
    assert planner.schedules.read(DAY, "plan").value.slots["8am"].task_id == task.id


def test_add_task_errors_come_back_as_results(planner):
    result = planner.add_task("have-to-do", "general", "  ")
    assert isinstance(result.error, ValidationError)
    result = planner.add_task("have-to-do", "general", "Bad date", due_date="someday")
    assert isinstance(result.error, ValidationError)


def test_today_promotes_then_lists(planner):
    planner.add_task("have-to-do", f"daily:{DAY}", "Already today")
    planner.add_task("have-to-do", "general", "Due today", due_date=DAY)
    planner.add_task("have-to-do", "general", "Someday")

    today = planner.today("have-to-do", DAY).value
    assert [t.text for t in today] == ["Due today", "Already today"]


def test_unscheduled_excludes_placed_tasks(planner):
    placed = planner.add_task("have-to-do", f"daily:{DAY}", "Placed").value
    planner.add_task("have-to-do", f"daily:{DAY}", "Floating")
    planner.schedules.create_for_date(DAY, "plan")
    planner.schedules.set_range(
        DAY, "plan", {"start": "1pm", "end": "3pm", "taskId": placed.id, "listType": "have-to-do"}
    )

    assert [t.text for t in planner.unscheduled("have-to-do", DAY, "plan").value] == ["Floating"]
    # no journal yet, so nothing is scheduled there
    assert len(planner.unscheduled("have-to-do", DAY, "journal").value) == 2


def test_read_raw_and_resolved(planner):
    task = planner.add_task("have-to-do", "general", "Pay rent", due_date=DAY).value

    raw = planner.read([DAY, "2025-11-26"], "plan").value
    assert raw[DAY]["8am"] == {"taskId": task.id, "listType": "have-to-do"}
    assert raw["2025-11-26"] is None

    resolved = planner.read([DAY], "plan", resolve=True).value
    assert resolved[DAY]["8am"]["text"] == "Pay rent"
    assert resolved[DAY]["9am"] is None


def test_resolved_missing_document(planner):
    assert not planner.resolved(DAY, "journal").ok


def test_add_daily_task_with_projects(planner):
    planner.add_task("have-to-do", "general", "Report")
    task = planner.add_task(
        "have-to-do", "general", "Stretch", is_daily=True, projects=["Health"], position=0,
        position_mode="type-relative",
    ).value
    assert task.is_daily
    assert task.projects == ["health"]
    assert [t.text for t in planner.today("have-to-do", DAY).value] == ["Stretch"]


def test_project_view_spans_lists_and_days(planner):
    planner.add_task("have-to-do", "general", "Outline", projects=["thesis"])
    planner.add_task("want-to-do", f"daily:{DAY}", "Read paper", projects=["thesis", "reading"])
    planner.add_task("have-to-do", "general", "Groceries")

    view = planner.project_view(DAY).value
    assert [g.project for g in view.projects] == ["reading", "thesis"]
    thesis = view.get("Thesis")
    assert [t.text for t in thesis.unified()] == ["Outline", "Read paper"]
    assert thesis.totals() == {"general": 1, "today": 1, "all": 2}
    assert [t.text for t in view.unassigned.unified()] == ["Groceries"]


# ---- plan lifecycle ----


def _plan_key():
    return StoreKey("plan", DAY)


def _journal_key():
    return StoreKey("journal", DAY)


@pytest.fixture
def day(planner):
    """A plan with a text plan at 9am and a task plan at 11am; journal template seeded."""
    planner.init()
    task = planner.add_task("have-to-do", f"daily:{DAY}", "Write intro").value
    planner.schedules.create_for_date(DAY, "plan")
    planner.schedules.set_slot(DAY, "plan", "9am", {"text": "gym"})
    planner.schedules.set_slot(DAY, "plan", "11am", TaskRef(task.id, ListKind.HAVE_TO_DO))
    return task


def test_plans_stamps_ids_once(planner, day):
    items = planner.plans(DAY).value
    assert [str(i.source) for i in items] == ["9am", "11am"]
    assert all(i.status is PlanStatus.ACTIVE for i in items)
    raw = read_json(planner.store, _plan_key())["9am"]
    assert raw["entryMode"] == "planned"
    assert raw["planId"] == items[0].plan_id
    assert raw["planCreatedAt"] == "2025-11-25T10:00:00"

    writes = planner.store.writes
    assert [i.plan_id for i in planner.plans(DAY).value] == [i.plan_id for i in items]
    assert planner.store.writes == writes


def test_plans_without_plan_document(planner):
    assert isinstance(planner.plans(DAY).error, NotFound)


def test_mark_missed_after_the_hour(planner, day):
    planner.plans(DAY)
    planner.clock = lambda: "2025-11-25T11:30:00"
    missed = planner.mark_missed(DAY).value
    assert [str(i.source) for i in missed] == ["9am"]
    raw = read_json(planner.store, _plan_key())["9am"]
    assert raw["planStatus"] == "missed"
    assert raw["missedAt"] == "2025-11-25T11:30:00"


def test_logged_task_is_not_missed(planner, day):
    planner.schedules.create_for_date(DAY, "journal")
    planner.schedules.set_slot(DAY, "journal", "2pm", TaskRef(day.id, ListKind.HAVE_TO_DO))
    planner.clock = lambda: "2025-11-25T20:00:00"
    assert [str(i.source) for i in planner.mark_missed(DAY).value] == ["9am"]


def test_complete_task_plan_logs_and_completes_task(planner, day):
    outcome = planner.plan_action(DAY, "11am", "complete").value
    assert outcome.logged_created
    assert outcome.task_completion_changed
    assert outcome.to_dict() == {
        "action": "complete",
        "entryType": "task",
        "loggedCreated": True,
        "planStatus": "completed",
        "taskCompletionChanged": True,
    }

    logged = read_json(planner.store, _journal_key())["11am"]
    assert logged == {
        "taskId": day.id,
        "listType": "have-to-do",
        "entryMode": "logged",
        "completedByLogRef": {"date": DAY, "hour": "11am"},
    }
    planned = read_json(planner.store, _plan_key())["11am"]
    assert planned["planStatus"] == "completed"
    assert planned["completedByLogRef"] == {"date": DAY, "hour": "11am"}
    assert planner.queues.get("have-to-do", f"daily:{DAY}", day.id).value.completed


def test_in_progress_logs_without_completing_task(planner, day):
    outcome = planner.plan_action(DAY, "11am", "in-progress").value
    assert outcome.logged_created
    assert not outcome.task_completion_changed
    assert outcome.to_dict()["taskCompletionChanged"] is False
    assert not planner.queues.get("have-to-do", f"daily:{DAY}", day.id).value.completed


def test_complete_backlog_task_plan(planner):
    planner.init()
    task = planner.add_task("have-to-do", "general", "Someday").value
    planner.schedules.create_for_date(DAY, "plan")
    planner.schedules.set_slot(DAY, "plan", "2pm", TaskRef(task.id, ListKind.HAVE_TO_DO))
    planner.plan_action(DAY, "2pm", "complete")
    assert planner.queues.get("have-to-do", "general", task.id).value.completed


def test_plan_action_keeps_busy_journal_hour(planner, day):
    planner.schedules.create_for_date(DAY, "journal")
    planner.schedules.set_slot(DAY, "journal", "9am", {"text": "skipped the gym"})
    outcome = planner.plan_action(DAY, "9am", "complete").value
    assert not outcome.logged_created
    assert read_json(planner.store, _journal_key())["9am"] == {"text": "skipped the gym"}
    assert read_json(planner.store, _plan_key())["9am"]["planStatus"] == "completed"


def test_plan_action_errors(planner, day):
    assert isinstance(planner.plan_action(DAY, "3pm", "complete").error, NotFound)
    assert isinstance(planner.plan_action(DAY, "9am", "complete", plan_id="other").error, NotFound)
    assert isinstance(planner.plan_action(DAY, "9am", "skip").error, ValidationError)
    assert isinstance(planner.plan_action(DAY, "9am-8am", "complete").error, ValidationError)


def test_plan_action_needs_journal_template(planner):
    planner.schedules.create_for_date(DAY, "plan")
    planner.schedules.set_slot(DAY, "plan", "9am", {"text": "gym"})
    result = planner.plan_action(DAY, "9am", "complete")
    assert isinstance(result.error, NotFound)
    assert "planStatus" not in read_json(planner.store, _plan_key())["9am"]


def test_complete_text_plan_statuses(planner, day):
    assert planner.complete_text_plan(DAY, "3pm").value.status is TextPlanStatus.NOT_FOUND
    assert planner.complete_text_plan(DAY, "11am").value.status is TextPlanStatus.NOT_FOUND

    # missed plans can still be completed
    planner.clock = lambda: "2025-11-25T12:00:00"
    done = planner.complete_text_plan(DAY, "9am").value
    assert done.to_dict() == {"status": "completed", "loggedCreated": True}
    assert read_json(planner.store, _journal_key())["9am"]["text"] == "gym"

    again = planner.complete_text_plan(DAY, "9am").value
    assert again.status is TextPlanStatus.ALREADY_COMPLETED


def test_rescheduled_text_plan_is_not_completable(planner, day):
    plan_id = planner.plans(DAY).value[0].plan_id
    planner.replan(DAY, plan_id, "5pm")
    outcome = planner.complete_text_plan(DAY, "9am").value
    assert outcome.status is TextPlanStatus.NOT_COMPLETABLE


def test_replan_to_a_range(planner, day):
    plan_id = planner.plans(DAY).value[0].plan_id
    moved = planner.replan(DAY, plan_id, "2pm-4pm").value

    raw = read_json(planner.store, _plan_key())
    assert raw["9am"]["planStatus"] == "rescheduled"
    assert raw["9am"]["replannedToPlanId"] == moved.new_plan_id
    (rng,) = raw["ranges"]
    assert (rng["start"], rng["end"], rng["text"]) == ("2pm", "4pm", "gym")
    assert rng["planStatus"] == "active"
    assert rng["replannedFromPlanId"] == plan_id


def test_replan_errors(planner, day):
    plan_id = planner.plans(DAY).value[0].plan_id
    assert isinstance(planner.replan(DAY, "ghost", "5pm").error, NotFound)
    assert isinstance(planner.replan(DAY, plan_id, "11am").error, ValidationError)
    assert isinstance(planner.replan(DAY, plan_id, "bogus").error, ValidationError)
