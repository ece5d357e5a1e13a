import pytest

from hourbook.errors import ValidationError
from hourbook.models import (
    EMPTY,
    EntryMode,
    Lifecycle,
    ListKind,
    LogRef,
    PlanSource,
    PlanStatus,
    PositionMode,
    QueueItem,
    RangeEntry,
    ScheduleDocument,
    ScheduleKind,
    Scope,
    Task,
    TaskRef,
    TextEntry,
    normalize_entry,
)


def test_task_serialization():
    t = Task(
        id="t-1",
        text="Write report",
        completed=True,
        due_date="2025-11-25",
        completed_at="2025-11-25T10:00:00",
        notes="- outline\n- draft",
    )
    d = t.to_dict()
    assert d["dueDate"] == "2025-11-25"
    assert d["completedAt"] == "2025-11-25T10:00:00"
    assert d["notes"] == "- outline\n- draft"

    t2 = Task.from_dict(d)
    assert t2 == t


def test_task_serialization_omits_unset_fields():
    assert Task(id="t-1", text="Plain").to_dict() == {"id": "t-1", "text": "Plain"}


def test_queue_item_reference_round_trip():
    ref = QueueItem("t-1")
    assert ref.is_reference
    assert ref.to_dict() == {"id": "t-1", "ref": True}
    assert QueueItem.from_dict({"id": "t-1", "ref": True}).task is None

    full = QueueItem.from_dict({"id": "t-2", "text": "Full"})
    assert not full.is_reference
    assert full.task.text == "Full"


def test_scope_parsing():
    assert Scope.parse("general") == Scope.general()
    daily = Scope.parse("daily:112525")
    assert daily.is_daily
    assert daily.date == "2025-11-25"
    assert str(daily) == "daily:2025-11-25"
    with pytest.raises(ValidationError):
        Scope.parse("weekly")
    with pytest.raises(ValidationError):
        Scope.parse("daily:someday")


def test_kind_parsing():
    assert ListKind.parse("want-to-do") is ListKind.WANT_TO_DO
    assert ScheduleKind.parse("journal") is ScheduleKind.JOURNAL
    with pytest.raises(ValidationError):
        ListKind.parse("maybe-to-do")
    with pytest.raises(ValidationError):
        ScheduleKind.parse("diary")


def test_normalize_entry_shapes():
    assert normalize_entry(None) is EMPTY
    assert normalize_entry("") is EMPTY
    # Older documents stored bare strings
    assert normalize_entry("gym") == TextEntry("gym")
    assert normalize_entry({"text": "gym"}) == TextEntry("gym")
    assert normalize_entry({"text": ""}) is EMPTY
    assert normalize_entry({"text": None}) is EMPTY
    assert normalize_entry({"taskId": "t-1", "listType": "have-to-do"}) == TaskRef("t-1", ListKind.HAVE_TO_DO)


@pytest.mark.parametrize(
    "raw",
    [
        {"taskId": "t-1"},
        {"taskId": "", "listType": "have-to-do"},
        {"taskId": "t-1", "listType": "someday"},
        {"text": 5},
        {"other": "x"},
        42,
    ],
)
def test_normalize_entry_rejects_bad_shapes(raw):
    with pytest.raises(ValidationError):
        normalize_entry(raw)


def test_range_bounds_must_be_ordered():
    with pytest.raises(ValidationError):
        RangeEntry("9am", "8am", TextEntry("x"))
    with pytest.raises(ValidationError):
        RangeEntry("9am", "9am", TextEntry("x"))
    # 11pm -> 1am crosses midnight but stays inside one day
    assert RangeEntry("11pm", "1am", TextEntry("party")).key == ("11pm", "1am")


def test_range_from_raw():
    r = RangeEntry.from_raw({"start": "9am", "end": "11am", "taskId": "t-1", "listType": "want-to-do"})
    assert r.payload == TaskRef("t-1", ListKind.WANT_TO_DO)
    assert r.to_raw() == {"start": "9am", "end": "11am", "taskId": "t-1", "listType": "want-to-do"}

    with pytest.raises(ValidationError):
        RangeEntry.from_raw({"start": "9am", "end": "11am"})
    with pytest.raises(ValidationError):
        RangeEntry.from_raw({"start": "9am", "text": "no end"})


def test_schedule_document_keeps_legacy_and_unknown_keys():
    doc = ScheduleDocument.from_raw({"8am": "old style", "9am": {"text": "new style"}, "mood": "good"})
    assert doc.slots["8am"] == TextEntry("old style")
    assert doc.slots["7am"] is EMPTY
    assert doc.ranges == []

    raw = doc.to_raw()
    assert raw["8am"] == {"text": "old style"}
    assert raw["7am"] == ""
    assert raw["ranges"] == []
    assert raw["mood"] == "good"
    assert list(raw)[:24] == list(doc.slots)


def test_schedule_document_task_ids():
    doc = ScheduleDocument.empty()
    doc.slots["9am"] = TaskRef("a", ListKind.HAVE_TO_DO)
    doc.slots["10am"] = TextEntry("not a task")
    doc.ranges.append(RangeEntry("1pm", "3pm", TaskRef("b", ListKind.WANT_TO_DO)))
    assert doc.task_ids() == {"a", "b"}


def test_task_keeps_daily_projects_and_unknown_keys():
    raw = {"id": "a", "text": "A", "isDaily": True, "projects": ["thesis", 7], "dueTimeStart": "9am"}
    t = Task.from_dict(raw)
    assert t.is_daily
    assert t.projects == ["thesis"]
    assert t.extra == {"dueTimeStart": "9am"}
    assert t.to_dict() == {"id": "a", "text": "A", "isDaily": True, "projects": ["thesis"], "dueTimeStart": "9am"}


def test_task_is_daily_only_when_true():
    assert not Task.from_dict({"id": "a", "text": "A", "isDaily": "yes"}).is_daily
    assert "isDaily" not in Task(id="a", text="A").to_dict()


def test_position_mode_parsing():
    assert PositionMode.parse("type-relative") is PositionMode.TYPE_RELATIVE
    with pytest.raises(ValidationError, match="positionMode"):
        PositionMode.parse("sideways")


def test_plan_source_parsing():
    assert PlanSource.parse("9am") == PlanSource(hour="9am")
    span = PlanSource.parse("11pm-1am")
    assert span.is_range
    assert span.last_hour == "1am"
    assert str(span) == "11pm-1am"
    with pytest.raises(ValidationError):
        PlanSource.parse("11am-9am")
    with pytest.raises(ValidationError):
        PlanSource.parse("noon")


def test_entry_lifecycle_round_trip():
    raw = {
        "text": "Write intro",
        "entryMode": "planned",
        "planId": "p-1",
        "planStatus": "completed",
        "planCreatedAt": "2025-11-25T08:00:00",
        "planUpdatedAt": "2025-11-25T10:00:00",
        "completedByLogRef": {"date": "2025-11-25", "range": {"start": "9am", "end": "11am"}},
    }
    entry = normalize_entry(raw)
    assert entry.text == "Write intro"
    assert entry.lifecycle.status is PlanStatus.COMPLETED
    assert entry.lifecycle.completed_by == LogRef("2025-11-25", PlanSource(start="9am", end="11am"))
    assert entry.to_raw() == raw


def test_lifecycle_on_task_reference():
    entry = normalize_entry({"taskId": "t-1", "listType": "have-to-do", "entryMode": "logged"})
    assert entry == TaskRef("t-1", ListKind.HAVE_TO_DO, Lifecycle(EntryMode.LOGGED))
    assert entry.to_raw() == {"taskId": "t-1", "listType": "have-to-do", "entryMode": "logged"}


def test_plain_entries_carry_no_lifecycle():
    assert normalize_entry({"text": "gym"}).lifecycle is None
    with pytest.raises(ValidationError):
        normalize_entry({"text": "gym", "planId": "p-1", "planStatus": "postponed"})


def test_blank_text_with_plan_metadata_is_kept():
    entry = normalize_entry({"text": "", "planId": "p-1"})
    assert isinstance(entry, TextEntry)
    assert entry.lifecycle.plan_id == "p-1"


def test_range_with_blank_text_stays_a_text_range():
    r = RangeEntry.from_raw({"start": "9am", "end": "11am", "text": ""})
    assert r.payload == TextEntry("")


def test_document_place_and_entry_at():
    doc = ScheduleDocument.empty()
    doc.place(PlanSource(hour="9am"), TextEntry("gym"))
    doc.place(PlanSource(start="1pm", end="3pm"), TextEntry("focus"))
    doc.place(PlanSource(start="1pm", end="3pm"), TextEntry("deep work"))
    assert doc.entry_at(PlanSource(hour="9am")) == TextEntry("gym")
    assert doc.entry_at(PlanSource(hour="10am")) is EMPTY
    assert doc.entry_at(PlanSource(start="1pm", end="3pm")) == TextEntry("deep work")
    assert doc.entry_at(PlanSource(start="1pm", end="4pm")) is None
    assert len(doc.ranges) == 1
