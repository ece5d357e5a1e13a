"""Task, queue scope, schedule entry and schedule document definitions."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, Union

from hourbook.errors import ValidationError
from hourbook.hours import HOURS, compare_slot_order, parse_date, slot_index

TASK_NOT_FOUND_TEXT = "[Task not found]"


class ListKind(enum.StrEnum):
    HAVE_TO_DO = "have-to-do"
    WANT_TO_DO = "want-to-do"

    @classmethod
    def parse(cls, raw: str | ListKind) -> ListKind:
        try:
            return cls(raw)
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValidationError(f"Invalid list kind '{raw}'. Must be one of: {valid}") from None


class ScheduleKind(enum.StrEnum):
    JOURNAL = "journal"
    PLAN = "plan"

    @classmethod
    def parse(cls, raw: str | ScheduleKind) -> ScheduleKind:
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(f"Invalid schedule kind '{raw}'. Use: journal, plan") from None


class PositionMode(enum.StrEnum):
    """How a queue position is counted.

    ``type-relative`` counts only tasks of the same kind (recurring daily
    tasks or regular ones) as the task being placed.
    """

    ABSOLUTE = "absolute"
    TYPE_RELATIVE = "type-relative"

    @classmethod
    def parse(cls, raw: str | PositionMode) -> PositionMode:
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError('positionMode must be "absolute" or "type-relative"') from None


@dataclass(frozen=True)
class Scope:
    """Either the persistent backlog (``general``) or one date's working subset."""

    date: str | None = None

    @classmethod
    def general(cls) -> Scope:
        return cls(None)

    @classmethod
    def daily(cls, date: str) -> Scope:
        return cls(parse_date(date))

    @classmethod
    def parse(cls, raw: str | Scope) -> Scope:
        if isinstance(raw, Scope):
            return raw
        if raw == "general":
            return cls.general()
        prefix, sep, rest = raw.partition(":")
        if prefix == "daily" and sep:
            return cls.daily(rest)
        raise ValidationError(f"Invalid scope '{raw}'. Use 'general' or 'daily:<date>'")

    @property
    def is_daily(self) -> bool:
        return self.date is not None

    def __str__(self) -> str:
        return f"daily:{self.date}" if self.date else "general"


_TASK_KEYS = frozenset({"id", "text", "completed", "dueDate", "completedAt", "notes", "isDaily", "projects"})


@dataclass
class Task:
    """A single queue item with full data.

    Keys this class does not know (written by other tools) are kept in
    ``extra`` and written back as they were.
    """

    id: str
    text: str
    completed: bool = False
    due_date: str | None = None
    completed_at: str | None = None
    notes: str | None = None  # optional markdown
    is_daily: bool = False  # recurs on every day's list
    projects: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"id": self.id, "text": self.text}
        if self.completed:
            d["completed"] = True
        if self.due_date:
            d["dueDate"] = self.due_date
        if self.completed_at:
            d["completedAt"] = self.completed_at
        if self.notes is not None:
            d["notes"] = self.notes
        if self.is_daily:
            d["isDaily"] = True
        if self.projects:
            d["projects"] = list(self.projects)
        for k, v in self.extra.items():
            d.setdefault(k, v)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Task:
        projects = d.get("projects")
        if not isinstance(projects, list):
            projects = []
        return cls(
            id=d["id"],
            text=d.get("text", ""),
            completed=d.get("completed", False),
            due_date=d.get("dueDate") or None,
            completed_at=d.get("completedAt"),
            notes=d.get("notes"),
            is_daily=d.get("isDaily") is True,
            projects=[p for p in projects if isinstance(p, str)],
            extra={k: v for k, v in d.items() if k not in _TASK_KEYS},
        )


@dataclass
class QueueItem:
    """One position in a queue: a full task, or (daily scope) a bare id reference."""

    id: str
    task: Task | None = None

    @property
    def is_reference(self) -> bool:
        return self.task is None

    def to_dict(self) -> dict:
        if self.task is None:
            return {"id": self.id, "ref": True}
        return self.task.to_dict()

    @classmethod
    def from_dict(cls, d: dict) -> QueueItem:
        if d.get("ref"):
            return cls(id=d["id"])
        task = Task.from_dict(d)
        return cls(id=task.id, task=task)


# ---------------------------------------------------------------------------
# Plan lifecycle metadata
# ---------------------------------------------------------------------------


class EntryMode(enum.StrEnum):
    PLANNED = "planned"
    LOGGED = "logged"


class PlanStatus(enum.StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    MISSED = "missed"
    RESCHEDULED = "rescheduled"


@dataclass(frozen=True)
class PlanSource:
    """Where an entry sits in a document: one hour slot, or a range."""

    hour: str | None = None
    start: str | None = None
    end: str | None = None

    @classmethod
    def at(cls, hour: str) -> PlanSource:
        slot_index(hour)
        return cls(hour=hour)

    @classmethod
    def span(cls, start: str, end: str) -> PlanSource:
        if compare_slot_order(start, end) >= 0:
            raise ValidationError(f"Range start must be before end (got {start}-{end})")
        return cls(start=start, end=end)

    @classmethod
    def parse(cls, raw: str | PlanSource) -> PlanSource:
        """``"9am"`` for a slot, ``"9am-11am"`` for a range."""
        if isinstance(raw, PlanSource):
            return raw
        start, sep, end = raw.strip().partition("-")
        return cls.span(start, end) if sep else cls.at(start)

    @property
    def is_range(self) -> bool:
        return self.hour is None

    @property
    def last_hour(self) -> str:
        return self.end if self.hour is None else self.hour

    def __str__(self) -> str:
        return f"{self.start}-{self.end}" if self.is_range else self.hour


@dataclass(frozen=True)
class LogRef:
    """The journal spot that records a completed plan."""

    date: str
    source: PlanSource

    def to_dict(self) -> dict:
        if self.source.is_range:
            return {"date": self.date, "range": {"start": self.source.start, "end": self.source.end}}
        return {"date": self.date, "hour": self.source.hour}

    @classmethod
    def from_dict(cls, d: Any) -> LogRef:
        if not isinstance(d, dict) or "date" not in d:
            raise ValidationError(f"Invalid log reference: {d!r}")
        if "hour" in d:
            return cls(d["date"], PlanSource.at(d["hour"]))
        rng = d.get("range") or {}
        return cls(d["date"], PlanSource.span(rng.get("start"), rng.get("end")))


@dataclass(frozen=True)
class Lifecycle:
    mode: EntryMode
    plan_id: str | None = None
    status: PlanStatus | None = None
    created_at: str | None = None
    updated_at: str | None = None
    missed_at: str | None = None
    completed_by: LogRef | None = None
    replanned_from: str | None = None
    replanned_to: str | None = None

    KEYS = (
        "entryMode", "planId", "planStatus", "planCreatedAt", "planUpdatedAt",
        "missedAt", "completedByLogRef", "replannedFromPlanId", "replannedToPlanId",
    )

    def to_raw(self) -> dict:
        values = (
            self.mode.value,
            self.plan_id,
            self.status.value if self.status else None,
            self.created_at,
            self.updated_at,
            self.missed_at,
            self.completed_by.to_dict() if self.completed_by else None,
            self.replanned_from,
            self.replanned_to,
        )
        return {k: v for k, v in zip(self.KEYS, values) if v is not None}

    @classmethod
    def from_raw(cls, raw: dict) -> Lifecycle | None:
        if "entryMode" not in raw and "planId" not in raw:
            return None
        try:
            mode = EntryMode(raw.get("entryMode", EntryMode.PLANNED))
            status = PlanStatus(raw["planStatus"]) if raw.get("planStatus") else None
        except ValueError as e:
            raise ValidationError(f"Invalid plan metadata: {e}") from None
        log_ref = raw.get("completedByLogRef")
        return cls(
            mode=mode,
            plan_id=raw.get("planId"),
            status=status,
            created_at=raw.get("planCreatedAt"),
            updated_at=raw.get("planUpdatedAt"),
            missed_at=raw.get("missedAt"),
            completed_by=LogRef.from_dict(log_ref) if log_ref else None,
            replanned_from=raw.get("replannedFromPlanId"),
            replanned_to=raw.get("replannedToPlanId"),
        )


# ---------------------------------------------------------------------------
# Schedule entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmptyEntry:
    lifecycle = None

    def to_raw(self) -> str:
        return ""

    def is_blank(self) -> bool:
        return True


@dataclass(frozen=True)
class TextEntry:
    text: str
    lifecycle: Lifecycle | None = None

    def to_raw(self) -> dict:
        raw: dict[str, Any] = {"text": self.text}
        if self.lifecycle is not None:
            raw.update(self.lifecycle.to_raw())
        return raw

    def is_blank(self) -> bool:
        return self.text.strip() == ""

    def with_lifecycle(self, lifecycle: Lifecycle | None) -> TextEntry:
        return dataclasses.replace(self, lifecycle=lifecycle)


@dataclass(frozen=True)
class TaskRef:
    task_id: str
    list_kind: ListKind
    lifecycle: Lifecycle | None = None

    def to_raw(self) -> dict:
        raw: dict[str, Any] = {"taskId": self.task_id, "listType": self.list_kind.value}
        if self.lifecycle is not None:
            raw.update(self.lifecycle.to_raw())
        return raw

    def is_blank(self) -> bool:
        return False

    def with_lifecycle(self, lifecycle: Lifecycle | None) -> TaskRef:
        return dataclasses.replace(self, lifecycle=lifecycle)


Entry = Union[EmptyEntry, TextEntry, TaskRef]
EMPTY = EmptyEntry()


def normalize_entry(raw: Any) -> Entry:
    """Turn any accepted stored/input shape into an Entry.

    Accepted: ``None`` or ``""`` (empty), a legacy bare string, ``{"text": ...}``
    and ``{"taskId": ..., "listType": ...}``, either dict optionally carrying
    plan lifecycle keys. Empty text is the empty entry. This is the only place
    that looks at raw shapes.
    """
    if isinstance(raw, (EmptyEntry, TextEntry, TaskRef)):
        return raw
    if raw is None or raw == "":
        return EMPTY
    if isinstance(raw, str):
        return TextEntry(raw)
    if isinstance(raw, dict):
        if "taskId" in raw:
            task_id = raw.get("taskId")
            if not isinstance(task_id, str) or not task_id.strip():
                raise ValidationError("taskId must be a non-empty string")
            if "listType" not in raw:
                raise ValidationError("A task reference needs both taskId and listType")
            return TaskRef(task_id.strip(), ListKind.parse(raw["listType"]), Lifecycle.from_raw(raw))
        if "text" in raw:
            text = raw["text"]
            if text is not None and not isinstance(text, str):
                raise ValidationError("text must be a string")
            lifecycle = Lifecycle.from_raw(raw)
            if not text and lifecycle is None:
                return EMPTY
            return TextEntry(text or "", lifecycle)
    raise ValidationError(f"Unrecognised entry shape: {raw!r}")


@dataclass(frozen=True)
class RangeEntry:
    """An entry spanning the slots from *start* through *end*."""

    start: str
    end: str
    payload: TextEntry | TaskRef

    def __post_init__(self) -> None:
        if compare_slot_order(self.start, self.end) >= 0:
            raise ValidationError(
                f"Range start must be before end (got {self.start}-{self.end})"
            )

    @property
    def key(self) -> tuple[str, str]:
        return (self.start, self.end)

    def to_raw(self) -> dict:
        return {"start": self.start, "end": self.end, **self.payload.to_raw()}

    @classmethod
    def from_raw(cls, raw: Any) -> RangeEntry:
        if isinstance(raw, RangeEntry):
            return raw
        if not isinstance(raw, dict) or "start" not in raw or "end" not in raw:
            raise ValidationError("A range needs start and end hours")
        body = {k: v for k, v in raw.items() if k not in ("start", "end")}
        if "taskId" not in body and "text" not in body:
            raise ValidationError("Range must have either text or taskId+listType")
        payload = normalize_entry(body)
        if isinstance(payload, EmptyEntry):
            payload = TextEntry("")
        return cls(start=raw["start"], end=raw["end"], payload=payload)


@dataclass
class ScheduleDocument:
    """One day's journal or plan: 24 slots plus ordered ranges.

    Keys the document does not own (e.g. from older files) are carried in
    ``extra`` and written back untouched.
    """

    slots: dict[str, Entry] = field(default_factory=lambda: {h: EMPTY for h in HOURS})
    ranges: list[RangeEntry] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> ScheduleDocument:
        return cls()

    def find_range(self, start: str, end: str) -> int | None:
        for i, r in enumerate(self.ranges):
            if r.key == (start, end):
                return i
        return None

    def entry_at(self, source: PlanSource) -> Entry | None:
        """The slot entry, or the payload of the range with exactly these bounds."""
        if not source.is_range:
            return self.slots.get(source.hour, EMPTY)
        idx = self.find_range(source.start, source.end)
        return None if idx is None else self.ranges[idx].payload

    def place(self, source: PlanSource, entry: TextEntry | TaskRef) -> None:
        """Write *entry* into a slot, or upsert the range with these bounds."""
        if not source.is_range:
            self.slots[source.hour] = entry
            return
        new = RangeEntry(source.start, source.end, entry)
        idx = self.find_range(source.start, source.end)
        if idx is None:
            self.ranges.append(new)
        else:
            self.ranges[idx] = new

    def task_ids(self) -> set[str]:
        """Every task id referenced by a slot or a range."""
        ids = {e.task_id for e in self.slots.values() if isinstance(e, TaskRef)}
        ids.update(r.payload.task_id for r in self.ranges if isinstance(r.payload, TaskRef))
        return ids

    def to_raw(self) -> dict:
        raw: dict[str, Any] = {h: self.slots.get(h, EMPTY).to_raw() for h in HOURS}
        raw["ranges"] = [r.to_raw() for r in self.ranges]
        for k, v in self.extra.items():
            raw.setdefault(k, v)
        return raw

    @classmethod
    def from_raw(cls, raw: dict) -> ScheduleDocument:
        slots = {h: normalize_entry(raw.get(h)) for h in HOURS}
        ranges = [RangeEntry.from_raw(r) for r in raw.get("ranges") or []]
        extra = {k: v for k, v in raw.items() if k not in HOURS and k != "ranges"}
        return cls(slots=slots, ranges=ranges, extra=extra)


# ---------------------------------------------------------------------------
# Resolved (display-ready) views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedEntry:
    hour: str
    text: str
    type: str  # "text" | "task"
    task_id: str | None = None
    list_kind: ListKind | None = None
    completed: bool | None = None
    lifecycle: Lifecycle | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"hour": self.hour, "text": self.text, "type": self.type}
        if self.type == "task":
            d["taskId"] = self.task_id
            d["listType"] = self.list_kind.value if self.list_kind else None
            d["completed"] = bool(self.completed)
        if self.lifecycle is not None:
            d.update(self.lifecycle.to_raw())
        return d


@dataclass(frozen=True)
class ResolvedRange:
    start: str
    end: str
    text: str
    type: str
    task_id: str | None = None
    list_kind: ListKind | None = None
    completed: bool | None = None
    lifecycle: Lifecycle | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"start": self.start, "end": self.end, "text": self.text, "type": self.type}
        if self.type == "task":
            d["taskId"] = self.task_id
            d["listType"] = self.list_kind.value if self.list_kind else None
            d["completed"] = bool(self.completed)
        if self.lifecycle is not None:
            d.update(self.lifecycle.to_raw())
        return d


@dataclass
class ResolvedDocument:
    slots: dict[str, ResolvedEntry | None]
    ranges: list[ResolvedRange]

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            h: (e.to_dict() if e is not None else None) for h, e in self.slots.items()
        }
        d["ranges"] = [r.to_dict() for r in self.ranges]
        return d
