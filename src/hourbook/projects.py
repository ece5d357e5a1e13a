"""Project tags on tasks and the per-project view across lists."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from hourbook.errors import ValidationError
from hourbook.models import ListKind, Task

UNASSIGNED = "__unassigned__"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def normalize_project_slug(raw: str) -> str:
    """``"  Thesis Writing! "`` -> ``"thesis-writing"``."""
    return _NON_SLUG.sub("-", raw.strip().lower()).strip("-")


def normalize_project_list(raw: Iterable[Any] | None) -> list[str]:
    """Slugs of the string items, without blanks or duplicates, sorted."""
    if raw is None:
        return []
    if isinstance(raw, str) or not isinstance(raw, Iterable):
        raise ValidationError("projects must be a list of strings")
    slugs = {normalize_project_slug(p) for p in raw if isinstance(p, str)}
    slugs.discard("")
    return sorted(slugs)


def format_project_tag(slug: str) -> str:
    return f"({slug})"


def format_task_text_with_projects(text: str, projects: Iterable[str]) -> str:
    tags = " ".join(format_project_tag(p) for p in normalize_project_list(projects))
    return f"{tags} {text}" if tags else text


def _buckets() -> dict[ListKind, list[Task]]:
    return {kind: [] for kind in ListKind}


@dataclass
class ProjectGroup:
    """Tasks of one project, from the general backlogs and from one day's lists."""

    project: str
    general: dict[ListKind, list[Task]] = field(default_factory=_buckets)
    today: dict[ListKind, list[Task]] = field(default_factory=_buckets)

    @property
    def tagged(self) -> str:
        return "" if self.project == UNASSIGNED else format_project_tag(self.project)

    def add(self, bucket: dict[ListKind, list[Task]], list_kind: ListKind, task: Task) -> None:
        if all(t.id != task.id for t in bucket[list_kind]):
            bucket[list_kind].append(task)

    def unified(self) -> list[Task]:
        """One entry per task, the day's copy winning; open tasks first, then
        completed ones, most recently completed first."""
        merged: dict[str, Task] = {}
        for bucket in (self.general, self.today):
            for kind in ListKind:
                for task in bucket[kind]:
                    merged[task.id] = task
        open_ = [t for t in merged.values() if not t.completed]
        done = sorted(
            (t for t in merged.values() if t.completed),
            key=lambda t: t.completed_at or "",
            reverse=True,
        )
        return open_ + done

    def totals(self) -> dict[str, int]:
        general = sum(len(v) for v in self.general.values())
        today = sum(len(v) for v in self.today.values())
        return {"general": general, "today": today, "all": len(self.unified())}

    def to_dict(self) -> dict:
        def bucket(b: dict[ListKind, list[Task]]) -> dict:
            return {kind.value: [t.to_dict() for t in b[kind]] for kind in ListKind}

        return {
            "project": self.project,
            "tagged": self.tagged,
            "unified": [t.to_dict() for t in self.unified()],
            "general": bucket(self.general),
            "today": bucket(self.today),
            "totals": self.totals(),
        }


@dataclass
class ProjectView:
    date: str
    projects: list[ProjectGroup]
    unassigned: ProjectGroup

    def get(self, slug: str) -> ProjectGroup | None:
        slug = normalize_project_slug(slug)
        return next((g for g in self.projects if g.project == slug), None)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "projects": [g.to_dict() for g in self.projects],
            "unassigned": self.unassigned.to_dict(),
        }


def build_project_view(
    date: str,
    general: dict[ListKind, list[Task]],
    today: dict[ListKind, list[Task]],
) -> ProjectView:
    """Group tasks by project tag; untagged tasks go to the unassigned group.

    A task tagged with several projects shows up in each of them.
    """
    groups: dict[str, ProjectGroup] = {}

    def collect(source: dict[ListKind, list[Task]], pick) -> None:
        for kind, tasks in source.items():
            for task in tasks:
                for slug in normalize_project_list(task.projects) or [UNASSIGNED]:
                    group = groups.setdefault(slug, ProjectGroup(slug))
                    group.add(pick(group), kind, task)

    collect(general, lambda g: g.general)
    collect(today, lambda g: g.today)

    unassigned = groups.pop(UNASSIGNED, None) or ProjectGroup(UNASSIGNED)
    return ProjectView(
        date=date,
        projects=[groups[slug] for slug in sorted(groups)],
        unassigned=unassigned,
    )
