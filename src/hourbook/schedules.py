"""Journal and plan documents: one per (date, kind), 24 slots plus ranges.

Documents are created explicitly and never deleted; only their slots and
ranges are cleared. Every mutation reads the whole document, changes it in
memory and writes the whole document back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from hourbook.errors import (
    ImmutableEntryError,
    NotFound,
    Ok,
    Result,
    StorageUnavailable,
    ValidationError,
    returns_result,
)
from hourbook.hours import parse_date, slot_index
from hourbook.models import (
    EMPTY,
    Entry,
    RangeEntry,
    ScheduleDocument,
    ScheduleKind,
    TaskRef,
    TextEntry,
    normalize_entry,
)
from hourbook.persistence import DocumentStore, StoreKey, read_json, write_json

logger = logging.getLogger(__name__)

JOURNAL_FORMAT_KEY = StoreKey(ScheduleKind.JOURNAL.value, "format")


@dataclass(frozen=True)
class Created:
    created: bool


@dataclass(frozen=True)
class SlotChange:
    previous: Entry
    new: Entry


@dataclass(frozen=True)
class Cleared:
    deleted_entry: Entry | None  # None when the slot was already empty


@dataclass(frozen=True)
class RangeChange:
    created: bool
    new: RangeEntry
    previous: RangeEntry | None = None


@dataclass(frozen=True)
class RangeRemoval:
    removed: bool


class ScheduleStore:
    """Owns every journal and plan document."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def key(date: str, kind: ScheduleKind) -> StoreKey:
        return StoreKey(kind.value, date)

    def load(self, date: str, kind: ScheduleKind | str) -> ScheduleDocument | None:
        kind = ScheduleKind.parse(kind)
        key = self.key(parse_date(date), kind)
        raw = read_json(self.store, key)
        if raw is None:
            return None
        return self._decode(key, raw)

    @staticmethod
    def _decode(key: StoreKey, raw: Any) -> ScheduleDocument:
        if not isinstance(raw, dict):
            raise StorageUnavailable(f"Document {key} is not an object")
        try:
            return ScheduleDocument.from_raw(raw)
        except ValidationError as e:
            logger.error("Malformed schedule document %s: %s", key, e)
            raise StorageUnavailable(f"Document {key} is malformed: {e}") from e

    def _require(self, date: str, kind: ScheduleKind) -> ScheduleDocument:
        doc = self.load(date, kind)
        if doc is None:
            raise NotFound(f"No {kind.value} exists for date {date}. Create one first.")
        return doc

    def save(self, date: str, kind: ScheduleKind | str, doc: ScheduleDocument) -> None:
        """Write a whole document back, e.g. after a lifecycle change."""
        write_json(self.store, self.key(parse_date(date), ScheduleKind.parse(kind)), doc.to_raw())

    # ---- templates ----

    def template(self, kind: ScheduleKind) -> ScheduleDocument:
        """Bootstrap document: plans are generated, journals come from the stored format."""
        if kind is ScheduleKind.PLAN:
            return ScheduleDocument.empty()
        raw = read_json(self.store, JOURNAL_FORMAT_KEY)
        if raw is None:
            raise NotFound("Journal format template not found. Run 'hourbook init' first.")
        return self._decode(JOURNAL_FORMAT_KEY, raw)

    def seed_journal_format(self) -> bool:
        """Write the default journal format template if none exists."""
        if self.store.exists(JOURNAL_FORMAT_KEY):
            return False
        write_json(self.store, JOURNAL_FORMAT_KEY, ScheduleDocument.empty().to_raw())
        logger.info("Seeded journal format template")
        return True

    # ---- operations ----

    @returns_result
    def create_for_date(self, date: str, kind: ScheduleKind | str) -> Result[Created]:
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        if self.store.exists(self.key(date, kind)):
            return Ok(Created(False))
        self.save(date, kind, self.template(kind))
        logger.info("Created %s for %s", kind.value, date)
        return Ok(Created(True))

    @returns_result
    def read(self, date: str, kind: ScheduleKind | str) -> Result[ScheduleDocument]:
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        return Ok(self._require(date, kind))

    @returns_result
    def read_many(
        self, dates: list[str], kind: ScheduleKind | str
    ) -> Result[dict[str, ScheduleDocument | None]]:
        """Documents by canonical date; missing ones map to None."""
        kind = ScheduleKind.parse(kind)
        canonical = [parse_date(d) for d in dates]
        return Ok({d: self.load(d, kind) for d in canonical})

    @returns_result
    def set_slot(self, date: str, kind: ScheduleKind | str, hour: str, entry: Any) -> Result[SlotChange]:
        """Replace one slot. *entry* may be any accepted entry shape."""
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        slot_index(hour)
        new = normalize_entry(entry)

        doc = self._require(date, kind)
        previous = doc.slots.get(hour, EMPTY)
        doc.slots[hour] = new
        self.save(date, kind, doc)
        logger.info("Set %s %s %s", kind.value, date, hour)
        return Ok(SlotChange(previous, new))

    @returns_result
    def append_text_to_slot(
        self, date: str, kind: ScheduleKind | str, hour: str, text: str
    ) -> Result[SlotChange]:
        """Add a line of text to a slot. Task references cannot be appended to."""
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        slot_index(hour)
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text parameter is required and cannot be empty")

        doc = self._require(date, kind)
        previous = doc.slots.get(hour, EMPTY)
        if isinstance(previous, TaskRef):
            raise ImmutableEntryError(
                "Cannot append text to a task reference. Use update to replace it."
            )

        current = previous.text.strip() if isinstance(previous, TextEntry) else ""
        lifecycle = previous.lifecycle if isinstance(previous, TextEntry) else None
        new = TextEntry(f"{current}\n{text.strip()}" if current else text.strip(), lifecycle)
        doc.slots[hour] = new
        self.save(date, kind, doc)
        logger.info("Appended to %s %s %s", kind.value, date, hour)
        return Ok(SlotChange(previous, new))

    @returns_result
    def clear_slot(self, date: str, kind: ScheduleKind | str, hour: str) -> Result[Cleared]:
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        slot_index(hour)

        doc = self._require(date, kind)
        previous = doc.slots.get(hour, EMPTY)
        if previous.is_blank():
            return Ok(Cleared(None))
        doc.slots[hour] = EMPTY
        self.save(date, kind, doc)
        logger.info("Cleared %s %s %s", kind.value, date, hour)
        return Ok(Cleared(previous))

    @returns_result
    def set_range(self, date: str, kind: ScheduleKind | str, entry: RangeEntry | dict) -> Result[RangeChange]:
        """Insert a range, or replace the one with the same start and end.

        Ranges with different bounds may overlap; nothing checks for that.
        """
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        new = RangeEntry.from_raw(entry)

        doc = self._require(date, kind)
        idx = doc.find_range(new.start, new.end)
        if idx is None:
            doc.ranges.append(new)
            change = RangeChange(created=True, new=new)
        else:
            change = RangeChange(created=False, new=new, previous=doc.ranges[idx])
            doc.ranges[idx] = new
        self.save(date, kind, doc)
        logger.info(
            "%s range %s-%s on %s %s",
            "Added" if change.created else "Updated", new.start, new.end, kind.value, date,
        )
        return Ok(change)

    @returns_result
    def remove_range(self, date: str, kind: ScheduleKind | str, start: str, end: str) -> Result[RangeRemoval]:
        date, kind = parse_date(date), ScheduleKind.parse(kind)
        slot_index(start)
        slot_index(end)

        doc = self._require(date, kind)
        idx = doc.find_range(start, end)
        if idx is None:
            return Ok(RangeRemoval(False))
        del doc.ranges[idx]
        self.save(date, kind, doc)
        logger.info("Removed range %s-%s from %s %s", start, end, kind.value, date)
        return Ok(RangeRemoval(True))
