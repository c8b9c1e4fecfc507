"""
Incremental release grouping.

Records sharing artist + album + format are clustered into a ReleaseGroup
("N copies available"). Pages arrive one at a time, so grouping is done per
batch against everything seen so far in the session:

- records without artist/album resolve to singles straight away;
- a keyed record with no sibling yet is held back as a candidate, and either
  joins a group when a sibling shows up in a later page or becomes a single
  in `flush()` once fetching is over;
- resolved items are only emitted below the low-water mark (the smallest
  original index still held), so emitted items never go backwards in
  original order across the whole session;
- a record whose group card is already out is folded into the group for
  bookkeeping but produces no new item (the card's copy count stays frozen).

Every record is emitted at most once per session.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from release_grouping.storefront.models import Record

logger = logging.getLogger(__name__)

UNKNOWN_INDEX = float("inf")


def derived_format(product_type: Optional[str]) -> str:
    """
    Map a free-text productType to a display format.
    Order matters: "12" must win over "box", "box" over "lp"/"cd".
    """
    if not product_type:
        return ""
    t = product_type.strip().lower()
    if "12" in t:
        return '12"'
    if "10" in t:
        return '10"'
    if "7" in t:
        return '7"'
    if "box" in t:
        if "lp" in t or "vinyl" in t:
            return "LP Box"
        if "cd" in t:
            return "CD Box"
        return "Box Set"
    if "lp" in t:
        return "LP"
    if "cd" in t:
        return "CD"
    if "cassette" in t:
        return "Cassette"
    if "ep" in t:
        return "EP"
    if "dvd" in t:
        return "DVD"
    if "blu" in t:
        return "Blu-ray"
    if "vhs" in t:
        return "VHS"
    return ""


def normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def group_key(record: Record) -> Optional[str]:
    artist = normalize(record.artist)
    album = normalize(record.album_title)
    if not artist or not album:
        return None
    return f"{artist}|{album}|{derived_format(record.product_type)}"


class ItemKind(str, Enum):
    SINGLE = "single"
    GROUP = "group"


@dataclass
class ReleaseGroup:
    main_record: Record
    member_records: List[Record] = field(default_factory=list)
    format: str = ""
    rendered: bool = False

    @property
    def size(self) -> int:
        return 1 + len(self.member_records)

    @property
    def records(self) -> List[Record]:
        return [self.main_record, *self.member_records]

    def contains(self, record_id: str) -> bool:
        return any(r.id == record_id for r in self.records)

    def add(self, record: Record) -> bool:
        if self.contains(record.id):
            return False
        self.member_records.append(record)
        return True


@dataclass
class RenderItem:
    kind: ItemKind
    record: Record
    member_records: List[Record] = field(default_factory=list)
    format: str = ""
    original_index: float = UNKNOWN_INDEX

    @property
    def is_group(self) -> bool:
        return self.kind == ItemKind.GROUP

    @property
    def main_record(self) -> Record:
        return self.record

    @property
    def copies(self) -> int:
        return 1 + len(self.member_records)

    @property
    def record_ids(self) -> List[str]:
        return [self.record.id, *(r.id for r in self.member_records)]

    @classmethod
    def single(cls, record: Record, original_index: float) -> "RenderItem":
        return cls(kind=ItemKind.SINGLE, record=record, format=derived_format(record.product_type), original_index=original_index)

    @classmethod
    def group(cls, group: ReleaseGroup, original_index: float) -> "RenderItem":
        # snapshot: later late-joins must not change an emitted item
        return cls(
            kind=ItemKind.GROUP,
            record=group.main_record,
            member_records=list(group.member_records),
            format=group.format,
            original_index=original_index,
        )


@dataclass
class SessionState:
    group_key_index: Dict[str, ReleaseGroup] = field(default_factory=dict)
    record_index: Dict[str, Record] = field(default_factory=dict)
    # ids already claimed by an item (queued or emitted)
    rendered_ids: Set[str] = field(default_factory=set)
    original_order_index: Dict[str, int] = field(default_factory=dict)
    # key -> ids of every registered record with that key, in arrival order
    key_members: Dict[str, List[str]] = field(default_factory=dict)
    # keyed records still waiting for a sibling
    held_ids: Set[str] = field(default_factory=set)
    # resolved items waiting behind a held record with a lower index
    queued: List[RenderItem] = field(default_factory=list)
    queued_groups: Dict[str, RenderItem] = field(default_factory=dict)


class GroupingEngine:
    def __init__(self):
        self.state = SessionState()

    def reset(self) -> None:
        self.state = SessionState()

    def original_index(self, record_id: str) -> float:
        return self.state.original_order_index.get(record_id, UNKNOWN_INDEX)

    def register(self, records: Iterable[Record]) -> None:
        """
        Index records in fetch order. Must happen before grouping so a record
        can find its siblings within the same page.
        """
        state = self.state
        for record in records:
            if record.id in state.record_index:
                continue
            state.original_order_index[record.id] = len(state.original_order_index)
            state.record_index[record.id] = record
            key = group_key(record)
            if key is not None:
                state.key_members.setdefault(key, []).append(record.id)

    def _unrendered_matches(self, key: str) -> List[Record]:
        state = self.state
        ids = [i for i in state.key_members.get(key, []) if i not in state.rendered_ids]
        ids.sort(key=self.original_index)
        return [state.record_index[i] for i in ids]

    def _claim(self, records: Iterable[Record]) -> None:
        for r in records:
            self.state.rendered_ids.add(r.id)
            self.state.held_ids.discard(r.id)

    def _enqueue_single(self, record: Record) -> None:
        self.state.queued.append(RenderItem.single(record, self.original_index(record.id)))
        self._claim([record])

    def _start_group(self, key: str, matches: List[Record]) -> None:
        group = ReleaseGroup(
            main_record=matches[0],
            member_records=matches[1:],
            format=derived_format(matches[0].product_type),
            rendered=True,
        )
        self.state.group_key_index[key] = group
        item = RenderItem.group(group, self.original_index(group.main_record.id))
        self.state.queued.append(item)
        self.state.queued_groups[key] = item
        self._claim(group.records)

    def _join(self, key: str, group: ReleaseGroup, record: Record) -> bool:
        """
        Add a late record to an existing group. Returns False when the group's
        card is already out, in which case its copy count stays as rendered.
        """
        group.add(record)
        self._claim([record])
        queued = self.state.queued_groups.get(key)
        if queued is not None:
            queued.member_records.append(record)
            return True
        logger.debug("Record %s joined already-rendered group %s; copy count not updated", record.id, key)
        return False

    @property
    def low_water_mark(self) -> float:
        """Smallest original index still held back; nothing at or past it can be emitted."""
        held = self.state.held_ids
        if not held:
            return UNKNOWN_INDEX
        return min(self.original_index(i) for i in held)

    def _release(self, limit: float) -> List[RenderItem]:
        state = self.state
        state.queued.sort(key=lambda item: item.original_index)
        ready = [item for item in state.queued if item.original_index < limit]
        state.queued = state.queued[len(ready):]
        for item in ready:
            if item.is_group:
                state.queued_groups.pop(group_key(item.record), None)
        return ready

    def process_batch(self, records: Iterable[Record]) -> List[RenderItem]:
        """
        Group one freshly fetched page against the session so far.
        Returns the items that can be rendered now, ordered by original index.
        Items behind a record still waiting for a sibling stay queued so the
        session's output never goes backwards.
        """
        records = list(records)
        self.register(records)
        state = self.state

        processed = resolved = held = joined = 0

        for record in records:
            if record.id in state.rendered_ids:
                continue
            processed += 1

            key = group_key(record)
            if key is None:
                self._enqueue_single(record)
                resolved += 1
                continue

            group = state.group_key_index.get(key)
            if group is not None:
                self._join(key, group, record)
                joined += 1
                continue

            matches = self._unrendered_matches(key)
            if len(matches) < 2:
                # candidate single, revisited when a sibling arrives or at flush
                state.held_ids.add(record.id)
                held += 1
                continue

            self._start_group(key, matches)
            resolved += 1

        if processed > 0 and resolved == 0 and held == 0 and joined == 0:
            logger.critical(f"Processed {processed} records but produced 0 items to render")

        items = self._release(self.low_water_mark)
        if state.queued:
            logger.debug(f"{len(state.queued)} items queued behind index {self.low_water_mark}")
        return items

    def flush(self) -> List[RenderItem]:
        """
        Emit everything still held back or queued once no more pages will arrive.
        Lone keyed records become singles.
        """
        state = self.state
        pending = [r for r in state.record_index.values() if r.id not in state.rendered_ids]
        pending.sort(key=lambda r: self.original_index(r.id))

        for record in pending:
            if record.id in state.rendered_ids:
                continue
            key = group_key(record)
            if key is None:
                self._enqueue_single(record)
                continue
            group = state.group_key_index.get(key)
            if group is not None:
                self._join(key, group, record)
                continue
            matches = self._unrendered_matches(key)
            if len(matches) >= 2:
                self._start_group(key, matches)
            else:
                self._enqueue_single(record)

        state.held_ids.clear()
        return self._release(UNKNOWN_INDEX)

    @property
    def pending_count(self) -> int:
        """Records fetched but not yet emitted in any item."""
        state = self.state
        unclaimed = sum(1 for i in state.record_index if i not in state.rendered_ids)
        return unclaimed + sum(item.copies for item in state.queued)


def group_records(records: Iterable[Record]) -> List[RenderItem]:
    """
    One-pass grouping of a complete record list (no incremental state).
    Groups need 2+ records; the first record seen is the group's main record.
    """
    engine = GroupingEngine()
    records = list(records)
    engine.register(records)
    items = engine.process_batch(records)
    items.extend(engine.flush())
    return items
