"""directory_etl.placement

Decide where a member record goes in the directory and write it there.

The directory is kept grouped by team, and by chapter within a team.  New
members are inserted right after the last row that shares their team and
chapter (or just their team) instead of re-sorting the whole table, which
keeps any manual ordering people have applied to the sheet.

Decision order per record:
  1. Name already in the directory     -> UPDATE that row (partial fill)
  2. No team (answered "Unsure")       -> APPEND after the last row
  3. Otherwise                         -> INSERT after the last row with the
                                          same team+chapter, else the same
                                          team, else the last row
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from directory_etl.fill import FillResult, PartialFillWriter
from directory_etl.record import (
    CHAPTER_COLUMN,
    NAME_COLUMN,
    TEAM_COLUMN,
    MemberRecord,
)
from directory_etl.table import DirectoryTable

log = logging.getLogger(__name__)


class PlacementKind(str, Enum):
    UPDATE = "update"
    APPEND = "append"
    INSERT = "insert"


@dataclass(frozen=True)
class Placement:
    kind: PlacementKind
    row: int
    after: int | None = None  # set for INSERT: the row the new row follows


# ---------------------------------------------------------------------------
# Identity index
# ---------------------------------------------------------------------------

class IdentityIndex:
    """Display name -> directory row.  The first row holding a name wins."""

    def __init__(self, names: Sequence[str] = ()) -> None:
        self._rows: dict[str, int] = {}
        for row, name in enumerate(names, start=1):
            if name:
                self._rows.setdefault(name, row)

    def lookup(self, name: str) -> int | None:
        if not name:
            return None
        return self._rows.get(name)

    def add(self, name: str, row: int) -> None:
        if name:
            self._rows.setdefault(name, row)

    def shift_from(self, row: int) -> None:
        """Move every entry at ``row`` or below down by one."""
        self._rows = {n: (r + 1 if r >= row else r) for n, r in self._rows.items()}


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

class DirectorySnapshot:
    """Name/team/chapter columns read once per run.

    The snapshot is never re-read from storage during a run; instead every
    placement made through it is applied to it, so later submissions in the
    same batch see earlier ones.
    """

    def __init__(
        self,
        names: Sequence[str],
        groups: Sequence[str],
        affiliations: Sequence[str],
    ) -> None:
        self.names = list(names)
        self.groups = list(groups)
        self.affiliations = list(affiliations)
        self.index = IdentityIndex(self.names)

    @classmethod
    def from_table(cls, table: DirectoryTable) -> DirectorySnapshot:
        return cls(
            names=table.column_values(NAME_COLUMN),
            groups=table.column_values(TEAM_COLUMN),
            affiliations=table.column_values(CHAPTER_COLUMN),
        )

    @property
    def last_row(self) -> int:
        return len(self.names)

    def apply_insert(self, after: int) -> None:
        self.names.insert(after, "")
        self.groups.insert(after, "")
        self.affiliations.insert(after, "")
        self.index.shift_from(after + 1)

    def apply_values(self, row: int, values: Sequence[str]) -> None:
        while len(self.names) < row:
            self.names.append("")
            self.groups.append("")
            self.affiliations.append("")
        self.names[row - 1] = values[NAME_COLUMN - 1]
        self.groups[row - 1] = values[TEAM_COLUMN - 1]
        self.affiliations[row - 1] = values[CHAPTER_COLUMN - 1]
        self.index.add(values[NAME_COLUMN - 1], row)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def find_insert_after(group: str, affiliation: str, snapshot: DirectorySnapshot) -> int:
    """Return the row a new member of ``group``/``affiliation`` should follow."""
    last_group_row = 0
    last_pair_row = 0
    for row, (g, a) in enumerate(zip(snapshot.groups, snapshot.affiliations), start=1):
        if g != group:
            continue
        last_group_row = row
        if a == affiliation:
            last_pair_row = row
    return last_pair_row or last_group_row or snapshot.last_row


def plan_placement(record: MemberRecord, snapshot: DirectorySnapshot) -> Placement:
    existing = snapshot.index.lookup(record.name)
    if existing is not None:
        return Placement(PlacementKind.UPDATE, existing)

    if record.group == "":
        return Placement(PlacementKind.APPEND, snapshot.last_row + 1)

    after = find_insert_after(record.group, record.affiliation, snapshot)
    return Placement(PlacementKind.INSERT, after + 1, after=after)


def place_and_write(
    record: MemberRecord,
    snapshot: DirectorySnapshot,
    writer: PartialFillWriter,
) -> tuple[Placement, FillResult]:
    """Place ``record`` in the directory and partial-fill its row."""
    placement = plan_placement(record, snapshot)
    if placement.kind is PlacementKind.INSERT:
        writer.table.insert_row_after(placement.after)  # type: ignore[arg-type]
        snapshot.apply_insert(placement.after)  # type: ignore[arg-type]

    result = writer.fill(record.row_values(), placement.row)
    snapshot.apply_values(placement.row, result.values)
    log.debug(
        "%s %r at row %d (missing columns: %s)",
        placement.kind.value, record.name, placement.row, result.missing_columns,
    )
    return placement, result
