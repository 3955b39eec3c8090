"""directory_etl.table

Directory table storage interface.

Rows and columns are 1-indexed data positions (no header row).  A table is
read in single-column snapshots (names, teams, chapters) and in whole-row
reads/writes of Cell objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence


@dataclass(frozen=True)
class ValueConstraint:
    """A dropdown-style rule: the cell must hold one of ``allowed``."""

    name: str
    allowed: tuple[str, ...] = ()


@dataclass
class Cell:
    value: str = ""
    missing: bool = False
    constraint: ValueConstraint | None = None

    @property
    def is_empty(self) -> bool:
        return self.value == ""


class DirectoryTable(Protocol):
    def last_row(self) -> int:
        """Return the index of the last occupied row (0 when empty)."""
        ...

    def column_values(self, column: int) -> list[str]:
        """Return one value per row 1..last_row() for ``column``."""
        ...

    def read_row(self, row: int, width: int) -> list[Cell]:
        ...

    def write_row(self, row: int, cells: Sequence[Cell]) -> None:
        """Replace the first len(cells) cells of ``row``; later cells are kept."""
        ...

    def insert_row_after(self, row: int) -> None:
        """Insert a blank row after ``row``; later rows move down by one."""
        ...


@dataclass
class InMemoryTable:
    """List-backed DirectoryTable used by tests and local dry runs."""

    rows: list[list[Cell]] = field(default_factory=list)

    @classmethod
    def from_values(cls, values: Sequence[Sequence[str]]) -> InMemoryTable:
        return cls(rows=[[Cell(str(v)) for v in row] for row in values])

    def last_row(self) -> int:
        return len(self.rows)

    def column_values(self, column: int) -> list[str]:
        out = []
        for row in self.rows:
            out.append(row[column - 1].value if column <= len(row) else "")
        return out

    def read_row(self, row: int, width: int) -> list[Cell]:
        if row > len(self.rows):
            return [Cell() for _ in range(width)]
        cells = [Cell(c.value, c.missing, c.constraint) for c in self.rows[row - 1][:width]]
        cells += [Cell() for _ in range(width - len(cells))]
        return cells

    def write_row(self, row: int, cells: Sequence[Cell]) -> None:
        while len(self.rows) < row:
            self.rows.append([])
        self.rows[row - 1][:len(cells)] = [Cell(c.value, c.missing, c.constraint) for c in cells]

    def insert_row_after(self, row: int) -> None:
        self.rows.insert(row, [])

    def values(self) -> list[list[str]]:
        return [[c.value for c in row] for row in self.rows]
