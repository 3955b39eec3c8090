"""directory_etl.fill

Merge a member record into a directory row without overwriting anything a
person has already typed there.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from directory_etl.table import Cell, DirectoryTable, ValueConstraint


@dataclass
class FillResult:
    row: int
    values: list[str]
    written_columns: list[int] = field(default_factory=list)
    missing_columns: list[int] = field(default_factory=list)


class PartialFillWriter:
    """Writes record values into empty cells of a single row.

    ``constraints`` maps a 1-indexed column to the value constraint that is
    attached to that column's cell on every fill.
    """

    def __init__(
        self,
        table: DirectoryTable,
        constraints: Mapping[int, ValueConstraint] | None = None,
    ) -> None:
        self.table = table
        self.constraints = dict(constraints or {})

    def fill(self, values: Sequence[str], row: int) -> FillResult:
        cells = self.table.read_row(row, len(values))
        result = FillResult(row=row, values=[])

        for idx, (cell, incoming) in enumerate(zip(cells, values)):
            column = idx + 1
            if cell.is_empty:
                cell.value = incoming
                result.written_columns.append(column)
                cell.missing = incoming == ""
                if cell.missing:
                    result.missing_columns.append(column)
            constraint = self.constraints.get(column)
            if constraint is not None:
                cell.constraint = constraint
            result.values.append(cell.value)

        self.table.write_row(row, cells)
        return result
