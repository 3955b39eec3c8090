"""directory_etl.pg_table

PostgreSQL-backed DirectoryTable.

All statements run on the caller's connection; committing or rolling back
(dry runs) is the caller's job.
"""

from __future__ import annotations

import json
from typing import Mapping, Sequence

import psycopg

from directory_etl.table import Cell, ValueConstraint

VOCABULARIES = ("chapter", "team", "grade")


# ---------------------------------------------------------------------------
# Vocabulary helpers
# ---------------------------------------------------------------------------

def load_vocabulary(conn: psycopg.Connection, vocabulary: str) -> list[str]:
    """Return the non-blank values of one vocabulary in position order."""
    rows = conn.execute(
        """
        SELECT value FROM directory_vocabulary
        WHERE vocabulary = %s
        ORDER BY position
        """,
        (vocabulary,),
    ).fetchall()
    return [r[0] for r in rows if r[0] and r[0].strip()]


def load_constraints(conn: psycopg.Connection) -> dict[str, ValueConstraint]:
    return {
        name: ValueConstraint(name, tuple(load_vocabulary(conn, name)))
        for name in VOCABULARIES
    }


def replace_vocabulary(conn: psycopg.Connection, vocabulary: str, values: Sequence[str]) -> None:
    conn.execute("DELETE FROM directory_vocabulary WHERE vocabulary = %s", (vocabulary,))
    for pos, value in enumerate(values, start=1):
        conn.execute(
            """
            INSERT INTO directory_vocabulary (vocabulary, position, value)
            VALUES (%s, %s, %s)
            """,
            (vocabulary, pos, value),
        )


# ---------------------------------------------------------------------------
# Cell (de)serialization
# ---------------------------------------------------------------------------

def _cell_to_json(cell: Cell) -> dict:
    return {
        "value": cell.value,
        "missing": cell.missing,
        "constraint": cell.constraint.name if cell.constraint else None,
    }


def _cell_from_json(data: dict, constraints: Mapping[str, ValueConstraint]) -> Cell:
    name = data.get("constraint")
    constraint = None
    if name:
        constraint = constraints.get(name) or ValueConstraint(name)
    return Cell(
        value=str(data.get("value") or ""),
        missing=bool(data.get("missing")),
        constraint=constraint,
    )


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class PostgresDirectoryTable:
    """DirectoryTable over the directory_row table."""

    def __init__(
        self,
        conn: psycopg.Connection,
        constraints: Mapping[str, ValueConstraint] | None = None,
    ) -> None:
        self.conn = conn
        self.constraints = dict(constraints or {})

    def last_row(self) -> int:
        row = self.conn.execute("SELECT COALESCE(MAX(row_num), 0) FROM directory_row").fetchone()
        return int(row[0]) if row else 0

    def column_values(self, column: int) -> list[str]:
        rows = self.conn.execute(
            "SELECT row_num, cells -> (%s)::int ->> 'value' FROM directory_row ORDER BY row_num",
            (column - 1,),
        ).fetchall()
        out = [""] * self.last_row()
        for row_num, value in rows:
            out[row_num - 1] = value or ""
        return out

    def read_row(self, row: int, width: int) -> list[Cell]:
        found = self.conn.execute(
            "SELECT cells FROM directory_row WHERE row_num = %s",
            (row,),
        ).fetchone()
        stored = found[0] if found else []
        if isinstance(stored, str):
            stored = json.loads(stored)
        cells = [_cell_from_json(c, self.constraints) for c in stored[:width]]
        cells += [Cell() for _ in range(width - len(cells))]
        return cells

    def write_row(self, row: int, cells: Sequence[Cell]) -> None:
        # Stored cells past len(cells) are appended back unchanged.
        self.conn.execute(
            """
            INSERT INTO directory_row (row_num, cells)
            VALUES (%s, %s::jsonb)
            ON CONFLICT (row_num) DO UPDATE
              SET cells = EXCLUDED.cells || COALESCE(
                    (SELECT jsonb_agg(t.cell ORDER BY t.pos)
                     FROM jsonb_array_elements(directory_row.cells)
                          WITH ORDINALITY AS t(cell, pos)
                     WHERE t.pos > jsonb_array_length(EXCLUDED.cells)),
                    '[]'::jsonb),
                  updated_at = now()
            """,
            (row, json.dumps([_cell_to_json(c) for c in cells])),
        )

    def insert_row_after(self, row: int) -> None:
        self.conn.execute(
            "UPDATE directory_row SET row_num = -(row_num + 1) WHERE row_num > %s",
            (row,),
        )
        self.conn.execute("UPDATE directory_row SET row_num = -row_num WHERE row_num < 0")
        self.conn.execute(
            "INSERT INTO directory_row (row_num, cells) VALUES (%s, '[]'::jsonb)",
            (row + 1,),
        )
