"""Integration tests for directory_etl.pg_table.

Run against an ephemeral PostgreSQL database via the db_conn fixture.
"""

from __future__ import annotations

import psycopg

from directory_etl.config import DirectoryConfig
from directory_etl.fill import PartialFillWriter
from directory_etl.pg_table import (
    PostgresDirectoryTable,
    load_constraints,
    load_vocabulary,
    replace_vocabulary,
)
from directory_etl.pipeline import DirectoryRun, run_directory
from directory_etl.shared import DirectoryRunCounters
from directory_etl.table import Cell, ValueConstraint


def _seed_vocabularies(conn):
    replace_vocabulary(conn, "chapter", ["Central High School", "", "The Haverford School"])
    replace_vocabulary(conn, "team", ["Member", "Logistics", "Finance"])
    replace_vocabulary(conn, "grade", ["Freshman", "Sophomore", "Junior", "Senior"])
    conn.commit()


def _names(table: PostgresDirectoryTable) -> list[str]:
    return table.column_values(1)


class TestVocabulary:
    def test_blank_values_skipped_in_order(self, db_conn):
        conn, _ = db_conn
        _seed_vocabularies(conn)
        assert load_vocabulary(conn, "chapter") == ["Central High School", "The Haverford School"]

    def test_replace_overwrites(self, db_conn):
        conn, _ = db_conn
        _seed_vocabularies(conn)
        replace_vocabulary(conn, "team", ["Outreach"])
        assert load_vocabulary(conn, "team") == ["Outreach"]

    def test_constraints(self, db_conn):
        conn, _ = db_conn
        _seed_vocabularies(conn)
        constraints = load_constraints(conn)
        assert constraints["grade"] == ValueConstraint(
            "grade", ("Freshman", "Sophomore", "Junior", "Senior")
        )
        assert set(constraints) == {"chapter", "team", "grade"}


class TestPostgresDirectoryTable:
    def test_empty_table(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        assert table.last_row() == 0
        assert table.column_values(1) == []
        assert [c.value for c in table.read_row(1, 3)] == ["", "", ""]

    def test_cell_round_trip_keeps_flags_and_constraints(self, db_conn):
        conn, _ = db_conn
        grades = ValueConstraint("grade", ("Junior", "Senior"))
        table = PostgresDirectoryTable(conn, {"grade": grades})
        table.write_row(1, [Cell("Ann Lee"), Cell("", missing=True), Cell("Senior", constraint=grades)])
        cells = table.read_row(1, 4)
        assert cells[0] == Cell("Ann Lee")
        assert cells[1] == Cell("", missing=True)
        assert cells[2] == Cell("Senior", constraint=grades)
        assert cells[3] == Cell()

    def test_write_row_upserts(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        table.write_row(1, [Cell("Ann Lee")])
        table.write_row(1, [Cell("Ann Lee"), Cell("Treasurer")])
        assert table.last_row() == 1
        assert [c.value for c in table.read_row(1, 2)] == ["Ann Lee", "Treasurer"]

    def test_write_row_keeps_cells_past_written_width(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        table.write_row(1, [Cell("a"), Cell("b"), Cell("note", missing=True)])
        table.write_row(1, [Cell("x"), Cell("y")])
        cells = table.read_row(1, 3)
        assert [c.value for c in cells] == ["x", "y", "note"]
        assert cells[2].missing is True

    def test_fill_keeps_curated_columns(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        table.write_row(1, [Cell(v) for v in ["Ann Lee", "", "", "", "", "Finance", "", "", "curated note"]])
        PartialFillWriter(table).fill(
            ["Ann Lee", "", "Central High School", "ann@example.com", "", "Logistics", "Senior", ""],
            1,
        )
        values = [c.value for c in table.read_row(1, 9)]
        assert values[8] == "curated note"
        assert values[3] == "ann@example.com"
        assert values[5] == "Finance"

    def test_column_values_fill_gaps(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        table.write_row(1, [Cell("Ann Lee")])
        table.write_row(3, [Cell("Cy Dee")])
        assert table.column_values(1) == ["Ann Lee", "", "Cy Dee"]

    def test_insert_row_after_shifts_later_rows(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        for row, name in enumerate(["A", "B", "C"], start=1):
            table.write_row(row, [Cell(name)])
        table.insert_row_after(1)
        table.write_row(2, [Cell("new")])
        assert _names(table) == ["A", "new", "B", "C"]
        assert table.last_row() == 4

    def test_insert_at_top_and_end(self, db_conn):
        conn, _ = db_conn
        table = PostgresDirectoryTable(conn)
        table.write_row(1, [Cell("A")])
        table.insert_row_after(0)
        table.write_row(1, [Cell("top")])
        table.insert_row_after(2)
        table.write_row(3, [Cell("end")])
        assert _names(table) == ["top", "A", "end"]


class TestRunAgainstPostgres:
    def test_grouped_batch_and_rerun(self, db_conn):
        conn, _ = db_conn
        _seed_vocabularies(conn)
        batch = [
            ["L One", "l1@example.com", "2155550100", "Central High School", "Logistics", "Junior", ""],
            ["F One", "f1@example.com", "2155550101", "Central High School", "Finance", "Junior", ""],
            ["L Two", "l2@example.com", "", "The Haverford School", "Logistics", "Senior", ""],
        ]

        def run_once() -> DirectoryRunCounters:
            constraints = load_constraints(conn)
            table = PostgresDirectoryTable(conn, constraints)
            run = DirectoryRun.open(table, constraints, DirectoryConfig(), DirectoryRunCounters())
            run_directory(run, batch)
            conn.commit()
            return run.counters

        first = run_once()
        table = PostgresDirectoryTable(conn, load_constraints(conn))
        assert _names(table) == ["L One", "L Two", "F One"]
        assert first.members_inserted == 3

        second = run_once()
        assert _names(table) == ["L One", "L Two", "F One"]
        assert second.members_updated == 3
        assert second.members_inserted == 0

        cells = table.read_row(2, 8)
        assert cells[4] == Cell("", missing=True)
        assert cells[2].constraint is not None
        assert cells[2].constraint.name == "chapter"

    def test_storage_error_rolls_back_only_the_failing_response(self, db_conn):
        conn, _ = db_conn
        _seed_vocabularies(conn)

        class FailingSecondWrite(PostgresDirectoryTable):
            writes = 0

            def write_row(self, row, cells):
                FailingSecondWrite.writes += 1
                if FailingSecondWrite.writes == 2:
                    raise psycopg.OperationalError("disk full")
                super().write_row(row, cells)

        constraints = load_constraints(conn)
        run = DirectoryRun.open(
            FailingSecondWrite(conn, constraints), constraints, DirectoryConfig(),
            DirectoryRunCounters(), conn=conn,
        )
        run_directory(run, [
            ["L One", "l1@example.com", "", "Central High School", "Logistics", "Junior", ""],
            ["F One", "f1@example.com", "", "Central High School", "Finance", "Junior", ""],
        ])
        conn.commit()

        assert run.counters.db_errors == 1
        table = PostgresDirectoryTable(conn)
        assert _names(table) == ["L One"]
        assert table.last_row() == 1
