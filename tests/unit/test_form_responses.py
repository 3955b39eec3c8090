"""Unit tests for directory_etl.form_responses."""

import json

import pytest

from directory_etl.form_responses import read_response_json, read_responses_csv

HEADER = (
    "Timestamp,Full name,Email,Phone,School,Team,Grade,Parent emails\n"
)


class TestReadResponsesCsv:
    def test_drops_timestamp_column(self, tmp_path):
        path = tmp_path / "responses.csv"
        path.write_text(
            HEADER
            + '1/2/2025 10:00:00,finn kelly,finn@example.com,2155550199,Haverford,Logistics,Junior,"a@x.org, b@x.org"\n',
            encoding="utf-8",
        )
        rows = read_responses_csv(path)
        assert rows == [[
            "finn kelly", "finn@example.com", "2155550199", "Haverford",
            "Logistics", "Junior", "a@x.org, b@x.org",
        ]]

    def test_without_timestamp_header(self, tmp_path):
        path = tmp_path / "responses.csv"
        path.write_text("Name,Email\nAda,ada@example.com\n", encoding="utf-8")
        assert read_responses_csv(path) == [["Ada", "ada@example.com"]]

    def test_skips_blank_rows_and_keeps_order(self, tmp_path):
        path = tmp_path / "responses.csv"
        path.write_text(
            HEADER + "t1,A,,,,,,\n,,,,,,,\nt2,B,,,,,,\n",
            encoding="utf-8",
        )
        rows = read_responses_csv(path)
        assert [r[0] for r in rows] == ["A", "B"]

    def test_bom_header(self, tmp_path):
        path = tmp_path / "responses.csv"
        path.write_bytes(("﻿" + HEADER + "t1,A,,,,,,\n").encode("utf-8"))
        assert read_responses_csv(path)[0][0] == "A"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "responses.csv"
        path.write_text("", encoding="utf-8")
        assert read_responses_csv(path) == []


class TestReadResponseJson:
    def test_bare_list(self, tmp_path):
        path = tmp_path / "a.json"
        path.write_text(json.dumps(["Ada", "ada@example.com", None, 7]))
        assert read_response_json(path) == ["Ada", "ada@example.com", "", "7"]

    def test_answers_object(self, tmp_path):
        path = tmp_path / "a.json"
        path.write_text(json.dumps({"answers": ["Ada", ["Logistics", "Finance"]]}))
        assert read_response_json(path) == ["Ada", "Logistics, Finance"]

    def test_rejects_other_shapes(self, tmp_path):
        path = tmp_path / "a.json"
        path.write_text(json.dumps({"name": "Ada"}))
        with pytest.raises(ValueError):
            read_response_json(path)
