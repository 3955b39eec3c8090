"""directory_etl.form_responses

Read membership form responses into flat answer lists.

Two sources are supported:
  - the CSV export of the form's responses (one row per response, first
    column "Timestamp" which is dropped);
  - a JSON file holding one response, either a bare list of answers or an
    object with an "answers" list (what a submit hook hands over).
"""

from __future__ import annotations

import csv
import json
from pathlib import Path

TIMESTAMP_HEADER = "timestamp"


def _answer_text(value: object) -> str:
    # Checkbox questions arrive as lists of selected options.
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def read_responses_csv(path: Path) -> list[list[str]]:
    """Return every response row of a form export, in file order.

    Fully blank rows are skipped.
    """
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None:
            return []
        skip = 1 if header and header[0].strip().lower() == TIMESTAMP_HEADER else 0
        responses = []
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            responses.append(row[skip:])
    return responses


def read_response_json(path: Path) -> list[str]:
    """Return the answers of a single JSON-encoded response.

    Raises:
        ValueError: the document is neither a list nor {"answers": [...]}.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("answers")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of answers")
    return [_answer_text(v) for v in data]
