"""directory_etl.pipeline

Process membership form responses against the directory.

Per response:
  1. Build the canonical record       (malformed -> rejects CSV)
  2. Place + partial-fill it           (update / append / grouped insert)
  3. Mirror member + parent contacts   (best-effort, skipped on dry runs)

Step 3 never undoes step 2: contact failures are logged and counted only.
With a connection, step 2 runs in its own SAVEPOINT: a storage error rolls
back that submission only and stops the run; earlier placements (whose
contacts may already exist) stay for the caller to commit.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import psycopg
import requests

from directory_etl.affiliation import AffiliationMatcher, rapidfuzz_best_match
from directory_etl.config import DirectoryConfig
from directory_etl.contacts import ContactStoreAuthError, ContactStoreClient, mirror_contacts
from directory_etl.fill import FillResult, PartialFillWriter
from directory_etl.placement import DirectorySnapshot, Placement, PlacementKind, place_and_write
from directory_etl.record import (
    CHAPTER_COLUMN,
    GRADE_COLUMN,
    TEAM_COLUMN,
    MalformedResponseError,
    MemberRecord,
    build_record,
)
from directory_etl.shared import DirectoryRunCounters, RejectWriter
from directory_etl.table import DirectoryTable, ValueConstraint

log = logging.getLogger(__name__)


@dataclass
class DirectoryRun:
    """Everything one run needs; the snapshot is taken once when opened."""

    snapshot: DirectorySnapshot
    writer: PartialFillWriter
    matcher: AffiliationMatcher
    counters: DirectoryRunCounters
    rejects: RejectWriter | None = None
    contacts: ContactStoreClient | None = None
    conn: psycopg.Connection | None = None

    @classmethod
    def open(
        cls,
        table: DirectoryTable,
        constraints: Mapping[str, ValueConstraint],
        config: DirectoryConfig,
        counters: DirectoryRunCounters,
        rejects: RejectWriter | None = None,
        contacts: ContactStoreClient | None = None,
        conn: psycopg.Connection | None = None,
    ) -> DirectoryRun:
        chapters = constraints.get("chapter") or ValueConstraint("chapter")
        column_constraints = {CHAPTER_COLUMN: chapters}
        if "team" in constraints:
            column_constraints[TEAM_COLUMN] = constraints["team"]
        if "grade" in constraints:
            column_constraints[GRADE_COLUMN] = constraints["grade"]
        return cls(
            snapshot=DirectorySnapshot.from_table(table),
            writer=PartialFillWriter(table, column_constraints),
            matcher=AffiliationMatcher(
                chapters.allowed,
                best_match=rapidfuzz_best_match(config.affiliation_match_threshold),
            ),
            counters=counters,
            rejects=rejects,
            contacts=contacts,
            conn=conn,
        )


def _reject(run: DirectoryRun, idx: int, answers: Sequence[str], reason: str) -> None:
    run.counters.responses_rejected += 1
    run.counters.warnings.append(f"response {idx} rejected: {reason}")
    if run.rejects is not None:
        run.rejects.write(
            {"response_index": str(idx), "answers": json.dumps(list(answers))},
            reason,
        )


def _mirror(client: ContactStoreClient, record: MemberRecord, ctrs: DirectoryRunCounters) -> None:
    if not record.email:
        ctrs.contacts_skipped_no_email += 1
    try:
        results = mirror_contacts(record, client)
    except ContactStoreAuthError as exc:
        ctrs.contact_auth_errors += 1
        ctrs.warnings.append(f"contact auth failed for {record.name!r}: {exc}")
        log.error("Contact store auth failed for %r: %s", record.name, exc)
        return
    except requests.RequestException as exc:
        ctrs.contact_errors += 1
        ctrs.warnings.append(f"contact request failed for {record.name!r}: {exc}")
        log.error("Contact store request failed for %r: %s", record.name, exc)
        return
    for res in results:
        if res.ok:
            ctrs.contacts_created += 1
        else:
            ctrs.contact_errors += 1


def _place(
    run: DirectoryRun,
    record: MemberRecord,
    idx: int,
) -> tuple[Placement, FillResult]:
    if run.conn is None:
        return place_and_write(record, run.snapshot, run.writer)

    sp = f"dir_{idx}"
    run.conn.execute(f"SAVEPOINT {sp}")
    try:
        placed = place_and_write(record, run.snapshot, run.writer)
    except psycopg.Error:
        run.conn.execute(f"ROLLBACK TO SAVEPOINT {sp}")
        raise
    run.conn.execute(f"RELEASE SAVEPOINT {sp}")
    return placed


def process_submission(
    run: DirectoryRun,
    answers: Sequence[str],
    idx: int = 0,
) -> MemberRecord | None:
    """Handle one response; returns the record, or None if it was rejected."""
    ctrs = run.counters
    ctrs.responses_read += 1
    try:
        record = build_record(answers, run.matcher.vocabulary, matcher=run.matcher)
    except MalformedResponseError as exc:
        _reject(run, idx, answers, str(exc))
        return None

    if not record.affiliation:
        ctrs.unmatched_chapters += 1

    placement, result = _place(run, record, idx)
    if placement.kind is PlacementKind.UPDATE:
        ctrs.members_updated += 1
    elif placement.kind is PlacementKind.APPEND:
        ctrs.members_appended += 1
    else:
        ctrs.members_inserted += 1
    ctrs.cells_written += len(result.written_columns)
    ctrs.missing_fields_flagged += len(result.missing_columns)

    if run.contacts is not None:
        _mirror(run.contacts, record, ctrs)
    return record


def run_directory(run: DirectoryRun, responses: Iterable[Sequence[str]]) -> None:
    """Process responses in order, stopping at the first storage error."""
    for idx, answers in enumerate(responses, start=1):
        try:
            process_submission(run, answers, idx)
        except psycopg.Error as exc:
            run.counters.db_errors += 1
            run.counters.warnings.append(f"response {idx}: storage error: {exc}")
            log.error("Storage error on response %d: %s", idx, exc)
            break
