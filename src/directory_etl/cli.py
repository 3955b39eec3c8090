"""directory_etl.cli

Unified member directory CLI.

Modes:
  full_directory     process every response in a form export CSV
  single_submission  process one response from a JSON answers file
  load_vocabulary    replace chapter/team/grade lists from a CSV
                     (columns: vocabulary, value)
"""

from __future__ import annotations

import csv
import logging
import sys
import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import click
import psycopg

from directory_etl.config import ConfigValidationError, load_config
from directory_etl.contacts import ContactStoreClient, ContactStoreCredentials
from directory_etl.form_responses import read_response_json, read_responses_csv
from directory_etl.pg_table import (
    VOCABULARIES,
    PostgresDirectoryTable,
    load_constraints,
    replace_vocabulary,
)
from directory_etl.pipeline import DirectoryRun, run_directory
from directory_etl.shared import (
    DirectoryRunCounters,
    RejectWriter,
    build_run_report,
    write_run_report,
)


def _load_vocabulary_csv(path: Path) -> dict[str, list[str]]:
    values: dict[str, list[str]] = defaultdict(list)
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        for row in csv.DictReader(fh):
            vocab = (row.get("vocabulary") or "").strip().lower()
            value = (row.get("value") or "").strip()
            if vocab not in VOCABULARIES:
                raise click.BadParameter(
                    f"unknown vocabulary {vocab!r}; expected one of {VOCABULARIES}",
                    param_hint="--vocabulary-path",
                )
            if value:
                values[vocab].append(value)
    return values


@click.command()
@click.option(
    "--mode",
    default="full_directory",
    type=click.Choice(["full_directory", "single_submission", "load_vocabulary"]),
    show_default=True,
    help="Run mode",
)
@click.option("--db-dsn", required=True, help="PostgreSQL DSN")
@click.option("--responses-path", default=None, type=click.Path(), help="[full_directory] Form responses export CSV")
@click.option("--answers-path", default=None, type=click.Path(), help="[single_submission] JSON list of answers")
@click.option("--vocabulary-path", default=None, type=click.Path(), help="[load_vocabulary] CSV with vocabulary,value columns")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML run configuration")
@click.option(
    "--skip-contacts/--mirror-contacts",
    default=False,
    show_default=True,
    help="Skip mirroring members into the contact store",
)
@click.option("--dry-run", is_flag=True, default=False, help="Roll back all directory writes; no contacts are created")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/directory_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    db_dsn: str,
    responses_path: str | None,
    answers_path: str | None,
    vocabulary_path: str | None,
    config_path: str | None,
    skip_contacts: bool,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Member directory ingestion CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    if mode == "load_vocabulary":
        if not vocabulary_path:
            click.echo(f"[{run_id}] ERROR: --vocabulary-path is required for load_vocabulary", err=True)
            sys.exit(1)
        vocabularies = _load_vocabulary_csv(Path(vocabulary_path))
        conn = psycopg.connect(db_dsn, autocommit=False)
        try:
            for name, values in vocabularies.items():
                replace_vocabulary(conn, name, values)
                click.echo(f"[{run_id}] {name}: {len(values)} values")
            if dry_run:
                conn.rollback()
                click.echo(f"[{run_id}] DRY RUN — rolled back.")
            else:
                conn.commit()
                click.echo(f"[{run_id}] Committed.")
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    if mode == "full_directory":
        if not responses_path:
            click.echo(f"[{run_id}] ERROR: --responses-path is required for full_directory", err=True)
            sys.exit(1)
        responses = read_responses_csv(Path(responses_path))
        source_paths = {"responses_path": responses_path}
    else:
        if not answers_path:
            click.echo(f"[{run_id}] ERROR: --answers-path is required for single_submission", err=True)
            sys.exit(1)
        responses = [read_response_json(Path(answers_path))]
        source_paths = {"answers_path": answers_path}

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigValidationError as exc:
        click.echo(f"[{run_id}] FATAL: invalid config: {exc}", err=True)
        sys.exit(1)

    contacts = None
    if not skip_contacts and not dry_run:
        store = config.contact_store
        # Credentials come from env, never from CLI args
        credentials = ContactStoreCredentials.from_env(
            store.app_id_env, store.app_secret_env, store.instance_id_env,
        )
        if not credentials.complete:
            click.echo(
                f"[{run_id}] FATAL: env vars {store.app_id_env}, {store.app_secret_env} "
                f"and {store.instance_id_env} must be set (or pass --skip-contacts)",
                err=True,
            )
            sys.exit(1)
        contacts = ContactStoreClient(
            credentials,
            base_url=store.base_url,
            timeout=store.timeout_seconds,
            refresh_margin=store.token_refresh_margin_seconds,
        )

    counters = DirectoryRunCounters()
    rejects = RejectWriter(Path(rejects_path))
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        constraints = load_constraints(conn)
        table = PostgresDirectoryTable(conn, constraints)
        run = DirectoryRun.open(
            table, constraints, config, counters,
            rejects=rejects, contacts=contacts, conn=conn,
        )
        click.echo(
            f"[{run_id}] {len(responses)} responses, "
            f"{run.snapshot.last_row} directory rows, "
            f"{len(run.matcher.vocabulary)} chapters"
        )
        run_directory(run, responses)

        # A failed submission was already rolled back to its savepoint; the
        # placements before it are kept (their contacts may exist already).
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] DRY RUN — rolled back.")
        else:
            conn.commit()
            click.echo(f"[{run_id}] Committed.")
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
        rejects.close()

    click.echo(build_run_report(counters, dry_run=dry_run))
    report_path = write_run_report(run_id, started_at, mode, dry_run, source_paths, counters)
    click.echo(f"[{run_id}] Run report: {report_path}")

    if counters.db_errors > 0:
        click.echo(f"[{run_id}] {counters.db_errors} DB errors — run stopped at the failing response.", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
