"""
MLM reward distributor — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Open the report database and a Horizon client.
  4. Run the workflow or swap engine.
  5. Print a plain-text summary to stdout.

Install and run::

    pip install -e .
    mlm-distributor --help
    mlm-distributor init-db
    mlm-distributor validate-config
    mlm-distributor report dry
    mlm-distributor report create
    mlm-distributor report list --limit 10
    mlm-distributor distribute
    mlm-distributor swap

Credentials come from the environment (or a gitignored ``.env``)::

    STELLAR_ADDRESS=G...     operating account (payout source)
    STELLAR_SEED=S...        signing seed (distribute, swap)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="mlm-distributor",
    help="MTLA recommendation reward distributor for the Stellar ledger.",
    add_completion=False,
)
report_app = typer.Typer(
    help="Compute, store and list distribution reports.",
    add_completion=False,
)
app.add_typer(report_app, name="report")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from mlm_distributor.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from mlm_distributor.utils.logging import configure_logging
    configure_logging(config.logging)


def _horizon(config):
    from mlm_distributor.ledger.horizon import HorizonClient

    return HorizonClient(
        config.stellar.horizon_url,
        timeout=config.stellar.request_timeout_s,
        page_limit=config.stellar.page_limit,
    )


def _run_cycle(config, options, db_path: Optional[str] = None):
    """Run one distribution cycle, exiting with code 1 on any distributor error."""
    from mlm_distributor.db.connection import get_connection
    from mlm_distributor.db.migrations import initialize_database
    from mlm_distributor.distribution.workflow import DistributionWorkflow
    from mlm_distributor.errors import DistributorError

    target_db = db_path or config.database.db_path
    try:
        with get_connection(
            target_db,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        ) as conn, _horizon(config) as horizon:
            initialize_database(conn)
            return DistributionWorkflow(config, horizon, conn).run(options)
    except DistributorError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    return f"{secret[:2]}...{secret[-2:]}" if len(secret) > 8 else "****"


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite report database and apply the full schema.

    Safe to run multiple times: all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from mlm_distributor.db.connection import get_connection
    from mlm_distributor.db.migrations import initialize_database
    from mlm_distributor.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        migrations_applied = initialize_database(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields (seed masked).",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Horizon URL:      {config.stellar.horizon_url}")
    typer.echo(f"  Address:          {config.stellar.address or '(not set)'}")
    typer.echo(f"  Seed:             {_mask(config.stellar.seed)}")
    typer.echo(f"  Pool divisor:     {config.distribution.pool_divisor}")
    typer.echo(f"  Min balance:      {config.distribution.min_recommender_balance}")
    typer.echo(f"  Swap threshold:   {config.swap.price_threshold}")
    typer.echo(f"  Swap tokens:      {', '.join(t.code for t in config.swap.tokens)}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        dumped = config.model_dump()
        dumped["stellar"]["seed"] = _mask(config.stellar.seed)
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@report_app.command("dry")
def report_dry(
    skip_trustlines: bool = typer.Option(
        False,
        "--skip-trustlines",
        help="Do not look up recipient trustlines.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Compute this cycle's payouts without writing a report.

    The previous report is still read as the baseline, so the preview shows
    what ``report create`` would store when no report is pending.
    """
    from mlm_distributor.models.distribution import CycleOptions
    from mlm_distributor.reporting.formatters import format_distribution_summary

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    options = CycleOptions(persist_report=False, check_trustlines=not skip_trustlines)
    result = _run_cycle(config, options, db_path)

    typer.echo(format_distribution_summary(result))
    typer.echo("")
    typer.echo("[OK] Dry run complete (nothing written).")


@report_app.command("create")
def report_create(
    skip_trustlines: bool = typer.Option(
        False,
        "--skip-trustlines",
        help="Do not look up recipient trustlines.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Compute payouts and store the report with its unsigned envelope.

    \b
    If the latest report was never submitted it is reused as is; a new one
    is only computed once the pending report has a transaction hash.
    """
    from mlm_distributor.models.distribution import CycleOptions
    from mlm_distributor.reporting.formatters import format_distribution_summary

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    options = CycleOptions(persist_report=True, check_trustlines=not skip_trustlines)
    result = _run_cycle(config, options, db_path)

    typer.echo(format_distribution_summary(result))
    typer.echo("")
    typer.echo(f"[OK] Report {result.report_id} {'resumed' if result.resumed else 'created'}.")


@report_app.command("list")
def report_list(
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of reports to show."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List the most recent reports with their submission state."""
    from mlm_distributor.db.connection import get_connection
    from mlm_distributor.db.migrations import initialize_database
    from mlm_distributor.db.repositories.report_repo import ReportRepository
    from mlm_distributor.reporting.formatters import format_report_list

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with get_connection(
        db_path or config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        initialize_database(conn)
        reports = ReportRepository(conn).get_reports(limit=limit)

    typer.echo(format_report_list(reports))


@app.command("distribute")
def distribute(
    skip_trustlines: bool = typer.Option(
        False,
        "--skip-trustlines",
        help="Do not look up recipient trustlines.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Submit the pending report, or create a new one and submit it.

    \b
    Steps (all under the cycle lock):
      1. Reuse the pending report, or compute and store a new one.
      2. Sign the envelope with STELLAR_SEED and submit it to Horizon.
      3. Record the transaction hash on the report.

    A rejected submission leaves the report pending; rerun to retry it.
    """
    from mlm_distributor.models.distribution import CycleOptions
    from mlm_distributor.reporting.formatters import format_distribution_summary

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    options = CycleOptions(persist_report=True, check_trustlines=not skip_trustlines, submit=True)
    result = _run_cycle(config, options, db_path)

    typer.echo(format_distribution_summary(result))
    typer.echo("")
    typer.echo(f"[OK] Report {result.report_id} submitted: {result.tx_hash}")


@app.command("swap")
def swap(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Convert configured auxiliary tokens into LABR below the price threshold.

    Tokens priced above ``swap.price_threshold`` (or SWAP_PRICE_THRESHOLD)
    are reported as price alerts and left untouched. A failure on one token
    does not stop the others.
    """
    from mlm_distributor.errors import DistributorError
    from mlm_distributor.reporting.formatters import format_price_alert, format_swap_report
    from mlm_distributor.swap.engine import SwapEngine

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _horizon(config) as horizon:
            summary = SwapEngine(config, horizon).execute()
    except DistributorError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    for block in (format_swap_report(summary), format_price_alert(summary.price_exceeded)):
        if block:
            typer.echo(block)

    typer.echo("")
    if summary.errors:
        typer.echo(f"[WARN] Swap run finished with {len(summary.errors)} error(s).")
    elif not summary.swaps and not summary.price_exceeded:
        typer.echo("[OK] Nothing to swap.")
    else:
        typer.echo("[OK] Swap run complete.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
