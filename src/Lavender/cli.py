# === NAVMAP v1 ===
# {
#   "module": "Lavender.cli",
#   "purpose": "Command line entry point: fsck a cluster, list configured clusters",
#   "sections": [
#     {"id": "setup", "name": "Setup & Output Helpers", "anchor": "IMP", "kind": "infra"},
#     {"id": "commands", "name": "CLI Commands", "anchor": "CMDS", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""Lavender command line.

    lavender fsck prod --config lavender.yaml --md5 --gc
    lavender clusters --config lavender.yaml

Exit codes: 0 ok, 1 problems found (``FSCK FAILED``), 2 fatal error,
3 garbage collection refused.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .errors import FsckFailedError, GarbageCollectionRefused, LavenderError
from .fsck import Fsck, FsckReport
from .logging_utils import setup_logging
from .observability import LoggingSink, register_sink, unregister_sink
from .replica import ConnectionPool
from .settings import AggregatePolicy, GcPolicy, HashTool, LavenderConfig, load_config

# ============================================================================
# SETUP (IMP)
# ============================================================================

app = typer.Typer(
    name="lavender",
    help="Consistency check and garbage collection for lavendelized docroots",
    no_args_is_help=True,
)
logger = logging.getLogger(__name__)

EXIT_PROBLEMS = 1
EXIT_FATAL = 2
EXIT_GC_REFUSED = 3

DEFAULT_CONFIG = Path("lavender.yaml")


def _load(config_path: Path) -> LavenderConfig:
    try:
        return load_config(config_path)
    except LavenderError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_FATAL)


def _render_table(console: Console, report: FsckReport) -> None:
    summary = Table(title=f"fsck {report.cluster}")
    summary.add_column("docroot")
    summary.add_column("host")
    summary.add_column("files", justify="right")
    summary.add_column("references", justify="right")
    summary.add_column("dangling", justify="right")
    summary.add_column("unreferenced", justify="right")
    summary.add_column("gc")
    for docroot in report.docroots:
        for replica in docroot.replicas:
            if not replica.exists:
                summary.add_row(docroot.docroot, replica.host, "-", "-", "-", "-", "missing")
                continue
            gc = ""
            if replica.gc is not None:
                gc = f"{len(replica.gc.files_deleted)} files"
                if replica.gc.dry_run:
                    gc += " (dry run)"
            summary.add_row(
                docroot.docroot,
                replica.host,
                str(replica.files),
                str(replica.references),
                str(len(replica.dangling)),
                str(len(replica.unreferenced)),
                gc,
            )
    console.print(summary)

    problems = report.problems
    if problems:
        table = Table(title="problems")
        table.add_column("docroot")
        table.add_column("host")
        table.add_column("kind")
        table.add_column("message")
        for problem in problems:
            table.add_row(problem.docroot, problem.host or "*", problem.kind.value, problem.message)
        console.print(table)


# ============================================================================
# CLI COMMANDS (CMDS)
# ============================================================================


@app.command()
def fsck(
    cluster: str = typer.Argument(..., help="Name of the cluster to check"),
    config: Path = typer.Option(
        DEFAULT_CONFIG, "--config", "-c", envvar="LAVENDER_CONFIG", help="Cluster configuration (YAML)"
    ),
    md5: Optional[bool] = typer.Option(None, "--md5/--no-md5", help="Re-hash published files"),
    mac: bool = typer.Option(False, "--mac", help="With --md5: hosts print digests with 'md5 -q' instead of md5sum"),
    gc: bool = typer.Option(False, "--gc", help="Delete unreferenced files and empty directories"),
    dry_run: bool = typer.Option(False, "--dry-run", help="With --gc: report instead of deleting"),
    aggregate_policy: Optional[AggregatePolicy] = typer.Option(
        None, "--aggregate-policy", help="What a mismatching .all.idx means: problem, quarantine, repair"
    ),
    gc_policy: Optional[GcPolicy] = typer.Option(
        None, "--gc-policy", help="Problems blocking gc: those of the docroot or of the replica"
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Docroots checked concurrently"),
    fmt: str = typer.Option("table", "--format", help="Output format: 'table' or 'json'"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_file: bool = typer.Option(True, "--log-file/--no-log-file", help="Write JSON log lines"),
) -> None:
    """Check every docroot replica of CLUSTER; prints 'ok' or fails."""

    if fmt not in ("table", "json"):
        typer.echo(f"Error: unknown format '{fmt}'", err=True)
        raise typer.Exit(EXIT_FATAL)

    settings = _load(config)
    try:
        if log_level is not None:
            settings.logging.level = log_level
        options = settings.fsck.model_copy()
        if md5 is not None:
            options.md5check = md5
        if mac:
            options.hash_tool = HashTool.MD5
        if gc:
            options.gc = True
        if dry_run:
            options.gc_dry_run = True
        if aggregate_policy is not None:
            options.aggregate_policy = aggregate_policy
        if gc_policy is not None:
            options.gc_policy = gc_policy
        if workers is not None:
            options.workers = workers
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_FATAL)

    setup_logging(
        level=settings.logging.level,
        retention_days=settings.logging.retention_days,
        max_log_size_mb=settings.logging.max_log_size_mb,
        log_dir=settings.logging.log_dir,
        json_file=log_file,
        console_stream=sys.stderr if fmt == "json" else sys.stdout,
    )
    sink = LoggingSink()
    register_sink(sink)
    try:
        target = settings.cluster(cluster)
        with ConnectionPool(options.max_connections) as pool:
            report = Fsck(target, options, pool).run()
        if fmt == "json":
            typer.echo(json.dumps(report.to_dict(), indent=2, default=str))
        else:
            _render_table(Console(), report)
        report.raise_for_problems()
    except FsckFailedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(EXIT_PROBLEMS)
    except GarbageCollectionRefused as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_GC_REFUSED)
    except LavenderError as exc:
        logger.debug("fsck aborted", exc_info=True)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_FATAL)
    finally:
        unregister_sink(sink)

    if fmt == "table":
        typer.echo("ok")


@app.command()
def clusters(
    config: Path = typer.Option(
        DEFAULT_CONFIG, "--config", "-c", envvar="LAVENDER_CONFIG", help="Cluster configuration (YAML)"
    ),
    fmt: str = typer.Option("table", "--format", help="Output format: 'table' or 'json'"),
) -> None:
    """List configured clusters with their hosts and docroots."""

    settings = _load(config)
    if fmt == "json":
        payload = [
            {
                "name": cluster.name,
                "hosts": list(cluster.hosts),
                "docroots": [docroot.name for docroot in cluster.docroots],
            }
            for cluster in settings.clusters
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="clusters")
    table.add_column("cluster")
    table.add_column("hosts")
    table.add_column("docroots")
    for cluster in settings.clusters:
        table.add_row(
            cluster.name,
            ", ".join(cluster.hosts),
            ", ".join(docroot.name for docroot in cluster.docroots),
        )
    Console().print(table)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"lavender {__version__}")


def main() -> None:
    app()
