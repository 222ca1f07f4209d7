"""Common CLI options for the CLI."""

from pathlib import Path

import typer

from sqlmaint.core.models import BackupKind

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"

ServerOpt = typer.Option(
    ...,
    "--server",
    "-S",
    help="SQL Server instance (host, host\\instance or host,port)",
)

UserOpt = typer.Option(
    None,
    "--user",
    "-U",
    help="SQL login; omit to use integrated authentication",
)

PasswordOpt = typer.Option(
    None,
    "--password",
    "-P",
    envvar="SQLMAINT_PASSWORD",
    help="SQL login password",
    show_default=False,
)

DriverOpt = typer.Option(
    DEFAULT_DRIVER,
    "--driver",
    help="ODBC driver name",
)

TrustCertOpt = typer.Option(
    False,
    "--trust-server-certificate/--verify-server-certificate",
    help="Skip TLS certificate validation",
)

LowWaterMarkOpt = typer.Option(
    10,
    "--low-water-mark",
    help="Fragmentation percent above which indexes are reorganized",
)

HighWaterMarkOpt = typer.Option(
    30,
    "--high-water-mark",
    help="Fragmentation percent from which indexes are rebuilt",
)

OnlineOpt = typer.Option(
    True,
    "--online/--offline",
    help="Allow online index rebuilds where the edition and index permit it",
)

SamplePercentOpt = typer.Option(
    100,
    "--sample-percent",
    help="Sample rate for statistics updates (100 = FULLSCAN)",
)

TraceFlag2371Opt = typer.Option(
    True,
    "--tf2371/--no-tf2371",
    help="Also use the sqrt(1000 * rows) staleness threshold",
)

BackupKindOpt = typer.Option(
    BackupKind.FULL,
    "--backup-kind",
    help="Backup kind to request",
    case_sensitive=False,
)

BackupRootOpt = typer.Option(
    None,
    "--backup-root",
    help="Base directory for backup files",
)

IncludeOpt = typer.Option(
    [],
    "--include",
    help="Database to include ('system' = all user databases). This is reusable.",
    show_default=False,
)

ExcludeOpt = typer.Option(
    [],
    "--exclude",
    help="Database to exclude ('system' = ids 1-4). Wins over --include. This is reusable.",
    show_default=False,
)

OperationOpt = typer.Option(
    [],
    "--operation",
    "-o",
    help="Operation to run: index, statistics, checkdb, backup. "
    "This is reusable. [default: index, statistics]",
    show_default=False,
    case_sensitive=False,
)

LogDirOpt = typer.Option(
    Path("logs"),
    "--log-dir",
    help="Directory for the run log file",
)

MetadataTimeoutOpt = typer.Option(
    60,
    "--metadata-timeout",
    help="Timeout in seconds for metadata queries",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show and log decisions, but don't execute anything",
)

ShowSkippedOpt = typer.Option(
    False,
    "--show-skipped",
    help="Include skipped objects in the decisions table",
)
