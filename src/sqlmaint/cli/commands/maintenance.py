"""Commands for running SQL Server maintenance."""

from pathlib import Path

import typer

from sqlmaint.cli.common.context import ConnectionOptions, build_executor
from sqlmaint.cli.common.exits import die, exit_from_exc
from sqlmaint.cli.common.options import (
    BackupKindOpt,
    BackupRootOpt,
    DriverOpt,
    DryRunOpt,
    ExcludeOpt,
    HighWaterMarkOpt,
    IncludeOpt,
    LogDirOpt,
    LowWaterMarkOpt,
    MetadataTimeoutOpt,
    OnlineOpt,
    OperationOpt,
    PasswordOpt,
    SamplePercentOpt,
    ServerOpt,
    ShowSkippedOpt,
    TraceFlag2371Opt,
    TrustCertOpt,
    UserOpt,
)
from sqlmaint.cli.common.output import out
from sqlmaint.core.config import DEFAULT_OPERATIONS, ConfigError, MaintenanceConfig
from sqlmaint.core.executor import ConnectivityError, UnsupportedServerError
from sqlmaint.core.models import BackupKind, Operation
from sqlmaint.core.runs import EXIT_CONFIG, EXIT_FATAL, run_maintenance
from sqlmaint.core.session import RunSession


def _execute_run(
    *,
    connection: ConnectionOptions,
    config: MaintenanceConfig,
    show_skipped: bool,
) -> None:
    """Run one maintenance pass and exit with the run's exit code."""
    try:
        config.validate()
    except ConfigError as exc:
        die(str(exc), code=EXIT_CONFIG)

    try:
        session = RunSession(connection.server, config.log_dir)
    except OSError as exc:
        exit_from_exc(exc, message=f"Cannot open run log in {config.log_dir}: {exc}", code=EXIT_CONFIG)

    out.info(f"Maintenance run on {connection.server}")
    if config.dry_run:
        out.warn("Dry run: decisions are logged, nothing is executed")
    executor = build_executor(connection, metadata_timeout=config.metadata_timeout_seconds)
    try:
        report = run_maintenance(session, executor, config, connection.server)
    except (ConnectivityError, UnsupportedServerError) as exc:
        session.log.critical("Run aborted: %s", exc)
        exit_from_exc(exc, message=f"Run aborted: {exc}", code=EXIT_FATAL)
    finally:
        executor.close_all()
        session.close()

    title = "Planned decisions (dry run)" if config.dry_run else "Decisions"
    out.decisions_table(report.records, title=title, show_skipped=show_skipped)
    out.run_summary(report, log_path=session.log_path)

    if report.error_count:
        out.error(f"Completed with {report.error_count} error(s)")
    else:
        out.success("Completed without errors")
    raise typer.Exit(report.exit_code)


def run(
    server: str = ServerOpt,
    user: str | None = UserOpt,
    password: str | None = PasswordOpt,
    driver: str = DriverOpt,
    trust_server_certificate: bool = TrustCertOpt,
    operation: list[Operation] = OperationOpt,
    low_water_mark: int = LowWaterMarkOpt,
    high_water_mark: int = HighWaterMarkOpt,
    online: bool = OnlineOpt,
    sample_percent: int = SamplePercentOpt,
    tf2371: bool = TraceFlag2371Opt,
    backup_kind: BackupKind = BackupKindOpt,
    backup_root: Path | None = BackupRootOpt,
    include: list[str] = IncludeOpt,
    exclude: list[str] = ExcludeOpt,
    log_dir: Path = LogDirOpt,
    metadata_timeout: int = MetadataTimeoutOpt,
    dry_run: bool = DryRunOpt,
    show_skipped: bool = ShowSkippedOpt,
):
    """
    Decide and run maintenance for every selected database.
    """
    connection = ConnectionOptions(
        server=server,
        user=user,
        password=password,
        driver=driver,
        trust_server_certificate=trust_server_certificate,
    )
    config = MaintenanceConfig(
        low_water_mark=low_water_mark,
        high_water_mark=high_water_mark,
        allow_online_rebuild=online,
        sample_percent=sample_percent,
        backup_kind=backup_kind,
        include=frozenset(include),
        exclude=frozenset(exclude),
        use_trace_flag_2371_model=tf2371,
        operations=frozenset(operation) or DEFAULT_OPERATIONS,
        backup_root=backup_root,
        log_dir=log_dir,
        dry_run=dry_run,
        metadata_timeout_seconds=metadata_timeout,
    )
    _execute_run(connection=connection, config=config, show_skipped=show_skipped)
