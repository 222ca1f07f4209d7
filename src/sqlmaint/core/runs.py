"""Maintenance run controller.

This module sequences one maintenance pass over a server: load the
topology snapshot, apply the selection filter, then for each database run
the enabled operations in a fixed order (index, statistics, consistency
check, backup). Databases are processed strictly one after another and
each action blocks until the executor returns.

Failures are handled according to their reach: a connectivity failure
aborts the run, a metadata failure ends the work for one database, and an
action failure is counted and skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

from sqlmaint.core.backups import backup_file_name, decide_backup, ensure_backup_directory
from sqlmaint.core.config import MaintenanceConfig
from sqlmaint.core.consistency import decide_consistency_check
from sqlmaint.core.executor import (
    ActionExecutionError,
    ConnectionTarget,
    ConnectivityError,
    ExecutionError,
    Executor,
    MetadataQueryError,
    Statement,
)
from sqlmaint.core.indexes import decide_index
from sqlmaint.core.models import (
    BackupAction,
    DatabaseInfo,
    IndexAction,
    Operation,
    ServerContext,
    StatsAction,
)
from sqlmaint.core.selector_builder import select_databases
from sqlmaint.core.selectors import skip_reason
from sqlmaint.core.session import RunSession
from sqlmaint.core.statements import (
    backup_statement,
    checkdb_statement,
    index_statement,
    statistics_statement,
)
from sqlmaint.core.statistics import decide_statistics
from sqlmaint.core.topology import (
    ensure_supported,
    load_databases,
    load_index_stats,
    load_server_context,
    load_stat_entries,
)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ERRORS = 2
EXIT_FATAL = 3

OPERATION_ORDER = (
    Operation.INDEX,
    Operation.STATISTICS,
    Operation.CHECKDB,
    Operation.BACKUP,
)


@dataclass(frozen=True)
class ActionRecord:
    """One decision taken during the run, and what became of it."""

    database: str
    operation: Operation
    target: str
    decision: str
    reason: str = ""
    executed: bool = False
    error: str | None = None

    @property
    def is_skip(self) -> bool:
        return self.decision == "SKIP"


@dataclass
class RunReport:
    """Outcome of a maintenance run."""

    server: ServerContext | None = None
    databases: list[str] = field(default_factory=list)
    records: list[ActionRecord] = field(default_factory=list)
    error_count: int = 0

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.error_count == 0 else EXIT_ERRORS


@dataclass
class _Pass:
    """State shared by the per-database steps of a run."""

    session: RunSession
    executor: Executor
    config: MaintenanceConfig
    server: ServerContext
    report: RunReport
    low_water_mark: int
    high_water_mark: int

    def record(self, record: ActionRecord) -> None:
        self.report.records.append(record)


def run_maintenance(
    session: RunSession,
    executor: Executor,
    config: MaintenanceConfig,
    server_name: str,
) -> RunReport:
    """
    Run one maintenance pass against `server_name`.

    Args:
        session: Run session used for logging and error bookkeeping.
        executor: Executor that runs statements against the server.
        config: Validated run configuration.
        server_name: Server to connect to.

    Returns:
        A RunReport with every decision and the error count.

    Raises:
        ConnectivityError: The server or a catalog could not be reached.
        UnsupportedServerError: The server is older than SQL Server 2012.
    """
    log = session.log
    report = RunReport()
    master = ConnectionTarget(server=server_name, catalog="master")

    log.info("Maintenance run started on %s", server_name)
    try:
        try:
            server = load_server_context(executor, master)
        except MetadataQueryError as exc:
            raise ConnectivityError(f"Cannot read server properties: {exc}") from exc
        session.use_server_identity(server.server_identity)
        ensure_supported(server)
        report.server = server
        log.info(
            "Server %s: major version %s, edition %s%s",
            server.server_identity,
            server.major_version,
            server.engine_edition,
            " (cloud hosted)" if server.is_cloud_hosted else "",
        )

        try:
            databases = load_databases(executor, master, server)
        except MetadataQueryError as exc:
            session.record_error("Could not list databases: %s", exc)
            report.error_count = session.error_count
            return report
    finally:
        executor.close(master)

    low, high = config.water_marks()
    if config.water_marks_inverted:
        log.warning(
            "Low water mark %s exceeds high water mark %s; using defaults %s/%s",
            config.low_water_mark,
            config.high_water_mark,
            low,
            high,
        )

    run = _Pass(
        session=session,
        executor=executor,
        config=config,
        server=server,
        report=report,
        low_water_mark=low,
        high_water_mark=high,
    )

    selected = select_databases(databases, config.include, config.exclude, log)
    try:
        for database in selected:
            report.databases.append(database.name)
            _maintain_database(
                run, ConnectionTarget(server=server_name, catalog=database.name), database
            )
    finally:
        # backups reopen master
        executor.close(master)

    report.error_count = session.error_count
    log.info(
        "Maintenance run finished: %d database(s), %d error(s)",
        len(selected),
        report.error_count,
    )
    return report


def _maintain_database(run: _Pass, target: ConnectionTarget, database: DatabaseInfo) -> None:
    """Run every enabled operation for one database on its own connection."""
    steps = {
        Operation.INDEX: _maintain_indexes,
        Operation.STATISTICS: _maintain_statistics,
        Operation.CHECKDB: _check_consistency,
        Operation.BACKUP: _back_up,
    }
    try:
        for operation in OPERATION_ORDER:
            if operation not in run.config.operations:
                continue
            reason = skip_reason(database, operation)
            if reason:
                run.session.decision("Skipping %s for %s: %s", operation.value, database.name, reason)
                run.record(
                    ActionRecord(database.name, operation, database.name, "SKIP", reason)
                )
                continue
            steps[operation](run, target, database)
    except MetadataQueryError as exc:
        run.session.record_error("Skipping remaining work for %s: %s", database.name, exc)
    finally:
        run.executor.close(target)


def _execute(run: _Pass, target: ConnectionTarget, statement: Statement) -> bool:
    """
    Hand a statement to the executor unless this is a dry run.

    Returns True when the statement was executed. Raises ActionExecutionError
    when it fails; connectivity failures propagate unchanged.
    """
    run.session.statement(statement.text)
    if run.config.dry_run:
        return False
    try:
        run.executor.execute(target, statement)
    except ConnectivityError:
        raise
    except ExecutionError as exc:
        raise ActionExecutionError(
            f"{statement.intent.value} failed on {target}: {exc}"
        ) from exc
    return True


def _act(
    run: _Pass,
    target: ConnectionTarget,
    statement: Statement,
    record: ActionRecord,
) -> None:
    """Execute one action and record its outcome; failures are counted, not raised."""
    try:
        executed = _execute(run, target, statement)
    except ActionExecutionError as exc:
        run.session.record_error("%s", exc)
        run.record(replace(record, error=str(exc)))
        return
    run.record(replace(record, executed=executed))


def _maintain_indexes(run: _Pass, target: ConnectionTarget, database: DatabaseInfo) -> None:
    allow_online = run.config.allow_online_rebuild and run.server.supports_online_operations
    for stat in load_index_stats(run.executor, target):
        decision = decide_index(stat, run.low_water_mark, run.high_water_mark, allow_online)
        label = decision.action.value
        if decision.action == IndexAction.REBUILD:
            label = f"{label} {'ONLINE' if decision.online_permitted else 'OFFLINE'}"
        name = stat.full_name
        if decision.partition_number is not None:
            name = f"{name} (partition {decision.partition_number})"
        reason = f"fragmentation {stat.fragmentation_percent:.1f}%"

        run.session.decision("Index %s in %s: %s, %s", name, database.name, label, reason)
        record = ActionRecord(database.name, Operation.INDEX, name, label, reason)
        if decision.action == IndexAction.SKIP:
            run.record(record)
            continue
        _act(run, target, index_statement(stat, decision), record)


def _maintain_statistics(run: _Pass, target: ConnectionTarget, database: DatabaseInfo) -> None:
    for entry in load_stat_entries(run.executor, target):
        decision = decide_statistics(
            entry,
            run.config.sample_percent,
            run.config.use_trace_flag_2371_model,
        )
        reason = (
            f"rows {entry.row_count_at_last_stats}, "
            f"modifications {entry.modification_counter}"
        )
        run.session.decision(
            "Statistics %s in %s: %s, %s",
            entry.full_name,
            database.name,
            decision.action.value,
            reason,
        )
        record = ActionRecord(
            database.name, Operation.STATISTICS, entry.full_name, decision.action.value, reason
        )
        if decision.action == StatsAction.SKIP:
            run.record(record)
            continue
        _act(run, target, statistics_statement(entry, decision), record)


def _check_consistency(run: _Pass, target: ConnectionTarget, database: DatabaseInfo) -> None:
    decision = decide_consistency_check(run.server, database)
    label = "CHECKDB" if decision.run else "SKIP"
    run.session.decision("Consistency check for %s: %s, %s", database.name, label, decision.reason)
    record = ActionRecord(database.name, Operation.CHECKDB, database.name, label, decision.reason)
    if not decision.run:
        run.record(record)
        return
    _act(run, target, checkdb_statement(database.name), record)


def _back_up(run: _Pass, target: ConnectionTarget, database: DatabaseInfo) -> None:
    decision = decide_backup(run.server, database, run.config.backup_kind)
    run.session.decision(
        "Backup for %s: %s, %s",
        database.name,
        decision.action.value,
        decision.reason,
    )
    record = ActionRecord(
        database.name, Operation.BACKUP, database.name, decision.action.value, decision.reason
    )
    if decision.action == BackupAction.SKIP:
        run.record(record)
        return

    root = Path(run.config.backup_root or ".")
    if run.config.dry_run:
        directory = root / decision.destination_subpath
    else:
        directory = ensure_backup_directory(root, decision.destination_subpath, run.session.log)
    path = directory / backup_file_name(database.name, decision.action, run.session.clock())
    # BACKUP names its database; master is reachable on non-readable secondaries too
    master = ConnectionTarget(server=target.server, catalog="master")
    _act(run, master, backup_statement(database.name, decision.action, str(path)), record)
