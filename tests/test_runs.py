from datetime import datetime, timezone
from pathlib import Path

import pytest

from sqlmaint.core.config import MaintenanceConfig
from sqlmaint.core.executor import (
    ConnectivityError,
    ExecutionError,
    StatementIntent,
    UnsupportedServerError,
)
from sqlmaint.core.models import Operation
from sqlmaint.core.runs import EXIT_ERRORS, EXIT_OK, RunReport, run_maintenance
from sqlmaint.core.session import RunSession
from sqlmaint.core.topology import DATABASES_SQL, INDEXES_SQL, SERVER_SQL, STATISTICS_SQL

ALL_OPERATIONS = frozenset(Operation)


def _database(id: int, name: str, **overrides) -> dict:
    row = {
        "id": id,
        "name": name,
        "recovery_model": "FULL",
        "is_read_only": 0,
        "state": "ONLINE",
        "last_log_backup_lsn": 1000,
        "availability_group": None,
        "backup_preference": None,
        "replica_role": None,
        "is_preferred_replica": 1,
    }
    row.update(overrides)
    return row


def _index(name: str, fragmentation: float) -> dict:
    return {
        "schema_name": "dbo",
        "object_name": "orders",
        "index_name": name,
        "index_type": 2,
        "partition_number": 1,
        "partition_count": 1,
        "fragmentation": fragmentation,
        "page_count": 5000,
        "online_eligible": 1,
    }


def _stats(name: str, rows: int, modified: int) -> dict:
    return {
        "schema_name": "dbo",
        "object_name": "orders",
        "stats_name": name,
        "stats_rows": rows,
        "modification_counter": modified,
        "rows_sampled": rows,
        "last_updated": None,
        "live_rows": rows,
    }


class StubExecutor:
    """In-memory server: canned metadata rows and an optional failure per (catalog, intent)."""

    def __init__(self, *, major_version=15, edition=3, databases=None, indexes=None, stats=None):
        self.server_row = {
            "major_version": major_version,
            "engine_edition": edition,
            "server_name": "SQL01",
        }
        self.databases = databases if databases is not None else [_database(5, "Sales")]
        self.indexes = indexes or {}
        self.stats = stats or {}
        self.failures: dict[tuple[str, StatementIntent], Exception] = {}
        self.executed: list[tuple[str, str]] = []
        self.closed: list[str] = []

    def fail(self, catalog: str, intent: StatementIntent, error: Exception) -> None:
        self.failures[(catalog, intent)] = error

    def execute(self, target, statement):
        error = self.failures.get((target.catalog, statement.intent))
        if error is not None:
            raise error
        if statement.intent != StatementIntent.METADATA:
            self.executed.append((target.catalog, statement.text))
            return []
        if statement.text == SERVER_SQL:
            return [self.server_row]
        if statement.text == DATABASES_SQL:
            return self.databases
        if statement.text == INDEXES_SQL:
            return self.indexes.get(target.catalog, [])
        if statement.text == STATISTICS_SQL:
            return self.stats.get(target.catalog, [])
        return []

    def close(self, target):
        self.closed.append(target.catalog)


@pytest.fixture
def run_session(tmp_path: Path):
    clock = lambda: datetime(2026, 5, 1, 2, 3, 4, tzinfo=timezone.utc)  # noqa: E731
    session = RunSession("SQL01", tmp_path / "logs", console=False, clock=clock)
    yield session
    session.close()


def _config(tmp_path: Path, **kwargs) -> MaintenanceConfig:
    kwargs.setdefault("operations", ALL_OPERATIONS)
    kwargs.setdefault("backup_root", tmp_path / "backups")
    return MaintenanceConfig(**kwargs).validate()


def test_operations_run_in_fixed_order(run_session, tmp_path: Path):
    executor = StubExecutor(
        indexes={"Sales": [_index("ix_a", 50.0)]},
        stats={"Sales": [_stats("st_a", 1000, 900)]},
    )

    report = run_maintenance(run_session, executor, _config(tmp_path), "SQL01")

    verbs = [text.split()[0] for _, text in executor.executed]
    assert verbs == ["ALTER", "UPDATE", "DBCC", "BACKUP"]
    assert report.exit_code == EXIT_OK
    assert report.databases == ["Sales"]


def test_backup_writes_into_group_subpath(run_session, tmp_path: Path):
    executor = StubExecutor()

    run_maintenance(
        run_session,
        executor,
        _config(tmp_path, operations=frozenset({Operation.BACKUP})),
        "SQL01",
    )

    [(_, text)] = executor.executed
    expected = tmp_path / "backups" / "sql01" / "sales" / "Sales_20260501020304_FULL.bak"
    assert f"N'{expected}'" in text
    assert expected.parent.is_dir()


def test_action_failure_is_counted_and_run_continues(run_session, tmp_path: Path):
    executor = StubExecutor(
        databases=[_database(5, "Sales"), _database(6, "Hr")],
        indexes={"Sales": [_index("ix_a", 50.0)], "Hr": [_index("ix_b", 50.0)]},
    )
    executor.fail("Sales", StatementIntent.INDEX_REBUILD, ExecutionError("deadlock"))

    report = run_maintenance(
        run_session,
        executor,
        _config(tmp_path, operations=frozenset({Operation.INDEX, Operation.CHECKDB})),
        "SQL01",
    )

    assert report.error_count == 1
    assert report.exit_code == EXIT_ERRORS
    assert [catalog for catalog, _ in executor.executed] == ["Sales", "Hr", "Hr"]
    failed = [r for r in report.records if r.error]
    assert len(failed) == 1 and failed[0].database == "Sales"


def test_metadata_failure_skips_the_rest_of_the_database(run_session, tmp_path: Path):
    executor = StubExecutor(databases=[_database(5, "Sales"), _database(6, "Hr")])
    executor.fail("Sales", StatementIntent.METADATA, ExecutionError("permission denied"))

    report = run_maintenance(
        run_session,
        executor,
        _config(tmp_path, operations=frozenset({Operation.INDEX, Operation.CHECKDB})),
        "SQL01",
    )

    assert report.error_count == 1
    assert executor.executed == [("Hr", "DBCC CHECKDB([Hr]) WITH NO_INFOMSGS;")]
    assert "Sales" in executor.closed


def test_connectivity_failure_aborts_the_run(run_session, tmp_path: Path):
    executor = StubExecutor(databases=[_database(5, "Sales"), _database(6, "Hr")])
    executor.fail("Sales", StatementIntent.METADATA, ConnectivityError("cannot open database"))

    with pytest.raises(ConnectivityError):
        run_maintenance(run_session, executor, _config(tmp_path), "SQL01")

    assert executor.executed == []


def test_unsupported_server_is_rejected(run_session, tmp_path: Path):
    with pytest.raises(UnsupportedServerError):
        run_maintenance(run_session, StubExecutor(major_version=10), _config(tmp_path), "SQL01")


def test_dry_run_decides_without_executing(run_session, tmp_path: Path):
    executor = StubExecutor(
        indexes={"Sales": [_index("ix_a", 50.0)]},
        stats={"Sales": [_stats("st_a", 1000, 900)]},
    )

    report = run_maintenance(run_session, executor, _config(tmp_path, dry_run=True), "SQL01")

    assert executor.executed == []
    assert not (tmp_path / "backups").exists()
    assert {r.operation for r in report.records} == ALL_OPERATIONS
    assert not any(r.executed for r in report.records)
    assert "SQL: ALTER INDEX" in run_session.log_path.read_text(encoding="utf-8")


def test_inverted_water_marks_use_defaults(run_session, tmp_path: Path):
    executor = StubExecutor(indexes={"Sales": [_index("ix_a", 20.0)]})
    config = _config(
        tmp_path,
        operations=frozenset({Operation.INDEX}),
        low_water_mark=50,
        high_water_mark=5,
    )

    report = run_maintenance(run_session, executor, config, "SQL01")

    assert [r.decision for r in report.records] == ["REORGANIZE"]
    assert "using defaults 10/30" in run_session.log_path.read_text(encoding="utf-8")


def test_offline_edition_rebuilds_offline(run_session, tmp_path: Path):
    executor = StubExecutor(edition=2, indexes={"Sales": [_index("ix_a", 80.0)]})

    report = run_maintenance(
        run_session, executor, _config(tmp_path, operations=frozenset({Operation.INDEX})), "SQL01"
    )

    assert report.records[0].decision == "REBUILD OFFLINE"
    assert executor.executed[0][1].endswith("WITH (ONLINE = OFF);")


def test_structural_skips_are_recorded(run_session, tmp_path: Path):
    executor = StubExecutor(
        databases=[
            _database(2, "tempdb", recovery_model="SIMPLE"),
            _database(7, "Archive", is_read_only=1),
        ]
    )

    report = run_maintenance(
        run_session,
        executor,
        _config(tmp_path, operations=frozenset({Operation.INDEX, Operation.CHECKDB})),
        "SQL01",
    )

    decisions = [(r.database, r.operation, r.decision) for r in report.records]
    assert decisions == [
        ("tempdb", Operation.INDEX, "SKIP"),
        ("tempdb", Operation.CHECKDB, "SKIP"),
        ("Archive", Operation.INDEX, "SKIP"),
        ("Archive", Operation.CHECKDB, "CHECKDB"),
    ]


def test_selection_filter_limits_databases(run_session, tmp_path: Path):
    executor = StubExecutor(databases=[_database(1, "master"), _database(5, "Sales")])

    report = run_maintenance(
        run_session,
        executor,
        _config(tmp_path, operations=frozenset({Operation.CHECKDB}), exclude=frozenset({"system"})),
        "SQL01",
    )

    assert report.databases == ["Sales"]


def test_database_list_failure_returns_partial_report(run_session, tmp_path: Path):
    class _Broken(StubExecutor):
        def execute(self, target, statement):
            if statement.text == DATABASES_SQL:
                raise ExecutionError("sys.databases unavailable")
            return super().execute(target, statement)

    report = run_maintenance(run_session, _Broken(), _config(tmp_path), "SQL01")

    assert report.exit_code == EXIT_ERRORS
    assert report.databases == []


def test_report_exit_code():
    assert RunReport().exit_code == EXIT_OK
    assert RunReport(error_count=3).exit_code == EXIT_ERRORS


def test_secondary_backs_up_through_master_and_run_continues(run_session, tmp_path: Path):
    secondary = _database(
        5,
        "AgDb",
        availability_group="AG1",
        backup_preference=2,
        replica_role=2,
        is_preferred_replica=1,
    )
    executor = StubExecutor(databases=[secondary, _database(6, "Local")])
    for intent in StatementIntent:
        executor.fail("AgDb", intent, ConnectivityError("database not accessible for queries"))

    report = run_maintenance(run_session, executor, _config(tmp_path), "SQL01")

    assert report.exit_code == EXIT_OK
    agdb = {r.operation: r.decision for r in report.records if r.database == "AgDb"}
    assert agdb == {
        Operation.INDEX: "SKIP",
        Operation.STATISTICS: "SKIP",
        Operation.CHECKDB: "SKIP",
        Operation.BACKUP: "FULL_COPY_ONLY",
    }
    targets = [(catalog, text.split()[0]) for catalog, text in executor.executed]
    assert targets == [("master", "BACKUP"), ("Local", "DBCC"), ("master", "BACKUP")]
    assert "COPY_ONLY" in executor.executed[0][1]
    assert executor.closed[-1] == "master"


def test_log_is_named_after_the_reported_server_identity(tmp_path: Path):
    clock = lambda: datetime(2026, 5, 1, tzinfo=timezone.utc)  # noqa: E731
    with RunSession("sql01,1433", tmp_path, console=False, clock=clock) as session:
        run_maintenance(
            session,
            StubExecutor(),
            _config(tmp_path, operations=frozenset({Operation.CHECKDB})),
            "sql01,1433",
        )

    assert session.log_path == tmp_path / "SQL01_20260501.log"
    assert not (tmp_path / "sql01_1433_20260501.log").exists()
    assert "Maintenance run started on sql01,1433" in session.log_path.read_text(encoding="utf-8")
