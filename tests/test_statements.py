import pytest

from sqlmaint.core.executor import StatementIntent
from sqlmaint.core.models import (
    BackupAction,
    IndexAction,
    IndexDecision,
    IndexKind,
    IndexStat,
    StatEntry,
    StatsAction,
    StatsDecision,
)
from sqlmaint.core.statements import (
    backup_statement,
    checkdb_statement,
    index_statement,
    quote_ident,
    quote_literal,
    statistics_statement,
)

STAT = IndexStat(
    schema_name="dbo",
    object_name="orders",
    index_name="ix_orders_date",
    fragmentation_percent=50.0,
    index_kind=IndexKind.NONCLUSTERED,
)

ENTRY = StatEntry(
    schema_name="sales",
    object_name="order lines",
    stats_name="st_qty",
    row_count_at_last_stats=1000,
    modification_counter=900,
    live_row_count=1100,
)


def test_quoting_escapes_delimiters():
    assert quote_ident("a]b") == "[a]]b]"
    assert quote_literal("O'Brien") == "N'O''Brien'"


def test_reorganize_statement():
    statement = index_statement(STAT, IndexDecision(IndexAction.REORGANIZE, online_permitted=True))

    assert statement.text == "ALTER INDEX [ix_orders_date] ON [dbo].[orders] REORGANIZE;"
    assert statement.intent == StatementIntent.INDEX_REORGANIZE
    assert statement.long_running is True


def test_partitioned_offline_rebuild_statement():
    decision = IndexDecision(IndexAction.REBUILD, online_permitted=False, partition_number=4)

    assert index_statement(STAT, decision).text == (
        "ALTER INDEX [ix_orders_date] ON [dbo].[orders] REBUILD PARTITION = 4 WITH (ONLINE = OFF);"
    )


def test_online_rebuild_statement():
    decision = IndexDecision(IndexAction.REBUILD, online_permitted=True)

    assert index_statement(STAT, decision).text.endswith("REBUILD WITH (ONLINE = ON);")


def test_skipped_index_has_no_statement():
    with pytest.raises(ValueError):
        index_statement(STAT, IndexDecision(IndexAction.SKIP))


def test_statistics_statement_sampling():
    full = statistics_statement(ENTRY, StatsDecision(StatsAction.UPDATE, sample_percent=100))
    sampled = statistics_statement(ENTRY, StatsDecision(StatsAction.UPDATE, sample_percent=25))

    assert full.text == "UPDATE STATISTICS [sales].[order lines] [st_qty] WITH FULLSCAN;"
    assert sampled.text.endswith("WITH SAMPLE 25 PERCENT;")


def test_skipped_statistics_have_no_statement():
    with pytest.raises(ValueError):
        statistics_statement(ENTRY, StatsDecision(StatsAction.SKIP))


def test_checkdb_statement():
    assert checkdb_statement("Sales").text == "DBCC CHECKDB([Sales]) WITH NO_INFOMSGS;"


@pytest.mark.parametrize(
    "action, expected",
    [
        (BackupAction.FULL, "BACKUP DATABASE [Sales] TO DISK = N'/b/x.bak' WITH CHECKSUM;"),
        (
            BackupAction.FULL_COPY_ONLY,
            "BACKUP DATABASE [Sales] TO DISK = N'/b/x.bak' WITH COPY_ONLY, CHECKSUM;",
        ),
        (
            BackupAction.DIFFERENTIAL,
            "BACKUP DATABASE [Sales] TO DISK = N'/b/x.bak' WITH DIFFERENTIAL, CHECKSUM;",
        ),
        (BackupAction.LOG, "BACKUP LOG [Sales] TO DISK = N'/b/x.bak' WITH CHECKSUM;"),
    ],
)
def test_backup_statement(action: BackupAction, expected: str):
    assert backup_statement("Sales", action, "/b/x.bak").text == expected


def test_skipped_backup_has_no_statement():
    with pytest.raises(ValueError):
        backup_statement("Sales", BackupAction.SKIP, "/b/x.bak")
