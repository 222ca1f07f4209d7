"""Statement rendering.

Turns policy decisions into T-SQL `Statement` values. Keeping the text here
lets the policies stay pure decision functions and gives the run log a
single place where "what was sent" is produced.
"""

from __future__ import annotations

from sqlmaint.core.executor import Statement, StatementIntent
from sqlmaint.core.models import (
    BackupAction,
    IndexAction,
    IndexDecision,
    IndexStat,
    StatEntry,
    StatsDecision,
)


def quote_ident(name: str) -> str:
    """Quote a SQL Server identifier with brackets, doubling any `]`."""
    escaped = name.replace("]", "]]")
    return f"[{escaped}]"


def quote_literal(value: str) -> str:
    """Quote a Unicode string literal, doubling any single quote."""
    escaped = value.replace("'", "''")
    return f"N'{escaped}'"


def metadata(text: str) -> Statement:
    return Statement(intent=StatementIntent.METADATA, text=text)


def index_statement(stat: IndexStat, decision: IndexDecision) -> Statement:
    """Render an ALTER INDEX for a REORGANIZE or REBUILD decision."""
    if decision.action == IndexAction.SKIP:
        raise ValueError("No statement for a skipped index.")

    target = (
        f"ALTER INDEX {quote_ident(stat.index_name)} ON "
        f"{quote_ident(stat.schema_name)}.{quote_ident(stat.object_name)}"
    )
    partition = (
        f" PARTITION = {decision.partition_number}"
        if decision.partition_number is not None
        else ""
    )

    if decision.action == IndexAction.REORGANIZE:
        return Statement(
            intent=StatementIntent.INDEX_REORGANIZE,
            text=f"{target} REORGANIZE{partition};",
            long_running=True,
        )

    online = "ON" if decision.online_permitted else "OFF"
    return Statement(
        intent=StatementIntent.INDEX_REBUILD,
        text=f"{target} REBUILD{partition} WITH (ONLINE = {online});",
        long_running=True,
    )


def statistics_statement(entry: StatEntry, decision: StatsDecision) -> Statement:
    """Render an UPDATE STATISTICS with the decided sample rate."""
    if decision.sample_percent is None:
        raise ValueError("No statement for skipped statistics.")

    sample = (
        "FULLSCAN"
        if decision.sample_percent >= 100
        else f"SAMPLE {decision.sample_percent} PERCENT"
    )
    return Statement(
        intent=StatementIntent.UPDATE_STATISTICS,
        text=(
            f"UPDATE STATISTICS {quote_ident(entry.schema_name)}."
            f"{quote_ident(entry.object_name)} {quote_ident(entry.stats_name)} "
            f"WITH {sample};"
        ),
        long_running=True,
    )


def checkdb_statement(database_name: str) -> Statement:
    return Statement(
        intent=StatementIntent.CHECKDB,
        text=f"DBCC CHECKDB({quote_ident(database_name)}) WITH NO_INFOMSGS;",
        long_running=True,
    )


def backup_statement(database_name: str, action: BackupAction, path: str) -> Statement:
    """Render a BACKUP DATABASE / BACKUP LOG to a disk file."""
    if action == BackupAction.SKIP:
        raise ValueError("No statement for a skipped backup.")

    disk = quote_literal(path)
    options = ["CHECKSUM"]
    if action == BackupAction.FULL_COPY_ONLY:
        options.insert(0, "COPY_ONLY")
    elif action == BackupAction.DIFFERENTIAL:
        options.insert(0, "DIFFERENTIAL")

    verb = "LOG" if action == BackupAction.LOG else "DATABASE"
    return Statement(
        intent=StatementIntent.BACKUP,
        text=(
            f"BACKUP {verb} {quote_ident(database_name)} TO DISK = {disk} "
            f"WITH {', '.join(options)};"
        ),
        long_running=True,
    )
