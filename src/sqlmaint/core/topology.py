"""Topology snapshot loader.

Queries the server through an Executor and converts the returned rows
into typed records (ServerContext, DatabaseInfo, IndexStat, StatEntry).
This is the only module that looks at raw rows; sentinel values such as
NULL or -1 counters are turned into None here.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlmaint.core.executor import (
    ConnectionTarget,
    ConnectivityError,
    ExecutionError,
    Executor,
    MetadataQueryError,
    UnsupportedServerError,
)
from sqlmaint.core.models import (
    MINIMUM_MAJOR_VERSION,
    BackupPreference,
    DatabaseInfo,
    IndexKind,
    IndexStat,
    RecoveryModel,
    ServerContext,
    StatEntry,
)
from sqlmaint.core.statements import metadata

AZURE_SQL_DATABASE_EDITION = 5

SERVER_SQL = """
SELECT
    CAST(PARSENAME(CAST(SERVERPROPERTY('ProductVersion') AS nvarchar(128)), 4) AS int) AS major_version,
    CAST(SERVERPROPERTY('EngineEdition') AS int) AS engine_edition,
    COALESCE(@@SERVERNAME, CAST(SERVERPROPERTY('ServerName') AS nvarchar(128))) AS server_name;
"""

DATABASES_SQL = """
SELECT
    d.database_id AS id,
    d.name AS name,
    d.recovery_model_desc AS recovery_model,
    d.is_read_only AS is_read_only,
    d.state_desc AS state,
    drs.last_log_backup_lsn AS last_log_backup_lsn,
    ag.name AS availability_group,
    ag.automated_backup_preference AS backup_preference,
    ars.role AS replica_role,
    CASE WHEN ag.name IS NULL THEN 1
         ELSE sys.fn_hadr_backup_is_preferred_replica(d.name) END AS is_preferred_replica
FROM sys.databases AS d
LEFT JOIN sys.database_recovery_status AS drs ON drs.database_id = d.database_id
LEFT JOIN sys.dm_hadr_availability_replica_states AS ars
    ON ars.replica_id = d.replica_id AND ars.is_local = 1
LEFT JOIN sys.availability_groups AS ag ON ag.group_id = ars.group_id
ORDER BY d.database_id;
"""

CLOUD_DATABASES_SQL = """
SELECT
    d.database_id AS id,
    d.name AS name,
    d.recovery_model_desc AS recovery_model,
    d.is_read_only AS is_read_only,
    d.state_desc AS state
FROM sys.databases AS d
ORDER BY d.database_id;
"""

INDEXES_SQL = """
SELECT
    s.name AS schema_name,
    o.name AS object_name,
    i.name AS index_name,
    i.type AS index_type,
    ps.partition_number AS partition_number,
    pc.partition_count AS partition_count,
    ps.avg_fragmentation_in_percent AS fragmentation,
    ps.page_count AS page_count,
    CASE WHEN EXISTS (
            SELECT 1
            FROM sys.index_columns AS ic
            JOIN sys.columns AS c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            JOIN sys.types AS t ON t.user_type_id = c.user_type_id
            WHERE ic.object_id = i.object_id AND ic.index_id = i.index_id
              AND t.name IN ('text', 'ntext', 'image'))
        OR (i.type = 1 AND EXISTS (
            SELECT 1
            FROM sys.columns AS c
            JOIN sys.types AS t ON t.user_type_id = c.user_type_id
            WHERE c.object_id = i.object_id AND t.name IN ('text', 'ntext', 'image')))
        THEN 0 ELSE 1 END AS online_eligible
FROM sys.dm_db_index_physical_stats(DB_ID(), NULL, NULL, NULL, 'LIMITED') AS ps
JOIN sys.indexes AS i ON i.object_id = ps.object_id AND i.index_id = ps.index_id
JOIN sys.objects AS o ON o.object_id = i.object_id
JOIN sys.schemas AS s ON s.schema_id = o.schema_id
CROSS APPLY (
    SELECT COUNT(*) AS partition_count
    FROM sys.partitions AS p
    WHERE p.object_id = i.object_id AND p.index_id = i.index_id) AS pc
WHERE i.type IN (1, 2)
  AND o.is_ms_shipped = 0
  AND ps.index_level = 0
  AND ps.alloc_unit_type_desc = 'IN_ROW_DATA'
ORDER BY s.name, o.name, i.name, ps.partition_number;
"""

STATISTICS_SQL = """
SELECT
    sch.name AS schema_name,
    o.name AS object_name,
    st.name AS stats_name,
    sp.rows AS stats_rows,
    sp.modification_counter AS modification_counter,
    sp.rows_sampled AS rows_sampled,
    sp.last_updated AS last_updated,
    ISNULL(pr.live_rows, 0) AS live_rows
FROM sys.stats AS st
JOIN sys.objects AS o ON o.object_id = st.object_id
JOIN sys.schemas AS sch ON sch.schema_id = o.schema_id
OUTER APPLY sys.dm_db_stats_properties(st.object_id, st.stats_id) AS sp
OUTER APPLY (
    SELECT SUM(p.rows) AS live_rows
    FROM sys.partitions AS p
    WHERE p.object_id = st.object_id AND p.index_id IN (0, 1)) AS pr
WHERE o.is_ms_shipped = 0
  AND o.type IN ('U', 'V')
ORDER BY sch.name, o.name, st.name;
"""

_PREFERENCES = {
    0: BackupPreference.PRIMARY,
    1: BackupPreference.SECONDARY_ONLY,
    2: BackupPreference.PREFER_SECONDARY,
    3: BackupPreference.ANY,
}

_PRIMARY_ROLE = 1


def _query(executor: Executor, target: ConnectionTarget, sql: str) -> list[dict[str, Any]]:
    """Run a metadata query, classifying non-connectivity failures."""
    try:
        return executor.execute(target, metadata(sql))
    except ConnectivityError:
        raise
    except ExecutionError as exc:
        raise MetadataQueryError(f"Metadata query failed on {target}: {exc}") from exc


def _optional_count(value: Any) -> int | None:
    """Map NULL and the -1 'unknown' sentinel to None."""
    if value is None:
        return None
    value = int(value)
    return None if value < 0 else value


def path_name(server_identity: str) -> str:
    """Filesystem-safe group path for a standalone server (`HOST\\INST` -> `HOST$INST`)."""
    return server_identity.replace("\\", "$")


def load_server_context(executor: Executor, target: ConnectionTarget) -> ServerContext:
    """Read version, edition and identity of the server behind `target`."""
    rows = _query(executor, target, SERVER_SQL)
    if not rows:
        raise MetadataQueryError(f"Server properties query returned no rows on {target}")
    row = rows[0]
    edition = int(row.get("engine_edition") or 0)
    return ServerContext(
        major_version=int(row.get("major_version") or 0),
        is_cloud_hosted=edition == AZURE_SQL_DATABASE_EDITION,
        server_identity=str(row.get("server_name") or target.server),
        engine_edition=edition,
    )


def ensure_supported(server: ServerContext) -> None:
    """Raise UnsupportedServerError for servers older than SQL Server 2012."""
    if not server.is_supported:
        raise UnsupportedServerError(
            f"Server {server.server_identity} runs major version "
            f"{server.major_version}; {MINIMUM_MAJOR_VERSION} or later is required."
        )


def database_from_row(row: Mapping[str, Any], server: ServerContext) -> DatabaseInfo:
    """Convert one database row into a DatabaseInfo snapshot."""
    group = row.get("availability_group")
    lsn = row.get("last_log_backup_lsn")
    if group:
        preference = _PREFERENCES.get(
            int(row.get("backup_preference") or 0), BackupPreference.PRIMARY
        )
        is_primary = row.get("replica_role") == _PRIMARY_ROLE
        is_preferred = bool(row.get("is_preferred_replica"))
        group_path = str(group)
    else:
        preference = BackupPreference.PRIMARY
        is_primary = True
        is_preferred = True
        group_path = path_name(server.server_identity)

    return DatabaseInfo(
        id=int(row["id"]),
        name=str(row["name"]),
        recovery_model=RecoveryModel(str(row.get("recovery_model") or "SIMPLE").upper()),
        is_read_only=bool(row.get("is_read_only")),
        is_online=str(row.get("state") or "ONLINE").upper() == "ONLINE",
        last_log_backup_lsn=int(lsn) if lsn is not None else None,
        group_path_name=group_path,
        is_local_primary=is_primary,
        is_preferred_backup_replica=is_preferred,
        automated_backup_preference=preference,
        availability_group=str(group) if group else None,
    )


def load_databases(
    executor: Executor,
    target: ConnectionTarget,
    server: ServerContext,
) -> list[DatabaseInfo]:
    """Return a fresh snapshot of every database on the server."""
    sql = CLOUD_DATABASES_SQL if server.is_cloud_hosted else DATABASES_SQL
    return [database_from_row(row, server) for row in _query(executor, target, sql)]


def load_index_stats(executor: Executor, target: ConnectionTarget) -> list[IndexStat]:
    """Return the physical state of every rowstore index partition in `target`."""
    stats: list[IndexStat] = []
    eligible_by_index: dict[tuple[str, str, str], bool] = {}

    for row in _query(executor, target, INDEXES_SQL):
        key = (str(row["schema_name"]), str(row["object_name"]), str(row["index_name"]))
        # shared by all partitions of the index
        eligible = eligible_by_index.setdefault(key, bool(row.get("online_eligible")))
        stats.append(
            IndexStat(
                schema_name=key[0],
                object_name=key[1],
                index_name=key[2],
                fragmentation_percent=float(row.get("fragmentation") or 0.0),
                index_kind=(
                    IndexKind.CLUSTERED
                    if int(row.get("index_type") or 0) == 1
                    else IndexKind.NONCLUSTERED
                ),
                partition_number=int(row.get("partition_number") or 1),
                partition_count=int(row.get("partition_count") or 1),
                online_rebuild_eligible=eligible,
                page_count=int(row.get("page_count") or 0),
            )
        )
    return stats


def load_stat_entries(executor: Executor, target: ConnectionTarget) -> list[StatEntry]:
    """Return the state of every statistics object on user tables and views."""
    return [
        StatEntry(
            schema_name=str(row["schema_name"]),
            object_name=str(row["object_name"]),
            stats_name=str(row["stats_name"]),
            row_count_at_last_stats=_optional_count(row.get("stats_rows")),
            modification_counter=_optional_count(row.get("modification_counter")),
            live_row_count=int(row.get("live_rows") or 0),
            rows_sampled=_optional_count(row.get("rows_sampled")),
            last_updated=row.get("last_updated"),
        )
        for row in _query(executor, target, STATISTICS_SQL)
    ]
