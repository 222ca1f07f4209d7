"""Core domain models for SQL Server maintenance.

This module defines the typed records produced by the topology loader
(ServerContext, DatabaseInfo, IndexStat, StatEntry) and the value objects
returned by the maintenance policies. These models are intentionally simple,
immutable, and free of any query or presentation concerns: the policy layer
never sees raw tabular rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

SYSTEM_DATABASE_MAX_ID = 4
MINIMUM_MAJOR_VERSION = 11


class RecoveryModel(str, Enum):
    """Per-database recovery model."""

    FULL = "FULL"
    BULK_LOGGED = "BULK_LOGGED"
    SIMPLE = "SIMPLE"


class BackupPreference(str, Enum):
    """
    Automated backup preference of an availability group.

    Values mirror `sys.availability_groups.automated_backup_preference`
    (0 = PRIMARY, 1 = SECONDARY_ONLY, 2 = SECONDARY, 3 = NONE/any replica).
    """

    PRIMARY = "PRIMARY"
    SECONDARY_ONLY = "SECONDARY_ONLY"
    PREFER_SECONDARY = "PREFER_SECONDARY"
    ANY = "ANY"


class IndexKind(str, Enum):
    """Rowstore index kinds handled by the index policy."""

    CLUSTERED = "CLUSTERED"
    NONCLUSTERED = "NONCLUSTERED"


class Operation(str, Enum):
    """Maintenance operations, in the order they run for each database."""

    INDEX = "index"
    STATISTICS = "statistics"
    CHECKDB = "checkdb"
    BACKUP = "backup"


class BackupKind(str, Enum):
    """Backup kind requested by the operator."""

    FULL = "full"
    DIFFERENTIAL = "differential"
    LOG = "log"


class BackupAction(str, Enum):
    """Terminal outcome of the backup eligibility policy."""

    SKIP = "SKIP"
    FULL = "FULL"
    FULL_COPY_ONLY = "FULL_COPY_ONLY"
    DIFFERENTIAL = "DIFF"
    LOG = "LOG"


class IndexAction(str, Enum):
    """Outcome of the index policy."""

    SKIP = "SKIP"
    REORGANIZE = "REORGANIZE"
    REBUILD = "REBUILD"


class StatsAction(str, Enum):
    """Outcome of the statistics policy."""

    SKIP = "SKIP"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class ServerContext:
    """
    Immutable per-run description of the target server.

    Attributes:
        major_version: Major engine version (11 = SQL Server 2012).
        is_cloud_hosted: True for Azure SQL Database, where externally
            orchestrated backups and CHECKDB on master are not allowed.
        server_identity: Value of @@SERVERNAME.
        engine_edition: SERVERPROPERTY('EngineEdition').
    """

    major_version: int
    is_cloud_hosted: bool
    server_identity: str
    engine_edition: int = 0

    @property
    def is_supported(self) -> bool:
        return self.major_version >= MINIMUM_MAJOR_VERSION

    @property
    def supports_online_operations(self) -> bool:
        """Enterprise/Developer, Azure SQL Database and Managed Instance."""
        return self.engine_edition in {3, 5, 8}


@dataclass(frozen=True)
class DatabaseInfo:
    """
    One catalog on the server, as seen by the topology loader.

    `last_log_backup_lsn` is None until the first full backup starts a
    log chain; `has_log_backup_chain` is derived from it. For standalone
    servers the loader reports the database as local primary and preferred
    replica, with `group_path_name` set to the server name.
    """

    id: int
    name: str
    recovery_model: RecoveryModel
    is_read_only: bool = False
    is_online: bool = True
    last_log_backup_lsn: int | None = None
    group_path_name: str = ""
    is_local_primary: bool = True
    is_preferred_backup_replica: bool = True
    automated_backup_preference: BackupPreference = BackupPreference.PRIMARY
    availability_group: str | None = None

    @property
    def has_log_backup_chain(self) -> bool:
        return self.last_log_backup_lsn is not None

    @property
    def is_system(self) -> bool:
        return self.id <= SYSTEM_DATABASE_MAX_ID


@dataclass(frozen=True)
class IndexStat:
    """Physical state of one index partition."""

    schema_name: str
    object_name: str
    index_name: str
    fragmentation_percent: float
    index_kind: IndexKind
    partition_number: int = 1
    partition_count: int = 1
    online_rebuild_eligible: bool = True
    page_count: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.schema_name}.{self.object_name}.{self.index_name}"


@dataclass(frozen=True)
class StatEntry:
    """
    State of one statistics object.

    `row_count_at_last_stats` and `modification_counter` are None when the
    server reports them as unknown (never computed).
    """

    schema_name: str
    object_name: str
    stats_name: str
    row_count_at_last_stats: int | None
    modification_counter: int | None
    live_row_count: int
    rows_sampled: int | None = None
    last_updated: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.schema_name}.{self.object_name}.{self.stats_name}"


@dataclass(frozen=True)
class IndexDecision:
    """Index policy result; `partition_number` is set only for partitioned indexes."""

    action: IndexAction
    online_permitted: bool = False
    partition_number: int | None = None


@dataclass(frozen=True)
class StatsDecision:
    """Statistics policy result; `sample_percent` is set only for updates."""

    action: StatsAction
    sample_percent: int | None = None


@dataclass(frozen=True)
class CheckDecision:
    """Consistency-check decision for one database."""

    run: bool
    reason: str = ""


@dataclass(frozen=True)
class BackupDecision:
    """Backup eligibility policy result."""

    action: BackupAction
    destination_subpath: str
    reason: str
