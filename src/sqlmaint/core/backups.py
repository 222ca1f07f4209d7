"""Backup eligibility policy.

Reconciles the requested backup kind with the replica role, the recovery
model and the log-chain state of a database so that:

- two replicas never take the same backup,
- a differential or log backup chain is never broken,
- ambiguous topologies (standalone server, Azure SQL Database, a single
  replica) degrade to a safe decision.

The policy is a pure function returning a single BackupDecision; creating
the destination directory and naming the backup file are separate helpers
used by the run controller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from sqlmaint.core.models import (
    BackupAction,
    BackupDecision,
    BackupKind,
    BackupPreference,
    DatabaseInfo,
    RecoveryModel,
    ServerContext,
)

MASTER_DATABASE_ID = 1


def destination_subpath(database: DatabaseInfo) -> str:
    """Return `<group path>/<database>/`, lower-cased."""
    return f"{database.group_path_name}/{database.name}/".lower()


def needs_log_chain_bootstrap(database: DatabaseInfo) -> bool:
    """True when a full backup must run first to start a usable log chain."""
    return (
        not database.has_log_backup_chain
        and database.recovery_model != RecoveryModel.SIMPLE
        and not database.is_read_only
    )


def is_preferred_replica(database: DatabaseInfo) -> bool:
    """
    Resolve backup-replica eligibility from the automated backup preference.

    Secondary-oriented preferences rely on the server-side replica selection
    captured in `is_preferred_backup_replica`, which already falls back to
    the primary when no secondary qualifies.
    """
    preference = database.automated_backup_preference
    if preference == BackupPreference.PRIMARY:
        return database.is_local_primary
    if preference == BackupPreference.SECONDARY_ONLY:
        return database.is_preferred_backup_replica and not database.is_local_primary
    return database.is_preferred_backup_replica


def decide_backup(
    server: ServerContext,
    database: DatabaseInfo,
    requested: BackupKind,
) -> BackupDecision:
    """
    Decide which backup, if any, this replica takes for `database`.

    Args:
        server: Context of the server the run is connected to.
        database: Topology snapshot of the database.
        requested: Backup kind requested for the run.

    Returns:
        A BackupDecision whose action is one of SKIP, FULL, FULL_COPY_ONLY,
        DIFFERENTIAL or LOG.
    """
    subpath = destination_subpath(database)

    def skip(reason: str) -> BackupDecision:
        return BackupDecision(BackupAction.SKIP, subpath, reason)

    if server.is_cloud_hosted:
        return skip("cloud-hosted server does not support orchestrated backups")

    if needs_log_chain_bootstrap(database):
        # chain bootstrap runs on the primary, whatever the configured preference
        kind = BackupKind.FULL
        eligible = database.is_local_primary
        bootstrap = True
    else:
        kind = requested
        eligible = is_preferred_replica(database)
        bootstrap = False

    if kind == BackupKind.FULL:
        if not eligible:
            return skip("not preferred backup replica")
        if not database.is_local_primary:
            return BackupDecision(
                BackupAction.FULL_COPY_ONLY,
                subpath,
                "full backup on a non-primary replica is copy-only",
            )
        reason = "no log backup chain yet" if bootstrap else "requested full backup"
        if bootstrap and requested != BackupKind.FULL:
            reason = f"{requested.value} backup replaced by full: no log backup chain yet"
        return BackupDecision(BackupAction.FULL, subpath, reason)

    if kind == BackupKind.DIFFERENTIAL:
        if database.id == MASTER_DATABASE_ID:
            return skip("master is never backed up differentially")
        if not database.is_local_primary:
            return skip("differential backups run on the primary replica only")
        return BackupDecision(BackupAction.DIFFERENTIAL, subpath, "requested differential backup")

    if database.recovery_model == RecoveryModel.SIMPLE:
        return skip("simple recovery model has no log chain")
    if database.is_read_only:
        return skip("read-only database has no log to back up")
    if not eligible:
        return skip("not preferred backup replica")
    return BackupDecision(BackupAction.LOG, subpath, "requested log backup")


def backup_file_name(database_name: str, action: BackupAction, now: datetime) -> str:
    """Return `<database>_<yyyyMMddHHmmss>_<type>` with a .bak or .trn extension."""
    extension = ".trn" if action == BackupAction.LOG else ".bak"
    return f"{database_name}_{now:%Y%m%d%H%M%S}_{action.value}{extension}"


def ensure_backup_directory(
    root: Path,
    subpath: str,
    logger: logging.Logger | logging.LoggerAdapter,
) -> Path:
    """
    Create `root/subpath` if needed and return it.

    A creation failure is only logged as a warning: the backup statement that
    follows surfaces the real failure if the path is unusable.
    """
    directory = Path(root) / subpath
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("Could not create backup directory %s: %s", directory, exc)
    return directory
