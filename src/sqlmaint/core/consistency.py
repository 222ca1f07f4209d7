"""Consistency-check (DBCC CHECKDB) policy."""

from __future__ import annotations

from sqlmaint.core.models import CheckDecision, DatabaseInfo, ServerContext


def decide_consistency_check(server: ServerContext, database: DatabaseInfo) -> CheckDecision:
    """Check every selected database except master on a cloud-hosted server."""
    if server.is_cloud_hosted and database.name.lower() == "master":
        return CheckDecision(run=False, reason="CHECKDB on master is not allowed on a cloud-hosted server")
    return CheckDecision(run=True, reason="scheduled consistency check")
