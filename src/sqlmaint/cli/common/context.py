"""Connection context for the CLI."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import URL

from sqlmaint.core.adapters.sqlserver import SqlServerExecutor
from sqlmaint.core.executor import ConnectionTarget


@dataclass(frozen=True)
class ConnectionOptions:
    """Connection settings collected from the command line."""

    server: str
    user: str | None = None
    password: str | None = None
    driver: str = "ODBC Driver 18 for SQL Server"
    trust_server_certificate: bool = False


def build_url(options: ConnectionOptions, target: ConnectionTarget) -> URL:
    """Return the SQLAlchemy URL for a catalog on the configured server.

    Without a user the URL requests integrated (trusted) authentication.
    """
    query = {
        "driver": options.driver,
        "TrustServerCertificate": "yes" if options.trust_server_certificate else "no",
        "APP": "sqlmaint",
    }
    if not options.user:
        query["Trusted_Connection"] = "yes"
    return URL.create(
        "mssql+pyodbc",
        username=options.user or None,
        password=options.password or None,
        host=target.server,
        database=target.catalog,
        query=query,
    )


def build_executor(options: ConnectionOptions, *, metadata_timeout: int) -> SqlServerExecutor:
    """Build the SQL Server executor for a run."""
    return SqlServerExecutor(
        lambda target: build_url(options, target),
        metadata_timeout=metadata_timeout,
    )
