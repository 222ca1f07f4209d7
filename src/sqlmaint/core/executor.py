"""Executor contract and error taxonomy.

The core never talks to the database directly: it hands `Statement`
values to an `Executor` and only cares about success or failure. The
exception hierarchy below encodes how far a failure reaches:

- ConnectivityError aborts the entire run.
- MetadataQueryError ends the work for one database.
- ActionExecutionError ends one action; the run continues.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class ExecutionError(RuntimeError):
    """Raised when the executor fails to run a statement."""


class ConnectivityError(ExecutionError):
    """Raised when the server or catalog cannot be reached."""


class MetadataQueryError(ExecutionError):
    """Raised when a snapshot, index or statistics query fails."""


class ActionExecutionError(ExecutionError):
    """Raised when a rebuild, update, consistency check or backup fails."""


class UnsupportedServerError(RuntimeError):
    """Raised when the server version is older than SQL Server 2012."""


class StatementIntent(str, Enum):
    """What a statement asks the server to do."""

    METADATA = "METADATA"
    INDEX_REBUILD = "INDEX_REBUILD"
    INDEX_REORGANIZE = "INDEX_REORGANIZE"
    UPDATE_STATISTICS = "UPDATE_STATISTICS"
    CHECKDB = "CHECKDB"
    BACKUP = "BACKUP"


@dataclass(frozen=True)
class ConnectionTarget:
    """Server plus catalog a statement runs against."""

    server: str
    catalog: str = "master"

    def __str__(self) -> str:
        return f"{self.server}/{self.catalog}"


@dataclass(frozen=True)
class Statement:
    """
    A statement handed to the executor.

    Attributes:
        intent: Operation class of the statement.
        text: Statement text sent to the server.
        long_running: True for maintenance actions, which run without a
            timeout; metadata queries use the executor's short timeout.
    """

    intent: StatementIntent
    text: str
    long_running: bool = False


class Executor(Protocol):
    """Interface for running statements against a SQL Server instance."""

    def execute(self, target: ConnectionTarget, statement: Statement) -> list[dict[str, Any]]:
        """Run `statement` on `target` and return the rows (possibly empty)."""
        ...

    def close(self, target: ConnectionTarget) -> None:
        """Release the connection held for `target`, if any."""
        ...
