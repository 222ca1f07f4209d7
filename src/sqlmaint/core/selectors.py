"""Database selector abstractions and implementations.

This module defines the selector system used to determine whether a
database takes part in a maintenance run. Selectors encapsulate matching
logic and can be composed using logical operators (AND / OR / NOT) to
express the include/exclude rules of the selection filter.

Selectors are pure, side-effect-free objects; the structural skip rules
(offline databases, tempdb, read-only databases) live next to them in
`skip_reason` because they depend on the operation being run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from sqlmaint.core.models import DatabaseInfo, Operation

SYSTEM_ALIAS = "system"

_READ_ONLY_BLOCKED = {Operation.INDEX, Operation.STATISTICS}
_SECONDARY_BLOCKED = {Operation.INDEX, Operation.STATISTICS, Operation.CHECKDB}


class DatabaseSelector(ABC):
    """
    Abstract base class for all database selectors.

    A DatabaseSelector encapsulates a single piece of matching logic that
    determines whether a given database satisfies a specific criterion.
    """

    @abstractmethod
    def matches(self, database: DatabaseInfo) -> bool:
        """
        Determine whether the given database matches this selector.

        Args:
            database: DatabaseInfo instance to evaluate.

        Returns:
            True if the database matches the selector criteria, False otherwise.
        """
        ...


class NameSelector(DatabaseSelector):
    """
    Selector that matches databases whose name is listed.
    """

    def __init__(self, names: Iterable[str]):
        """
        Create a name-based selector.

        Args:
            names: Database names to match, compared case-insensitively like
                SQL Server's default collation.
        """
        self.names = frozenset(name.casefold() for name in names)

    def matches(self, database: DatabaseInfo) -> bool:
        return database.name.casefold() in self.names


class SystemDatabaseSelector(DatabaseSelector):
    """
    Selector that matches the system databases (ids 1-4).
    """

    def matches(self, database: DatabaseInfo) -> bool:
        return database.is_system


class UserDatabaseSelector(DatabaseSelector):
    """
    Selector that matches every non-system database (id > 4).
    """

    def matches(self, database: DatabaseInfo) -> bool:
        return not database.is_system


class NotSelector(DatabaseSelector):
    """
    Selector that inverts a child selector.
    """

    def __init__(self, selector: DatabaseSelector):
        self.selector = selector

    def matches(self, database: DatabaseInfo) -> bool:
        return not self.selector.matches(database)


class AndSelector(DatabaseSelector):
    """
    Composite selector that matches a database only if all child selectors match.
    """

    def __init__(self, selectors: list[DatabaseSelector]):
        """
        Create a logical AND selector.

        Args:
            selectors: List of selectors that must all match.
        """
        self.selectors = selectors

    def matches(self, database: DatabaseInfo) -> bool:
        return all(s.matches(database) for s in self.selectors)


class OrSelector(DatabaseSelector):
    """
    Composite selector that matches a database if any child selector matches.
    """

    def __init__(self, selectors: list[DatabaseSelector]):
        """
        Create a logical OR selector.

        Args:
            selectors: List of selectors where at least one must match.
        """
        self.selectors = selectors

    def matches(self, database: DatabaseInfo) -> bool:
        return any(s.matches(database) for s in self.selectors)


def skip_reason(database: DatabaseInfo, operation: Operation) -> str | None:
    """
    Return why `operation` must not run against `database`, or None.

    Offline databases and tempdb are never maintained; read-only databases
    cannot have their indexes or statistics modified, and secondary replicas
    are neither modified nor consistency-checked here.
    """
    if not database.is_online:
        return "database is not online"
    if database.name.lower() == "tempdb":
        return "tempdb is never maintained"
    if operation in _READ_ONLY_BLOCKED and database.is_read_only:
        return "database is read-only"
    if operation in _SECONDARY_BLOCKED and not database.is_local_primary:
        return "database is a secondary replica"
    return None
