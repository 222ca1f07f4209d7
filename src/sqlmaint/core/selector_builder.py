"""Selector construction utilities.

This module translates the include/exclude lists of a maintenance run into
a concrete DatabaseSelector and applies it to a database snapshot. It
centralizes the precedence rules of the selection filter so the rest of
the application works with a single selector abstraction.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlmaint.core.models import DatabaseInfo
from sqlmaint.core.selectors import (
    SYSTEM_ALIAS,
    DatabaseSelector,
    NameSelector,
    NotSelector,
    OrSelector,
    SystemDatabaseSelector,
    UserDatabaseSelector,
)


def build_selector(
    *,
    include: Iterable[str],
    exclude: Iterable[str],
) -> DatabaseSelector | None:
    """
    Build a DatabaseSelector from include/exclude lists.

    Exclusion wins: when `exclude` is non-empty, `include` is ignored and the
    selector keeps every database that is neither listed nor, if the
    `system` alias is present, a system database. When only `include` is
    given, the selector keeps listed databases and, if the `system` alias is
    present, every database with id > 4.

    Args:
        include: Database names (or the `system` alias) to keep.
        exclude: Database names (or the `system` alias) to drop.

    Returns:
        A DatabaseSelector, or None when both lists are empty (no filtering).
    """
    include = set(include)
    exclude = set(exclude)

    if exclude:
        dropped: list[DatabaseSelector] = [NameSelector(exclude - {SYSTEM_ALIAS})]
        if SYSTEM_ALIAS in exclude:
            dropped.append(SystemDatabaseSelector())
        return NotSelector(OrSelector(dropped))

    if include:
        kept: list[DatabaseSelector] = [NameSelector(include - {SYSTEM_ALIAS})]
        if SYSTEM_ALIAS in include:
            kept.append(UserDatabaseSelector())
        return OrSelector(kept)

    return None


def select_databases(
    databases: Iterable[DatabaseInfo],
    include: Iterable[str],
    exclude: Iterable[str],
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[DatabaseInfo]:
    """Return the databases kept by the include/exclude rules, logging each skip."""
    include = list(include)
    exclude = list(exclude)
    log = logger or logging.getLogger(__name__)
    if exclude and include:
        log.info("Include list ignored because an exclude list is present")

    selector = build_selector(include=include, exclude=exclude)
    if selector is None:
        return list(databases)

    selected: list[DatabaseInfo] = []
    for db in databases:
        if selector.matches(db):
            selected.append(db)
        else:
            log.info("Skipping database %s: not selected by include/exclude", db.name)
    return selected
