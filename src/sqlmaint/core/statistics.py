"""Statistics maintenance policy."""

from __future__ import annotations

import math

from sqlmaint.core.models import StatEntry, StatsAction, StatsDecision

MINIMUM_ROWS = 500


def linear_threshold(rows: int) -> float:
    """Classic auto-update threshold: 500 rows plus 20% of the table."""
    return MINIMUM_ROWS + rows * 0.2


def sqrt_threshold(rows: int) -> int:
    """Dynamic threshold used by trace flag 2371 (default from SQL Server 2016)."""
    return math.floor(math.sqrt(1000 * rows))


def decide_statistics(
    entry: StatEntry,
    sample_percent: int,
    use_trace_flag_2371_model: bool,
) -> StatsDecision:
    """
    Decide whether one statistics object needs an update.

    Statistics that were never computed are refreshed as soon as the object
    holds rows. Otherwise an update needs at least 500 rows at the last
    update and a positive modification counter that is strictly above the
    linear threshold or, with the 2371 model, above either threshold.
    """
    rows = entry.row_count_at_last_stats
    modified = entry.modification_counter

    if rows is None:
        if entry.live_row_count > 0:
            return StatsDecision(StatsAction.UPDATE, sample_percent=sample_percent)
        return StatsDecision(StatsAction.SKIP)

    if rows >= MINIMUM_ROWS and modified is not None and modified > 0:
        stale = modified > linear_threshold(rows)
        if use_trace_flag_2371_model:
            stale = stale or modified > sqrt_threshold(rows)
        if stale:
            return StatsDecision(StatsAction.UPDATE, sample_percent=sample_percent)

    return StatsDecision(StatsAction.SKIP)
