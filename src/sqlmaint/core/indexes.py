"""Index maintenance policy.

Classifies the fragmentation of one index partition into skip, reorganize
or rebuild, and decides whether a rebuild may run online. The policy is a
pure function; validating the water marks is the caller's job (see
`MaintenanceConfig.water_marks`).
"""

from __future__ import annotations

from sqlmaint.core.models import IndexAction, IndexDecision, IndexStat

DEFAULT_LOW_WATER_MARK = 10
DEFAULT_HIGH_WATER_MARK = 30


def decide_index(
    stat: IndexStat,
    low_water_mark: float,
    high_water_mark: float,
    allow_online: bool,
) -> IndexDecision:
    """
    Decide the maintenance action for one index partition.

    - fragmentation <= low: skip
    - low < fragmentation < high: reorganize (always online-safe)
    - fragmentation >= high: rebuild, online only when allowed and the
      index has no column type that blocks an online rebuild

    For partitioned indexes the decision is scoped to `stat.partition_number`.

    Args:
        stat: Physical state of the index partition.
        low_water_mark: Reorganize threshold in percent; assumes low <= high.
        high_water_mark: Rebuild threshold in percent.
        allow_online: Whether online rebuilds are permitted for this run.

    Returns:
        The IndexDecision for this partition.
    """
    fragmentation = stat.fragmentation_percent
    partition = stat.partition_number if stat.partition_count > 1 else None

    if fragmentation <= low_water_mark:
        return IndexDecision(action=IndexAction.SKIP)

    if fragmentation < high_water_mark:
        return IndexDecision(
            action=IndexAction.REORGANIZE,
            online_permitted=True,
            partition_number=partition,
        )

    return IndexDecision(
        action=IndexAction.REBUILD,
        online_permitted=allow_online and stat.online_rebuild_eligible,
        partition_number=partition,
    )
