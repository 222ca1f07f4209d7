"""Run configuration.

`MaintenanceConfig` carries every recognized knob of a maintenance run.
It is built once by the CLI (or by a test) and never mutated; `validate`
rejects out-of-range values and `water_marks` applies the documented
fallback for inverted thresholds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sqlmaint.core.indexes import DEFAULT_HIGH_WATER_MARK, DEFAULT_LOW_WATER_MARK
from sqlmaint.core.models import BackupKind, Operation

DEFAULT_OPERATIONS = frozenset({Operation.INDEX, Operation.STATISTICS})


class ConfigError(ValueError):
    """Raised when the run configuration is invalid."""


@dataclass(frozen=True)
class MaintenanceConfig:
    """
    Options of a single maintenance pass.

    Attributes:
        low_water_mark: Fragmentation percent above which indexes are reorganized.
        high_water_mark: Fragmentation percent from which indexes are rebuilt.
        allow_online_rebuild: Permit ONLINE = ON rebuilds where eligible.
        sample_percent: Sample rate handed to statistics updates.
        backup_kind: Backup kind requested for the run.
        include: Database names (or `system`) to keep.
        exclude: Database names (or `system`) to drop; wins over `include`.
        use_trace_flag_2371_model: Also apply the sqrt staleness threshold.
        operations: Maintenance operations to run for each database.
        backup_root: Base directory for backup files.
        log_dir: Directory receiving the run log file.
        dry_run: Decide and log only; never execute actions.
        metadata_timeout_seconds: Timeout for metadata queries.
    """

    low_water_mark: int = DEFAULT_LOW_WATER_MARK
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK
    allow_online_rebuild: bool = True
    sample_percent: int = 100
    backup_kind: BackupKind = BackupKind.FULL
    include: frozenset[str] = field(default_factory=frozenset)
    exclude: frozenset[str] = field(default_factory=frozenset)
    use_trace_flag_2371_model: bool = True
    operations: frozenset[Operation] = DEFAULT_OPERATIONS
    backup_root: Path | None = None
    log_dir: Path = Path("logs")
    dry_run: bool = False
    metadata_timeout_seconds: int = 60

    def validate(self) -> "MaintenanceConfig":
        """Return self, or raise ConfigError if a value is out of range."""
        for name in ("low_water_mark", "high_water_mark", "sample_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigError(f"{name} must be between 0 and 100 (got {value}).")
        if self.metadata_timeout_seconds < 0:
            raise ConfigError("metadata_timeout_seconds must be >= 0.")
        if not self.operations:
            raise ConfigError("At least one operation is required.")
        if Operation.BACKUP in self.operations and self.backup_root is None:
            raise ConfigError("A backup root directory is required for backups.")
        return self

    @property
    def water_marks_inverted(self) -> bool:
        return self.low_water_mark > self.high_water_mark

    def water_marks(self) -> tuple[int, int]:
        """Return (low, high), falling back to the defaults when low > high."""
        if self.water_marks_inverted:
            return DEFAULT_LOW_WATER_MARK, DEFAULT_HIGH_WATER_MARK
        return self.low_water_mark, self.high_water_mark
