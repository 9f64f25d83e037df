"""
Aggregation - Types.

Result value shared by the rollup jobs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RollupStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class RollupResult:
    """Outcome of one rollup run."""

    job: str
    started_at: datetime
    target: str = ""
    status: RollupStatus = RollupStatus.SUCCESS
    rows_written: int = 0
    groups: Dict[str, Any] = field(default_factory=dict)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def mark_complete(self, completed_at: datetime) -> None:
        self.completed_at = completed_at

    def mark_failed(self, error: str, completed_at: datetime) -> None:
        self.status = RollupStatus.FAILED
        self.error = error
        self.completed_at = completed_at

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "target": self.target,
            "status": self.status.value,
            "rows_written": self.rows_written,
            "groups": self.groups,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }
