"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import uuid


class StepStatus(str, Enum):
    """State of a plan step during a run."""
    BOUND = "bound"
    QUERYING = "querying"
    TRANSFORMING = "transforming"
    MATERIALIZING = "materializing"
    LOADING = "loading"
    DELETING = "deleting"
    POLLING = "polling"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    CONTINUED_ON_ERROR = "continued_on_error"


class RunStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class StepResult:
    """Outcome of a single step in a migration run."""
    index: int
    name: str
    kind: str = ""
    status: StepStatus = StepStatus.BOUND
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_queried: int = 0
    records_written: int = 0
    records_failed: int = 0
    artifacts: List[str] = field(default_factory=list)
    job: Optional[Dict[str, str]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "name": self.name,
            "kind": self.kind,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "records_queried": self.records_queried,
            "records_written": self.records_written,
            "records_failed": self.records_failed,
            "artifacts": self.artifacts,
            "job": self.job,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_error(self, stage: str, message: str, payload: Any = None) -> None:
        self.errors.append({
            "stage": stage,
            "error": message,
            "payload": payload,
            "timestamp": datetime.utcnow().isoformat(),
        })


@dataclass
class MigrationRun:
    """A complete migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    plan_path: Optional[str] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    status: RunStatus = RunStatus.PENDING

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    steps: List[StepResult] = field(default_factory=list)
    aborted_at_step: Optional[str] = None
    abort_reason: Optional[str] = None

    # Statistics
    total_records_queried: int = 0
    total_records_written: int = 0
    total_records_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "plan_path": self.plan_path,
            "source": self.source,
            "destination": self.destination,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "steps": [s.to_dict() for s in self.steps],
            "aborted_at_step": self.aborted_at_step,
            "abort_reason": self.abort_reason,
            "total_records_queried": self.total_records_queried,
            "total_records_written": self.total_records_written,
            "total_records_failed": self.total_records_failed,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def aborted(self) -> bool:
        return self.status == RunStatus.ABORTED

    def add_step(self, index: int, name: str, kind: str = "") -> StepResult:
        """Add a new step result to the run."""
        step = StepResult(index=index, name=name, kind=kind)
        self.steps.append(step)
        return step

    def update_totals(self) -> None:
        """Update total statistics from steps."""
        self.total_records_queried = sum(s.records_queried for s in self.steps)
        self.total_records_written = sum(s.records_written for s in self.steps)
        self.total_records_failed = sum(s.records_failed for s in self.steps)
