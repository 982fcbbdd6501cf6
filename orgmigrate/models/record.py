"""Record models for query results and bulk jobs."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


class JobKind(str, Enum):
    """Kind of bulk job submitted to the destination org."""
    UPSERT = "upsert"
    DELETE = "delete"


class JobState(str, Enum):
    """Batch states reported by the bulk API."""
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    NOT_PROCESSED = "Not Processed"

    @classmethod
    def failure_states(cls) -> List[str]:
        return [cls.FAILED.value, cls.NOT_PROCESSED.value]


@dataclass
class QueryResult:
    """Records returned by a query against an org."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    total_size: int = 0
    done: bool = True

    def __post_init__(self):
        if not self.total_size:
            self.total_size = len(self.records)


@dataclass(frozen=True)
class BulkJobHandle:
    """Identifier pair of a submitted bulk job."""
    job_id: str
    batch_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"jobId": self.job_id, "batchId": self.batch_id}


@dataclass
class JobStatus:
    """Status of a bulk batch as reported by the org."""
    state: str
    number_records_processed: int = 0
    number_records_failed: int = 0
    state_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.state == JobState.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.state in JobState.failure_states()

    @property
    def has_record_failures(self) -> bool:
        return self.number_records_failed > 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStatus":
        """Create from a batch info payload."""
        return cls(
            state=str(data.get("state", "")),
            number_records_processed=int(data.get("numberRecordsProcessed", 0) or 0),
            number_records_failed=int(data.get("numberRecordsFailed", 0) or 0),
            state_message=data.get("stateMessage"),
            raw=dict(data),
        )
