"""Data models for the migration engine."""

from .schema import (
    SchemaField,
    ObjectSchema,
)
from .plan import (
    Step,
    StepKind,
    StepOverrides,
    PlanOverrides,
    PlanDefaults,
    MigrationPlan,
    load_plan,
)
from .migration import (
    MigrationRun,
    StepResult,
    StepStatus,
    RunStatus,
)
from .record import (
    QueryResult,
    BulkJobHandle,
    JobStatus,
    JobKind,
    JobState,
)

__all__ = [
    "SchemaField",
    "ObjectSchema",
    "Step",
    "StepKind",
    "StepOverrides",
    "PlanOverrides",
    "PlanDefaults",
    "MigrationPlan",
    "load_plan",
    "MigrationRun",
    "StepResult",
    "StepStatus",
    "RunStatus",
    "QueryResult",
    "BulkJobHandle",
    "JobStatus",
    "JobKind",
    "JobState",
]
