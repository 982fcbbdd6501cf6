"""Migration plan models: steps, plan defaults and flag-hook patches."""

import importlib.util
import logging
import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import PlanLoadError

logger = logging.getLogger(__name__)

DEFAULT_BULK_STATUS_RETRIES = 3
DEFAULT_BULK_STATUS_INTERVAL = 5.0


class StepKind(str, Enum):
    """What a step does once it is past flag evaluation."""
    QUERY = "query"
    GENERATE = "generate"
    SIDE_EFFECT = "side_effect"
    DELETE = "delete"


@dataclass(frozen=True)
class PlanDefaults:
    """Run-level defaults handed to flag hooks and execution contexts."""
    source: Optional[str] = None
    destination: Optional[str] = None
    ignore_error: bool = False
    bulk_status_retries: int = DEFAULT_BULK_STATUS_RETRIES
    bulk_status_interval: float = DEFAULT_BULK_STATUS_INTERVAL
    base_dir: str = "."
    start_index: int = 0
    stop_index: int = 0


@dataclass(frozen=True)
class StepOverrides:
    """
    Patch returned by a step's calculate_flags hook.

    Fields left as None keep the step's own value. ``values`` are bound onto
    the step's execution context.
    """
    skip: Optional[bool] = None
    query: Optional[str] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    external_id: Optional[str] = None
    sobject_type: Optional[str] = None
    is_delete: Optional[bool] = None
    reference_only: Optional[bool] = None
    is_reference: Optional[bool] = None
    query_destination: Optional[bool] = None
    values: Dict[str, Any] = field(default_factory=dict)

    def changes(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "values" and getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class PlanOverrides:
    """Patch returned by the plan-level calculate_flags hook."""
    source: Optional[str] = None
    destination: Optional[str] = None
    ignore_error: Optional[bool] = None
    start_index: Optional[int] = None
    stop_index: Optional[int] = None
    bulk_status_retries: Optional[int] = None
    bulk_status_interval: Optional[float] = None

    def changes(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


StepFlagsHook = Callable[[PlanDefaults], StepOverrides]
PlanFlagsHook = Callable[[PlanDefaults], PlanOverrides]

# Fields that decide a step's kind; patching any of them re-derives it.
_KIND_FIELDS = {"query", "is_delete", "apex_code_file", "generate_data"}


@dataclass(frozen=True)
class Step:
    """A single named unit of work in a migration plan."""
    name: str
    query: Optional[str] = None
    description: str = ""
    transform: Optional[Callable] = None
    transform_all: Optional[Callable] = None
    generate_data: Optional[Callable] = None
    references: Tuple[str, ...] = ()
    is_delete: bool = False
    reference_only: bool = False
    is_reference: bool = False
    skip: bool = False
    query_destination: bool = False
    source: Optional[str] = None
    destination: Optional[str] = None
    external_id: Optional[str] = None
    sobject_type: Optional[str] = None
    apex_code_file: Optional[str] = None
    calculate_flags: Optional[StepFlagsHook] = None
    kind: Optional[StepKind] = None

    def __post_init__(self):
        if not isinstance(self.references, tuple):
            object.__setattr__(self, "references", tuple(self.references or ()))
        if self.kind is None:
            object.__setattr__(self, "kind", self._derive_kind())
        elif not isinstance(self.kind, StepKind):
            object.__setattr__(self, "kind", StepKind(self.kind))

    def _derive_kind(self) -> StepKind:
        if self.apex_code_file:
            return StepKind.SIDE_EFFECT
        if self.is_delete:
            return StepKind.DELETE
        if self.generate_data and not self.query:
            return StepKind.GENERATE
        return StepKind.QUERY

    @property
    def writes_reference(self) -> bool:
        return self.reference_only or self.is_reference

    def apply(self, overrides: Optional[StepOverrides]) -> "Step":
        """Return a new step with the override patch applied."""
        if overrides is None:
            return self
        changes = overrides.changes()
        if not changes:
            return self
        if _KIND_FIELDS & set(changes):
            changes["kind"] = None
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """Create from a plan entry using camelCase or snake_case keys."""
        if not isinstance(data, dict):
            raise PlanLoadError(f"Step entry must be a mapping, got {type(data).__name__}")

        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            name=pick("name", default="") or "",
            query=pick("query"),
            description=pick("description", default="") or "",
            transform=pick("transform"),
            transform_all=pick("transformAll", "transform_all"),
            generate_data=pick("generateData", "generate_data"),
            references=tuple(pick("references", default=()) or ()),
            is_delete=bool(pick("isDelete", "is_delete", default=False)),
            reference_only=bool(pick("referenceOnly", "reference_only", default=False)),
            is_reference=bool(pick("isReference", "is_reference", default=False)),
            skip=bool(pick("skip", default=False)),
            query_destination=bool(pick("queryDestination", "query_destination", default=False)),
            source=pick("source"),
            destination=pick("destination"),
            external_id=pick("externalId", "externalid", "external_id"),
            sobject_type=pick("sObjectType", "sobjecttype", "sobject_type"),
            apex_code_file=pick("apexCodeFile", "apex_code_file"),
            calculate_flags=pick("calculateFlags", "calculate_flags"),
            kind=pick("kind"),
        )


@dataclass(frozen=True)
class MigrationPlan:
    """Ordered steps plus plan-level defaults. Immutable once loaded."""
    steps: Tuple[Step, ...] = ()
    source: Optional[str] = None
    destination: Optional[str] = None
    start_index: Optional[int] = None
    stop_index: Optional[int] = None
    ignore_error: Optional[bool] = None
    bulk_status_retries: Optional[int] = None
    bulk_status_interval: Optional[float] = None
    calculate_flags: Optional[PlanFlagsHook] = None
    clear_data_folder: bool = False
    clear_ref_folder: bool = False
    path: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.steps, tuple):
            object.__setattr__(self, "steps", tuple(self.steps))

    @property
    def base_dir(self) -> str:
        """Directory holding the plan file; artifacts live beneath it."""
        if self.path:
            return str(Path(self.path).parent)
        return "."

    def step_range(self) -> range:
        """Half-open [start_index, stop_index) range into steps."""
        count = len(self.steps)
        start = self.start_index if self.start_index is not None else 0
        stop = self.stop_index if self.stop_index is not None else count
        start = max(0, min(start, count))
        stop = max(start, min(stop, count))
        return range(start, stop)

    def defaults(
        self,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        ignore_error: Optional[bool] = None,
        bulk_status_retries: Optional[int] = None,
        bulk_status_interval: Optional[float] = None,
    ) -> PlanDefaults:
        """
        Build the run-level defaults.

        Args:
            source: Overrides the plan's source org when given
            destination: Overrides the plan's destination org when given
            ignore_error: Used only when the plan leaves it unset
            bulk_status_retries: Used only when the plan leaves it unset
            bulk_status_interval: Used only when the plan leaves it unset
        """
        window = self.step_range()

        def first(*values, default):
            for value in values:
                if value is not None:
                    return value
            return default

        return PlanDefaults(
            source=source or self.source,
            destination=destination or self.destination,
            ignore_error=bool(first(self.ignore_error, ignore_error, default=False)),
            bulk_status_retries=int(first(
                self.bulk_status_retries, bulk_status_retries, default=DEFAULT_BULK_STATUS_RETRIES
            )),
            bulk_status_interval=float(first(
                self.bulk_status_interval, bulk_status_interval, default=DEFAULT_BULK_STATUS_INTERVAL
            )),
            base_dir=self.base_dir,
            start_index=window.start,
            stop_index=window.stop,
        )

    def apply(self, overrides: Optional[PlanOverrides]) -> "MigrationPlan":
        """Return a new plan with the override patch applied."""
        if overrides is None:
            return self
        changes = overrides.changes()
        return replace(self, **changes) if changes else self

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[str] = None) -> "MigrationPlan":
        """Create from a mapping of plan attributes (camelCase or snake_case keys)."""
        raw_steps = data.get("steps")
        if raw_steps is None:
            raise PlanLoadError("Migration plan has no 'steps'")

        steps: List[Step] = []
        for entry in raw_steps:
            steps.append(entry if isinstance(entry, Step) else Step.from_dict(entry))

        def pick(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        return cls(
            steps=tuple(steps),
            source=pick("source"),
            destination=pick("destination"),
            start_index=pick("startIndex", "start_index"),
            stop_index=pick("stopIndex", "stop_index"),
            ignore_error=pick("ignoreError", "ignore_error"),
            bulk_status_retries=pick("bulkStatusRetries", "bulk_status_retries"),
            bulk_status_interval=pick("bulkStatusInterval", "bulk_status_interval"),
            calculate_flags=pick("calculateFlags", "calculate_flags"),
            clear_data_folder=bool(pick("clearDataFolder", "clear_data_folder")),
            clear_ref_folder=bool(pick("clearRefFolder", "clear_ref_folder")),
            path=path,
        )


def load_plan(file_path: str) -> MigrationPlan:
    """
    Load a migration plan from a Python module.

    The module exposes ``steps`` and optional plan-level attributes at module
    level (see MigrationPlan.from_dict for accepted names).
    """
    if not os.path.exists(file_path):
        raise PlanLoadError(f"Migration plan not found: {file_path}")

    module_name = "orgmigrate_plan_" + Path(file_path).stem
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise PlanLoadError(f"Cannot import plan module {file_path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise PlanLoadError(f"Failed to execute migration plan {file_path}: {e}") from e

    data = {k: v for k, v in vars(module).items() if not k.startswith("_")}
    plan = MigrationPlan.from_dict(data, path=str(file_path))
    logger.info(f"Loaded migration plan with {len(plan.steps)} steps from {file_path}")
    return plan
