"""Migration orchestrator - runs a migration plan step by step."""

import json
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .clients.base import OrgClient
from .config import MigrateSettings
from .confirm import Confirm
from .errors import (
    InteractiveAbort,
    MigrationError,
    PlanLoadError,
    ReferenceNotFound,
    SubmissionError,
)
from .loaders.artifacts import ArtifactStore
from .loaders.bulk_poller import BulkJobPoller
from .models.migration import MigrationRun, RunStatus, StepResult, StepStatus
from .models.plan import MigrationPlan, PlanDefaults, PlanOverrides, Step, StepOverrides
from .models.record import JobKind
from .services.context import ExecutionContext, TransformContext
from .services.query_expander import QueryExpander
from .services.references import ReferenceResolver
from .services.sanitizer import handle_null_values_all, prep_for_csv_all
from .services.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

CHECK_ORG_QUESTION = "Check status in your org. Continue?"
CONTINUE_QUESTION = "Continue?"
NO_DATA_QUESTION = "No data generated. Continue?"


class MigrationOrchestrator:
    """
    Runs the steps of a migration plan in order.

    Each step moves BOUND -> QUERYING -> TRANSFORMING -> MATERIALIZING ->
    LOADING/DELETING -> POLLING -> COMPLETED, or ends early as SKIPPED,
    ABORTED or CONTINUED_ON_ERROR.

    Failures go through a single policy: with ignore_error the step is
    marked CONTINUED_ON_ERROR; otherwise ``confirm`` decides between
    continuing and aborting the run. A missing reference aborts the run.
    """

    def __init__(
        self,
        plan: MigrationPlan,
        client: OrgClient,
        confirm: Confirm,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        settings: Optional[MigrateSettings] = None,
        only_step: Optional[str] = None,
        schema_cache_dir: Optional[str] = None,
        report_dir: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the orchestrator.

        Args:
            plan: Loaded migration plan
            client: Client for the source and destination orgs
            confirm: Decides whether to continue after a failure
            source: Source org alias, overriding step and plan
            destination: Destination org alias, overriding step and plan
            settings: Project settings supplying plan-default fallbacks
            only_step: Run only the step with this name
            schema_cache_dir: Directory of cached object describes
            report_dir: Where to write the JSON run report (no report when None)
            sleep: Wait function used between bulk status checks
            clock: Monotonic clock used by the bulk poller
        """
        self.plan = plan
        self.client = client
        self.confirm = confirm
        self.source = source
        self.destination = destination
        self.settings = settings or MigrateSettings()
        self.only_step = only_step
        self.report_dir = Path(report_dir) if report_dir else None
        self.sleep = sleep
        self.clock = clock

        self.schema_cache = SchemaCache(client, schema_cache_dir)
        self.expander = QueryExpander(self.schema_cache)

        # Runtime state
        self.run: Optional[MigrationRun] = None
        self.defaults: Optional[PlanDefaults] = None
        self.store: Optional[ArtifactStore] = None
        self.resolver: Optional[ReferenceResolver] = None
        self.poller: Optional[BulkJobPoller] = None

    def _build_defaults(self) -> PlanDefaults:
        return self.plan.defaults(
            source=self.source,
            destination=self.destination,
            ignore_error=self.settings.ignore_error,
            bulk_status_retries=self.settings.bulk_status_retries,
            bulk_status_interval=self.settings.bulk_status_interval,
        )

    def _apply_plan_flags(self) -> None:
        """Run the plan-level calculate_flags hook once and apply its patch."""
        hook = self.plan.calculate_flags
        if hook is None:
            return

        try:
            overrides = hook(self.defaults)
        except Exception as e:
            raise PlanLoadError(f"Plan calculate_flags failed: {e}") from e

        if overrides is not None and not isinstance(overrides, PlanOverrides):
            raise PlanLoadError(
                f"Plan calculate_flags must return PlanOverrides, got {type(overrides).__name__}"
            )

        self.plan = self.plan.apply(overrides)
        self.defaults = self._build_defaults()
        logger.debug(f"Plan flags applied: {overrides}")

    def run_migration(self) -> MigrationRun:
        """
        Run the migration plan.

        Returns:
            MigrationRun with per-step results
        """
        self.defaults = self._build_defaults()
        self._apply_plan_flags()

        self.store = ArtifactStore(self.defaults.base_dir)
        self.resolver = ReferenceResolver(self.store)
        self.poller = BulkJobPoller(
            self.client,
            retries=self.defaults.bulk_status_retries,
            interval=self.defaults.bulk_status_interval,
            sleep=self.sleep,
            clock=self.clock,
        )

        self.run = MigrationRun(
            plan_path=self.plan.path,
            source=self.defaults.source,
            destination=self.defaults.destination,
        )
        self.run.started_at = datetime.utcnow()
        self.run.status = RunStatus.RUNNING

        logger.info("=== MIGRATION STARTED ===")
        logger.info(f"Source: {self.defaults.source or '-'}, destination: {self.defaults.destination or '-'}")
        if self.plan.clear_data_folder or self.plan.clear_ref_folder:
            logger.debug("clearDataFolder/clearRefFolder are set but folders are never cleared")

        try:
            for index in self.plan.step_range():
                step = self.plan.steps[index]
                if not step.name:
                    continue
                if self.only_step and step.name != self.only_step:
                    continue

                if not self._execute_step(index, step):
                    break

            if self.run.status != RunStatus.ABORTED:
                self.run.status = RunStatus.COMPLETED
                logger.info("=== MIGRATION COMPLETED ===")
            else:
                logger.info(f"=== MIGRATION ABORTED AT {self.run.aborted_at_step} ===")

        finally:
            self.run.completed_at = datetime.utcnow()
            self.run.update_totals()
            if self.report_dir:
                self._save_report()

        return self.run

    def _execute_step(self, index: int, step: Step) -> bool:
        """
        Execute one step.

        Returns:
            True to move on to the next step, False to stop the run
        """
        result = self.run.add_step(index, step.name, step.kind.value)
        result.started_at = datetime.utcnow()
        logger.info(f"{index} - Step {step.name} - Started")

        try:
            return self._process_step(step, result)

        except ReferenceNotFound as e:
            logger.error(f"Step {step.name} [references]: {e}")
            result.add_error("references", str(e), {"name": e.name, "path": e.path})
            self._abort(result, str(e))
            return False

        except MigrationError as e:
            stage = result.status.value
            question = CHECK_ORG_QUESTION if result.status in (
                StepStatus.LOADING, StepStatus.DELETING, StepStatus.POLLING
            ) else CONTINUE_QUESTION
            return self._handle_failure(result, stage, e, question)

        finally:
            result.completed_at = datetime.utcnow()
            logger.info(f"{index} - Step {step.name} - {result.status.value}")

    def _process_step(self, step: Step, result: StepResult) -> bool:
        overrides = self._call(
            "calculate_flags", step.calculate_flags, self.defaults
        ) if step.calculate_flags else None
        if overrides is not None and not isinstance(overrides, StepOverrides):
            raise MigrationError(
                f"calculate_flags of step {step.name} must return StepOverrides, "
                f"got {type(overrides).__name__}"
            )
        step = step.apply(overrides)
        result.kind = step.kind.value

        if step.skip:
            result.status = StepStatus.SKIPPED
            return True

        context = ExecutionContext(
            step=step.name,
            defaults=self.defaults,
            utils=TransformContext(),
            references=self.resolver.resolve(step.references),
            values=dict(overrides.values) if overrides else {},
        )

        source = self._source_for(step)
        destination = self._destination_for(step)

        if step.apex_code_file and destination:
            return self._run_side_effect(step, result, destination)

        records: Optional[List[Dict[str, Any]]] = None

        if step.generate_data and not step.query:
            records = self._generate(step, result, context)
            if records is None:
                return False

        if step.query and (step.query_destination or step.is_delete or source):
            target = destination if (step.query_destination or step.is_delete) else source
            records = self._query(step, result, context, target)

        if step.reference_only:
            result.status = StepStatus.COMPLETED
            return True

        if not destination:
            logger.info(f"No destination configured, step {step.name} has nothing to load")
            result.status = StepStatus.COMPLETED
            return True

        if records is not None and not records:
            result.warnings.append("No records to load")
            logger.warning(f"Step {step.name} produced no records, skipping load")
            result.status = StepStatus.COMPLETED
            return True

        return self._load(step, result, destination)

    def _source_for(self, step: Step) -> Optional[str]:
        return self.source or step.source or self.plan.source

    def _destination_for(self, step: Step) -> Optional[str]:
        return self.destination or step.destination or self.plan.destination

    def _call(self, stage: str, fn: Callable, *args) -> Any:
        """Call a plan-supplied function, reporting its errors as stage failures."""
        try:
            return fn(*args)
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(f"{stage} failed: {e}", payload={"type": type(e).__name__}) from e

    def _check_records(self, stage: str, output: Any) -> List[Dict[str, Any]]:
        """Materialize what a plan function produced and make sure every item is a record."""
        records = self._call(stage, list, output)
        for record in records:
            if not isinstance(record, dict):
                raise MigrationError(
                    f"{stage} failed: expected dict records, got {type(record).__name__}",
                    payload={"type": type(record).__name__},
                )
        return records

    def _resolve_script(self, script: str) -> Optional[Path]:
        """Look the script up relative to the working directory, then the plan directory."""
        candidates = [Path(os.getcwd()) / script, Path(self.defaults.base_dir) / script]
        for path in candidates:
            if path.exists():
                return path
            logger.info(f"{path} does not exist")
        return None

    def _run_side_effect(self, step: Step, result: StepResult, destination: str) -> bool:
        script = self._resolve_script(step.apex_code_file)
        if script is None:
            logger.warning("Script path must be relative to the working directory or the plan file")
            result.warnings.append(f"Script {step.apex_code_file} not found")
            result.status = StepStatus.SKIPPED
            return True

        result.status = StepStatus.LOADING
        logger.info(f"Executing {script} in {destination}")
        output = self.client.run_side_effect(str(script), destination)
        logger.debug(f"Execution results: {output}")
        if output and output.get("logs"):
            logger.info(output["logs"])

        result.artifacts.append(str(script))
        result.status = StepStatus.COMPLETED
        return True

    def _generate(
        self,
        step: Step,
        result: StepResult,
        context: ExecutionContext
    ) -> Optional[List[Dict[str, Any]]]:
        """Generate records and write the load artifact. None means the run was aborted."""
        result.status = StepStatus.TRANSFORMING
        output = self._call("generate_data", step.generate_data, context)
        records = self._check_records("generate_data", output or [])
        result.records_queried = len(records)

        if not records:
            if not self.confirm(NO_DATA_QUESTION):
                result.add_error("generate", "No data generated")
                self._abort(result, str(InteractiveAbort("No data generated")))
                return None

        result.status = StepStatus.MATERIALIZING
        records = prep_for_csv_all(records)
        path = self.store.write_csv(step.name, records)
        result.artifacts.append(str(path))
        result.records_written = len(records)
        logger.info(f"Generated {len(records)} records for {step.name}")
        return records

    def _query(
        self,
        step: Step,
        result: StepResult,
        context: ExecutionContext,
        target: str
    ) -> List[Dict[str, Any]]:
        """Query, transform and materialize a step's records."""
        result.status = StepStatus.QUERYING
        logger.info(f"Step {step.name} querying data from {target}")

        query = self.expander.expand(step.query, target)
        logger.debug(f"Query: {query}")

        query_result = self.client.run_query(query, target)
        result.records_queried = len(query_result.records)
        logger.debug(f"Before transform: {query_result.records}")

        result.status = StepStatus.TRANSFORMING
        records = handle_null_values_all(query_result.records)

        if step.transform:
            transformed = []
            for record in records:
                output = self._call("transform", step.transform, record, context)
                if output is None:
                    output = record
                elif not isinstance(output, dict):
                    raise MigrationError(
                        f"transform failed: expected a dict record, got {type(output).__name__}",
                        payload={"type": type(output).__name__},
                    )
                transformed.append(output)
            records = transformed

        if step.transform_all:
            output = self._call("transform_all", step.transform_all, records, context)
            if output is not None:
                records = self._check_records("transform_all", output)

        logger.debug(f"After transform: {records}")

        result.status = StepStatus.MATERIALIZING
        if step.writes_reference:
            path = self.store.write_json(step.name, records)
            result.artifacts.append(str(path))

        prepared = prep_for_csv_all(records)
        if not step.reference_only:
            path = self.store.write_csv(step.name, prepared)
            result.artifacts.append(str(path))
            result.records_written = len(prepared)

        logger.info(f"Querying {step.name} completed: {len(records)} records")
        return prepared

    def _load(self, step: Step, result: StepResult, destination: str) -> bool:
        """Submit the step's CSV as a bulk job and wait for it."""
        kind = JobKind.DELETE if step.is_delete else JobKind.UPSERT
        result.status = StepStatus.DELETING if step.is_delete else StepStatus.LOADING

        csv_path = self.store.csv_path(step.name)
        if not csv_path.exists():
            raise SubmissionError(f"No data file for step {step.name} at {csv_path}")
        if not step.sobject_type:
            raise SubmissionError(f"Step {step.name} has no sObjectType to load into")

        handle = self.poller.submit(
            kind,
            str(csv_path),
            step.sobject_type,
            destination,
            None if step.is_delete else step.external_id,
        )
        if handle is None:
            raise SubmissionError(f"No bulk job returned for step {step.name}")
        result.job = handle.to_dict()

        result.status = StepStatus.POLLING
        status = self.poller.poll(handle, destination)
        result.records_failed = status.number_records_failed

        if status.has_record_failures:
            logger.error(
                f"Some records of step {step.name} did not get loaded: "
                f"{status.number_records_failed} failed"
            )
            logger.debug(f"Batch status: {status.raw}")
            return self._handle_failure(
                result,
                "records",
                MigrationError(f"{status.number_records_failed} records failed", payload=status.raw),
                CONTINUE_QUESTION,
            )

        result.status = StepStatus.COMPLETED
        return True

    def _handle_failure(
        self,
        result: StepResult,
        stage: str,
        error: MigrationError,
        question: str
    ) -> bool:
        """
        Apply the failure policy to a step.

        Returns:
            True when the run continues, False when it is aborted
        """
        logger.error(f"Step {result.name} failed [{stage}]: {error}")
        if error.payload is not None:
            logger.error(f"Payload: {error.payload}")
        result.add_error(stage, str(error), error.payload)

        if self.defaults.ignore_error:
            result.status = StepStatus.CONTINUED_ON_ERROR
            return True

        if self.confirm(question):
            result.status = StepStatus.CONTINUED_ON_ERROR
            return True

        self._abort(result, str(InteractiveAbort(f"Aborted after {stage} failure: {error}")))
        return False

    def _abort(self, result: StepResult, reason: str) -> None:
        result.status = StepStatus.ABORTED
        self.run.status = RunStatus.ABORTED
        self.run.aborted_at_step = result.name
        self.run.abort_reason = reason

    def _save_report(self):
        """Save the migration report."""
        self.report_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.report_dir / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
        with open(filepath, 'w') as f:
            json.dump(self.run.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
