"""Tests for the step orchestrator."""

import json

import pytest

from conftest import FakeOrgClient, RecordingConfirm
from orgmigrate.errors import QueryError, SubmissionError
from orgmigrate.models.migration import RunStatus, StepStatus
from orgmigrate.models.plan import MigrationPlan, PlanOverrides, Step, StepOverrides
from orgmigrate.models.record import JobKind, JobStatus
from orgmigrate.orchestrator import (
    CHECK_ORG_QUESTION,
    CONTINUE_QUESTION,
    NO_DATA_QUESTION,
    MigrationOrchestrator,
)


ACCOUNTS = [
    {"attributes": {"type": "Account"}, "Id": "001A", "Name": "Acme"},
    {"attributes": {"type": "Account"}, "Id": "001B", "Name": "Globex"},
]
CONTACTS = [
    {"attributes": {"type": "Contact"}, "Id": "003A", "LastName": "Lovelace", "AccountId": "001A",
     "Title": "null"},
    {"attributes": {"type": "Contact"}, "Id": "003B", "LastName": "Hopper", "AccountId": "001B",
     "Title": 'Says "hi"'},
]


def make_plan(plan_dir, steps, **kwargs):
    kwargs.setdefault("source", "src")
    kwargs.setdefault("destination", "dst")
    return MigrationPlan(steps=steps, path=str(plan_dir / "migration_plan.py"), **kwargs)


def make_orchestrator(plan, client, confirm=None, fake_clock=None, **kwargs):
    if fake_clock is not None:
        kwargs.setdefault("sleep", fake_clock.sleep)
        kwargs.setdefault("clock", fake_clock)
    else:
        kwargs.setdefault("sleep", lambda seconds: None)
    return MigrationOrchestrator(plan, client, confirm or RecordingConfirm(True), **kwargs)


@pytest.fixture
def client():
    return FakeOrgClient(records={"Account": ACCOUNTS, "Contact": CONTACTS})


class TestReferences:

    def test_reference_only_step_feeds_later_step(self, plan_dir, client):
        seen = []

        def link_account(record, ctx):
            seen.append(len(ctx.references["A"]))
            account = ctx.find_reference("A", "Id", record["AccountId"])
            record["Account"] = {"Name": account["Name"]}
            del record["AccountId"]
            del record["Id"]

        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id, Name FROM Account", reference_only=True),
            Step(
                name="B",
                query="SELECT Id, LastName, AccountId FROM Contact",
                references=("A",),
                transform=link_account,
                sobject_type="Contact",
                external_id="LastName",
            ),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert run.status == RunStatus.COMPLETED
        reference = json.loads((plan_dir / "reference" / "A.json").read_text())
        assert [r["Id"] for r in reference] == ["001A", "001B"]
        assert not (plan_dir / "data" / "A.csv").exists()
        assert seen == [2, 2]

        csv = (plan_dir / "data" / "B.csv").read_text()
        assert csv.split("\n")[0] == '"LastName","Account.Name","Title"'
        assert '"Hopper","Globex","Says ""hi"""' in csv

        assert client.calls_of("submit") == [("submit", JobKind.UPSERT, "Contact", "dst", "LastName")]
        assert [s.status for s in run.steps] == [StepStatus.COMPLETED, StepStatus.COMPLETED]
        assert run.steps[1].job == {"jobId": "7501", "batchId": "7511"}

    def test_reference_only_never_loads(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", reference_only=True, sobject_type="Account"),
        ])

        make_orchestrator(plan, client).run_migration()

        assert client.calls_of("submit") == []

    def test_is_reference_writes_both_artifacts(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id, Name FROM Account", is_reference=True, sobject_type="Account"),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert (plan_dir / "reference" / "A.json").exists()
        assert (plan_dir / "data" / "A.csv").exists()
        assert len(run.steps[0].artifacts) == 2

    def test_missing_reference_aborts_without_confirm(self, plan_dir, client):
        confirm = RecordingConfirm(True)
        plan = make_plan(plan_dir, [
            Step(name="B", query="SELECT Id FROM Contact", references=("A",), sobject_type="Contact"),
            Step(name="C", query="SELECT Id FROM Account", sobject_type="Account"),
        ], ignore_error=True)

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.status == RunStatus.ABORTED
        assert run.aborted_at_step == "B"
        assert run.steps[0].status == StepStatus.ABORTED
        assert run.steps[0].errors[0]["stage"] == "references"
        assert len(run.steps) == 1
        assert confirm.questions == []
        assert client.calls == []


class TestSkip:

    def test_skip_step_has_no_effect(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT * FROM Account", skip=True, references=("Missing",),
                 sobject_type="Account"),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert run.steps[0].status == StepStatus.SKIPPED
        assert client.calls == []
        assert list(plan_dir.iterdir()) == []

    def test_skip_from_calculate_flags(self, plan_dir, client):
        hook_calls = []

        def flags(defaults):
            hook_calls.append(defaults.destination)
            return StepOverrides(skip=defaults.destination == "dst")

        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", calculate_flags=flags),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert run.steps[0].status == StepStatus.SKIPPED
        assert hook_calls == ["dst"]
        assert client.calls == []

    def test_unnamed_steps_are_ignored(self, plan_dir, client):
        plan = make_plan(plan_dir, [Step(name="", query="SELECT Id FROM Account")])

        run = make_orchestrator(plan, client).run_migration()

        assert run.steps == []
        assert client.calls == []

    def test_only_step(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", reference_only=True),
            Step(name="B", query="SELECT Id FROM Contact", reference_only=True),
        ])

        run = make_orchestrator(plan, client, only_step="B").run_migration()

        assert [s.name for s in run.steps] == ["B"]

    def test_step_window(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name=name, query="SELECT Id FROM Account", reference_only=True)
            for name in ("A", "B", "C", "D")
        ], start_index=1, stop_index=3)

        run = make_orchestrator(plan, client).run_migration()

        assert [s.name for s in run.steps] == ["B", "C"]
        assert [s.index for s in run.steps] == [1, 2]


class TestFailurePolicy:

    def two_steps(self, plan_dir, **kwargs):
        return make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", sobject_type="Account"),
            Step(name="B", query="SELECT Id FROM Contact", reference_only=True),
        ], **kwargs)

    def test_ignore_error_continues_without_confirm(self, plan_dir, client):
        client.query_error = QueryError("MALFORMED_QUERY", payload=[{"errorCode": "MALFORMED_QUERY"}])
        confirm = RecordingConfirm(False)

        run = make_orchestrator(self.two_steps(plan_dir, ignore_error=True), client, confirm).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert [s.status for s in run.steps] == [StepStatus.CONTINUED_ON_ERROR, StepStatus.CONTINUED_ON_ERROR]
        assert run.steps[0].errors[0]["stage"] == "querying"
        assert run.steps[0].errors[0]["payload"] == [{"errorCode": "MALFORMED_QUERY"}]
        assert confirm.questions == []

    def test_confirm_yes_continues(self, plan_dir, client):
        client.query_error = QueryError("MALFORMED_QUERY")
        confirm = RecordingConfirm(True)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert confirm.questions == [CONTINUE_QUESTION, CONTINUE_QUESTION]

    def test_confirm_no_aborts(self, plan_dir, client):
        client.query_error = QueryError("MALFORMED_QUERY")
        confirm = RecordingConfirm(False)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert run.status == RunStatus.ABORTED
        assert run.aborted_at_step == "A"
        assert [s.name for s in run.steps] == ["A"]
        assert run.steps[0].status == StepStatus.ABORTED

    def test_submission_error_asks_to_check_org(self, plan_dir, client):
        client.submit_error = SubmissionError("INVALID_OPERATION", payload="<error/>")
        confirm = RecordingConfirm(False)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert confirm.questions == [CHECK_ORG_QUESTION]
        assert run.steps[0].errors[0]["stage"] == "loading"
        assert run.aborted

    def test_missing_handle_goes_to_policy(self, plan_dir, client):
        client.return_no_handle = True
        confirm = RecordingConfirm(True)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert confirm.questions == [CHECK_ORG_QUESTION]
        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert client.calls_of("poll") == []

    def test_poll_failure_asks_to_check_org(self, plan_dir, client):
        client.statuses = [JobStatus(state="Failed", state_message="InvalidBatch")]
        confirm = RecordingConfirm(True)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert confirm.questions == [CHECK_ORG_QUESTION]
        assert run.steps[0].errors[0]["stage"] == "polling"

    def test_poll_timeout(self, plan_dir, client, fake_clock):
        client.statuses = [JobStatus(state="InProgress") for _ in range(5)]
        confirm = RecordingConfirm(True)
        plan = self.two_steps(plan_dir, bulk_status_retries=2, bulk_status_interval=3)

        run = make_orchestrator(plan, client, confirm, fake_clock).run_migration()

        assert len(client.calls_of("poll")) == 2
        assert fake_clock.sleeps == [3.0]
        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR

    def test_partial_failure(self, plan_dir, client):
        client.statuses = [JobStatus(state="Completed", number_records_processed=2, number_records_failed=1)]
        confirm = RecordingConfirm(False)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm).run_migration()

        assert confirm.questions == [CONTINUE_QUESTION]
        assert run.steps[0].records_failed == 1
        assert run.steps[0].errors[0]["stage"] == "records"
        assert run.aborted

    def test_partial_failure_with_ignore_error(self, plan_dir, client):
        client.statuses = [JobStatus(state="Completed", number_records_failed=1)]

        run = make_orchestrator(self.two_steps(plan_dir, ignore_error=True), client).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert run.total_records_failed == 1

    def test_transform_error_is_a_stage_failure(self, plan_dir, client):
        def broken(record, ctx):
            raise KeyError("Missing__c")

        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", transform=broken, sobject_type="Account"),
        ])
        confirm = RecordingConfirm(True)

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert run.steps[0].errors[0]["stage"] == "transforming"
        assert run.steps[0].errors[0]["payload"] == {"type": "KeyError"}
        assert client.calls_of("submit") == []

    @pytest.mark.parametrize("step_args", [
        {"query": "SELECT Id, Name FROM Account", "transform": lambda record, ctx: record["Name"]},
        {"query": "SELECT Id, Name FROM Account", "transform_all": lambda records, ctx: [r["Name"] for r in records]},
        {"query": "SELECT Id, Name FROM Account", "transform_all": lambda records, ctx: 42},
        {"generate_data": lambda ctx: ["not", "records"]},
        {"generate_data": lambda ctx: 7},
    ])
    def test_bad_plan_output_goes_to_policy(self, plan_dir, client, step_args):
        plan = make_plan(plan_dir, [
            Step(name="A", sobject_type="Account", **step_args),
            Step(name="B", query="SELECT Id FROM Contact", reference_only=True),
        ], ignore_error=True)
        confirm = RecordingConfirm(False)

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert [s.status for s in run.steps] == [StepStatus.CONTINUED_ON_ERROR, StepStatus.COMPLETED]
        assert run.steps[0].errors[0]["stage"] == "transforming"
        assert not (plan_dir / "data" / "A.csv").exists()
        assert client.calls_of("submit") == []
        assert confirm.questions == []

    def test_settings_ignore_error_used_when_plan_is_silent(self, plan_dir, client):
        from orgmigrate.config import MigrateSettings

        client.query_error = QueryError("MALFORMED_QUERY")
        confirm = RecordingConfirm(False)
        settings = MigrateSettings(ignoreError=True)

        run = make_orchestrator(self.two_steps(plan_dir), client, confirm, settings=settings).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert confirm.questions == []


class TestGenerate:

    def test_generated_records_are_loaded(self, plan_dir, client):
        def people(ctx):
            return [{"LastName": ctx.utils.random.last_name, "Note": None} for _ in range(ctx.values["count"])]

        plan = make_plan(plan_dir, [
            Step(
                name="People",
                generate_data=people,
                sobject_type="Contact",
                calculate_flags=lambda defaults: StepOverrides(values={"count": 3}),
            ),
        ])

        run = make_orchestrator(plan, client).run_migration()

        lines = (plan_dir / "data" / "People.csv").read_text().split("\n")
        assert lines[0] == '"LastName"'
        assert len(lines) == 4
        assert run.steps[0].records_written == 3
        assert client.calls_of("query") == []
        assert client.calls_of("submit") == [("submit", JobKind.UPSERT, "Contact", "dst", None)]

    def test_no_data_declined_aborts(self, plan_dir, client):
        confirm = RecordingConfirm(False)
        plan = make_plan(plan_dir, [
            Step(name="Empty", generate_data=lambda ctx: [], sobject_type="Contact"),
            Step(name="Next", query="SELECT Id FROM Account", reference_only=True),
        ])

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert confirm.questions == [NO_DATA_QUESTION]
        assert run.status == RunStatus.ABORTED
        assert [s.name for s in run.steps] == ["Empty"]
        assert client.calls == []

    def test_no_data_accepted_skips_load(self, plan_dir, client):
        confirm = RecordingConfirm(True)
        plan = make_plan(plan_dir, [
            Step(name="Empty", generate_data=lambda ctx: [], sobject_type="Contact"),
        ])

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.status == RunStatus.COMPLETED
        assert run.steps[0].warnings == ["No records to load"]
        assert client.calls_of("submit") == []


class TestSideEffect:

    def test_runs_script_from_plan_dir(self, plan_dir, client):
        script = plan_dir / "scripts" / "orgmigrate_touch_accounts.apex"
        script.parent.mkdir()
        script.write_text("update [SELECT Id FROM Account];")
        plan = make_plan(plan_dir, [
            Step(name="Touch", apex_code_file="scripts/orgmigrate_touch_accounts.apex"),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert client.calls_of("side_effect") == [("side_effect", str(script), "dst")]
        assert run.steps[0].status == StepStatus.COMPLETED
        assert run.steps[0].kind == "side_effect"

    def test_missing_script_skips(self, plan_dir, client):
        plan = make_plan(plan_dir, [Step(name="Touch", apex_code_file="scripts/orgmigrate_missing.apex")])

        run = make_orchestrator(plan, client).run_migration()

        assert run.steps[0].status == StepStatus.SKIPPED
        assert client.calls == []


class TestTargets:

    def test_delete_queries_destination(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="Purge", query="SELECT Id FROM Contact", is_delete=True,
                 sobject_type="Contact", external_id="Email"),
        ])

        run = make_orchestrator(plan, client).run_migration()

        assert client.calls_of("query")[0][2] == "dst"
        assert client.calls_of("submit") == [("submit", JobKind.DELETE, "Contact", "dst", None)]
        assert run.steps[0].kind == "delete"

    def test_query_destination(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", query_destination=True, reference_only=True),
        ])

        make_orchestrator(plan, client).run_migration()

        assert client.calls_of("query")[0][2] == "dst"

    def test_cli_overrides_step_overrides_plan(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", source="step-src", destination="step-dst",
                 sobject_type="Account"),
            Step(name="B", query="SELECT Id FROM Contact", sobject_type="Contact"),
        ])

        make_orchestrator(plan, client, destination="cli-dst").run_migration()

        queries = client.calls_of("query")
        assert queries[0][2] == "step-src"
        assert queries[1][2] == "src"
        assert {c[3] for c in client.calls_of("submit")} == {"cli-dst"}

    def test_no_source_loads_existing_csv(self, plan_dir, client):
        (plan_dir / "data").mkdir()
        (plan_dir / "data" / "Seed.csv").write_text('"Name"\n"Acme"')
        plan = make_plan(plan_dir, [
            Step(name="Seed", query="SELECT Name FROM Account", sobject_type="Account"),
        ], source=None)

        make_orchestrator(plan, client).run_migration()

        assert client.calls_of("query") == []
        assert client.submitted_csv["Account"] == '"Name"\n"Acme"'

    def test_no_destination_only_materializes(self, plan_dir, client):
        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id, Name FROM Account", sobject_type="Account"),
        ], destination=None)

        run = make_orchestrator(plan, client).run_migration()

        assert (plan_dir / "data" / "A.csv").exists()
        assert client.calls_of("submit") == []
        assert run.steps[0].status == StepStatus.COMPLETED

    def test_missing_data_file_is_a_submission_failure(self, plan_dir, client):
        confirm = RecordingConfirm(True)
        plan = make_plan(plan_dir, [Step(name="Nothing", sobject_type="Account")], source=None)

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert "No data file" in run.steps[0].errors[0]["error"]
        assert confirm.questions == [CHECK_ORG_QUESTION]

    def test_plan_flags_applied_once(self, plan_dir, client):
        calls = []

        def plan_flags(defaults):
            calls.append(defaults.destination)
            return PlanOverrides(destination="sandbox")

        plan = make_plan(plan_dir, [
            Step(name="A", query="SELECT Id FROM Account", sobject_type="Account"),
            Step(name="B", query="SELECT Id FROM Contact", sobject_type="Contact"),
        ], calculate_flags=plan_flags)

        run = make_orchestrator(plan, client).run_migration()

        assert calls == ["dst"]
        assert run.destination == "sandbox"
        assert {c[3] for c in client.calls_of("submit")} == {"sandbox"}


class TestWildcard:

    def test_wildcard_expanded_against_source(self, plan_dir):
        from orgmigrate.models.schema import SchemaField

        client = FakeOrgClient(
            records={"Account": ACCOUNTS},
            schemas={"Account": [
                SchemaField(name="Name", createable=True, updateable=True),
                SchemaField(name="Id", type="id"),
            ]},
        )
        plan = make_plan(plan_dir, [Step(name="A", query="SELECT * FROM Account", reference_only=True)])

        make_orchestrator(plan, client).run_migration()

        assert client.calls_of("describe") == [("describe", "Account", "src")]
        assert client.calls_of("query")[0][1] == "SELECT Name FROM Account"

    def test_schema_unavailable_goes_to_policy(self, plan_dir, client):
        confirm = RecordingConfirm(True)
        plan = make_plan(plan_dir, [Step(name="A", query="SELECT * FROM Account", reference_only=True)])

        run = make_orchestrator(plan, client, confirm).run_migration()

        assert run.steps[0].status == StepStatus.CONTINUED_ON_ERROR
        assert client.calls_of("query") == []


class TestReport:

    def test_report_written(self, plan_dir, client, tmp_path):
        plan = make_plan(plan_dir, [Step(name="A", query="SELECT Id FROM Account", reference_only=True)])
        report_dir = tmp_path / "logs"

        run = make_orchestrator(plan, client, report_dir=str(report_dir)).run_migration()

        reports = list(report_dir.glob("migration_report_*.json"))
        assert len(reports) == 1
        data = json.loads(reports[0].read_text())
        assert data["id"] == run.id
        assert data["status"] == "completed"
        assert data["steps"][0]["name"] == "A"
        assert data["total_records_queried"] == 2
