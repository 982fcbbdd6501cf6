import pytest
from typing import Any, Dict, List, Optional

from orgmigrate.clients.base import OrgClient
from orgmigrate.errors import SchemaUnavailable
from orgmigrate.models.record import BulkJobHandle, JobStatus, QueryResult
from orgmigrate.models.schema import SchemaField


class FakeOrgClient(OrgClient):
    """In-memory org client that records every call."""

    def __init__(
        self,
        records: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        schemas: Optional[Dict[str, List[SchemaField]]] = None,
        statuses: Optional[List[JobStatus]] = None,
    ):
        self.records = records or {}
        self.schemas = schemas or {}
        self.statuses = list(statuses or [])
        self.calls: List[tuple] = []
        self.query_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.return_no_handle = False
        self.side_effect_output: Dict[str, Any] = {"logs": "Execute Anonymous: ok"}
        self.submitted_csv: Dict[str, str] = {}

    def describe_schema(self, object_name, target):
        self.calls.append(("describe", object_name, target))
        if object_name not in self.schemas:
            raise SchemaUnavailable(f"No describe for {object_name}")
        return self.schemas[object_name]

    def run_query(self, query, target):
        self.calls.append(("query", query, target))
        if self.query_error:
            raise self.query_error
        for object_name, records in self.records.items():
            if f"FROM {object_name}" in query:
                return QueryResult(records=[dict(r) for r in records])
        return QueryResult(records=[])

    def submit_bulk_job(self, kind, csv_path, sobject_type, target, external_id=None):
        self.calls.append(("submit", kind, sobject_type, target, external_id))
        if self.submit_error:
            raise self.submit_error
        if self.return_no_handle:
            return None
        with open(csv_path, "r", encoding="utf-8") as f:
            self.submitted_csv[sobject_type] = f.read()
        count = len([c for c in self.calls if c[0] == "submit"])
        return BulkJobHandle(job_id=f"750{count}", batch_id=f"751{count}")

    def poll_bulk_job(self, handle, target):
        self.calls.append(("poll", handle.job_id, target))
        if self.statuses:
            return self.statuses.pop(0)
        return JobStatus(state="Completed", number_records_processed=1)

    def run_side_effect(self, script_path, target):
        self.calls.append(("side_effect", script_path, target))
        return self.side_effect_output

    def calls_of(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingConfirm:
    """Confirm callable returning a fixed answer and remembering the questions."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.questions: List[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


def make_fields(count: int) -> List[SchemaField]:
    """Field list cycling through insertable and non-insertable shapes."""
    fields = []
    for i in range(count):
        shape = i % 5
        if shape == 0:
            fields.append(SchemaField(name=f"Text{i}__c", createable=True, updateable=True))
        elif shape == 1:
            fields.append(SchemaField(name=f"Formula{i}__c", createable=False))
        elif shape == 2:
            fields.append(SchemaField(name=f"Lookup{i}__c", type="reference", createable=True, updateable=True))
        elif shape == 3:
            fields.append(SchemaField(name=f"Owner{i}__c", createable=True, defaulted_on_create=True))
        else:
            fields.append(SchemaField(
                name=f"Flag{i}__c", type="boolean", createable=True, updateable=True, defaulted_on_create=True
            ))
    return fields


@pytest.fixture
def fake_client():
    return FakeOrgClient()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def plan_dir(tmp_path):
    path = tmp_path / "plan"
    path.mkdir()
    return path
