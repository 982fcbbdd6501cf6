"""Base client interface for remote orgs."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.record import BulkJobHandle, JobKind, JobStatus, QueryResult
from ..models.schema import SchemaField


class OrgClient(ABC):
    """
    Base class for org clients.

    Clients are the only place the migration engine touches the network.
    Each operation takes the org alias (``target``) it runs against and
    raises the matching error from ``orgmigrate.errors`` on failure.
    """

    @abstractmethod
    def describe_schema(self, object_name: str, target: str) -> List[SchemaField]:
        """
        Describe an object's fields.

        Raises:
            SchemaUnavailable: describe failed
        """
        pass

    @abstractmethod
    def run_query(self, query: str, target: str) -> QueryResult:
        """
        Run a query and return all matching records.

        Raises:
            QueryError: the org rejected the query
        """
        pass

    @abstractmethod
    def submit_bulk_job(
        self,
        kind: JobKind,
        csv_path: str,
        sobject_type: str,
        target: str,
        external_id: Optional[str] = None
    ) -> Optional[BulkJobHandle]:
        """
        Submit a bulk upsert or delete job for a CSV file.

        Returns:
            Handle of the submitted batch, or None when the org returned none

        Raises:
            SubmissionError: the job could not be created
        """
        pass

    @abstractmethod
    def poll_bulk_job(self, handle: BulkJobHandle, target: str) -> JobStatus:
        """
        Check the status of a bulk batch once.

        Raises:
            PollError: the status check failed
        """
        pass

    @abstractmethod
    def run_side_effect(self, script_path: str, target: str) -> Dict[str, Any]:
        """
        Execute an anonymous script file in the org.

        Returns:
            Dictionary with at least a ``logs`` key

        Raises:
            SideEffectError: compilation or execution failed
        """
        pass
