"""REST and Bulk API client for orgs."""

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import OrgClient
from ..config import MigrateSettings, OrgSettings
from ..errors import (
    MigrationError,
    PollError,
    QueryError,
    SchemaUnavailable,
    SideEffectError,
    SubmissionError,
)
from ..models.record import BulkJobHandle, JobKind, JobStatus, QueryResult
from ..models.schema import ObjectSchema, SchemaField

logger = logging.getLogger(__name__)


class RestOrgClient(OrgClient):
    """
    Org client over the REST, Tooling and Bulk 1.0 HTTP APIs.

    Supports:
    - Object describe
    - Paginated queries (nextRecordsUrl)
    - Bulk upsert/delete jobs from CSV files
    - Anonymous script execution
    """

    def __init__(
        self,
        settings: Optional[MigrateSettings] = None,
        session: Optional[requests.Session] = None,
        retry_config: Optional[Dict[str, Any]] = None,
        timeout: float = 120.0
    ):
        """
        Initialize the REST client.

        Args:
            settings: Settings used to resolve org aliases
            session: Custom requests session
            retry_config: max_retries / backoff_factor for transient HTTP errors
            timeout: Per-request timeout in seconds
        """
        self.settings = settings or MigrateSettings()
        self.retry_config = retry_config or {"max_retries": 3, "backoff_factor": 2.0}
        self.timeout = timeout
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self.retry_config.get("max_retries", 3),
            backoff_factor=self.retry_config.get("backoff_factor", 2.0),
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    def _org(self, target: str) -> OrgSettings:
        org = self.settings.org(target)
        if not org.instance_url or not org.access_token:
            raise MigrationError(
                f"No instance URL or access token configured for org '{target}'"
            )
        return org

    def _data_url(self, org: OrgSettings, path: str) -> str:
        return f"{org.instance_url.rstrip('/')}/services/data/v{org.api_version}{path}"

    def _async_url(self, org: OrgSettings, path: str) -> str:
        return f"{org.instance_url.rstrip('/')}/services/async/{org.api_version}{path}"

    def _get_auth_headers(self, org: OrgSettings) -> Dict[str, str]:
        return {"Authorization": f"Bearer {org.access_token}"}

    def _get_bulk_headers(self, org: OrgSettings, content_type: str) -> Dict[str, str]:
        return {
            "X-SFDC-Session": org.access_token or "",
            "Content-Type": content_type,
        }

    @staticmethod
    def _payload(response: requests.Response) -> Any:
        """Parse a response body as JSON, falling back to flattened XML, then text."""
        try:
            return response.json()
        except ValueError:
            pass

        text = response.text or ""
        try:
            root = ET.fromstring(text)
        except ET.ParseError:
            return text

        result = {}
        for child in root:
            tag = child.tag.split("}")[-1]
            result[tag] = child.text
        return result

    @staticmethod
    def _json(response: requests.Response, error: Type[MigrationError], message: str) -> Any:
        """Decode a successful JSON response, raising `error` when the body is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            raise error(f"{message}: response is not JSON", payload=response.text) from e

    def _id_from(self, response: requests.Response) -> Optional[str]:
        payload = self._payload(response)
        if isinstance(payload, dict):
            return payload.get("id")
        return None

    def describe_schema(self, object_name: str, target: str) -> List[SchemaField]:
        """Describe an object through the sObject describe resource."""
        org = self._org(target)
        url = self._data_url(org, f"/sobjects/{object_name}/describe")

        try:
            response = self._session.get(url, headers=self._get_auth_headers(org), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise SchemaUnavailable(f"Describe of {object_name} failed: {e}") from e

        if not response.ok:
            raise SchemaUnavailable(
                f"Describe of {object_name} failed: HTTP {response.status_code}",
                payload=self._payload(response),
            )

        data = self._json(response, SchemaUnavailable, f"Describe of {object_name} failed")
        return ObjectSchema.from_payload(object_name, data).fields

    def run_query(self, query: str, target: str) -> QueryResult:
        """Run a query, following nextRecordsUrl until done."""
        org = self._org(target)
        headers = self._get_auth_headers(org)
        url = self._data_url(org, "/query")
        params: Optional[Dict[str, str]] = {"q": query}

        records: List[Dict[str, Any]] = []
        total_size = 0

        while url:
            try:
                response = self._session.get(url, headers=headers, params=params, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise QueryError(f"Query request failed: {e}") from e

            if not response.ok:
                raise QueryError(
                    f"Query failed: HTTP {response.status_code}",
                    payload=self._payload(response),
                )

            data = self._json(response, QueryError, "Query failed")
            if not isinstance(data, dict):
                raise QueryError("Query failed: unexpected response body", payload=data)
            records.extend(data.get("records") or [])
            total_size = data.get("totalSize", len(records))

            next_url = data.get("nextRecordsUrl")
            if data.get("done", True) or not next_url:
                break
            url = f"{org.instance_url.rstrip('/')}{next_url}"
            params = None

        logger.debug(f"Query returned {len(records)} of {total_size} records")
        return QueryResult(records=records, total_size=total_size, done=True)

    def submit_bulk_job(
        self,
        kind: JobKind,
        csv_path: str,
        sobject_type: str,
        target: str,
        external_id: Optional[str] = None
    ) -> Optional[BulkJobHandle]:
        """Create a bulk job, add the CSV as a single batch and close the job."""
        org = self._org(target)

        job_request: Dict[str, Any] = {
            "operation": kind.value,
            "object": sobject_type,
            "contentType": "CSV",
        }
        if kind == JobKind.UPSERT:
            job_request["externalIdFieldName"] = external_id or "Id"

        try:
            response = self._session.post(
                self._async_url(org, "/job"),
                headers=self._get_bulk_headers(org, "application/json"),
                json=job_request,
                timeout=self.timeout,
            )
            if not response.ok:
                raise SubmissionError(
                    f"Creating {kind.value} job for {sobject_type} failed: HTTP {response.status_code}",
                    payload=self._payload(response),
                )
            job_id = self._id_from(response)
            if not job_id:
                return None

            with open(csv_path, "rb") as f:
                response = self._session.post(
                    self._async_url(org, f"/job/{job_id}/batch"),
                    headers=self._get_bulk_headers(org, "text/csv"),
                    data=f.read(),
                    timeout=self.timeout,
                )
            if not response.ok:
                raise SubmissionError(
                    f"Adding batch to job {job_id} failed: HTTP {response.status_code}",
                    payload=self._payload(response),
                )
            batch_id = self._id_from(response)

            self._session.post(
                self._async_url(org, f"/job/{job_id}"),
                headers=self._get_bulk_headers(org, "application/json"),
                json={"state": "Closed"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"Bulk {kind.value} request failed: {e}") from e
        except OSError as e:
            raise SubmissionError(f"Cannot read load artifact {csv_path}: {e}") from e

        if not job_id or not batch_id:
            return None
        return BulkJobHandle(job_id=job_id, batch_id=batch_id)

    def poll_bulk_job(self, handle: BulkJobHandle, target: str) -> JobStatus:
        """Fetch the batch info for a bulk job handle."""
        org = self._org(target)
        url = self._async_url(org, f"/job/{handle.job_id}/batch/{handle.batch_id}")

        try:
            response = self._session.get(
                url,
                headers=self._get_bulk_headers(org, "application/json"),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PollError(f"Bulk status request failed: {e}") from e

        payload = self._payload(response)
        if not response.ok or not isinstance(payload, dict):
            raise PollError(
                f"Bulk status check failed: HTTP {response.status_code}",
                payload=payload,
            )

        return JobStatus.from_dict(payload)

    def run_side_effect(self, script_path: str, target: str) -> Dict[str, Any]:
        """Execute an anonymous script file through the Tooling API."""
        org = self._org(target)

        try:
            with open(script_path, "r", encoding="utf-8") as f:
                body = f.read()
        except OSError as e:
            raise SideEffectError(f"Cannot read script {script_path}: {e}") from e

        try:
            response = self._session.get(
                self._data_url(org, "/tooling/executeAnonymous/"),
                headers=self._get_auth_headers(org),
                params={"anonymousBody": body},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise SideEffectError(f"Script execution request failed: {e}") from e

        payload = self._payload(response)
        if not response.ok or not isinstance(payload, dict):
            raise SideEffectError(
                f"Script execution failed: HTTP {response.status_code}",
                payload=payload,
            )

        if not payload.get("compiled"):
            raise SideEffectError(
                f"Script did not compile at line {payload.get('line')}: {payload.get('compileProblem')}",
                payload=payload,
            )
        if not payload.get("success"):
            raise SideEffectError(
                f"Script failed: {payload.get('exceptionMessage')}",
                payload=payload,
            )

        return {
            "logs": f"Executed {script_path} successfully",
            "result": payload,
        }
