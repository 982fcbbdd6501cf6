"""Bulk job submission and status polling."""

import logging
import time
from typing import Callable, Optional

from ..clients.base import OrgClient
from ..errors import PollError, PollTimeout
from ..models.plan import DEFAULT_BULK_STATUS_INTERVAL, DEFAULT_BULK_STATUS_RETRIES
from ..models.record import BulkJobHandle, JobKind, JobStatus

logger = logging.getLogger(__name__)


class BulkJobPoller:
    """
    Submits bulk jobs and waits for them to reach a terminal state.

    A job moves Submitted -> Polling -> Completed | Failed | TimedOut. The
    poller checks at most ``retries`` times and sleeps ``interval`` seconds
    between checks.
    """

    def __init__(
        self,
        client: OrgClient,
        retries: int = DEFAULT_BULK_STATUS_RETRIES,
        interval: float = DEFAULT_BULK_STATUS_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the poller.

        Args:
            client: Org client that owns the bulk API
            retries: Maximum number of status checks
            interval: Seconds to wait between checks
            sleep: Wait function, injectable for tests
            clock: Monotonic clock, injectable for tests
        """
        self.client = client
        self.retries = max(1, int(retries))
        self.interval = float(interval)
        self.sleep = sleep
        self.clock = clock

    @property
    def timeout(self) -> float:
        return self.retries * self.interval

    def submit(
        self,
        kind: JobKind,
        csv_path: str,
        sobject_type: str,
        target: str,
        external_id: Optional[str] = None
    ) -> Optional[BulkJobHandle]:
        """Submit a bulk job. Returns None when the org returned no handle."""
        logger.info(f"Submitting bulk {kind.value} of {csv_path} to {sobject_type} in {target}")
        handle = self.client.submit_bulk_job(kind, csv_path, sobject_type, target, external_id)
        if handle is not None:
            logger.info(f"Bulk job {handle.job_id} batch {handle.batch_id} submitted")
        return handle

    def poll(self, handle: BulkJobHandle, target: str) -> JobStatus:
        """
        Wait for a batch to finish.

        Returns:
            Final status once the batch is Completed; it may still report
            failed records

        Raises:
            PollError: the batch ended Failed or Not Processed
            PollTimeout: no terminal state within the check budget
        """
        started = self.clock()

        for attempt in range(1, self.retries + 1):
            status = self.client.poll_bulk_job(handle, target)

            if status.is_completed:
                logger.info(
                    f"Bulk job {handle.job_id} completed: "
                    f"{status.number_records_processed} processed, "
                    f"{status.number_records_failed} failed"
                )
                return status

            if status.is_failed:
                raise PollError(
                    f"Bulk job {handle.job_id} ended in state {status.state}: {status.state_message}",
                    payload=status.raw,
                )

            logger.info(f"Bulk job {handle.job_id} is {status.state} (check {attempt}/{self.retries})")
            logger.debug(f"Batch status: {status.raw}")

            if attempt == self.retries:
                break

            if self.clock() - started > self.timeout:
                break
            self.sleep(self.interval)

        raise PollTimeout(
            f"Bulk job {handle.job_id} did not finish after {self.retries} checks "
            f"({self.timeout:.0f}s); check its status in the org",
            payload={"job": handle.to_dict()},
        )
