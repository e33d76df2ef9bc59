"""
Scan Registry - In-memory table of scan records and their state machine.

    pending -> running -> completed | failed | cancelled
    pending -> completed            (dry run)
    pending -> failed               (spawn failure)

Terminal states are never left. All reads and writes go through one lock, and
reads hand out snapshots, so a status query never sees a half-applied update.
"""

import threading
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import structlog

from ..errors import (
    CancellationError,
    CapacityError,
    ScanNotFoundError,
    ScanNotRunningError,
)
from ..nikto.output_parser import Finding
from ..nikto.validator import ScanRequest
from .models import (
    TRANSITIONS,
    ActiveScan,
    OutputChunk,
    ScanStatus,
    ScanSummary,
)
from .supervisor import ProcessExit, ProcessHandle


class ScanRegistry:
    """
    Owns every ActiveScan record and enforces the concurrency ceiling.

    Example:
        >>> registry = ScanRegistry(max_concurrent=3)
        >>> scan_id = registry.admit(request)
        >>> registry.mark_running(scan_id, pid=4242)
        >>> registry.get(scan_id).status
        <ScanStatus.RUNNING: 'running'>
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        max_history: int = 0,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize the registry.

        Args:
            max_concurrent: Running scan ceiling
            max_history: Finished scans kept before the oldest are evicted
                (0 keeps everything)
            id_factory: Generates unique scan ids
        """
        self.max_concurrent = max_concurrent
        self.max_history = max_history
        self._id_factory = id_factory

        self._scans: "OrderedDict[str, ActiveScan]" = OrderedDict()
        self._lock = threading.RLock()

        self.logger = structlog.get_logger(__name__)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admit(self, request: ScanRequest, count_toward_limit: bool = True) -> str:
        """
        Check the ceiling and reserve a pending record.

        Pending records that count toward the limit are reserved slots, so
        two admissions racing through the spawn step cannot both exceed it.

        Args:
            request: Validated scan request
            count_toward_limit: False for dry runs, which never run a process

        Returns:
            New scan id

        Raises:
            CapacityError: If the ceiling is reached
        """
        with self._lock:
            if count_toward_limit:
                active = self._count_active()
                if active >= self.max_concurrent:
                    self.logger.warning(
                        "scan_admission_rejected",
                        active=active,
                        max_concurrent=self.max_concurrent,
                    )
                    raise CapacityError(
                        f"Maximum concurrent scans ({self.max_concurrent}) reached"
                    )

            scan_id = self._id_factory()
            while scan_id in self._scans:
                scan_id = self._id_factory()

            self._scans[scan_id] = ActiveScan(
                scan_id=scan_id,
                request=request,
                counts_toward_limit=count_toward_limit,
            )
            self._evict_history()

        self.logger.info("scan_admitted", scan_id=scan_id, target=request.target)
        return scan_id

    def _count_active(self) -> int:
        return sum(
            1
            for scan in self._scans.values()
            if scan.status is ScanStatus.RUNNING
            or (scan.status is ScanStatus.PENDING and scan.counts_toward_limit)
        )

    def _evict_history(self):
        """Drop the oldest finished scans beyond max_history"""
        if not self.max_history:
            return

        finished = [
            scan_id
            for scan_id, scan in self._scans.items()
            if scan.status.is_terminal
        ]
        excess = len(finished) - self.max_history
        for scan_id in finished[:max(excess, 0)]:
            del self._scans[scan_id]
            self.logger.debug("scan_evicted", scan_id=scan_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, scan: ActiveScan, status: ScanStatus) -> bool:
        allowed = TRANSITIONS.get(scan.status, frozenset())
        if status not in allowed:
            self.logger.debug(
                "scan_transition_ignored",
                scan_id=scan.scan_id,
                current=scan.status.value,
                requested=status.value,
            )
            return False

        scan.status = status
        if status.is_terminal:
            scan.end_time = datetime.now()
        return True

    def mark_running(self, scan_id: str, pid: Optional[int]) -> bool:
        """Record the live process id and move pending -> running"""
        with self._lock:
            scan = self._scans.get(scan_id)
            if scan is None:
                return False
            if not self._transition(scan, ScanStatus.RUNNING):
                return False
            scan.pid = pid

        self.logger.info("scan_running", scan_id=scan_id, pid=pid)
        return True

    def mark_terminal(
        self,
        scan_id: str,
        status: ScanStatus,
        error: Optional[str] = None,
        report: Optional[str] = None,
    ) -> bool:
        """
        Move a scan into a terminal state.

        A missing record or a record that is already terminal is a silent
        no-op, since exit notifications can race with cancellation.

        Returns:
            True if the transition was applied
        """
        with self._lock:
            scan = self._scans.get(scan_id)
            if scan is None:
                self.logger.debug("scan_terminal_missing", scan_id=scan_id)
                return False
            if not self._transition(scan, status):
                return False
            if error is not None:
                scan.error = error
            if report is not None:
                scan.report = report
            self._evict_history()

        self.logger.info("scan_finished", scan_id=scan_id, status=status.value, error=error)
        return True

    def record_exit(self, scan_id: str, outcome: ProcessExit) -> bool:
        """Apply a process exit to its scan"""
        if outcome.succeeded:
            return self.mark_terminal(
                scan_id, ScanStatus.COMPLETED, report=outcome.report
            )

        if outcome.timed_out:
            error = "Scan timed out"
        else:
            error = f"Nikto exited with code {outcome.returncode}"
        return self.mark_terminal(
            scan_id, ScanStatus.FAILED, error=error, report=outcome.report
        )

    async def watch(self, scan_id: str, handle: ProcessHandle):
        """
        Wait on a scan's completion channel and apply the exit.

        Runs as a background task per running scan.
        """
        try:
            outcome = await handle.wait()
        except Exception as e:
            self.logger.error(
                "scan_supervision_failed",
                scan_id=scan_id,
                error=str(e),
                exc_info=True,
            )
            self.mark_terminal(scan_id, ScanStatus.FAILED, error=f"Supervision failed: {e}")
            return

        self.record_exit(scan_id, outcome)

    # ------------------------------------------------------------------
    # Output and findings
    # ------------------------------------------------------------------

    def append_output(self, scan_id: str, text: str, is_error: bool = False):
        """Append an output chunk; chunks for unknown scans are dropped"""
        with self._lock:
            scan = self._scans.get(scan_id)
            if scan is not None:
                scan.output.append(OutputChunk(text=text, is_error=is_error))

    def store_findings(self, scan_id: str, findings: List[Finding]):
        """Cache parsed findings on a completed scan"""
        with self._lock:
            scan = self._scans.get(scan_id)
            if scan is not None and scan.findings is None:
                scan.findings = list(findings)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, scan_id: str, terminate: Callable[[int], None]) -> ActiveScan:
        """
        Signal a running scan's process and mark it cancelled.

        Args:
            scan_id: Scan to cancel
            terminate: Sends the termination signal to a pid

        Returns:
            Snapshot of the cancelled scan

        Raises:
            ScanNotFoundError: If the scan is unknown
            ScanNotRunningError: If the scan is not running
            CancellationError: If the signal could not be delivered
        """
        with self._lock:
            scan = self._require(scan_id)
            if scan.status is not ScanStatus.RUNNING:
                raise ScanNotRunningError(f"Scan {scan_id} is not running")

            if scan.pid is not None:
                try:
                    terminate(scan.pid)
                except ProcessLookupError:
                    # Already gone; its exit notification decides the outcome
                    raise ScanNotRunningError(f"Scan {scan_id} is not running")
                except OSError as e:
                    self.logger.error("scan_cancel_failed", scan_id=scan_id, error=str(e))
                    raise CancellationError(f"Failed to stop scan: {e}") from e

            self._transition(scan, ScanStatus.CANCELLED)
            snapshot = scan.snapshot()

        self.logger.info("scan_cancelled", scan_id=scan_id, pid=snapshot.pid)
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require(self, scan_id: str) -> ActiveScan:
        scan = self._scans.get(scan_id)
        if scan is None:
            raise ScanNotFoundError(f"Scan {scan_id} not found")
        return scan

    def get(self, scan_id: str) -> ActiveScan:
        """
        Snapshot of one scan.

        Raises:
            ScanNotFoundError: If the scan is unknown
        """
        with self._lock:
            return self._require(scan_id).snapshot()

    def list_summaries(self) -> List[ScanSummary]:
        """All known scans in admission order"""
        with self._lock:
            return [
                ScanSummary(scan_id=scan.scan_id, status=scan.status, target=scan.target)
                for scan in self._scans.values()
            ]

    def running_processes(self) -> List[Tuple[str, int]]:
        """(scan_id, pid) for every running scan with a process"""
        with self._lock:
            return [
                (scan.scan_id, scan.pid)
                for scan in self._scans.values()
                if scan.status is ScanStatus.RUNNING and scan.pid is not None
            ]

    def count(self, status: Optional[ScanStatus] = None) -> int:
        """Number of known scans, optionally only those in one status"""
        with self._lock:
            if status is None:
                return len(self._scans)
            return sum(1 for scan in self._scans.values() if scan.status is status)

    def __len__(self) -> int:
        return self.count()
