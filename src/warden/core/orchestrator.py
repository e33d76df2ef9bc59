"""
Orchestrator - Public entry point for running Nikto scans.

Composes the command builder, process supervisor, scan registry and output
parser into four operations: start, status, cancel and list. It also owns
shutdown cleanup so no Nikto process outlives the orchestrator.

Design Pattern: Facade
"""

import asyncio
import atexit
import signal
from functools import partial
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from ..config import OrchestratorConfig
from ..errors import SpawnError
from ..nikto.command_builder import NiktoCommand, build_nikto_command
from ..nikto.output_parser import parse_nikto_output
from ..nikto.validator import ScanRequest, validate_scan_options
from .models import ScanResult, ScanStatus, ScanSummary
from .registry import ScanRegistry
from .supervisor import ProcessHandle, ProcessSupervisor


class ScanOrchestrator:
    """
    Launches, tracks, cancels and lists Nikto scans.

    Responsibilities:
    1. Admit scans under the concurrency ceiling
    2. Build and spawn the Nikto command (or describe it for dry runs)
    3. Parse findings lazily when a completed scan is queried
    4. Kill running scans on shutdown

    Example:
        >>> orchestrator = ScanOrchestrator(OrchestratorConfig.from_env())
        >>> result = await orchestrator.start_scan({"target": "https://example.com"})
        >>> orchestrator.get_scan_status(result.scan_id).status
        <ScanStatus.RUNNING: 'running'>
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        registry: Optional[ScanRegistry] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Orchestrator configuration (defaults if None)
            registry: Scan registry (built from config if None)
            supervisor: Process supervisor (default if None)
        """
        self.config = config or OrchestratorConfig()
        self.registry = registry or ScanRegistry(
            max_concurrent=self.config.max_concurrent_scans,
            max_history=self.config.max_history,
        )
        self.supervisor = supervisor or ProcessSupervisor()

        # Completion watchers for running scans
        self._watchers: Dict[str, asyncio.Task] = {}

        self.logger = structlog.get_logger(__name__)

    async def start_scan(
        self,
        options: Union[ScanRequest, Mapping[str, Any]],
    ) -> ScanResult:
        """
        Start a scan.

        Blocks only until the process is spawned; dry runs resolve fully
        before returning.

        Args:
            options: ScanRequest, or raw options to validate

        Returns:
            Initial scan result (running, completed for dry runs, failed if
            the process could not be spawned)

        Raises:
            ScanValidationError: If raw options are invalid
            CapacityError: If the concurrency ceiling is reached
        """
        if isinstance(options, ScanRequest):
            request = options
        else:
            request = validate_scan_options(options, self.config.default_timeout)

        scan_id = self.registry.admit(request, count_toward_limit=not request.dry_run)

        try:
            command = build_nikto_command(request, scan_id, self.config)

            if request.dry_run:
                description = command.describe()
                self.logger.debug("scan_dry_run", scan_id=scan_id, command=description)
                self.registry.append_output(
                    scan_id,
                    f"DRY RUN ({self.config.execution_mode.value} mode): {description}",
                )
                self.registry.mark_terminal(scan_id, ScanStatus.COMPLETED)
            else:
                await self._spawn(scan_id, request, command)

        except Exception as e:
            self.registry.mark_terminal(scan_id, ScanStatus.FAILED, error=str(e))
            self.logger.error("scan_start_failed", scan_id=scan_id, error=str(e), exc_info=True)
            raise

        scan = self.registry.get(scan_id)
        self.logger.info(
            "scan_started",
            scan_id=scan_id,
            target=request.target,
            status=scan.status.value,
            dry_run=request.dry_run,
        )

        return ScanResult.from_scan(scan)

    async def _spawn(self, scan_id: str, request: ScanRequest, command: NiktoCommand):
        timeout = request.timeout or self.config.default_timeout

        try:
            handle = await self.supervisor.spawn(
                command,
                timeout=timeout,
                on_output=partial(self.registry.append_output, scan_id),
            )
        except SpawnError as e:
            # Recorded on the scan; surfaced through status queries
            self.registry.mark_terminal(scan_id, ScanStatus.FAILED, error=str(e))
            return

        self.registry.mark_running(scan_id, handle.pid)
        self._watchers[scan_id] = asyncio.create_task(self._watch(scan_id, handle))

    async def _watch(self, scan_id: str, handle: ProcessHandle):
        try:
            await self.registry.watch(scan_id, handle)
        finally:
            self._watchers.pop(scan_id, None)

    def get_scan_status(self, scan_id: str) -> ScanResult:
        """
        Get a scan's current result.

        Findings are parsed on the first query after the scan completes and
        cached on the record.

        Raises:
            ScanNotFoundError: If the scan is unknown
        """
        scan = self.registry.get(scan_id)

        findings = None
        if scan.status is ScanStatus.COMPLETED:
            if scan.request.dry_run:
                findings = []
            elif scan.findings is not None:
                findings = scan.findings
            else:
                findings = parse_nikto_output(
                    scan.parser_input(),
                    scan.request.output_format,
                )
                self.registry.store_findings(scan_id, findings)
                self.logger.info("scan_findings_parsed", scan_id=scan_id, count=len(findings))

        return ScanResult.from_scan(scan, findings)

    def cancel_scan(self, scan_id: str) -> ScanResult:
        """
        Cancel a running scan.

        The process is sent SIGTERM and the scan is marked cancelled at once;
        the process may take a moment to actually exit.

        Raises:
            ScanNotFoundError: If the scan is unknown
            ScanNotRunningError: If the scan is not running
            CancellationError: If the signal could not be delivered
        """
        scan = self.registry.cancel(scan_id, self.supervisor.terminate)
        return ScanResult.from_scan(scan)

    def list_scans(self) -> List[ScanSummary]:
        """List every known scan"""
        return self.registry.list_summaries()

    async def wait_for_scan(self, scan_id: str) -> ScanResult:
        """
        Wait until a scan's process has exited, then return its result.

        Raises:
            ScanNotFoundError: If the scan is unknown
        """
        watcher = self._watchers.get(scan_id)
        if watcher is not None:
            await asyncio.shield(watcher)
        return self.get_scan_status(scan_id)

    def shutdown(self) -> int:
        """
        Force-kill every running scan's process.

        Returns:
            Number of processes signalled
        """
        killed = 0
        for scan_id, pid in self.registry.running_processes():
            try:
                self.supervisor.kill(pid)
                killed += 1
                self.logger.info("scan_killed_on_shutdown", scan_id=scan_id, pid=pid)
            except ProcessLookupError:
                self.logger.debug("scan_already_exited", scan_id=scan_id, pid=pid)
            except OSError as e:
                self.logger.error("scan_kill_failed", scan_id=scan_id, pid=pid, error=str(e))

        return killed

    async def aclose(self):
        """Kill running scans and wait for their watchers to settle"""
        self.shutdown()
        watchers = list(self._watchers.values())
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)

    def install_shutdown_hooks(self):
        """
        Kill running scans on interpreter exit, SIGINT and SIGTERM.

        Must be called from inside the running event loop to use loop signal
        handlers; elsewhere falls back to signal.signal().
        """
        atexit.register(self.shutdown)

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop = asyncio.get_running_loop()
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (RuntimeError, NotImplementedError):
                # No running loop, or the platform lacks loop signal handlers
                signal.signal(sig, lambda signum, frame: self._handle_signal(signum))

    def _handle_signal(self, signum: int):
        self.logger.warning("shutdown_signal_received", signal=signal.Signals(signum).name)
        self.shutdown()
        raise SystemExit(0)
