"""
Process Supervisor - Owns the lifecycle of one external Nikto process.

Responsibilities:
1. Spawn the process (in its own session so the whole group can be signalled)
2. Stream stdout and stderr into an output sink as chunks arrive
3. Enforce the scan timeout (SIGTERM, then SIGKILL after a grace period)
4. Report the exit exactly once through the handle's completion task

The supervisor never sees the scan record. It writes output through the
sink callable it is given and reports the exit through ProcessHandle.wait().
"""

import asyncio
import codecs
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

import structlog

from ..errors import SpawnError
from ..nikto.command_builder import NiktoCommand


# (text, is_error)
OutputSink = Callable[[str, bool], None]

READ_CHUNK_SIZE = 4096
SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


@dataclass(frozen=True)
class ProcessExit:
    """How a supervised process ended"""
    returncode: Optional[int]
    timed_out: bool = False
    report: Optional[str] = None  # harvested JSON report, if any

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class ProcessHandle:
    """Live process id plus the completion channel for its exit"""

    def __init__(self, pid: Optional[int], completion: "asyncio.Task[ProcessExit]"):
        self.pid = pid
        self._completion = completion

    async def wait(self) -> ProcessExit:
        """Wait for the process to exit"""
        return await self._completion

    def done(self) -> bool:
        return self._completion.done()

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, done={self.done()})"


class ProcessSupervisor:
    """
    Spawns and watches external processes.

    Example:
        >>> supervisor = ProcessSupervisor()
        >>> handle = await supervisor.spawn(command, timeout=3600, on_output=sink)
        >>> outcome = await handle.wait()
    """

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        kill_grace: float = 2.0,
    ):
        """
        Initialize the supervisor.

        Args:
            env: Environment for child processes (defaults to os.environ + LANG=C)
            kill_grace: Seconds between SIGTERM and SIGKILL on timeout, and the
                longest wait for output pipes to drain after exit
        """
        self.env = env if env is not None else {**os.environ, "LANG": "C"}
        self.kill_grace = kill_grace
        self.logger = structlog.get_logger(__name__)

    async def spawn(
        self,
        command: NiktoCommand,
        timeout: Optional[float],
        on_output: OutputSink,
    ) -> ProcessHandle:
        """
        Start the process and begin supervising it.

        Args:
            command: Resolved command to execute
            timeout: Seconds before the process is terminated (None = no limit)
            on_output: Receives each decoded output chunk

        Returns:
            Handle with the process id and completion channel

        Raises:
            SpawnError: If the executable cannot be started
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                start_new_session=True,
            )
        except OSError as e:
            self.logger.error(
                "process_spawn_failed",
                program=command.program,
                error=str(e),
            )
            raise SpawnError(f"Failed to start {command.program}: {e}") from e

        self.logger.info(
            "process_started",
            pid=process.pid,
            mode=command.mode.value,
            command=command.describe(),
        )

        completion = asyncio.create_task(
            self._supervise(process, command, timeout, on_output)
        )
        return ProcessHandle(pid=process.pid, completion=completion)

    async def _supervise(
        self,
        process: asyncio.subprocess.Process,
        command: NiktoCommand,
        timeout: Optional[float],
        on_output: OutputSink,
    ) -> ProcessExit:
        readers = asyncio.gather(
            self._pump(process.stdout, on_output, is_error=False),
            self._pump(process.stderr, on_output, is_error=True),
        )
        timed_out = False

        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                timed_out = True
                self.logger.warning("process_timeout", pid=process.pid, timeout=timeout)
                await self._stop(process)

            try:
                await asyncio.wait_for(readers, timeout=self.kill_grace)
            except asyncio.TimeoutError:
                # A grandchild still holds the pipes open
                self.logger.warning("process_output_drain_timeout", pid=process.pid)

        except asyncio.CancelledError:
            await self._stop(process)
            readers.cancel()
            raise

        report = self._harvest_report(command.report_path)

        self.logger.info(
            "process_exited",
            pid=process.pid,
            returncode=process.returncode,
            timed_out=timed_out,
        )
        return ProcessExit(
            returncode=process.returncode,
            timed_out=timed_out,
            report=report,
        )

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        on_output: OutputSink,
        is_error: bool,
    ):
        """Forward a stream to the sink chunk by chunk, in arrival order"""
        if stream is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                on_output(text, is_error)
                if is_error:
                    self.logger.warning("process_stderr", output=text.rstrip())
                else:
                    self.logger.debug("process_output", output=text.rstrip())
            if not data:
                break

    async def _stop(self, process: asyncio.subprocess.Process):
        """SIGTERM the process group, SIGKILL it if it lingers"""
        if process.returncode is not None:
            return

        try:
            self.terminate(process.pid)
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            try:
                self.kill(process.pid)
            except ProcessLookupError:
                pass
            await process.wait()

    def _harvest_report(self, report_path: Optional[str]) -> Optional[str]:
        """Read and delete the per-scan JSON report file"""
        if report_path is None:
            return None

        path = Path(report_path)
        try:
            report = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            self.logger.debug("report_file_missing", path=report_path)
            return None
        except OSError as e:
            self.logger.warning("report_file_unreadable", path=report_path, error=str(e))
            return None

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning("report_file_cleanup_failed", path=report_path, error=str(e))

        return report

    def terminate(self, pid: int):
        """Ask a process group to stop (SIGTERM)"""
        self._send_signal(pid, signal.SIGTERM)

    def kill(self, pid: int):
        """Force a process group to stop (SIGKILL)"""
        self._send_signal(pid, SIGKILL)

    def _send_signal(self, pid: int, sig: int):
        # Each child leads its own session, so its pid is also its group id
        if hasattr(os, "killpg"):
            os.killpg(pid, sig)
        else:
            os.kill(pid, sig)
