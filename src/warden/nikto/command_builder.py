"""
Command Builder - Turns a validated scan request into a Nikto invocation.

Pure functions, no I/O. The result is a NiktoCommand that the process
supervisor executes (or that a dry run only describes).

Every free-text value taken from the request passes through sanitize_input()
before it is placed on a command line.
"""

import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit

from ..config import ExecutionMode, OrchestratorConfig
from .validator import ScanRequest


SHELL_METACHARACTERS = re.compile(r"[;&|`$<>\\]")
LINE_TERMINATORS = re.compile(r"[\r\n]")

CONTAINER_TMP_DIR = "/tmp"


@dataclass(frozen=True)
class NiktoCommand:
    """
    A resolved command ready for execution.

    Attributes:
        program: Executable to run (nikto, docker or sh)
        args: Argument vector passed to the program
        mode: Execution mode the command was built for
        report_path: Host file holding the JSON report once the process exits
            (local JSON mode only; containerized runs print it to stdout)
    """
    program: str
    args: List[str] = field(default_factory=list)
    mode: ExecutionMode = ExecutionMode.LOCAL
    report_path: Optional[str] = None

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def describe(self) -> str:
        """Shell-quoted command line, as shown by dry runs"""
        return shlex.join(self.argv)


def sanitize_input(value: str) -> str:
    """
    Strip shell metacharacters and line terminators from free text.

    Example:
        >>> sanitize_input("test; rm -rf /")
        'test rm -rf /'
    """
    value = SHELL_METACHARACTERS.sub("", value)
    value = LINE_TERMINATORS.sub("", value)
    return value.strip()


def target_has_port(target: str) -> bool:
    """
    Check whether a target already names a port.

    Handles "scheme://host:port/..." URLs and bare "host:port" strings.
    """
    if target.startswith(("http://", "https://")):
        try:
            port = urlsplit(target).port
        except ValueError:
            # Out-of-range or non-numeric port
            return False
        return port is not None and 0 < port <= 65535

    parts = target.split(":")
    if len(parts) == 2 and parts[1].isdigit():
        return 0 < int(parts[1]) <= 65535

    return False


def json_output_path(
    scan_id: str,
    mode: ExecutionMode,
    temp_dir: str,
) -> str:
    """Per-scan report path as Nikto sees it"""
    if mode is ExecutionMode.CONTAINERIZED:
        return f"{CONTAINER_TMP_DIR}/nikto-scan-{scan_id}.json"
    return str(Path(temp_dir) / f"nikto-output-{scan_id}.json")


def build_nikto_args(
    request: ScanRequest,
    scan_id: str,
    mode: ExecutionMode = ExecutionMode.LOCAL,
    default_timeout: int = 3600,
    temp_dir: str = CONTAINER_TMP_DIR,
) -> List[str]:
    """
    Build the Nikto argument vector.

    Args:
        request: Validated scan request
        scan_id: Scan id, used to keep JSON output files apart
        mode: Execution mode
        default_timeout: Timeout used when the request has none
        temp_dir: Host directory for JSON output files

    Returns:
        Arguments for the nikto executable (without the executable itself)
    """
    args = ["-h", sanitize_input(request.target)]

    # An explicit port would contradict one embedded in the target
    if request.port is not None and not target_has_port(request.target):
        args.extend(["-p", str(request.port)])

    if request.ssl:
        args.append("-ssl")
    elif request.nossl:
        args.append("-nossl")

    if request.nolookup:
        args.append("-nolookup")

    if request.vhost:
        args.extend(["-vhost", sanitize_input(request.vhost)])

    timeout = request.timeout if request.timeout is not None else default_timeout
    args.extend(["-timeout", str(timeout)])

    if request.output_format == "json":
        args.extend([
            "-Format", "json",
            "-output", json_output_path(scan_id, mode, temp_dir),
        ])

    args.append("-nointeractive")

    return args


def build_nikto_command(
    request: ScanRequest,
    scan_id: str,
    config: OrchestratorConfig,
) -> NiktoCommand:
    """
    Resolve the full command for the configured execution mode.

    Containerized mode wraps the Nikto arguments in a container run with the
    temp directory mounted at /tmp. For JSON output the run is followed by a
    shell step that prints the report file and deletes it, because the
    caller cannot read the container's filesystem.
    """
    mode = config.execution_mode
    nikto_args = build_nikto_args(
        request,
        scan_id,
        mode=mode,
        default_timeout=config.default_timeout,
        temp_dir=config.temp_dir,
    )

    if mode is ExecutionMode.LOCAL:
        report_path = None
        if request.output_format == "json":
            report_path = json_output_path(scan_id, mode, config.temp_dir)
        return NiktoCommand(
            program=config.nikto_binary,
            args=nikto_args,
            mode=mode,
            report_path=report_path,
        )

    container_argv = [
        config.docker_binary,
        "run",
        "--rm",
        f"--network={config.docker_network}",
        "-v", f"{config.temp_dir}:{CONTAINER_TMP_DIR}",
        config.docker_image,
        *nikto_args,
    ]

    if request.output_format != "json":
        return NiktoCommand(
            program=container_argv[0],
            args=container_argv[1:],
            mode=mode,
        )

    host_report = shlex.quote(str(Path(config.temp_dir) / f"nikto-scan-{scan_id}.json"))
    script = (
        f"{shlex.join(container_argv)}; rc=$?; "
        f"cat {host_report} 2>/dev/null; rm -f {host_report}; exit $rc"
    )
    return NiktoCommand(program="sh", args=["-c", script], mode=mode)
