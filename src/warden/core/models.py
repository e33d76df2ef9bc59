"""
Scan record and result types.

ActiveScan is the registry-owned, mutable record of one job. ScanResult and
ScanSummary are the detached views handed back to callers.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..nikto.output_parser import Finding
from ..nikto.validator import ScanRequest


class ScanStatus(Enum):
    """Scan lifecycle states"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED}
)

# Allowed forward transitions; nothing leaves a terminal state.
TRANSITIONS = {
    ScanStatus.PENDING: frozenset(
        {ScanStatus.RUNNING, ScanStatus.COMPLETED, ScanStatus.FAILED}
    ),
    ScanStatus.RUNNING: frozenset(
        {ScanStatus.COMPLETED, ScanStatus.FAILED, ScanStatus.CANCELLED}
    ),
}


@dataclass(frozen=True)
class OutputChunk:
    """A piece of captured process output"""
    text: str
    is_error: bool = False

    def render(self) -> str:
        return f"ERROR: {self.text}" if self.is_error else self.text


@dataclass
class ActiveScan:
    """In-memory record of one scan job"""

    scan_id: str
    request: ScanRequest
    status: ScanStatus = ScanStatus.PENDING
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    pid: Optional[int] = None
    output: List[OutputChunk] = field(default_factory=list)
    error: Optional[str] = None
    report: Optional[str] = None  # JSON report harvested from the output file
    findings: Optional[List[Finding]] = None
    counts_toward_limit: bool = True

    @property
    def target(self) -> str:
        return self.request.target

    def snapshot(self) -> "ActiveScan":
        """Copy safe to read outside the registry lock"""
        return replace(
            self,
            output=list(self.output),
            findings=list(self.findings) if self.findings is not None else None,
        )

    def output_text(self) -> str:
        """All captured output, error chunks tagged"""
        return "".join(chunk.render() for chunk in self.output)

    def parser_input(self) -> str:
        """Text the output parser should read"""
        if self.report is not None:
            return self.report
        return "".join(chunk.text for chunk in self.output if not chunk.is_error)


@dataclass
class ScanResult:
    """Result of a scan as returned to callers"""

    scan_id: str
    status: ScanStatus
    target: str
    start_time: datetime
    end_time: Optional[datetime] = None
    findings: Optional[List[Finding]] = None
    error: Optional[str] = None

    @classmethod
    def from_scan(cls, scan: ActiveScan, findings: Optional[List[Finding]] = None) -> "ScanResult":
        return cls(
            scan_id=scan.scan_id,
            status=scan.status,
            target=scan.target,
            start_time=scan.start_time,
            end_time=scan.end_time,
            findings=findings,
            error=scan.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data: Dict[str, Any] = {
            "scan_id": self.scan_id,
            "status": self.status.value,
            "target": self.target,
            "start_time": self.start_time.isoformat(),
        }
        if self.end_time is not None:
            data["end_time"] = self.end_time.isoformat()
        if self.findings is not None:
            data["findings"] = [finding.to_dict() for finding in self.findings]
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ScanSummary:
    """Short listing entry for a scan"""
    scan_id: str
    status: ScanStatus
    target: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "status": self.status.value,
            "target": self.target,
        }
