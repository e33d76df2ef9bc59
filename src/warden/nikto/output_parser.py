"""
Output Parser - Converts captured Nikto output into structured findings.

Pure transformation: takes the text a scan produced plus its declared output
format and returns an ordered list of Finding objects. Nothing here touches
the scan record or the filesystem.

Supported formats:
- json: array of host objects, each with a "vulnerabilities" list
- text: one finding per line starting with "+ "
"""

import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog


logger = structlog.get_logger(__name__)


class SeverityLevel(Enum):
    """Severity levels assigned to findings"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# Checked in order; the first matching group wins.
SEVERITY_KEYWORDS = [
    (SeverityLevel.HIGH, ("vulnerability", "exploit", "sql injection", "xss")),
    (SeverityLevel.MEDIUM, ("outdated", "version", "deprecated")),
    (SeverityLevel.LOW, ("information", "disclosure", "header missing")),
]

FINDING_MARKER = "+ "
TARGET_IP_BANNER = "Target IP:"


@dataclass(frozen=True)
class Finding:
    """One vulnerability or observation reported by Nikto"""

    id: str
    method: str
    uri: str
    description: str
    severity: SeverityLevel = SeverityLevel.INFO
    reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data = {
            "id": self.id,
            "method": self.method,
            "uri": self.uri,
            "description": self.description,
            "severity": self.severity.value,
        }
        if self.reference is not None:
            data["reference"] = self.reference
        return data


def classify_severity(text: str) -> SeverityLevel:
    """
    Keyword heuristic over a finding's message.

    Args:
        text: Description or message text

    Returns:
        Severity of the first keyword group that matches, INFO otherwise
    """
    lowered = text.lower()
    for severity, keywords in SEVERITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return severity
    return SeverityLevel.INFO


def parse_nikto_output(output: str, output_format: str = "text") -> List[Finding]:
    """
    Parse captured Nikto output.

    Args:
        output: Raw captured text (stdout or harvested JSON report)
        output_format: "json" or "text"

    Returns:
        Findings in the order Nikto reported them
    """
    if output_format == "json":
        return _parse_json(output)
    return _parse_text(output)


def _parse_json(output: str) -> List[Finding]:
    try:
        data = _load_json_document(output)
    except ValueError as e:
        logger.error("json_output_parse_failed", error=str(e), length=len(output))
        return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        logger.error("json_output_unexpected_shape", type=type(data).__name__)
        return []

    findings = []
    for host in data:
        if not isinstance(host, dict):
            continue
        vulnerabilities = host.get("vulnerabilities")
        if not isinstance(vulnerabilities, list):
            continue

        for vuln in vulnerabilities:
            if not isinstance(vuln, dict):
                continue
            findings.append(_convert_vulnerability(vuln))

    return findings


def _load_json_document(output: str) -> Any:
    """
    Decode the JSON report embedded in captured output.

    Containerized runs print Nikto's progress text before the report, so when
    the whole text is not JSON, decoding restarts at the first line that opens
    an array or object.
    """
    text = output.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        first_error = e

    decoder = json.JSONDecoder()
    offset = 0
    for line in text.splitlines(keepends=True):
        if line.lstrip().startswith(("[", "{")):
            start = offset + (len(line) - len(line.lstrip()))
            try:
                document, _ = decoder.raw_decode(text, start)
                return document
            except json.JSONDecodeError:
                pass
        offset += len(line)

    raise ValueError(str(first_error))


def _convert_vulnerability(vuln: Dict[str, Any]) -> Finding:
    raw_message = vuln.get("msg") or ""
    reference = vuln.get("references") or vuln.get("OSVDB")

    return Finding(
        id=str(vuln.get("id") or uuid.uuid4()),
        method=vuln.get("method") or "GET",
        uri=vuln.get("url") or "/",
        description=raw_message or "Unknown vulnerability",
        # Severity comes from the raw message, never the placeholder
        severity=classify_severity(raw_message),
        reference=str(reference) if reference else None,
    )


def _parse_text(output: str) -> List[Finding]:
    findings = []
    for line in output.splitlines():
        if not line.startswith(FINDING_MARKER) or TARGET_IP_BANNER in line:
            continue

        description = line[len(FINDING_MARKER):].strip()
        findings.append(
            Finding(
                id=str(uuid.uuid4()),
                method="GET",
                uri="",
                description=description,
                severity=classify_severity(description),
            )
        )

    return findings
