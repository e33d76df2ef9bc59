"""
Nikto integration module.

This package contains the pure, I/O-free pieces of the Nikto integration:
- validator: options validation into an immutable ScanRequest
- command_builder: ScanRequest -> command line (local or containerized)
- output_parser: captured output -> Finding objects
"""

from .validator import ScanRequest, validate_scan_options
from .command_builder import (
    NiktoCommand,
    build_nikto_args,
    build_nikto_command,
    sanitize_input,
    target_has_port,
)
from .output_parser import (
    Finding,
    SeverityLevel,
    classify_severity,
    parse_nikto_output,
)


__all__ = [
    # Options
    "ScanRequest",
    "validate_scan_options",
    # Command building
    "NiktoCommand",
    "build_nikto_args",
    "build_nikto_command",
    "sanitize_input",
    "target_has_port",
    # Output parsing
    "Finding",
    "SeverityLevel",
    "classify_severity",
    "parse_nikto_output",
]
