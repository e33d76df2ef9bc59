"""
Core module - Scan orchestration engine.

This package contains the stateful parts of the engine: the scan registry
(state machine and concurrency ceiling), the process supervisor and the
orchestrator facade that composes them.
"""

from .models import ActiveScan, OutputChunk, ScanResult, ScanStatus, ScanSummary
from .orchestrator import ScanOrchestrator
from .registry import ScanRegistry
from .supervisor import ProcessExit, ProcessHandle, ProcessSupervisor


__all__ = [
    # Orchestration
    "ScanOrchestrator",
    # State
    "ScanRegistry",
    "ActiveScan",
    "OutputChunk",
    "ScanStatus",
    # Results
    "ScanResult",
    "ScanSummary",
    # Processes
    "ProcessSupervisor",
    "ProcessHandle",
    "ProcessExit",
]
