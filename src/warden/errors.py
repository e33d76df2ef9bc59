"""
Errors raised by the scan orchestration engine.

Admission, not-found and precondition errors are raised straight to the
caller. Spawn and runtime failures are recorded on the scan record instead
and only surface through a status query.
"""


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors"""
    pass


class CapacityError(OrchestratorError):
    """Raised when the concurrent scan ceiling is reached"""
    pass


class ScanNotFoundError(OrchestratorError):
    """Raised when a scan id is unknown"""
    pass


class ScanNotRunningError(OrchestratorError):
    """Raised when an operation requires a running scan"""
    pass


class CancellationError(OrchestratorError):
    """Raised when the termination signal could not be delivered"""
    pass


class SpawnError(OrchestratorError):
    """Raised when the external process cannot be started"""
    pass


class ScanValidationError(OrchestratorError):
    """Raised when scan options fail validation"""
    pass


class ConfigError(OrchestratorError):
    """Raised when the configuration is invalid"""
    pass
