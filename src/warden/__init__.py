"""
WARDEN - Nikto Scan Orchestrator

Launches, monitors, cancels and lists long-running Nikto scans under a
fixed concurrency ceiling, and turns their output into structured findings.

Copyright (c) 2025
Licensed under MIT License
"""

__version__ = "1.0.0"
__author__ = "WARDEN Team"
__status__ = "Development"
