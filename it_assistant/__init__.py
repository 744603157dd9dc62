"""
Desktop helper that diagnoses host problems and applies light remediation.
"""

__all__ = ["diagnostics", "engine", "remediation", "system_state", "cli"]
__version__ = "0.1.0"
