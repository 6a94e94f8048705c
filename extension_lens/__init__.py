"""
Inspect installed editor extensions for conflicting declarations and surface their recent errors.
"""

__all__ = ["manifest", "conflicts", "remediation", "suggestions", "logs", "commands", "engine", "host", "cli"]
__version__ = "0.1.0"
