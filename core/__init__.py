"""Core module - configuration and observability shared by every package.

Domain models live in /models/, the reconciliation rules in /reconciliation/.
"""

__version__ = "1.0.0"
