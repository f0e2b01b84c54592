"""
Custom exceptions for persistence hooks.

Errors raised by SQLAlchemy while loading relations are not wrapped;
these exceptions only cover misuse of the hooks themselves.
"""

from typing import Any, Optional


class PersistenceHooksException(Exception):
    """Base exception for all persistence hook errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class AuditConfigurationException(PersistenceHooksException):
    """Raised when the audit listener is installed on an unsupported target."""

    def __init__(self, target: Any, reason: Optional[str] = None):
        message = f"Cannot install audit listener on {type(target).__name__}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            details={"target": repr(target), "reason": reason},
        )
