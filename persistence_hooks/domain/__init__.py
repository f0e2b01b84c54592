"""Domain layer for persistence hooks."""

from .exceptions import AuditConfigurationException, PersistenceHooksException

__all__ = ["AuditConfigurationException", "PersistenceHooksException"]
