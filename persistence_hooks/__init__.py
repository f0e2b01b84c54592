"""
Persistence hooks for SQLAlchemy-backed web services.

Provides the audit stamping interceptor and the query filter id helper.
"""

from .audit import (
    AuditedAsyncSession,
    AuditedSession,
    AuditOwnerMixin,
    AuditStamper,
    ChangeEntry,
    ChangeState,
    install_audit_listener,
    register_audited,
)
from .query_options import QueryOptions, get_id

__all__ = [
    "AuditedAsyncSession",
    "AuditedSession",
    "AuditOwnerMixin",
    "AuditStamper",
    "ChangeEntry",
    "ChangeState",
    "QueryOptions",
    "get_id",
    "install_audit_listener",
    "register_audited",
]
