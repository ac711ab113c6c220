"""
Database clients for the routing engine.

Only delegation audit events are persisted; routing itself is stateless.
"""

from .audit_client import (
    LoguruAuditSink,
    SqlAuditSink,
    build_audit_sink,
    create_tables,
    delegation_events_table,
    get_audit_engine,
)

__all__ = [
    "LoguruAuditSink",
    "SqlAuditSink",
    "build_audit_sink",
    "create_tables",
    "delegation_events_table",
    "get_audit_engine",
]
