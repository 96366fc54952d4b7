"""
Audit Package.

Exports the AuditSink contract and the JSON ledger AuditLogger.
"""

from .audit_logger import AuditLogger, AuditSink

__all__ = ["AuditLogger", "AuditSink"]
