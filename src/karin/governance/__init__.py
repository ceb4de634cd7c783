"""Governance module: immutable audit logging of case actions."""

from karin.governance.audit import AuditEntry, AuditLogger

__all__ = ["AuditEntry", "AuditLogger"]
