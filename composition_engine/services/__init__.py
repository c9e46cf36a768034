"""Services — AuditService."""

from composition_engine.services.audit_service import AuditService

__all__ = ["AuditService"]
