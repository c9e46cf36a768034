"""
Policy Repository — append-only storage for tenant policy versions.

Activation is a single critical section: every sibling row is flipped
inactive and the target flipped active while the lock is held, and readers
take the same lock, so no observer ever sees zero-or-two active rows
mid-switch.  Rows are never deleted.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from composition_engine.errors import DuplicateKeyError, NotFoundError
from composition_engine.models.enums import PolicyStatus
from composition_engine.models.schemas import PolicyRow

logger = logging.getLogger(__name__)


class PolicyRepository:
    """In-memory TenantPolicyRow table."""

    def __init__(self):
        self._rows: dict[str, list[PolicyRow]] = {}
        self._lock = threading.RLock()

    def insert(self, row: PolicyRow) -> PolicyRow:
        """Append a new version; a tenant never holds two rows with the same version."""
        with self._lock:
            rows = self._rows.setdefault(row.tenant_id, [])
            if any(r.version == row.version for r in rows):
                raise DuplicateKeyError("Policy version", f"{row.tenant_id}@{row.version}")
            rows.append(row.model_copy(deep=True))
        logger.info(f"Inserted policy {row.id} v{row.version} for tenant {row.tenant_id}")
        return row

    def list(self, tenant_id: str) -> list[PolicyRow]:
        """All versions for a tenant, newest first."""
        with self._lock:
            rows = [r.model_copy(deep=True) for r in self._rows.get(tenant_id, [])]
        return list(reversed(rows))

    def get(self, policy_id: str, tenant_id: str) -> PolicyRow:
        with self._lock:
            return self._find(policy_id, tenant_id).model_copy(deep=True)

    def active(self, tenant_id: str) -> PolicyRow | None:
        with self._lock:
            for row in self._rows.get(tenant_id, []):
                if row.is_active:
                    return row.model_copy(deep=True)
        return None

    def activate(self, policy_id: str, tenant_id: str) -> PolicyRow:
        """Deactivate every sibling and activate the target in one critical section."""
        with self._lock:
            target = self._find(policy_id, tenant_id)
            now = datetime.now(timezone.utc)
            for row in self._rows[tenant_id]:
                if row.id == target.id:
                    continue
                if row.is_active:
                    row.is_active = False
                    row.status = PolicyStatus.SUPERSEDED
            target.is_active = True
            target.status = PolicyStatus.ACTIVE
            target.activated_at = now
            activated = target.model_copy(deep=True)
        logger.info(f"Activated policy {policy_id} v{activated.version} for tenant {tenant_id}")
        return activated

    def deactivate(self, policy_id: str, tenant_id: str) -> PolicyRow:
        with self._lock:
            target = self._find(policy_id, tenant_id)
            if target.is_active:
                target.is_active = False
                target.status = PolicyStatus.SUPERSEDED
            deactivated = target.model_copy(deep=True)
        logger.info(f"Deactivated policy {policy_id} for tenant {tenant_id}")
        return deactivated

    def active_count(self, tenant_id: str) -> int:
        with self._lock:
            return sum(1 for r in self._rows.get(tenant_id, []) if r.is_active)

    def _find(self, policy_id: str, tenant_id: str) -> PolicyRow:
        for row in self._rows.get(tenant_id, []):
            if row.id == policy_id:
                return row
        raise NotFoundError("Policy", policy_id)
