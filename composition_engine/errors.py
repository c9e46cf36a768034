"""
Structured error hierarchy for the composition engine.

Write paths (registry, bundles, installations, policy upsert/activate) raise
these synchronously; nothing here is retried.  ``PolicyDeniedError`` is the
exception-shaped value the runtime hands back inside an ``ActionOutcome``
rather than raising.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(EngineError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__("NOT_FOUND", f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


class DuplicateKeyError(EngineError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__("DUPLICATE_KEY", f"{kind} '{key}' already exists")
        self.kind = kind
        self.key = key


class UnknownCapabilityError(EngineError):
    def __init__(self, key: str, referrer: str | None = None) -> None:
        if referrer:
            message = f"Unknown capability '{key}' referenced by '{referrer}'"
        else:
            message = f"Unknown capability '{key}'"
        super().__init__("UNKNOWN_CAPABILITY", message)
        self.key = key
        self.referrer = referrer


class DependencyCycleError(EngineError):
    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            "DEPENDENCY_CYCLE",
            "Dependency cycle detected: " + " -> ".join(cycle),
        )
        self.cycle = cycle

    @property
    def keys(self) -> set[str]:
        return set(self.cycle)


class ValidationError(EngineError):
    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        super().__init__("VALIDATION_ERROR", message)
        self.issues = issues or []

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "issues": self.issues}


class PolicyDeniedError(EngineError):
    def __init__(
        self,
        tenant_id: str,
        subject: str,
        action: str,
        reason: str = "",
        matched_rule: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            "POLICY_DENIED",
            f"Tenant '{tenant_id}' is not permitted to {action} on {subject}"
            + (f": {reason}" if reason else ""),
        )
        self.tenant_id = tenant_id
        self.subject = subject
        self.action = action
        self.reason = reason
        self.matched_rule = matched_rule

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "tenant_id": self.tenant_id,
            "subject": self.subject,
            "action": self.action,
            "matched_rule": self.matched_rule,
        }


class NotInstalledError(EngineError):
    def __init__(self, tenant_id: str, app_id: str, capability_key: str) -> None:
        super().__init__(
            "NOT_INSTALLED",
            f"Capability '{capability_key}' is not installed on {tenant_id}/{app_id}",
        )
        self.tenant_id = tenant_id
        self.app_id = app_id
        self.capability_key = capability_key
