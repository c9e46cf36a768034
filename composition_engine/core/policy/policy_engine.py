"""
Policy Engine — declarative allow/deny evaluation for AI-agent tool calls.

Effective policy for a tenant is the DEFAULT layer followed by the rules of
the tenant's single active policy row.  Rules are evaluated in that order and
the LAST matching rule decides; when nothing matches the call is denied.  A
rule whose conditions fail does not match.

Patterns (tool, resource, action, role) accept a string or a list of
strings: exact values, ``*``, or namespaced ``app.*`` forms that match any
``app.<name>``.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from composition_engine.config import Settings, get_settings
from composition_engine.core.policy.default_policy import DEFAULT_POLICY
from composition_engine.errors import PolicyDeniedError, ValidationError
from composition_engine.models.enums import PolicyEffect, PolicyLayer, PolicyStatus
from composition_engine.models.schemas import (
    AuthorizationDecision,
    Pattern,
    PolicyConditions,
    PolicyRow,
    PolicyRule,
)
from composition_engine.persistence.policy_repository import PolicyRepository
from composition_engine.services.audit_service import AuditService
from composition_engine.utils.validation import format_issues

logger = logging.getLogger(__name__)


# ── Matching helpers ─────────────────────────────────────


def _as_list(pattern: Pattern) -> list[str]:
    return [pattern] if isinstance(pattern, str) else list(pattern)


def pattern_matches(pattern: Pattern, value: str) -> bool:
    """Exact, ``*`` or ``namespace.*`` match of ``value`` against ``pattern``."""
    for candidate in _as_list(pattern):
        if candidate == "*" or candidate == value:
            return True
        if candidate.endswith(".*") and "." in value:
            if value.split(".", 1)[0] == candidate[:-2]:
                return True
    return False


def role_matches(pattern: Pattern, roles: list[str]) -> bool:
    required = _as_list(pattern)
    if "*" in required:
        return True
    return any(role in roles for role in required)


def conditions_hold(
    conditions: PolicyConditions | None, tenant_id: str, context: dict[str, Any]
) -> tuple[bool, str]:
    """Return (passed, reason).  Missing context fails the condition."""
    if conditions is None:
        return True, ""
    if conditions.tenant_match and context.get("resource_tenant_id") != tenant_id:
        return False, "resource belongs to another tenant"
    if conditions.owner_only:
        owner, user = context.get("owner_id"), context.get("user_id")
        if owner is None or owner != user:
            return False, "caller does not own the resource"
    return True, ""


def rule_matches(
    rule: PolicyRule,
    tenant_id: str,
    tool: str | None,
    resource: str | None,
    action: str,
    roles: list[str],
    context: dict[str, Any],
) -> bool:
    if rule.tool is not None and (tool is None or not pattern_matches(rule.tool, tool)):
        return False
    if rule.resource is not None and (
        resource is None or not pattern_matches(rule.resource, resource)
    ):
        return False
    if not pattern_matches(rule.action, action):
        return False
    if not role_matches(rule.role, roles):
        return False
    passed, _ = conditions_hold(rule.conditions, tenant_id, context)
    return passed


def parse_policy_json(policy_json: str | list | dict) -> list[PolicyRule]:
    """
    Accept JSON text, a list of rule objects, or ``{"rules": [...]}`` and
    return validated rules.  Raises ValidationError listing every issue.
    """
    payload: Any = policy_json
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError("Policy is not valid JSON", [str(exc)]) from exc

    if isinstance(payload, dict):
        if "rules" not in payload:
            raise ValidationError("Policy object must contain a 'rules' list")
        payload = payload["rules"]
    if not isinstance(payload, list):
        raise ValidationError("Policy must be a list of rules")

    rules: list[PolicyRule] = []
    issues: list[str] = []
    for index, raw in enumerate(payload):
        if isinstance(raw, PolicyRule):
            rules.append(raw)
            continue
        try:
            rules.append(PolicyRule.model_validate(raw))
        except PydanticValidationError as exc:
            issues.extend(f"rules[{index}].{issue}" for issue in format_issues(exc))
    if issues:
        raise ValidationError("Invalid policy rules", issues)
    return rules


# ── Engine ───────────────────────────────────────────────


class PolicyEngine:
    """Evaluates and administers tenant policies."""

    def __init__(
        self,
        repository: PolicyRepository | None = None,
        audit: AuditService | None = None,
        default_rules: list[PolicyRule] | tuple[PolicyRule, ...] | None = None,
        settings: Settings | None = None,
    ):
        self.repository = repository or PolicyRepository()
        self.audit = audit or AuditService()
        self.default_rules = tuple(DEFAULT_POLICY if default_rules is None else default_rules)
        self.settings = settings or get_settings()

    # ── Evaluation ───────────────────────────────────────

    def get_active_policy(self, tenant_id: str) -> list[PolicyRule]:
        """DEFAULT rules followed by the tenant's active rules."""
        active = self.repository.active(tenant_id)
        tenant_rules = active.rules if active else []
        return [*self.default_rules, *tenant_rules]

    def authorize(
        self,
        tenant_id: str,
        tool: str | None = None,
        resource: str | None = None,
        action: str = "",
        roles: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> AuthorizationDecision:
        """Evaluate one tool/resource call.  Never raises for a deny."""
        if tool is None and resource is None:
            raise ValidationError("Authorization needs a tool or a resource")
        if not action:
            raise ValidationError("Authorization needs an action")

        roles = list(roles or [])
        context = dict(context or {})
        subject = f"tool:{tool}" if tool else f"resource:{resource}"
        rules = self.get_active_policy(tenant_id)

        matched: PolicyRule | None = None
        matched_index = -1
        for index, rule in enumerate(rules):
            if rule_matches(rule, tenant_id, tool, resource, action, roles, context):
                matched, matched_index = rule, index

        if matched is None:
            decision = AuthorizationDecision(
                allow=False,
                tenant_id=tenant_id,
                subject=subject,
                action=action,
                reason=f"No rule matched for roles: {', '.join(roles) or '<none>'}",
            )
        else:
            layer = (
                PolicyLayer.DEFAULT if matched_index < len(self.default_rules)
                else PolicyLayer.TENANT
            )
            allow = matched.effect == PolicyEffect.ALLOW
            decision = AuthorizationDecision(
                allow=allow,
                tenant_id=tenant_id,
                subject=subject,
                action=action,
                matched_rule=matched,
                layer=layer,
                reason=(
                    f"{'Allow' if allow else 'Deny'} rule matched in {layer.value} layer"
                    + (f": {matched.description}" if matched.description else "")
                ),
            )

        logger.debug(
            f"[{tenant_id}] {subject} {action} → {'allow' if decision.allow else 'deny'}"
        )
        if self.settings.audit_authorization_decisions:
            self.audit.record(
                tenant_id,
                "policy",
                "allow" if decision.allow else "deny",
                details=f"{subject} {action}",
                data={
                    "subject": subject,
                    "action": action,
                    "roles": roles,
                    "layer": decision.layer.value if decision.layer else None,
                },
            )
        return decision

    def authorize_or_raise(self, tenant_id: str, **kwargs: Any) -> AuthorizationDecision:
        decision = self.authorize(tenant_id, **kwargs)
        if not decision.allow:
            raise self.denial_for(decision)
        return decision

    @staticmethod
    def denial_for(decision: AuthorizationDecision) -> PolicyDeniedError:
        return PolicyDeniedError(
            decision.tenant_id,
            decision.subject,
            decision.action,
            reason=decision.reason,
            matched_rule=(
                decision.matched_rule.model_dump(mode="json", exclude_none=True)
                if decision.matched_rule else None
            ),
        )

    # ── Administration ───────────────────────────────────

    def upsert_policy(
        self,
        tenant_id: str,
        policy_json: str | list | dict,
        version: str,
        created_by: str | None = None,
    ) -> PolicyRow:
        """Validate and store a new draft policy version.  Never mutates existing rows."""
        if not version or not version.strip():
            raise ValidationError("Policy version is required")
        rules = parse_policy_json(policy_json)

        row = PolicyRow(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            rules=rules,
            version=version,
            status=PolicyStatus.DRAFT,
            created_by=created_by,
        )
        self.repository.insert(row)
        self.audit.record(
            tenant_id, "policy", "upsert",
            details=f"v{version} ({len(rules)} rules)",
            data={"policy_id": row.id, "version": version, "created_by": created_by},
        )
        return row

    def activate_policy(self, policy_id: str, tenant_id: str) -> PolicyRow:
        row = self.repository.activate(policy_id, tenant_id)
        self.audit.record(
            tenant_id, "policy", "activate",
            details=f"v{row.version}",
            data={"policy_id": policy_id, "version": row.version},
        )
        return row

    def deactivate_policy(self, policy_id: str, tenant_id: str) -> PolicyRow:
        """The tenant falls back to the DEFAULT layer alone."""
        row = self.repository.deactivate(policy_id, tenant_id)
        self.audit.record(
            tenant_id, "policy", "deactivate",
            details=f"v{row.version}",
            data={"policy_id": policy_id, "version": row.version},
        )
        return row

    def list_policies(self, tenant_id: str) -> list[PolicyRow]:
        return self.repository.list(tenant_id)
