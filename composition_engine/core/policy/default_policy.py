"""
Platform DEFAULT policy layer.

Evaluated before any tenant rules.  Because the last matching rule wins, a
tenant's active policy can narrow or widen anything declared here.
"""

from __future__ import annotations

from composition_engine.models.schemas import PolicyRule

_DEFAULT_RULES: list[dict] = [
    # ── Resources ────────────────────────────────────────
    {
        "resource": "*",
        "action": ["list", "get", "read"],
        "effect": "allow",
        "description": "Any role may read tenant resources",
    },
    {
        "resource": "*",
        "action": ["create", "update"],
        "role": ["admin", "editor"],
        "effect": "allow",
        "conditions": {"tenantMatch": True},
        "description": "Editors write resources inside their own tenant",
    },
    {
        "resource": "*",
        "action": "delete",
        "role": "admin",
        "effect": "allow",
        "conditions": {"tenantMatch": True},
        "description": "Admins delete resources inside their own tenant",
    },
    {
        "resource": ["user", "tenant", "policy"],
        "action": ["admin", "delete"],
        "effect": "deny",
        "description": "Identity and policy administration is not delegated to agents",
    },
    # ── Tools ────────────────────────────────────────────
    {
        "tool": "*",
        "action": ["read", "list", "get", "search"],
        "effect": "allow",
        "description": "Read-only tool calls",
    },
    {
        "tool": "*",
        "action": "execute",
        "role": "admin",
        "effect": "allow",
        "conditions": {"tenantMatch": True},
        "description": "Admins execute tools against their own tenant",
    },
]

DEFAULT_POLICY: tuple[PolicyRule, ...] = tuple(
    PolicyRule.model_validate(rule) for rule in _DEFAULT_RULES
)
