"""
AppShell — turns a tenant's AppInstallation into a render descriptor and
routes capability actions through the Policy Engine.

Every call takes an explicit ``tenant_id``; there is no ambient tenant.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel

from composition_engine.core.installations import InstallationManager
from composition_engine.core.policy.policy_engine import PolicyEngine
from composition_engine.errors import EngineError, NotInstalledError, PolicyDeniedError
from composition_engine.models.enums import Slot
from composition_engine.models.schemas import AuthorizationDecision, RenderDescriptor, RenderEntry
from composition_engine.persistence.entity_store import EntityStore
from composition_engine.runtime.component_registry import ComponentRegistry

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT: dict[str, Any] = {
    "type": "default",
    "show_header": True,
    "show_sidebar": True,
    "show_footer": False,
    "sidebar_position": "left",
    "sidebar_width": 280,
}

DEFAULT_THEME: dict[str, Any] = {
    "primary": "hsl(222.2 47.4% 11.2%)",
    "secondary": "hsl(210 40% 96.1%)",
    "accent": "hsl(210 40% 96.1%)",
    "background": "hsl(0 0% 100%)",
    "text": "hsl(222.2 84% 4.9%)",
    "font_family": "Inter, system-ui, sans-serif",
    "border_radius": "0.5rem",
}

_CATEGORY_SLOTS: dict[str, Slot] = {
    "AI": Slot.FLOATING,
    "Authentication": Slot.HEADER,
    "Security": Slot.HEADER,
    "Communication": Slot.SIDEBAR,
    "Workflow": Slot.SIDEBAR,
}


def slot_for_category(category: str | None) -> Slot:
    return _CATEGORY_SLOTS.get(category or "", Slot.MAIN)


class ActionOutcome(BaseModel):
    """Result of a dispatched capability action.  A deny is a value, not a raise."""
    allowed: bool
    tenant_id: str
    capability_key: str
    action: str
    decision: Optional[AuthorizationDecision] = None
    denial: Optional[PolicyDeniedError] = None
    error: Optional[NotInstalledError] = None

    model_config = {"arbitrary_types_allowed": True}


ActionHandler = Callable[[str, str, Any], None]
ErrorHandler = Callable[[str, EngineError], None]
LoadedHandler = Callable[[RenderDescriptor], None]


class AppShell:
    """Composition runtime for installed apps."""

    def __init__(
        self,
        installations: InstallationManager,
        store: EntityStore,
        policy: PolicyEngine,
        components: ComponentRegistry | None = None,
        on_action: ActionHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_app_loaded: LoadedHandler | None = None,
    ):
        self.installations = installations
        self.registry = installations.registry
        self.store = store
        self.policy = policy
        self.components = components or ComponentRegistry()
        self.on_action = on_action
        self.on_error = on_error
        self.on_app_loaded = on_app_loaded

    def load_app(self, tenant_id: str, app_id: str) -> RenderDescriptor:
        installation = self.installations.get_installation(tenant_id, app_id)
        app = self.store.get_app(app_id)
        defaults = app.default_config if app else {}

        resolver = self.registry.resolver()
        roots = installation.selected | self.registry.core_keys()
        closure = resolver.resolve(roots)

        drift = [f"+{k}" for k in sorted(closure - installation.installed)]
        drift += [f"-{k}" for k in sorted(installation.installed - closure)]
        if drift:
            logger.warning(
                f"[{tenant_id}] Installation drift on {app_id}: {', '.join(drift)}"
            )

        capability_defaults = defaults.get("capabilities", {})
        entries: list[RenderEntry] = []
        for order, key in enumerate(resolver.install_order(roots)):
            cap = self.registry.get(key)
            entries.append(RenderEntry(
                capability_key=key,
                name=cap.name or key,
                component=self.components.resolve(cap),
                slot=slot_for_category(cap.category),
                order=order,
                config={
                    **capability_defaults.get(key, {}),
                    **installation.config.get(key, {}),
                },
                is_required=cap.is_core or bool(resolver.dependents_of(key, closure)),
            ))

        descriptor = RenderDescriptor(
            tenant_id=tenant_id,
            app_id=app_id,
            name=(app.name if app and app.name else app_id),
            capabilities=entries,
            layout={**DEFAULT_LAYOUT, **defaults.get("layout", {})},
            theme={**DEFAULT_THEME, **defaults.get("theme", {})},
            branding=dict(defaults.get("branding", {})),
            drift=drift,
        )
        logger.info(f"[{tenant_id}] Loaded {app_id} with {len(entries)} capabilities")
        if self.on_app_loaded:
            self.on_app_loaded(descriptor)
        return descriptor

    def dispatch_action(
        self,
        tenant_id: str,
        app_id: str,
        capability_key: str,
        action: str,
        payload: Any = None,
        tool: str | None = None,
        resource: str | None = None,
        roles: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> ActionOutcome:
        """
        Route a capability action.  The capability must be installed on the
        tenant's ``app_id``; tool and resource calls are then authorized.
        A rejection is returned in the outcome (``error`` or ``denial``) and
        reported through ``on_error``.
        """
        self.registry.get(capability_key)

        installation = self.installations.repository.load(tenant_id, app_id)
        if installation is None or capability_key not in installation.installed:
            error = NotInstalledError(tenant_id, app_id, capability_key)
            logger.info(f"[{tenant_id}] {capability_key}.{action} rejected: {error.message}")
            if self.on_error:
                self.on_error(capability_key, error)
            return ActionOutcome(
                allowed=False,
                tenant_id=tenant_id,
                capability_key=capability_key,
                action=action,
                error=error,
            )

        decision: AuthorizationDecision | None = None
        if tool or resource:
            decision = self.policy.authorize(
                tenant_id,
                tool=tool,
                resource=resource,
                action=action,
                roles=roles,
                context=context,
            )
            if not decision.allow:
                denial = self.policy.denial_for(decision)
                logger.info(f"[{tenant_id}] {capability_key}.{action} denied: {denial.message}")
                if self.on_error:
                    self.on_error(capability_key, denial)
                return ActionOutcome(
                    allowed=False,
                    tenant_id=tenant_id,
                    capability_key=capability_key,
                    action=action,
                    decision=decision,
                    denial=denial,
                )

        if self.on_action:
            self.on_action(capability_key, action, payload)
        return ActionOutcome(
            allowed=True,
            tenant_id=tenant_id,
            capability_key=capability_key,
            action=action,
            decision=decision,
        )
