"""
Component Registry — explicit capability-key → UI component mapping.

The presentation layer receives component identifiers, never capability
keys it has to reflect on.  Keys with no registered component render the
fallback placeholder.
"""

from __future__ import annotations

import logging

from composition_engine.models.schemas import Capability

logger = logging.getLogger(__name__)

FALLBACK_COMPONENT = "CapabilityPlaceholder"

_BUILTIN_COMPONENTS: dict[str, str] = {
    "auth": "AuthPanel",
    "audit-log": "AuditLogView",
    "contacts": "ContactList",
    "crm-pipeline": "PipelineBoard",
    "crm-automation": "AutomationRules",
    "notifications": "NotificationCenter",
    "reporting": "ReportDashboard",
    "ai-assistant": "AssistantWidget",
}


class ComponentRegistry:
    """Maps capability (or declared component) keys to component identifiers."""

    def __init__(
        self,
        components: dict[str, str] | None = None,
        fallback: str = FALLBACK_COMPONENT,
    ):
        self._components = dict(_BUILTIN_COMPONENTS if components is None else components)
        self.fallback = fallback

    def register(self, key: str, component: str) -> None:
        self._components[key] = component

    def __contains__(self, key: object) -> bool:
        return key in self._components

    def resolve(self, capability: Capability) -> str:
        lookup = capability.component or capability.key
        component = self._components.get(lookup)
        if component is None:
            logger.warning(
                f"No component registered for '{lookup}', using {self.fallback}"
            )
            return self.fallback
        return component
