"""Composition runtime — AppShell and the explicit ComponentRegistry."""

from composition_engine.runtime.app_shell import ActionOutcome, AppShell
from composition_engine.runtime.component_registry import ComponentRegistry

__all__ = ["ActionOutcome", "AppShell", "ComponentRegistry"]
