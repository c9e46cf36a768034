"""
Core — the engine boundary.

Callers import ONLY from this package:
    from composition_engine.core import CompositionEngine
"""

from .engine_service import CompositionEngine

__all__ = ["CompositionEngine"]
