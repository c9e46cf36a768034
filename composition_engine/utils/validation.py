"""
Helpers for turning untrusted payloads into pydantic models on write paths.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from composition_engine.errors import ValidationError

M = TypeVar("M", bound=BaseModel)


def format_issues(exc: PydanticValidationError) -> list[str]:
    """Flatten pydantic errors into 'field.path: message' strings."""
    issues: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        issues.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return issues


def parse_model(model_cls: type[M], payload: M | dict[str, Any]) -> M:
    """Validate ``payload`` as ``model_cls`` or raise the engine ValidationError."""
    if isinstance(payload, model_cls):
        return payload.model_copy(deep=True)
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as exc:
        issues = format_issues(exc)
        raise ValidationError(f"Invalid {model_cls.__name__}", issues) from exc
