"""
M-Hike API: Shared Schemas & Validation Helpers
=================================================

What:  Base model for the camelCase API contract, the uniform error and
       health payloads, and the helpers that turn Pydantic validation
       errors into the API's `[{"field", "msg"}]` error list.

Why camelCase:
    Mobile clients already speak `hikeDate`, `parkingAvailable`, `photoUrl`.
    Models declare snake_case attributes and serialize through aliases;
    FastAPI's response_model serializes by alias by default.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from mhike.exceptions import ValidationFailed

ModelT = TypeVar("ModelT", bound=BaseModel)

_LOCATION_ROOTS = {"body", "query", "path", "header", "cookie", "form"}


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; also accepts snake_case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "upload_rejected",
            "message": "File size exceeds maximum limit of 20MB",
            "details": {"field": "photo"},
            "request_id": "550e8400"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


# ══════════════════════════════════════════════════════════════════════════
# Validation error helpers
# ══════════════════════════════════════════════════════════════════════════


def _clean_message(msg: str) -> str:
    # Pydantic prefixes messages raised from validators with "Value error, "
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


def _field_name(loc: Sequence[Any]) -> str:
    parts = [str(p) for p in loc if not isinstance(p, int)]
    if parts and parts[0] in _LOCATION_ROOTS:
        parts = parts[1:]
    return parts[-1] if parts else "request"


def error_list(errors: Sequence[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Convert Pydantic/FastAPI error dicts to [{"field", "msg"}]."""
    return [
        {"field": _field_name(err.get("loc", ())), "msg": _clean_message(str(err.get("msg", "")))}
        for err in errors
    ]


def parse_form(model: Type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """
    Validate multipart form fields against a schema.

    Multipart fields are validated inside the service, after the upload has
    been received, so a failure here unwinds through the asset transaction
    and the uploaded file is removed.

    Raises:
        ValidationFailed with one entry per offending field.
    """
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as exc:
        errors = error_list(exc.errors())
        raise ValidationFailed(
            message=errors[0]["msg"] if len(errors) == 1 else "Validation failed",
            errors=errors,
        ) from exc
