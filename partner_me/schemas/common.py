"""Shared schema helpers: response envelope, pagination and payload validation."""

from __future__ import annotations

from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from partner_me.core.errors import ValidationError


T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


def field_errors(errors: Sequence[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Group pydantic error entries by dotted field path."""

    details: Dict[str, List[str]] = {}
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "__root__"
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        details.setdefault(field, []).append(message)
    return details


def validate_payload(model: Type[ModelT], payload: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """Validate a mapping (or pass through a model) raising the app ValidationError."""

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", details=field_errors(exc.errors())) from exc

