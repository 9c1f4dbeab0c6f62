"""Build validated parameter models from raw query arguments."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_params(model: type[ModelT], **raw: Any) -> ModelT:
    """Instantiate ``model``, turning pydantic errors into field-level detail."""
    try:
        return model(**{k: v for k, v in raw.items() if v is not None})
    except PydanticValidationError as e:
        errors: dict[str, list[str]] = {}
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "query"
            errors.setdefault(field, []).append(error["msg"])
        raise ValidationError("Invalid query parameters", errors=errors) from e
