# src/assessment_engine/core/exceptions.py
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class EngineError(Exception):
    """Base class for every error the engine surfaces to its caller."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "kind": type(self).__name__}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(EngineError):
    """Malformed or missing input. Nothing was mutated."""


class NotFound(EngineError):
    """Unknown entity, or one the caller does not own."""


class Forbidden(EngineError):
    """Role or enrollment requirement unmet."""


class WindowClosed(Forbidden):
    """Exam visibility window does not contain the current time."""


class Conflict(EngineError):
    """Duplicate self-service exam, pool too small, broken cross-references."""


def validate_payload(schema: Type[ModelT], data: Union[ModelT, Mapping[str, Any], None]) -> ModelT:
    """Coerce a mapping into `schema`, translating pydantic failures."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {schema.__name__} payload",
            details=[{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in e.errors()],
        ) from e
