"""Response envelope and shared base model."""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from citycare.exceptions import ValidationError

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base schema that reads snake_case attributes and emits camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    """Offset pagination metadata."""

    total: int
    page: int
    pages: int
    limit: int


class ApiResponse(CamelModel, Generic[DataT]):
    """Standard ``{success, message, data, pagination, count}`` envelope."""

    success: bool = True
    message: str | None = None
    data: DataT | None = None
    pagination: Pagination | None = None
    count: int | None = None


class ErrorResponse(CamelModel):
    """Error envelope rendered by the exception handlers."""

    success: bool = False
    message: str
    error: str | None = None
    errors: list[str] | None = None
    field: str | None = None


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], data: Any) -> ModelT:
    """Validate raw request data, raising the domain ValidationError on failure."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
            for error in exc.errors()
        ]
        if any(error["type"] == "missing" for error in exc.errors()):
            message = "All required fields must be provided"
        else:
            message = "Validation error"
        raise ValidationError(message, errors=errors) from None
