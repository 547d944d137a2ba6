"""Common schemas and utilities."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class CamelSchema(BaseSchema):
    """Schema serialized with camelCase keys for the dashboard frontend."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class ErrorResponse(CamelSchema):
    """``success: false`` envelope returned by the chat and diagnostic endpoints."""

    success: bool = False
    error: str
