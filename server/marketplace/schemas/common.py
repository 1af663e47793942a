"""Common Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for response bodies; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RequestModel(ApiModel):
    """Base for request bodies; unknown fields are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class BookingIdRequest(RequestModel):
    """Request naming a single booking."""

    booking_id: str = Field(..., min_length=1, max_length=36, description="Booking identifier")


class Violation(ApiModel):
    """One field-level validation failure."""

    field: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="What is wrong with it")


class Problem(ApiModel):
    """RFC 9457 problem body, for documentation."""

    type: str
    title: str
    status: int
    code: str
    retryable: bool = False
    detail: str | None = None
    instance: str | None = None
    violations: list[Violation] | None = None
