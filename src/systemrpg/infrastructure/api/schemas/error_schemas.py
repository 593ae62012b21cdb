"""Standard error envelope returned by exception handlers."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """A single field validation error."""

    field: str = Field(..., description="Name of the offending field")
    error: str = Field(..., description="Human-readable error message")


class ErrorResponse(BaseModel):
    """Error envelope for 4xx/5xx responses.

    Null fields are omitted when rendered with ``to_content()``.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: str | None = Field(None, description="Error category")
    status: int = Field(..., description="HTTP status code")
    error: str = Field(..., description="HTTP reason phrase")
    message: str | None = Field(None, description="Localized message")
    field_errors: list[FieldError] | None = Field(None, description="Per-field errors")
    detail: str | None = Field(None, description="Additional detail")
    help: str | None = Field(None, description="Hint for resolving the error")
    path: str | None = Field(None, description="Request path")

    def to_content(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
