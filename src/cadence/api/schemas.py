"""
Shared response schemas for the HTTP API.

Error responses follow RFC 7807 (``application/problem+json``); success
bodies are the plain ``to_dict()`` views of the domain objects.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """A single field-level or nested error."""

    code: str = Field(description="Machine-readable error code (e.g. 'CONFIG')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field name that caused the error")


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response.

    Example:
        {
            "type": "about:blank",
            "title": "Not found",
            "status": 404,
            "detail": "Automation not found: 01J...",
            "instance": "/api/v1/automations/01J.../test",
            "errors": []
        }
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str = ""
    instance: str = ""
    errors: list[ErrorDetail] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str = "cadence"
    version: str
    database: str
