"""Cross-cutting request handling for the HTTP API."""

from cadence.api.middleware.errors import (
    cadence_error_handler,
    problem_response,
    unhandled_exception_handler,
)

__all__ = ["cadence_error_handler", "problem_response", "unhandled_exception_handler"]
