"""
Error taxonomy for stack orchestration.

Every error carries the HTTP status the controller layer should answer with,
so callers never have to inspect messages to pick a response code.
"""

from typing import Optional


class StackError(Exception):
    """Base class for all failures raised by the orchestration core."""

    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def with_context(self, verb: str, resource_type: str, name: Optional[str]) -> "StackError":
        """
        Return a copy of this error prefixed with the operation that failed.

        Example:
            >>> ConflictError("already exists").with_context("creating", "stack", "notebook1")
            ConflictError('Error creating stack: notebook1 - already exists')
        """
        wrapped = _clone(self, f"Error {verb} {resource_type}: {name} - {self.message}")
        wrapped.__cause__ = self
        return wrapped


class NotFoundError(StackError):
    """A stack or orchestrator resource does not exist."""
    http_status = 404


class ConflictError(StackError):
    """A stack or resource with the same name already exists."""
    http_status = 409


class PolicyViolationError(StackError):
    """The request is well formed but not allowed (e.g. public notebooks)."""
    http_status = 400


class InvalidRequestError(StackError):
    """The request failed shape validation."""
    http_status = 400


class AuthorizationError(StackError):
    """The user lacks the rights needed for the operation."""
    http_status = 403


class ImageNotFoundError(StackError):
    """No image is configured for the requested type/version combination."""
    http_status = 400


class OrchestratorError(StackError):
    """An unexpected failure reported by the Kubernetes API."""

    http_status = 500

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        remote_message: Optional[str] = None,
        resource_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.remote_message = remote_message
        self.resource_name = resource_name


class ConvergenceTimeoutError(OrchestratorError):
    """The poll policy gave up before a deployment reached its desired replicas."""


def _clone(error: StackError, message: str) -> StackError:
    if isinstance(error, OrchestratorError):
        return type(error)(
            message,
            status=error.status,
            remote_message=error.remote_message,
            resource_name=error.resource_name,
        )
    return type(error)(message)
