"""Configuration errors raised at load time.

Runtime authorization failures are never exceptions: they are denials or
``Err`` results. Only broken configuration (a cyclic role graph, a
workflow table with duplicate keys) raises.
"""

from typing import Any

from beartype import beartype


class AuthorizationConfigError(Exception):
    """Static access-control configuration is unusable."""

    def __init__(self, error: str, error_description: str | None = None) -> None:
        """Initialize configuration error."""
        self.error = error
        self.error_description = error_description
        super().__init__(error_description or error)

    @beartype
    def to_dict(self) -> dict[str, Any]:
        response = {"error": self.error}
        if self.error_description:
            response["error_description"] = self.error_description
        return response


class RoleGraphError(AuthorizationConfigError):
    """Role inheritance graph is cyclic or references unknown roles."""


class WorkflowConfigurationError(AuthorizationConfigError):
    """Workflow table is malformed."""
