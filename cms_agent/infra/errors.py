"""Custom exception hierarchy for cms-agent.

All application-specific exceptions inherit from CMSAgentError,
which carries an error code for API error mapping.
"""

from __future__ import annotations


class CMSAgentError(Exception):
    """Base exception for all cms-agent errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GatewayError(CMSAgentError):
    """Errors in the HTTP boundary layer."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        super().__init__(message, code=code)


class AuthenticationError(GatewayError):
    """Admin request without an actor identity."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message, code="UNAUTHENTICATED")


class ProviderError(CMSAgentError):
    """Errors from LLM vendor calls (failures, malformed responses)."""

    def __init__(self, message: str, *, code: str = "PROVIDER_ERROR") -> None:
        super().__init__(message, code=code)


class PersistenceError(CMSAgentError):
    """Primary store write/delete failed."""

    def __init__(self, message: str, *, code: str = "PERSISTENCE_ERROR") -> None:
        super().__init__(message, code=code)


class ToolError(CMSAgentError):
    """Errors during tool execution."""

    def __init__(self, message: str, *, code: str = "TOOL_ERROR") -> None:
        super().__init__(message, code=code)


class ToolArgumentError(ToolError):
    """Missing or malformed tool arguments."""

    def __init__(self, message: str, *, code: str = "INVALID_ARGS") -> None:
        super().__init__(message, code=code)


class UnknownToolError(ToolError):
    """Tool name is not present in the registry."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", code="UNKNOWN_TOOL")
        self.tool_name = tool_name


class ContentPathError(ToolArgumentError):
    """Logical document path is outside the addressable document set."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_PATH")


class FieldPathError(ToolArgumentError):
    """A field path cannot be applied to the target document shape."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="FIELD_PATH_ERROR")


class InvalidVariantError(ToolArgumentError):
    """Section variant is not one of the known options."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_VARIANT")


class ResolutionError(ToolError):
    """Target document or entity could not be found."""

    def __init__(self, message: str, *, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code=code)


class DocumentNotFoundError(ResolutionError):
    """No content document exists at the requested address."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Content not found: {path}")
        self.path = path


class AuthorizationError(ToolError):
    """Raised by the surrounding permission layer; never decided here."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message, code="FORBIDDEN")
