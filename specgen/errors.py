"""Error taxonomy shared by the gateway, tools and document pipeline."""

from typing import Optional


class SpecgenError(Exception):
    """Base class for all specgen errors."""

    pass


class ConfigurationError(SpecgenError):
    """Required credential material is missing or empty."""

    pass


class AuthenticationFailure(SpecgenError):
    """A token endpoint rejected the request or could not be reached."""

    pass


class RemoteRequestError(SpecgenError):
    """A target API answered with a non-2xx status, or could not be reached.

    ``status`` is None for transport failures.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str = "",
        path: str = "",
        status: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.method = method
        self.path = path
        self.status = status
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class ResponseParseError(SpecgenError):
    """A successful response did not carry the expected JSON shape."""

    pass


class GenerationFailure(SpecgenError):
    """The text-generation backend failed."""

    pass


class ToolExecutionError(SpecgenError):
    """A tool could not complete. Converted to an error result by the registry."""

    pass


class McpError(SpecgenError):
    """An MCP server returned a JSON-RPC error or the transport was closed."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code
