from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .datacls.build import BuildResult


class FnBuilderError(Exception):
    """Base exception for all application-specific errors."""

    pass


# --- 1. Errors related to loading and parsing the project file ---
class ConfigurationError(FnBuilderError):
    """Base class for errors encountered while finding, reading, or parsing config files."""

    pass


class ConfigFileMissingError(ConfigurationError):
    """Raised when the project file cannot be found."""

    pass


class ConfigParsingError(ConfigurationError):
    """Raised when a YAML project file is syntactically incorrect."""

    pass


class ConfigValidationError(ConfigurationError):
    """Raised when the configuration fails structural validation (e.g., Pydantic)."""

    pass


# --- 2. Errors raised while assembling a build context ---
class ContextError(FnBuilderError):
    """Base class for errors that occur while assembling a build context."""

    pass


class ScopeViolation(ContextError):
    """Raised when a path resolves outside of (or exactly onto) its allowed root."""

    def __init__(self, message: str, path: str = "", resolved: str = ""):
        super().__init__(message)
        self.path = path
        self.resolved = resolved


class ContextClearError(ContextError):
    """Raised when a previous build context cannot be removed."""

    pass


class TemplateCopyError(ContextError):
    """Raised when the language template is missing or cannot be copied."""

    pass


class HandlerCopyError(ContextError):
    """Raised when the handler or an extra path cannot be copied into the context."""

    pass


# --- 3. Errors raised while writing or reading the context archive ---
class ArchiveError(FnBuilderError):
    """Raised when the tar archive cannot be written or read."""

    pass


# --- 4. Errors raised while talking to the Builder API ---
class BuilderError(FnBuilderError):
    """Base class for errors returned by the builder client."""

    pass


class SigningOrTransportError(BuilderError):
    """Raised when the signed request cannot be sent or its response not received."""

    pass


class UnexpectedStatusError(BuilderError):
    """Raised when the builder responds with a status other than 200 or 202.

    Carries whatever build result could be decoded from the body.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        result: Optional["BuildResult"] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.result = result


class ResultDecodeError(BuilderError):
    """Raised when a builder response body is not a valid build result."""

    pass


class StreamDecodeError(ResultDecodeError):
    """Raised when a line of a build result stream is not a valid build result."""

    def __init__(self, message: str, line_number: int, line: str = ""):
        super().__init__(message)
        self.line_number = line_number
        self.line = line


class StreamClosedError(BuilderError):
    """Raised when a build result stream is consumed a second time."""

    pass


# --- 5. Errors related to IO operations ---
class FnbIOError(FnBuilderError):
    """Base class for IO-related errors."""

    pass


class FnbPathExistsError(FnbIOError):
    """Raised when a file or directory already exists."""

    pass


class FnbPathNotFoundError(FnbIOError):
    """Raised when a file or directory is not found."""

    pass


class FnbNotAFileError(FnbIOError):
    """Raised when a file is expected, but a directory is found."""

    pass


class FnbNotADirectoryError(FnbIOError):
    """Raised when a directory is expected, but a file is found."""

    pass
