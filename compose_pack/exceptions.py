"""Exceptions related to compose-pack."""

__all__ = [
    "ComposePackException",
    "InputException",
    "ChartNotFoundException",
    "InvalidChartException",
    "NetworkException",
    "ValuesException",
    "SchemaValidationException",
    "TemplateException",
    "CommandException",
    "CommandNotFoundException",
    "ComposeException",
    "ReleaseStoreException",
    "RuntimeDirException",
]


class ComposePackException(Exception):
    """Generic base exception used for this library."""


class InputException(ComposePackException):
    """Raised when the input files or values are not formatted as expected."""


class ChartNotFoundException(InputException):
    """Raised when a chart source does not exist."""


class InvalidChartException(InputException):
    """Raised when a chart is missing required files or has malformed metadata."""


class NetworkException(ComposePackException):
    """Raised when a remote chart archive could not be downloaded."""


class ValuesException(InputException):
    """Raised when a values file can't be read or parsed."""


class SchemaValidationException(ValuesException):
    """Raised when the merged values do not satisfy the chart values schema."""


class TemplateException(ComposePackException):
    """Raised when a chart template fails to parse or evaluate."""

    def __init__(self, template_path: str, message: str) -> None:
        super().__init__(f"Template {template_path} failed: {message}")
        self.template_path = template_path
        self.message = message


class CommandException(ComposePackException):
    """Raised when there is a failure running a subcommand."""


class CommandNotFoundException(CommandException):
    """Raised when the executable for a subcommand could not be found."""


class ComposeException(CommandException):
    """Raised when there is a failure running a docker compose command."""


class ReleaseStoreException(ComposePackException):
    """Raised when release metadata can't be read or written."""


class RuntimeDirException(ComposePackException):
    """Raised when the release runtime directory can't be read or written."""
