"""
Error taxonomy for stack deployment.
"""

from typing import Optional

from botocore.exceptions import ClientError

# Client error codes that the event tailer treats as expected noise
QUIET_POLL_ERROR_CODES = ("RequestCanceled", "ValidationError", "Throttling")


class DeployError(Exception):
    """Fatal deployment error, wrapped with the failing operation and resource."""

    def __init__(self, operation: str, resource: str, cause: Optional[object] = None):
        self.operation = operation
        self.resource = resource
        self.cause = cause
        message = f"unable to {operation} {resource}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ConfigError(DeployError):
    """Invalid or unreadable configuration."""


class DescribeError(DeployError):
    """DescribeStacks failed for a reason other than a missing stack."""


class CreateError(DeployError):
    """CreateStack was rejected."""


class UpdateError(DeployError):
    """UpdateStack was rejected for a reason other than an empty change set."""


class DeleteError(DeployError):
    """DeleteStack was rejected."""


class WaitError(DeployError):
    """The stack reached a failure state, or never reached a terminal one."""


class DeploymentCancelled(DeployError):
    """The caller cancelled the operation while it was waiting."""


class TemplateParseError(DeployError):
    """Template body is neither YAML nor JSON."""


class StoreAccessError(DeployError):
    """The artifact store could not be listed."""


class UploadError(DeployError):
    """An artifact could not be uploaded."""


class ParameterBindingError(Exception):
    """
    A stack parameter was bound with a blank name or value.

    This signals a defect in parameter resolution rather than bad input, so it
    is deliberately not a DeployError.
    """


def error_code(error: BaseException) -> Optional[str]:
    """Return the AWS error code of a ClientError, or None."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def error_message(error: BaseException) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message") or str(error)
    return str(error)


def is_stack_missing(error: BaseException) -> bool:
    """DescribeStacks reports that the stack does not exist."""
    return (
        error_code(error) == "ValidationError"
        and "does not exist" in error_message(error)
    )


def is_no_updates(error: BaseException) -> bool:
    """UpdateStack reports that there is nothing to change."""
    return (
        error_code(error) == "ValidationError"
        and "No updates are to be performed" in error_message(error)
    )


def is_quiet_poll_error(error: BaseException) -> bool:
    """Polling failures that are expected while a stack is torn down or cancelled."""
    if not isinstance(error, ClientError):
        return False
    return error_code(error) in QUIET_POLL_ERROR_CODES
