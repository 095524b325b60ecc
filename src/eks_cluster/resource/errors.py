"""Error taxonomy for resource operations.

Every adapter translates botocore ``ClientError`` through :func:`classify`,
so "does not exist" is one exception type regardless of which AWS service
reported it. Client-side botocore failures such as a dropped connection
become ProviderAPIError as well:

- NotFoundError: the resource does not exist (success for deletes)
- ProviderAPIError: any other AWS rejection (permissions, quota, bad input)
- PreconditionError: a local check failed before any AWS call was made
- WaitTimeoutError: a wait ran out of attempts
- TerminalStateError: AWS reports the resource itself failed to provision
- OperationCancelled: the client was cancelled between steps
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({
    "ResourceNotFoundException",
    "NoSuchEntity",
    "NoSuchEntityException",
    "NatGatewayNotFound",
    "NotFoundException",
})


class ResourceError(Exception):
    """Base class for all resource orchestration errors.

    ``partial`` holds whatever a create operation produced before it
    failed, so the caller can still record it for cleanup.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        identifier: str = "",
        partial: Any = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.identifier = identifier
        self.partial = partial


class NotFoundError(ResourceError):
    """Raised when AWS reports that a resource does not exist."""


class ProviderAPIError(ResourceError):
    """Raised when AWS rejects a request for any reason other than not-found."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        identifier: str = "",
        partial: Any = None,
        code: str = "",
    ) -> None:
        super().__init__(message, operation, identifier, partial)
        self.code = code


class PreconditionError(ResourceError):
    """Raised when a local check fails before any AWS call is attempted."""


class WaitTimeoutError(ResourceError, TimeoutError):
    """Raised when a wait exceeds its attempt ceiling."""

    def __init__(self, message: str, identifier: str = "", detail: str = "") -> None:
        super().__init__(message, operation="wait", identifier=identifier)
        self.detail = detail


class TerminalStateError(ResourceError):
    """Raised when AWS reports the resource reached a failed state."""

    def __init__(self, message: str, identifier: str = "", detail: str = "") -> None:
        super().__init__(message, operation="wait", identifier=identifier)
        self.detail = detail


class OperationCancelled(ResourceError):
    """Raised between steps once the resource client has been cancelled."""


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def is_not_found_code(code: str) -> bool:
    return code in NOT_FOUND_CODES or code.endswith(".NotFound")


def classify(exc: ClientError, operation: str, identifier: str = "") -> ResourceError:
    """Map a botocore ClientError to NotFoundError or ProviderAPIError."""
    code = error_code(exc)
    message = exc.response.get("Error", {}).get("Message", "") or str(exc)
    target = f"{operation} {identifier}".strip()
    if is_not_found_code(code):
        return NotFoundError(
            f"failed to {target}: {code}: {message}", operation, identifier,
        )
    return ProviderAPIError(
        f"failed to {target}: {code}: {message}", operation, identifier, code=code,
    )


@contextmanager
def translate_errors(operation: str, identifier: str = "") -> Iterator[None]:
    """Re-raise any botocore error in the block as a ResourceError."""
    try:
        yield
    except ClientError as exc:
        raise classify(exc, operation, identifier) from exc
    except BotoCoreError as exc:
        target = f"{operation} {identifier}".strip()
        raise ProviderAPIError(f"failed to {target}: {exc}", operation, identifier) from exc


@contextmanager
def tolerate_not_found(operation: str, identifier: str = "") -> Iterator[None]:
    """Like :func:`translate_errors`, but a NotFoundError ends the block quietly.

    Used by every delete: a resource that is already gone counts as deleted.
    """
    try:
        with translate_errors(operation, identifier):
            yield
    except NotFoundError:
        logger.warning("Skipping %s %s: not found", operation, identifier)


@contextmanager
def partial_result(result: Any) -> Iterator[Any]:
    """Attach *result* to any ResourceError raised in the block.

    Create adapters fill *result* progressively, so a failure midway still
    reports every identifier created before it.
    """
    try:
        yield result
    except ResourceError as exc:
        if exc.partial is None:
            exc.partial = result
        raise
