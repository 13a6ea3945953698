"""Custom exception hierarchy for xraysync."""

from __future__ import annotations


class XraySyncError(Exception):
    """Base exception for all xraysync errors."""


class SyncConfigError(XraySyncError):
    """Invalid or missing configuration."""


class FetchError(XraySyncError):
    """Desired-state read failed (network, non-2xx, invalid body)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FetchAuthError(FetchError):
    """Control plane rejected the shared secret (401/403)."""


class MutationError(XraySyncError):
    """A single add/remove call against the proxy failed."""

    def __init__(
        self,
        message: str,
        *,
        identity: str = "",
        operation: str = "",
    ) -> None:
        self.identity = identity
        self.operation = operation
        super().__init__(message)


class TargetUnavailableError(MutationError):
    """Proxy API unreachable or the call timed out.

    Transient by nature; the identity is retried on the next cycle.
    """


class MutationRejectedError(MutationError):
    """Proxy API answered but declined the operation (e.g. unknown inbound tag)."""

    def __init__(
        self,
        message: str,
        *,
        identity: str = "",
        operation: str = "",
        code: str = "",
    ) -> None:
        self.code = code
        super().__init__(message, identity=identity, operation=operation)
