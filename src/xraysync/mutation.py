"""Add/remove inbound users through Xray's ``HandlerService.AlterInbound``."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, Protocol

import grpc
import grpc.aio

from xraysync import _proto
from xraysync._constants import (
    ALREADY_EXISTS_MARKERS,
    ALTER_INBOUND_METHOD,
    INVALID_PAYLOAD_CODE,
    NOT_FOUND_MARKERS,
    PROTOCOL_TROJAN,
    PROTOCOL_VLESS,
)
from xraysync.config import SyncConfig
from xraysync.exceptions import MutationRejectedError, TargetUnavailableError
from xraysync.models.member import Member
from xraysync.supervisor import ConnectionSupervisor

_logger = logging.getLogger(__name__)

# Status codes that say "try again later" rather than "the request is wrong".
_TRANSIENT_CODES: frozenset[grpc.StatusCode] = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.CANCELLED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
    }
)

# Codes after which the channel itself is suspect.
_CONNECTION_CODES: frozenset[grpc.StatusCode] = frozenset({grpc.StatusCode.UNAVAILABLE})


class MutationClient(Protocol):
    """Structural mutation interface consumed by the engine.

    Both operations are idempotent: adding a present identity and removing an
    absent one return normally. Failures raise
    :class:`~xraysync.exceptions.TargetUnavailableError` or
    :class:`~xraysync.exceptions.MutationRejectedError`.
    """

    async def add_member(self, member: Member) -> None: ...

    async def remove_member(self, identity: str) -> None: ...


def _matches(details: str, identity: str, markers: tuple[str, ...]) -> bool:
    lowered = details.lower()
    return identity.lower() in lowered and any(marker in lowered for marker in markers)


class XrayMutationClient:
    """Mutation client for one Xray inbound, identified by its tag."""

    def __init__(self, config: SyncConfig, supervisor: ConnectionSupervisor) -> None:
        self._config = config
        self._supervisor = supervisor

    @property
    def inbound_tag(self) -> str:
        return self._config.inbound_tag

    # ------------------------------------------------------------------
    # Payload builders
    # ------------------------------------------------------------------

    def build_account(self, member: Member) -> Any:
        """Protocol account message for *member*.

        Per-member ``account`` values override the configured defaults.
        """
        params = member.account
        if self._config.protocol == PROTOCOL_TROJAN:
            return _proto.TrojanAccount(password=params.get("password", member.identity))
        if self._config.protocol == PROTOCOL_VLESS:
            return _proto.VlessAccount(
                id=params.get("id", member.identity),
                flow=params.get("flow", self._config.vless_flow),
                encryption=params.get("encryption", self._config.vless_encryption),
            )
        raise ValueError(f"Unsupported protocol: {self._config.protocol}")

    def build_add_request(self, member: Member) -> Any:
        user = _proto.User(
            level=member.tier,
            email=member.identity,
            account=_proto.to_typed_message(self.build_account(member)),
        )
        operation = _proto.AddUserOperation(user=user)
        return _proto.AlterInboundRequest(
            tag=self._config.inbound_tag,
            operation=_proto.to_typed_message(operation),
        )

    def build_remove_request(self, identity: str) -> Any:
        operation = _proto.RemoveUserOperation(email=identity)
        return _proto.AlterInboundRequest(
            tag=self._config.inbound_tag,
            operation=_proto.to_typed_message(operation),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def add_member(self, member: Member) -> None:
        """Add *member* to the inbound; an existing user counts as success."""
        await self._alter_inbound(
            functools.partial(self.build_add_request, member),
            identity=member.identity,
            operation="add",
            noop_markers=ALREADY_EXISTS_MARKERS,
        )

    async def remove_member(self, identity: str) -> None:
        """Remove *identity* from the inbound; a missing user counts as success."""
        await self._alter_inbound(
            functools.partial(self.build_remove_request, identity),
            identity=identity,
            operation="remove",
            noop_markers=NOT_FOUND_MARKERS,
        )

    async def _alter_inbound(
        self,
        build_request: Callable[[], Any],
        *,
        identity: str,
        operation: str,
        noop_markers: tuple[str, ...],
    ) -> None:
        # protobuf raises ValueError/TypeError for values outside a field's range.
        try:
            request = build_request()
        except (ValueError, TypeError) as exc:
            raise MutationRejectedError(
                f"{operation} {identity} rejected: invalid payload: {exc}",
                identity=identity,
                operation=operation,
                code=INVALID_PAYLOAD_CODE,
            ) from exc

        try:
            channel = self._supervisor.channel()
        except TargetUnavailableError as exc:
            # Restarts the reconnect loop if it is no longer running.
            self._supervisor.mark_unavailable(str(exc))
            raise TargetUnavailableError(str(exc), identity=identity, operation=operation) from exc

        call = channel.unary_unary(
            ALTER_INBOUND_METHOD,
            request_serializer=lambda msg: msg.SerializeToString(),
            response_deserializer=_proto.AlterInboundResponse.FromString,
        )
        _logger.debug(
            "AlterInbound %s tag=%s identity=%s",
            operation,
            self._config.inbound_tag,
            identity,
        )
        try:
            await call(request, timeout=self._config.call_timeout)
        except grpc.aio.AioRpcError as exc:
            code = exc.code()
            details = exc.details() or ""
            if _matches(details, identity, noop_markers):
                _logger.debug("AlterInbound %s identity=%s already applied: %s", operation, identity, details)
                return
            if code in _TRANSIENT_CODES:
                if code in _CONNECTION_CODES:
                    self._supervisor.mark_unavailable(details)
                raise TargetUnavailableError(
                    f"{operation} {identity} failed: {code.name} {details}".rstrip(),
                    identity=identity,
                    operation=operation,
                ) from exc
            raise MutationRejectedError(
                f"{operation} {identity} rejected: {code.name} {details}".rstrip(),
                identity=identity,
                operation=operation,
                code=code.name,
            ) from exc
        except TimeoutError as exc:
            raise TargetUnavailableError(
                f"{operation} {identity} timed out after {self._config.call_timeout}s",
                identity=identity,
                operation=operation,
            ) from exc
