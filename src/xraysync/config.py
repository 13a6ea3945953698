"""Agent configuration for xraysync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from xraysync._constants import (
    DEFAULT_CONNECT_RETRY_S,
    DEFAULT_CONTROL_PLANE_URL,
    DEFAULT_INBOUND_TAG,
    DEFAULT_SYNC_INTERVAL_S,
    DEFAULT_XRAY_GRPC_ADDR,
    PROTOCOL_VLESS,
    SECRET_HEADER,
    SUPPORTED_PROTOCOLS,
)
from xraysync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Agent configuration.

    Parameters
    ----------
    server_secret : str
        Shared secret sent to the control plane in ``secret_header``.
    control_plane_url : str
        Base URL of the control plane serving the desired member list.
    xray_grpc_addr : str
        Xray API address (``host:port``, ``http://host:port`` or
        ``https://host:port``).
    inbound_tag : str
        Tag of the Xray inbound users are added to and removed from.
    protocol : str
        Account protocol of that inbound (``"vless"`` or ``"trojan"``).
    vless_flow : str
        Default VLESS ``flow`` for members that do not carry one.
    vless_encryption : str
        Default VLESS ``encryption`` for members that do not carry one.
    sync_interval : float
        Seconds between the starts of two reconciliation cycles.
    connect_retry_interval : float
        Seconds between Xray connection attempts.
    connect_timeout : float
        Seconds a single connection attempt may take.
    call_timeout : float
        Deadline in seconds for one ``AlterInbound`` call.
    fetch_timeout : float
        Total timeout in seconds for the desired-state read.
    max_concurrency : int
        Upper bound of in-flight mutation calls within a cycle.
    reconcile_attributes : bool
        Re-apply members whose tier or account parameters changed.
    secret_header : str
        Header name carrying ``server_secret``.
    """

    server_secret: str
    control_plane_url: str = DEFAULT_CONTROL_PLANE_URL
    xray_grpc_addr: str = DEFAULT_XRAY_GRPC_ADDR
    inbound_tag: str = DEFAULT_INBOUND_TAG
    protocol: str = PROTOCOL_VLESS
    vless_flow: str = ""
    vless_encryption: str = "none"
    sync_interval: float = DEFAULT_SYNC_INTERVAL_S
    connect_retry_interval: float = DEFAULT_CONNECT_RETRY_S
    connect_timeout: float = 5.0
    call_timeout: float = 5.0
    fetch_timeout: float = 10.0
    max_concurrency: int = 8
    reconcile_attributes: bool = True
    secret_header: str = SECRET_HEADER

    def validate(self) -> SyncConfig:
        """Raise :class:`SyncConfigError` if the configuration is unusable."""
        if not self.server_secret:
            raise SyncConfigError("SERVER_SECRET must be set")
        if not self.control_plane_url:
            raise SyncConfigError("CONTROL_PLANE_URL must not be empty")
        if not self.xray_grpc_addr:
            raise SyncConfigError("XRAY_GRPC_ADDR must not be empty")
        if not self.inbound_tag:
            raise SyncConfigError("XRAY_INBOUND_TAG must not be empty")
        if self.protocol not in SUPPORTED_PROTOCOLS:
            raise SyncConfigError(
                f"Unsupported protocol {self.protocol!r}; expected one of {sorted(SUPPORTED_PROTOCOLS)}"
            )
        for name in ("sync_interval", "connect_retry_interval", "connect_timeout", "call_timeout", "fetch_timeout"):
            if getattr(self, name) <= 0:
                raise SyncConfigError(f"{name} must be positive")
        if self.max_concurrency < 1:
            raise SyncConfigError("max_concurrency must be at least 1")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``SERVER_SECRET`` plus the optional ``CONTROL_PLANE_URL``,
        ``XRAY_*`` and ``SYNC_*`` variables. Explicit keyword arguments
        override environment values. The result is validated.

        Raises
        ------
        SyncConfigError
            If a required value is missing or a value cannot be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "SERVER_SECRET": "server_secret",
            "CONTROL_PLANE_URL": "control_plane_url",
            "XRAY_GRPC_ADDR": "xray_grpc_addr",
            "XRAY_INBOUND_TAG": "inbound_tag",
            "XRAY_PROTOCOL": "protocol",
            "XRAY_VLESS_FLOW": "vless_flow",
            "XRAY_VLESS_ENCRYPTION": "vless_encryption",
            "SYNC_SECRET_HEADER": "secret_header",
        }
        _ENV_FLOAT_MAP = {
            "SYNC_INTERVAL": "sync_interval",
            "XRAY_CONNECT_RETRY": "connect_retry_interval",
            "XRAY_CONNECT_TIMEOUT": "connect_timeout",
            "XRAY_CALL_TIMEOUT": "call_timeout",
            "SYNC_FETCH_TIMEOUT": "fetch_timeout",
        }

        config_kwargs: dict[str, Any] = {"server_secret": ""}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise SyncConfigError(f"{env_key} must be a number, got {val!r}") from exc

        concurrency_env = env.get("SYNC_MAX_CONCURRENCY")
        if concurrency_env is not None and "max_concurrency" not in overrides:
            try:
                config_kwargs["max_concurrency"] = int(concurrency_env)
            except ValueError as exc:
                raise SyncConfigError(f"SYNC_MAX_CONCURRENCY must be an integer, got {concurrency_env!r}") from exc

        if "reconcile_attributes" not in overrides:
            config_kwargs["reconcile_attributes"] = _env_bool(env.get("SYNC_RECONCILE_ATTRIBUTES"), True)

        config_kwargs.update(overrides)
        if isinstance(config_kwargs.get("protocol"), str):
            config_kwargs["protocol"] = config_kwargs["protocol"].lower()

        return cls(**config_kwargs).validate()
