from __future__ import annotations

import pytest

from xraysync.config import SyncConfig
from xraysync.exceptions import SyncConfigError

_ENV_KEYS = (
    "SERVER_SECRET",
    "CONTROL_PLANE_URL",
    "XRAY_GRPC_ADDR",
    "XRAY_INBOUND_TAG",
    "XRAY_PROTOCOL",
    "XRAY_VLESS_FLOW",
    "XRAY_VLESS_ENCRYPTION",
    "SYNC_SECRET_HEADER",
    "SYNC_INTERVAL",
    "XRAY_CONNECT_RETRY",
    "XRAY_CONNECT_TIMEOUT",
    "XRAY_CALL_TIMEOUT",
    "SYNC_FETCH_TIMEOUT",
    "SYNC_MAX_CONCURRENCY",
    "SYNC_RECONCILE_ATTRIBUTES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVER_SECRET", "abc")

    config = SyncConfig.from_env()

    assert config.server_secret == "abc"
    assert config.control_plane_url == "http://127.0.0.1:3000"
    assert config.xray_grpc_addr == "http://host.docker.internal:8080"
    assert config.inbound_tag == "inbound-vless"
    assert config.protocol == "vless"
    assert config.sync_interval == 30.0
    assert config.connect_retry_interval == 10.0
    assert config.reconcile_attributes is True
    assert config.secret_header == "X-Server-Secret"


def test_from_env_reads_every_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVER_SECRET", " abc ")
    monkeypatch.setenv("CONTROL_PLANE_URL", "https://cp.example.com")
    monkeypatch.setenv("XRAY_GRPC_ADDR", "127.0.0.1:10085")
    monkeypatch.setenv("XRAY_INBOUND_TAG", "inbound-trojan")
    monkeypatch.setenv("XRAY_PROTOCOL", "TROJAN")
    monkeypatch.setenv("SYNC_INTERVAL", "15")
    monkeypatch.setenv("XRAY_CONNECT_RETRY", "2.5")
    monkeypatch.setenv("SYNC_MAX_CONCURRENCY", "4")
    monkeypatch.setenv("SYNC_RECONCILE_ATTRIBUTES", "off")

    config = SyncConfig.from_env()

    assert config.server_secret == "abc"
    assert config.control_plane_url == "https://cp.example.com"
    assert config.xray_grpc_addr == "127.0.0.1:10085"
    assert config.inbound_tag == "inbound-trojan"
    assert config.protocol == "trojan"
    assert config.sync_interval == 15.0
    assert config.connect_retry_interval == 2.5
    assert config.max_concurrency == 4
    assert config.reconcile_attributes is False


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVER_SECRET", "abc")
    monkeypatch.setenv("SYNC_INTERVAL", "not-a-number")

    config = SyncConfig.from_env(sync_interval=5.0, inbound_tag="other")

    assert config.sync_interval == 5.0
    assert config.inbound_tag == "other"


def test_missing_secret_is_rejected() -> None:
    with pytest.raises(SyncConfigError, match="SERVER_SECRET"):
        SyncConfig.from_env()


@pytest.mark.parametrize(
    ("key", "value", "match"),
    [
        ("SYNC_INTERVAL", "soon", "SYNC_INTERVAL"),
        ("SYNC_MAX_CONCURRENCY", "1.5", "SYNC_MAX_CONCURRENCY"),
        ("SYNC_INTERVAL", "0", "sync_interval"),
        ("XRAY_PROTOCOL", "shadowsocks", "Unsupported protocol"),
        ("XRAY_INBOUND_TAG", "  ", "XRAY_INBOUND_TAG"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, key: str, value: str, match: str) -> None:
    monkeypatch.setenv("SERVER_SECRET", "abc")
    monkeypatch.setenv(key, value)

    with pytest.raises(SyncConfigError, match=match):
        SyncConfig.from_env()
