"""Internal constants shared across the library."""

SYNC_ENDPOINT = "/api/internal/sync"
SECRET_HEADER = "X-Server-Secret"
USER_AGENT = "xraysync"

DEFAULT_CONTROL_PLANE_URL = "http://127.0.0.1:3000"
DEFAULT_XRAY_GRPC_ADDR = "http://host.docker.internal:8080"
DEFAULT_INBOUND_TAG = "inbound-vless"

DEFAULT_SYNC_INTERVAL_S: float = 30.0
DEFAULT_CONNECT_RETRY_S: float = 10.0

# ------------------------------------------------------------------
# Xray gRPC API
# ------------------------------------------------------------------

ALTER_INBOUND_METHOD = "/xray.app.proxyman.command.HandlerService/AlterInbound"

PROTOCOL_VLESS = "vless"
PROTOCOL_TROJAN = "trojan"
SUPPORTED_PROTOCOLS: frozenset[str] = frozenset({PROTOCOL_VLESS, PROTOCOL_TROJAN})

# Xray reports these as plain errors (status UNKNOWN) that name the user
# email; together with the email they mean the target already matches.
ALREADY_EXISTS_MARKERS: tuple[str, ...] = ("already exists",)
NOT_FOUND_MARKERS: tuple[str, ...] = ("not found",)

# MutationRejectedError.code for requests that could not be encoded.
INVALID_PAYLOAD_CODE = "INVALID_PAYLOAD"
