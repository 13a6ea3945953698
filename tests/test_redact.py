from __future__ import annotations

from xraysync._redact import redact_for_log


def test_secret_header_is_masked_case_insensitively() -> None:
    headers = {"X-Server-Secret": "s3cr3t", "accept": "application/json"}

    assert redact_for_log(headers) == {"X-Server-Secret": "<redacted>", "accept": "application/json"}
    assert redact_for_log({"x-server-secret": "s3cr3t"}) == {"x-server-secret": "<redacted>"}


def test_custom_secret_header_is_masked() -> None:
    redacted = redact_for_log(
        {"X-Custom-Auth": "abc", "X-Server-Secret": "s"},
        sensitive_keys=frozenset({"x-custom-auth"}),
    )

    assert redacted == {"X-Custom-Auth": "<redacted>", "X-Server-Secret": "<redacted>"}


def test_nested_values_are_walked() -> None:
    redacted = redact_for_log({"members": [{"identity": "u-1", "x-server-secret": "leak"}], "count": 1})

    assert redacted == {"members": [{"identity": "u-1", "x-server-secret": "<redacted>"}], "count": 1}


def test_long_strings_are_truncated() -> None:
    redacted = redact_for_log({"value": "x" * 600}, max_string=10)

    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
