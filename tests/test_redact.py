from __future__ import annotations

from pybustrack._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "busId": "bus_001",
        "auth": "db-secret",
        "idToken": "eyJhbGciOi",
        "password": "pw",
        "nested": {"Authorization": "Bearer abc", "lat": 1.5},
    }

    redacted = redact_for_log(payload)
    assert redacted["busId"] == "bus_001"
    assert redacted["auth"] == "<redacted>"
    assert redacted["idToken"] == "<redacted>"
    assert redacted["password"] == "<redacted>"
    assert redacted["nested"]["Authorization"] == "<redacted>"
    assert redacted["nested"]["lat"] == 1.5


def test_redact_url_masks_auth_query() -> None:
    url = "https://demo.firebaseio.com/buses/bus_001.json?auth=SECRET&print=silent"

    assert redact_url(url) == "https://demo.firebaseio.com/buses/bus_001.json?auth=<redacted>&print=silent"


def test_redact_for_log_masks_urls_inside_strings() -> None:
    assert "SECRET" not in redact_for_log("GET https://x/a.json?access_token=SECRET")


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
