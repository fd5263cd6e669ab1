def unwrap(j):
    """Return API data payload regardless of envelope/legacy shape."""
    if isinstance(j, dict) and "ok" in j and "data" in j:
        return j["data"]
    return j

def is_enveloped(j) -> bool:
    return isinstance(j, dict) and "ok" in j and "data" in j

def error_of(resp):
    """(code, message) of an error envelope."""
    body = resp.json()
    assert is_enveloped(body), f"expected envelope, got: {body!r}"
    assert body["ok"] is False
    return body["error"]["code"], body["error"]["message"]

DEFAULT_PASSWORD = "pw-123456"
