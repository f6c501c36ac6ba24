import re

from sesame.obs.redaction import make_redactor, redact_headers, redact_value

JWT_SHORT = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.eyJzdWIiOiIxMjM0NTY3ODkwIn0"


def test_redact_headers():
    headers = {
        "Authorization": "Bearer secret",
        "Cookie": "SESAME_SESSION=abc",
        "Set-Cookie": "SESAME_SESSION=abc; HttpOnly",
        "Set-Login": "logged-in",
        "Content-Type": "application/json",
        "X-Requested-With": "XMLHttpRequest",
    }
    redacted = redact_headers(headers)

    assert redacted["Authorization"] == "[REDACTED]"
    assert redacted["Cookie"] == "[REDACTED]"
    assert redacted["Set-Cookie"] == "[REDACTED]"
    assert redacted["Set-Login"] == "[REDACTED]"
    assert redacted["Content-Type"] == "application/json"
    assert redacted["X-Requested-With"] == "XMLHttpRequest"

    # Test case insensitivity
    redacted_lower = redact_headers({"cookie": "SESAME_SESSION=abc"})
    assert redacted_lower["cookie"] == "[REDACTED]"


def test_redact_headers_empty():
    assert redact_headers({}) == {}


def test_redact_value():
    assert redact_value(JWT_SHORT) == "[REDACTED]"

    # Session cookie keeps its name
    assert redact_value("SESAME_SESSION=abc123; Path=/") == "SESAME_SESSION=[REDACTED]; Path=/"

    # Non-sensitive
    assert redact_value("hello world") == "hello world"

    # Multiple secrets
    mixed = f"token {JWT_SHORT} cookie SESAME_SESSION=xyz"
    assert redact_value(mixed) == "token [REDACTED] cookie SESAME_SESSION=[REDACTED]"


def test_make_redactor():
    redact = make_redactor()
    assert redact(JWT_SHORT) == "[REDACTED]"

    # Extra patterns
    custom_pattern = re.compile(r"CUSTOM-[0-9]+")
    redact_custom = make_redactor(extra_patterns=[custom_pattern])
    assert redact_custom("CUSTOM-123") == "[REDACTED]"
    assert redact_custom(JWT_SHORT) == "[REDACTED]"  # Should still have defaults


def test_redact_value_any_session_cookie_name():
    assert redact_value("__Secure-SESAME_SESSION=abc") == "__Secure-SESAME_SESSION=[REDACTED]"
    assert redact_value("my_session_id=abc; Path=/") == "my_session_id=[REDACTED]; Path=/"
    assert redact_value("theme=dark") == "theme=dark"
