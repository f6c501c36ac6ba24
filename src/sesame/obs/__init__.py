"""Observability helpers – trace ids, access logs and secret redaction."""

from sesame.obs.redaction import make_redactor, redact_headers, redact_value
from sesame.obs.setup import init_observability

__all__ = [
    "init_observability",
    "make_redactor",
    "redact_headers",
    "redact_value",
]
