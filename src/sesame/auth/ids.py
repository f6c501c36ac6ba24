"""Prefixed base32 ID generators and opaque random tokens.

Scheme
------
* Generate 20 random bytes -> base32-encode (lowercase, no padding), 32 chars.
* Replace the first character with a prefix:
  - 'u' for user IDs
  - 'f' for federation mapping IDs

Passkey user handles, session tokens and challenges are base64url strings
because they travel through WebAuthn payloads and cookies unchanged.

All randomness comes from a per-thread SHAKE128 stream keyed with OS entropy
(``random_bytes``). A forked child drops its inherited stream and builds a new one.
"""

from __future__ import annotations

import base64
import os
import sys
import threading

from cryptography.hazmat.primitives import hashes

_ID_LEN = 32
_ALLOWED_CHARS = set("abcdefghijklmnopqrstuvwxyz234567")

_DOMAIN = b"sesame:ids:v1\x00"
_MASTER_KEY = os.urandom(32)

_local = threading.local()
_U64_MASK = (1 << 64) - 1


def _forget_stream() -> None:
    _local.__dict__.clear()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_forget_stream)


def _stream() -> hashes.XOFHash:
    xof = getattr(_local, "xof", None)
    if xof is None:
        xof = hashes.XOFHash(hashes.SHAKE128(digest_size=sys.maxsize))
        xof.update(_DOMAIN)
        xof.update(_MASTER_KEY)
        xof.update((threading.get_ident() & _U64_MASK).to_bytes(8, "little"))
        xof.update(os.urandom(16))
        _local.xof = xof
    return xof


def random_bytes(nbytes: int) -> bytes:
    """Return *nbytes* bytes from this thread's random stream."""
    if nbytes <= 0:
        raise ValueError("nbytes must be > 0")
    return _stream().squeeze(nbytes)


def bytes_to_base64url(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def base64url_to_bytes(s: str) -> bytes:
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return base64.urlsafe_b64decode(s)


def random_base32() -> str:
    """Return a 32-char lowercase base32 string from 20 random bytes."""
    return base64.b32encode(random_bytes(20)).decode("ascii").lower()


def _new_prefixed(prefix: str) -> str:
    return prefix + random_base32()[1:]


def _is_prefixed(value: str, prefix: str) -> bool:
    if len(value) != _ID_LEN or not value.startswith(prefix):
        return False
    return all(c in _ALLOWED_CHARS for c in value[1:])


def new_user_id() -> str:
    return _new_prefixed("u")


def new_mapping_id() -> str:
    return _new_prefixed("f")


def is_user_id(value: str) -> bool:
    return _is_prefixed(value, "u")


def is_mapping_id(value: str) -> bool:
    return _is_prefixed(value, "f")


def new_passkey_user_id() -> str:
    """Return a fresh passkey-scoped user handle (base64url of 32 random bytes)."""
    return bytes_to_base64url(random_bytes(32))


def new_session_token() -> str:
    return bytes_to_base64url(random_bytes(32))


def new_challenge() -> str:
    """Return a fresh single-use challenge / nonce, base64url encoded."""
    return bytes_to_base64url(random_bytes(32))
