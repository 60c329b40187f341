"""Identifier helpers for jobs and batches."""
from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


def new_id(prefix: str) -> str:
    """Return ``<prefix>_<epoch millis>_<random suffix>``.

    The value is a process-local handle. It is not unique across processes
    and must not be used as a security token.
    """

    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}_{millis}_{suffix}"
