from __future__ import annotations

import re
import secrets
import string
from datetime import datetime

from .time import now_utc

CODE_PREFIX = "CERT"
CODE_SUFFIX_LENGTH = 6
_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
CODE_PATTERN = re.compile(rf"^{CODE_PREFIX}-\d{{13,}}-[A-Z0-9]{{{CODE_SUFFIX_LENGTH}}}$")


def generate_certificate_code(now: datetime | None = None) -> str:
    """Return ``CERT-<epoch millis>-<random base36 suffix>``.

    The database unique constraint on ``certificate_code`` stays the authority;
    the time component plus random suffix only makes collisions improbable.
    """
    moment = now or now_utc()
    millis = int(moment.timestamp() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f"{CODE_PREFIX}-{millis}-{suffix}"


def is_certificate_code(value: str | None) -> bool:
    return bool(value) and CODE_PATTERN.fullmatch(value) is not None
