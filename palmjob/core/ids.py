"""Analysis ids: base36 millisecond timestamp + random base36 suffix."""
import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 10  # ~51 bits of randomness per millisecond


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def new_analysis_id(now_ms: int | None = None) -> str:
    """
    Fresh id per intake request, never reused. No collision check against the store:
    the random suffix makes a clash within one millisecond negligible.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36) for _ in range(SUFFIX_LENGTH))
    return f"{_to_base36(now_ms)}-{suffix}"
