import secrets
import string
import time

_BASE36 = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_certificate_number(now_ms: int | None = None) -> str:
    """``CERT-<base36 epoch millis>-<6 random base36 chars>``, uppercase."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"CERT-{to_base36(now_ms)}-{suffix}"
