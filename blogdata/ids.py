import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits


def generate_id() -> str:
    """
    Return a client-side unique id: epoch milliseconds followed by six
    random base-36 characters, so ids sort by creation time and two
    clients writing in the same millisecond still do not collide.
    """
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{time.time_ns() // 1_000_000}{suffix}"
