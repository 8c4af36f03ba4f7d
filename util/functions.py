# util/functions.py
import random
import string
import time

_KEY_ALPHABET = string.ascii_lowercase + string.digits


def clip_text(text: str, max_chars: int = 200) -> str:
    """
    - Trim 'text' to at most `max_chars` characters for log/UI display.
    - Adds an ellipsis when trimming occurs.
    """
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + " …"


def new_idempotency_key(prefix: str = "op") -> str:
    """
    Time-based key plus a random base-36 suffix, e.g. 'sub_1718000000000_k3j9x0a2b'.
    Practical uniqueness only; not a security token.
    """
    suffix = "".join(random.choices(_KEY_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def backoff_delay_ms(backoff_base_ms: int, failed_attempt: int) -> int:
    # Wait after failed attempt k (1-indexed): base * 2^(k-1).
    return int(backoff_base_ms * (2 ** max(0, failed_attempt - 1)))
