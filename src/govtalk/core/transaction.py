"""Transaction ID generation.

Although the GovTalk envelope allows ``[0-9A-F]{0,32}``, some Gateways
only accept numeric transaction IDs, so only digits are produced: the
wall-clock seconds followed by eight sub-second digits.
"""

from __future__ import annotations

import threading
import time

__all__ = ["new_transaction_id"]

_FRACTION_DIGITS = 8

_last_transaction_id = 0
_transaction_lock = threading.Lock()


def new_transaction_id() -> str:
    """Return a fresh numeric transaction ID.

    Values are strictly increasing within the process, across threads
    and clients, even when the clock has not advanced between calls.
    """
    global _last_transaction_id
    seconds, nanos = divmod(time.time_ns(), 1_000_000_000)
    candidate = int(f"{seconds}{nanos // 10 ** (9 - _FRACTION_DIGITS):0{_FRACTION_DIGITS}d}")
    with _transaction_lock:
        if candidate <= _last_transaction_id:
            candidate = _last_transaction_id + 1
        _last_transaction_id = candidate
    return str(candidate)
