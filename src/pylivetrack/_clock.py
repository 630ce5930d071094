"""Wall-clock helpers.

Every timestamp exchanged through the store is epoch milliseconds.
Components take a ``clock`` callable so tests can pin time.
"""

from __future__ import annotations

import time
from collections.abc import Callable

MsClock = Callable[[], int]


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)
