"""Time utilities for consistent timestamp handling."""

import time


def unix_now() -> int:
    """Return current time as whole unix seconds."""
    return int(time.time())
