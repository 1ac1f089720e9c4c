from __future__ import annotations

import logging
import time

_LAST: dict[str, float] = {}
_MAX_CODES = 1024


def warn_once(logger: logging.Logger, code: str, message: str, window: int = 60) -> bool:
    """Log a warning once per time window for a given code.

    To avoid unbounded growth when many unique codes are used, the cache is
    capped and oldest entries are discarded. Returns ``True`` when the warning
    was emitted.
    """
    now = time.monotonic()
    last = _LAST.get(code)
    if last is None or now - last > window:
        if len(_LAST) >= _MAX_CODES:
            oldest = min(_LAST, key=_LAST.get)
            _LAST.pop(oldest, None)
        _LAST[code] = now
        logger.warning("%s: %s", code, message)
        return True
    logger.debug("%s: %s", code, message)
    return False


def reset_warnings() -> None:
    """Forget every code seen so far."""
    _LAST.clear()
