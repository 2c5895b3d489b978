"""
Input validation for score mutations.

All checks run before any storage access. Bounds come from ConfigManager
(``scores.increment.*``, ``scores.timestamp_window_seconds``).
"""

from __future__ import annotations

import time
from typing import Any, Optional

from rankstream.core.config.manager import ConfigManager
from rankstream.modules.shared.exceptions import ValidationError

ACTION_ID_MAX_LENGTH = 255


def validate_increment(value: Any, config: type[ConfigManager] = ConfigManager) -> int:
    minimum = int(config.get("scores.increment.min", 1))
    maximum = int(config.get("scores.increment.max", 1000))

    # bool is an int subclass and JSON true must not count as 1.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("score_increment", "score_increment must be an integer", value=value)
    if not minimum <= value <= maximum:
        raise ValidationError(
            "score_increment",
            f"score_increment must be between {minimum} and {maximum}",
            value=value,
        )
    return value


def validate_timestamp(
    value: Optional[Any],
    config: type[ConfigManager] = ConfigManager,
    now_ms: Optional[int] = None,
) -> Optional[int]:
    """
    Check a client millisecond timestamp against the replay window.

    ``None`` means no timestamp was supplied and always passes.
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("timestamp", "timestamp must be integer milliseconds", value=value)

    window_ms = int(config.get("scores.timestamp_window_seconds", 300)) * 1000
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now_ms - value) > window_ms:
        raise ValidationError(
            "timestamp",
            "timestamp is outside the accepted window",
            value=value,
        )
    return value


def validate_action_id(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("action_id", "action_id must be a non-empty string")
    if len(value) > ACTION_ID_MAX_LENGTH:
        raise ValidationError(
            "action_id", f"action_id must be at most {ACTION_ID_MAX_LENGTH} characters"
        )
    return value
