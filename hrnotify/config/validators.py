"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for settings that are legal but probably unwise.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    queue = config_dict.get("queue") or {}
    if not isinstance(queue, dict):
        return warning_messages

    interval = queue.get("process_interval")
    if isinstance(interval, str):
        try:
            if parse_duration(interval) < 10:
                warning_messages.append(
                    f"Short process_interval ({interval}) keeps the database busy polling"
                )
        except DurationParseError:
            # Reported as a hard error by model validation
            pass

    batch_size = queue.get("batch_size")
    send_delay_ms = queue.get("send_delay_ms")
    if isinstance(batch_size, int) and batch_size > 200:
        warning_messages.append(
            f"Large batch_size ({batch_size}) may exceed mail provider rate limits"
        )
    if send_delay_ms == 0:
        warning_messages.append(
            "send_delay_ms is 0; consecutive sends are not throttled"
        )

    if queue.get("max_retries") == 1:
        warning_messages.append(
            "max_retries is 1; a single transient failure marks an email FAILED"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
