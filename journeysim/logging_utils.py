"""Logging utilities for journey simulations.

Provides color-coded output to distinguish clock, event and reminder activity.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Deterministic recomputation (deadlines, statuses)
    YELLOW = "\033[93m"    # Reminders fired
    RED = "\033[91m"       # Errors and overdue transitions
    GREEN = "\033[92m"     # Completions
    CYAN = "\033[96m"      # Info/metadata

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if JOURNEYSIM_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("JOURNEYSIM_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def log_deterministic(message: str) -> None:
    """Log a recomputation step (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_reminder(message: str) -> None:
    """Log a fired reminder (yellow)."""
    print(colored(f"{LOG_TAG_REMINDER} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or overdue transition (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a completion (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_REMINDER = "[>]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"
