"""Logging utilities for Townsfolk simulations.

Provides color-coded console output that separates deterministic steps
(movement, perception) from text-generation calls and failures.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (movement, perception)
    YELLOW = "\033[93m"    # Text generation (planning, dialogue, reflection)
    RED = "\033[91m"       # Errors and fallbacks
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if TOWNSFOLK_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("TOWNSFOLK_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def is_verbose() -> bool:
    """True when TOWNSFOLK_VERBOSE asks for per-step output."""
    return os.getenv("TOWNSFOLK_VERBOSE", "").lower() in ("1", "true", "yes")


def is_debug_llm() -> bool:
    """True when DEBUG_LLM asks for prompt/response dumps."""
    return os.getenv("DEBUG_LLM", "").lower() in ("1", "true", "yes")


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # Text generation call
LOG_TAG_ERROR = "[!]"          # Error/fallback
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue). Only shown in verbose mode."""
    if is_verbose():
        print(colored(f"  {LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log a text-generation step (yellow). Only shown in verbose mode."""
    if is_verbose():
        print(colored(f"  {LOG_TAG_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or fallback (red)."""
    print(colored(f"  {LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"  {LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"  {LOG_TAG_INFO} {message}", Color.CYAN))
