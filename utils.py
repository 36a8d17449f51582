"""
Utility functions for the Thought Percolator application.
"""

from datetime import datetime
from typing import Optional

from flask import current_app

DEFAULT_SHARE_DESCRIPTION_LENGTH = 200
SHARE_HASHTAGS = "#ThoughtPercolator #Ideas #Innovation"


def _get_share_length(default: int = DEFAULT_SHARE_DESCRIPTION_LENGTH) -> int:
    """Read share description length from app config when available."""
    try:
        return int(current_app.config.get("SHARE_DESCRIPTION_LENGTH", default))
    except RuntimeError:
        # No app context active
        return default


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp ``value`` into the inclusive range [lower, upper]."""
    return min(max(value, lower), upper)


def is_strict_int(value) -> bool:
    """True for ints, False for bools and everything else."""
    return isinstance(value, int) and not isinstance(value, bool)


def truncate(text: str, length: int) -> str:
    """Cut ``text`` to ``length`` characters, adding an ellipsis when cut."""
    if len(text) > length:
        return text[:length] + "..."
    return text


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 rendering used by every serialized record."""
    return value.isoformat() if value else None


def compose_share_text(title: str, description: str, rank: int,
                       description_length: Optional[int] = None) -> str:
    """
    Compose a short social post announcing an idea.

    Args:
        title: Idea title
        description: Idea description (truncated)
        rank: Idea maturity rank
        description_length: Maximum description characters (optional)

    Returns:
        Post text with title, description excerpt, maturity and hashtags
    """
    if description_length is None:
        description_length = _get_share_length()
    excerpt = truncate(description, description_length)
    return (
        f"\U0001F4A1 New idea: {title}\n\n"
        f"{excerpt}\n\n"
        f"Maturity: {rank}/10\n"
        f"{SHARE_HASHTAGS}"
    )
