"""Logging configuration for the courseflow entry points."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def _resolve_level(level_name: Optional[str]) -> int:
    """Map a level name to a logging level; unknown names fall back to INFO."""
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_level: Optional[str] = "INFO", console: Optional[Console] = None) -> None:
    """
    Configures logging for the command line entry points.
    """
    logging.basicConfig(
        level=_resolve_level(log_level),
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console or Console(stderr=True),
                rich_tracebacks=True,
                show_path=False,
                log_time_format="[%Y-%m-%d %H:%M:%S]",
            )
        ],
        force=True,
    )

    # Quieten down noisy libraries
    logging.getLogger("pydantic").setLevel(logging.WARNING)
