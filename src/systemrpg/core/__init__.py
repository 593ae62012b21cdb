"""Core SystemRPG utilities.

This module exports configuration, logging and message lookup helpers
for use throughout the application.
"""

from systemrpg.core.config import Settings, get_settings
from systemrpg.core.logging import (
    bind_correlation_id,
    clear_context,
    configure_logging,
    get_logger,
    mask_token,
)
from systemrpg.core.messages import MessageSource

__all__ = [
    "MessageSource",
    "Settings",
    "bind_correlation_id",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_settings",
    "mask_token",
]
