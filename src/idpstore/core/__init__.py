"""Core configuration and utilities for idpstore."""

from idpstore.core.config import settings
from idpstore.core.logging import setup_logging

__all__ = ["settings", "setup_logging"]
