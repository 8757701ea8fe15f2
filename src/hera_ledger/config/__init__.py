"""Configuration module for the HERA ledger posting service."""

from hera_ledger.config.logging import configure_logging
from hera_ledger.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging"]
