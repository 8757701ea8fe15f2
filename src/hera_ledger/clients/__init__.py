"""Clients for the HERA universal API."""

from hera_ledger.clients.universal_api import (
    DuplicateRecordError,
    Filter,
    UniversalAPIClient,
    UniversalAPIError,
)

__all__ = ["DuplicateRecordError", "Filter", "UniversalAPIClient", "UniversalAPIError"]
