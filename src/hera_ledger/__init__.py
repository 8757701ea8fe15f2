"""HERA ledger - posts daily point of sale activity to the general ledger."""

__version__ = "0.1.0"

from hera_ledger.clients import UniversalAPIClient, UniversalAPIError
from hera_ledger.config import configure_logging, get_settings
from hera_ledger.finance import (
    DailySalesScheduler,
    FiscalPeriodGate,
    JournalPoster,
    PolicyStore,
    SalesSummarizer,
    SchedulerConfig,
    build_journal,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "UniversalAPIClient",
    "UniversalAPIError",
    # Pipeline
    "SalesSummarizer",
    "build_journal",
    "FiscalPeriodGate",
    "JournalPoster",
    "PolicyStore",
    "DailySalesScheduler",
    "SchedulerConfig",
    # Config
    "get_settings",
    "configure_logging",
]
