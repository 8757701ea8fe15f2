"""Daily sales to general ledger posting pipeline."""

from hera_ledger.finance.errors import (
    ClosedPeriodError,
    ConfigurationError,
    JournalWriteError,
    PolicyNotFoundError,
    PostingError,
    SummarizationError,
    UnbalancedJournalError,
)
from hera_ledger.finance.fiscal import FiscalPeriodGate, PeriodCheck
from hera_ledger.finance.journal import build_journal
from hera_ledger.finance.models import (
    JournalHeader,
    JournalLine,
    JournalPayload,
    PostingResult,
    SalesSummary,
    SalesTotals,
)
from hera_ledger.finance.policy import AccountRole, PolicyStore, SalesPostingPolicy
from hera_ledger.finance.poster import JournalPoster, PostOutcome
from hera_ledger.finance.scheduler import DailySalesScheduler, SchedulerConfig
from hera_ledger.finance.summarizer import SalesSummarizer

__all__ = [
    # Errors
    "PostingError",
    "ConfigurationError",
    "PolicyNotFoundError",
    "ClosedPeriodError",
    "SummarizationError",
    "JournalWriteError",
    "UnbalancedJournalError",
    # Models
    "SalesSummary",
    "SalesTotals",
    "JournalHeader",
    "JournalLine",
    "JournalPayload",
    "PostingResult",
    # Pipeline
    "SalesSummarizer",
    "build_journal",
    "FiscalPeriodGate",
    "PeriodCheck",
    "JournalPoster",
    "PostOutcome",
    "PolicyStore",
    "SalesPostingPolicy",
    "AccountRole",
    "DailySalesScheduler",
    "SchedulerConfig",
]
