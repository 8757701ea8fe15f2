"""Exceptions raised by the daily sales posting pipeline.

``retryable`` tells the scheduler whether another attempt can change the
outcome. Store errors from :mod:`hera_ledger.clients` are always retried.
"""


class PostingError(Exception):
    """Base exception for posting pipeline failures."""

    retryable = True


class ConfigurationError(PostingError):
    """Organization setup is incomplete (missing policy, bad mapping)."""

    retryable = False


class PolicyNotFoundError(ConfigurationError):
    """No sales posting policy exists for the organization."""

    def __init__(self, organization_id: str):
        super().__init__(f"No sales posting policy found for organization {organization_id}")
        self.organization_id = organization_id


class ClosedPeriodError(PostingError):
    """Posting date falls into a closed or missing fiscal period."""

    retryable = False

    def __init__(self, reason: str):
        super().__init__(f"Cannot post to closed fiscal period: {reason}")
        self.reason = reason


class SummarizationError(PostingError):
    """Reading the day's sales from the store failed."""

    pass


class JournalWriteError(PostingError):
    """Writing the journal to the store failed."""

    pass


class UnbalancedJournalError(PostingError):
    """Journal debits and credits differ, or it has no lines."""

    retryable = False
