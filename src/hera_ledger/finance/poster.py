"""Idempotent, period-checked writes of daily sales journals."""

import asyncio
import weakref
from dataclasses import dataclass
from datetime import date
from typing import Any

import structlog

from hera_ledger.clients.universal_api import (
    TRANSACTIONS,
    DuplicateRecordError,
    Filter,
    UniversalAPIClient,
    UniversalAPIError,
)
from hera_ledger.finance.errors import (
    ClosedPeriodError,
    JournalWriteError,
    PostingError,
    UnbalancedJournalError,
)
from hera_ledger.finance.fiscal import FiscalPeriodGate
from hera_ledger.finance.models import JournalHeader, JournalPayload, day_window

logger = structlog.get_logger(__name__)

# Serializes check-then-write per (organization, branch, day) in this process;
# an entry lives only while some task holds a reference to its lock
_posting_locks: "weakref.WeakValueDictionary[tuple[str, str, date], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


@dataclass
class PostOutcome:
    success: bool
    transaction_id: str | None = None
    error: str | None = None
    already_exists: bool = False


class JournalPoster:
    """Writes a journal once per organization, branch and day."""

    def __init__(self, api: UniversalAPIClient, gate: FiscalPeriodGate | None = None):
        self._api = api
        self._gate = gate or FiscalPeriodGate(api)
        self._logger = logger.bind(component="poster")

    async def find_existing(self, header: JournalHeader) -> dict[str, Any] | None:
        """Return the journal already posted for the header's branch and day."""
        day_start, day_end = day_window(header.day)
        rows = await self._api.read(
            TRANSACTIONS,
            [
                Filter.eq("organization_id", header.organization_id),
                Filter.eq("smart_code", header.smart_code),
                Filter.eq("branch_id", header.branch_id),
                Filter.gte("transaction_date", day_start.isoformat()),
                Filter.lt("transaction_date", day_end.isoformat()),
            ],
        )
        return rows[0] if rows else None

    async def post_or_raise(self, payload: JournalPayload) -> PostOutcome:
        """Post the journal, raising on failure.

        Raises:
            UnbalancedJournalError: The payload has no lines or does not balance.
            ClosedPeriodError: The posting day is not in an open fiscal period.
            JournalWriteError: The store rejected the write.
        """
        header = payload.header
        if not payload.lines or not payload.is_balanced:
            raise UnbalancedJournalError(
                f"Journal for branch {header.branch_id} on {header.day} is unbalanced: "
                f"debit {payload.total_debit}, credit {payload.total_credit}"
            )

        key = (header.organization_id, header.branch_id, header.day)
        lock = _posting_locks.get(key)
        if lock is None:
            lock = _posting_locks[key] = asyncio.Lock()
        async with lock:
            existing = await self.find_existing(header)
            if existing is not None:
                return self._already_posted(header, existing)

            check = await self._gate.is_open(header.organization_id, header.day)
            if not check.is_open:
                self._logger.warning(
                    "fiscal_period_closed",
                    organization_id=header.organization_id,
                    day=header.day.isoformat(),
                    reason=check.reason,
                )
                raise ClosedPeriodError(check.reason or "fiscal period is closed")

            try:
                created = await self._api.create_transaction(
                    header.to_record(),
                    [line.to_record(header.organization_id) for line in payload.lines],
                )
            except DuplicateRecordError as e:
                # Another trigger won the race; report its journal
                existing = await self.find_existing(header)
                if existing is not None:
                    return self._already_posted(header, existing)
                raise JournalWriteError(f"Journal rejected as duplicate: {e}") from e
            except UniversalAPIError as e:
                raise JournalWriteError(f"Failed to write journal: {e}") from e

        self._logger.info(
            "journal_posted",
            organization_id=header.organization_id,
            branch_id=header.branch_id,
            day=header.day.isoformat(),
            transaction_id=created["id"],
            lines=len(payload.lines),
            total_amount=str(header.total_amount),
        )
        return PostOutcome(success=True, transaction_id=str(created["id"]))

    async def post(self, payload: JournalPayload) -> PostOutcome:
        """Post the journal, reporting failures in the outcome."""
        try:
            return await self.post_or_raise(payload)
        except (PostingError, UniversalAPIError) as e:
            return PostOutcome(success=False, error=str(e))

    def _already_posted(self, header: JournalHeader, existing: dict[str, Any]) -> PostOutcome:
        self._logger.info(
            "journal_already_posted",
            organization_id=header.organization_id,
            branch_id=header.branch_id,
            day=header.day.isoformat(),
            transaction_id=existing["id"],
        )
        return PostOutcome(
            success=True, transaction_id=str(existing["id"]), already_exists=True
        )
