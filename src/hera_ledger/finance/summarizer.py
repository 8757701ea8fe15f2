"""Reduce a day's point of sale transactions into sales totals.

Every line is matched on its smart code against ``LINE_CODE_BUCKETS``.
VAT comes from ``metadata.vat_amount`` on any line. A negative line that is
not a discount is counted twice: once (negative) in its own bucket and once
(absolute) in ``returns``. Returns is an informational side total and is
never posted, so the double count does not unbalance the journal.
"""

from datetime import UTC, date, datetime
from typing import Any

import structlog

from hera_ledger.clients.universal_api import (
    ORGANIZATIONS,
    TRANSACTION_LINES,
    TRANSACTIONS,
    Filter,
    UniversalAPIClient,
    UniversalAPIError,
)
from hera_ledger.config import get_settings
from hera_ledger.finance.errors import SummarizationError
from hera_ledger.finance.models import SalesSummary, SalesTotals, day_window, to_money
from hera_ledger.finance.smart_codes import (
    LINE_CODE_BUCKETS,
    SALES_TRANSACTION_CODES,
    SalesBucket,
    is_discount_code,
)

logger = structlog.get_logger(__name__)


def accumulate_line(totals: SalesTotals, line: dict[str, Any]) -> bool:
    """Add one transaction line to the totals.

    Returns:
        True if the line's smart code was recognized.
    """
    smart_code = line.get("smart_code") or ""
    amount = to_money(line.get("line_amount"))
    metadata = line.get("metadata") or {}

    bucket = LINE_CODE_BUCKETS.get(smart_code)
    if bucket is SalesBucket.DISCOUNTS:
        totals.add(bucket, abs(amount))
    elif bucket is not None:
        totals.add(bucket, amount)

    vat_amount = metadata.get("vat_amount")
    if vat_amount is not None:
        totals.add(SalesBucket.VAT, to_money(vat_amount))

    if amount < 0 and not is_discount_code(smart_code):
        totals.add(SalesBucket.RETURNS, abs(amount))

    return bucket is not None


def _branch_key(txn: dict[str, Any], organization_id: str) -> str:
    # Sales without a branch are posted under the organization itself
    return str(txn.get("branch_id") or organization_id)


class SalesSummarizer:
    """Builds a SalesSummary for one branch and day from the store."""

    def __init__(self, api: UniversalAPIClient, default_currency: str | None = None):
        self._api = api
        self._default_currency = default_currency or get_settings().default_currency
        self._logger = logger.bind(component="summarizer")

    async def summarize(
        self,
        organization_id: str,
        branch_id: str,
        day_start: datetime,
        day_end: datetime,
    ) -> SalesSummary:
        """Summarize posted sales in [day_start, day_end)."""
        try:
            return await self._summarize(organization_id, branch_id, day_start, day_end)
        except UniversalAPIError as e:
            raise SummarizationError(
                f"Failed to summarize sales for branch {branch_id}: {e}"
            ) from e

    async def summarize_day(
        self, organization_id: str, branch_id: str, day: date
    ) -> SalesSummary:
        """Summarize a whole UTC calendar day."""
        day_start, day_end = day_window(day)
        return await self.summarize(organization_id, branch_id, day_start, day_end)

    async def sales_branch_ids(self, organization_id: str, day: date) -> set[str]:
        """Branch keys of the day's posted sales; unbranched sales key as the organization."""
        day_start, day_end = day_window(day)
        try:
            transactions = await self._read_sales(organization_id, day_start, day_end)
        except UniversalAPIError as e:
            raise SummarizationError(
                f"Failed to list sales branches for organization {organization_id}: {e}"
            ) from e
        return {_branch_key(txn, organization_id) for txn in transactions}

    async def _read_sales(
        self, organization_id: str, day_start: datetime, day_end: datetime
    ) -> list[dict[str, Any]]:
        return await self._api.read(
            TRANSACTIONS,
            [
                Filter.eq("organization_id", organization_id),
                Filter.eq("status", "posted"),
                Filter.in_("smart_code", list(SALES_TRANSACTION_CODES)),
                Filter.gte("transaction_date", day_start.isoformat()),
                Filter.lt("transaction_date", day_end.isoformat()),
            ],
        )

    async def _summarize(
        self,
        organization_id: str,
        branch_id: str,
        day_start: datetime,
        day_end: datetime,
    ) -> SalesSummary:
        transactions = [
            txn
            for txn in await self._read_sales(organization_id, day_start, day_end)
            if _branch_key(txn, organization_id) == branch_id
        ]

        summary = SalesSummary(
            organization_id=organization_id,
            branch_id=branch_id,
            day=day_start.astimezone(UTC).date(),
            currency=await self._resolve_currency(organization_id),
            transaction_count=len(transactions),
        )

        ignored = 0
        for txn in transactions:
            lines = await self._api.read(
                TRANSACTION_LINES,
                [
                    Filter.eq("transaction_id", txn["id"]),
                    Filter.eq("organization_id", organization_id),
                ],
            )
            for line in lines:
                if not accumulate_line(summary.totals, line):
                    ignored += 1

        if ignored:
            self._logger.debug(
                "unrecognized_lines_ignored",
                organization_id=organization_id,
                branch_id=branch_id,
                count=ignored,
            )

        self._logger.info(
            "sales_summarized",
            organization_id=organization_id,
            branch_id=branch_id,
            day=summary.day.isoformat(),
            transactions=summary.transaction_count,
            totals=summary.totals.to_dict(),
        )
        return summary

    async def _resolve_currency(self, organization_id: str) -> str:
        rows = await self._api.read(ORGANIZATIONS, [Filter.eq("id", organization_id)])
        if not rows:
            return self._default_currency
        org = rows[0]
        settings = org.get("settings") or {}
        return (
            org.get("currency_code")
            or org.get("currency")
            or settings.get("currency")
            or self._default_currency
        )
