"""Tests for the journal poster."""

import asyncio
import gc
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from conftest import ORG_ID
from hera_ledger.clients.universal_api import TRANSACTION_LINES, TRANSACTIONS
from hera_ledger.finance.errors import (
    ClosedPeriodError,
    JournalWriteError,
    UnbalancedJournalError,
)
from hera_ledger.finance.journal import build_journal
from hera_ledger.finance.models import JournalPayload, SalesSummary, SalesTotals
from hera_ledger.finance import poster as poster_module
from hera_ledger.finance.poster import JournalPoster
from hera_ledger.finance.smart_codes import DAILY_SALES_JOURNAL

DAY = date(2026, 10, 18)


def make_payload(policy, cash: str = "100", posted_at: datetime | None = None) -> JournalPayload:
    summary = SalesSummary(
        organization_id=ORG_ID,
        branch_id=ORG_ID,
        day=DAY,
        currency="AED",
        totals=SalesTotals(cash=Decimal(cash), service_net=Decimal(cash)),
        transaction_count=3,
    )
    return build_journal(
        summary, policy, posted_at or datetime(2026, 10, 18, 23, 59, 59, tzinfo=UTC)
    )


def journals(store):
    return store.rows(TRANSACTIONS, smart_code=DAILY_SALES_JOURNAL)


class TestJournalPoster:
    """Tests for JournalPoster."""

    @pytest.mark.asyncio
    async def test_posts_header_and_lines(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))

        outcome = await JournalPoster(store).post(make_payload(policy))

        assert outcome.success is True
        assert outcome.already_exists is False
        assert len(journals(store)) == 1
        header = journals(store)[0]
        assert header["id"] == outcome.transaction_id
        lines = store.rows(TRANSACTION_LINES, transaction_id=outcome.transaction_id)
        assert [line["line_number"] for line in lines] == [1, 2]
        assert all(line["organization_id"] == ORG_ID for line in lines)

    @pytest.mark.asyncio
    async def test_second_post_returns_existing_journal(self, store, policy):
        """Posting the same branch and day twice keeps a single journal."""
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)

        first = await poster.post(make_payload(policy))
        second = await poster.post(make_payload(policy, cash="250"))

        assert second.success is True
        assert second.already_exists is True
        assert second.transaction_id == first.transaction_id
        assert len(journals(store)) == 1
        assert journals(store)[0]["total_amount"] == "100.00"

    @pytest.mark.asyncio
    async def test_same_day_different_time_is_duplicate(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)

        first = await poster.post(make_payload(policy))
        second = await poster.post(
            make_payload(policy, posted_at=datetime(2026, 10, 18, 6, 0, tzinfo=UTC))
        )

        assert second.transaction_id == first.transaction_id

    @pytest.mark.asyncio
    async def test_closed_period_writes_nothing(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31), status="closed")
        poster = JournalPoster(store)

        outcome = await poster.post(make_payload(policy))

        assert outcome.success is False
        assert "closed fiscal period" in outcome.error
        assert journals(store) == []
        assert store.rows(TRANSACTION_LINES) == []

        with pytest.raises(ClosedPeriodError) as exc_info:
            await poster.post_or_raise(make_payload(policy))
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_missing_period_blocks_posting(self, store, policy):
        with pytest.raises(ClosedPeriodError, match="no fiscal period found"):
            await JournalPoster(store).post_or_raise(make_payload(policy))

        assert journals(store) == []

    @pytest.mark.asyncio
    async def test_existing_journal_wins_over_closed_period(self, store, policy):
        """An already posted day reports success even after the period closes."""
        period_id = store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)
        first = await poster.post(make_payload(policy))
        for row in store.rows("core_dynamic_data", entity_id=period_id, field_name="status"):
            row["field_value_text"] = "closed"

        second = await poster.post(make_payload(policy))

        assert second.success is True
        assert second.transaction_id == first.transaction_id

    @pytest.mark.asyncio
    async def test_write_failure_leaves_nothing_behind(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        store.transaction_failures = 1

        with pytest.raises(JournalWriteError) as exc_info:
            await JournalPoster(store).post_or_raise(make_payload(policy))

        assert exc_info.value.retryable is True
        assert journals(store) == []
        assert store.rows(TRANSACTION_LINES) == []

    @pytest.mark.asyncio
    async def test_duplicate_conflict_resolves_to_existing(self, store, policy):
        """A uniqueness conflict from the store reports the journal that won."""
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)
        payload = make_payload(policy)
        winner = store.add(TRANSACTIONS, **payload.header.to_record())

        calls = 0
        original_find = poster.find_existing

        async def find_after_race(header):
            nonlocal calls
            calls += 1
            if calls == 1:
                return None
            return await original_find(header)

        poster.find_existing = find_after_race

        outcome = await poster.post(payload)

        assert outcome.success is True
        assert outcome.already_exists is True
        assert outcome.transaction_id == winner["id"]
        assert len(journals(store)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_posts_write_once_and_release_locks(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)

        outcomes = await asyncio.gather(
            poster.post(make_payload(policy)), poster.post(make_payload(policy))
        )
        gc.collect()

        assert {o.transaction_id for o in outcomes} == {journals(store)[0]["id"]}
        assert sorted(o.already_exists for o in outcomes) == [False, True]
        assert (ORG_ID, ORG_ID, DAY) not in poster_module._posting_locks

    @pytest.mark.asyncio
    async def test_empty_journal_rejected(self, store, policy):
        payload = make_payload(policy, cash="0")

        with pytest.raises(UnbalancedJournalError):
            await JournalPoster(store).post_or_raise(payload)

    @pytest.mark.asyncio
    async def test_other_branch_same_day_is_posted(self, store, policy):
        store.add_fiscal_period(date(2026, 10, 1), date(2026, 10, 31))
        poster = JournalPoster(store)
        await poster.post(make_payload(policy))

        other = make_payload(policy)
        other.header.branch_id = "branch-2"
        outcome = await poster.post(other)

        assert outcome.already_exists is False
        assert len(journals(store)) == 2
