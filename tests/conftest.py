"""Pytest configuration and fixtures."""

import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("HERA_API_URL", "http://localhost:3000/api/v1/universal")
os.environ.setdefault("HERA_API_TOKEN", "test-token")
os.environ.setdefault("DAILY_POST_RETRY_DELAY_SECONDS", "0")

from hera_ledger.clients.universal_api import (  # noqa: E402
    DYNAMIC_DATA,
    ENTITIES,
    ORGANIZATIONS,
    TRANSACTION_LINES,
    TRANSACTIONS,
    DuplicateRecordError,
    Filter,
    UniversalAPIError,
)
from hera_ledger.finance.policy import (  # noqa: E402
    AccountRole,
    PolicyAccounts,
    SalesPostingPolicy,
)

ORG_ID = "org-salon"


def _matches(row: dict[str, Any], flt: Filter) -> bool:
    value = row.get(flt.field)
    if flt.operator == "eq":
        return value == flt.value
    if flt.operator == "in":
        return value in flt.value
    if value is None:
        return False
    if flt.operator == "gte":
        return value >= flt.value
    if flt.operator == "lt":
        return value < flt.value
    raise AssertionError(f"unsupported operator {flt.operator}")


@dataclass
class FakeStore:
    """In-memory stand-in for the universal API client."""

    tables: dict[str, list[dict[str, Any]]] = field(
        default_factory=lambda: defaultdict(list)
    )
    read_failures: int = 0
    create_failures: int = 0
    transaction_failures: int = 0
    reads: list[str] = field(default_factory=list)
    _next_id: int = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def add(self, table: str, **row: Any) -> dict[str, Any]:
        row.setdefault("id", self._new_id(table))
        self.tables[table].append(row)
        return row

    def rows(self, table: str, **match: Any) -> list[dict[str, Any]]:
        return [
            row
            for row in self.tables[table]
            if all(row.get(k) == v for k, v in match.items())
        ]

    async def read(
        self, table: str, filters: list[Filter] | None = None
    ) -> list[dict[str, Any]]:
        self.reads.append(table)
        if self.read_failures:
            self.read_failures -= 1
            raise UniversalAPIError("Request failed: connection reset")
        return [
            dict(row)
            for row in self.tables[table]
            if all(_matches(row, f) for f in filters or [])
        ]

    async def create(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        if self.create_failures:
            self.create_failures -= 1
            raise UniversalAPIError("API error: 500", status_code=500)
        return dict(self.add(table, **data))

    async def create_transaction(
        self, header: dict[str, Any], lines: list[dict[str, Any]]
    ) -> dict[str, Any]:
        if self.transaction_failures:
            self.transaction_failures -= 1
            raise UniversalAPIError("API error: 503", status_code=503)
        code = header.get("transaction_code")
        if code and self.rows(
            TRANSACTIONS, organization_id=header["organization_id"], transaction_code=code
        ):
            raise DuplicateRecordError("API error: 409", status_code=409)
        created = self.add(TRANSACTIONS, **header)
        for line in lines:
            self.add(TRANSACTION_LINES, transaction_id=created["id"], **line)
        return dict(created)

    async def delete(self, table: str, record_id: str) -> None:
        self.tables[table] = [row for row in self.tables[table] if row["id"] != record_id]

    # === Seeding helpers ===

    def add_organization(self, org_id: str = ORG_ID, currency: str | None = "AED") -> None:
        self.add(ORGANIZATIONS, id=org_id, organization_name="Hair Talkz", currency_code=currency)

    def add_gl_account(
        self,
        account_id: str,
        name: str,
        code: str,
        org_id: str = ORG_ID,
        active: bool = True,
        ledger_type: str = "GL",
    ) -> None:
        self.add(
            ENTITIES,
            id=account_id,
            organization_id=org_id,
            entity_type="account",
            entity_name=name,
            entity_code=code,
            metadata={"ledger_type": ledger_type, "is_active": active},
        )

    def add_fiscal_period(
        self, start: date, end: date, status: str = "open", org_id: str = ORG_ID
    ) -> str:
        period = self.add(ENTITIES, organization_id=org_id, entity_type="fiscal_period")
        for name, value in (
            ("start_date", start.isoformat()),
            ("end_date", end.isoformat()),
            ("status", status),
        ):
            self.add(
                DYNAMIC_DATA,
                organization_id=org_id,
                entity_id=period["id"],
                field_name=name,
                field_value_text=value,
            )
        return period["id"]

    def add_sale(
        self,
        when: str,
        lines: list[tuple[str, str, dict[str, Any] | None]],
        org_id: str = ORG_ID,
        status: str = "posted",
        smart_code: str = "HERA.SALON.POS.TXN.SALE.v1",
        branch_id: str | None = None,
    ) -> str:
        txn = self.add(
            TRANSACTIONS,
            organization_id=org_id,
            transaction_type="sale",
            smart_code=smart_code,
            transaction_date=when,
            status=status,
            branch_id=branch_id,
        )
        for number, (code, amount, metadata) in enumerate(lines, start=1):
            self.add(
                TRANSACTION_LINES,
                organization_id=org_id,
                transaction_id=txn["id"],
                line_number=number,
                smart_code=code,
                line_amount=amount,
                metadata=metadata or {},
            )
        return txn["id"]


ACCOUNT_IDS = {role: f"acc-{role.value}" for role in AccountRole}


@pytest.fixture
def store() -> FakeStore:
    """Empty fake store with one organization."""
    fake = FakeStore()
    fake.add_organization()
    return fake


@pytest.fixture
def chart_of_accounts(store: FakeStore) -> FakeStore:
    """Store seeded with one active GL account per policy role."""
    names = {
        AccountRole.SERVICE_REVENUE: ("Service Revenue", "4100"),
        AccountRole.PRODUCT_REVENUE: ("Product Sales", "4200"),
        AccountRole.VAT_LIABILITY: ("VAT Payable", "2250"),
        AccountRole.DISCOUNTS_CONTRA: ("Sales Discounts", "4900"),
        AccountRole.TIPS_PAYABLE: ("Tips Payable", "2350"),
        AccountRole.CASH_CLEARING: ("Cash Clearing", "1100"),
        AccountRole.CARD_CLEARING: ("Card Clearing", "1120"),
        AccountRole.GIFTCARD_LIABILITY: ("Gift Card Liability", "2400"),
        AccountRole.ROUNDING_DIFF: ("Rounding Differences", "6999"),
    }
    for role, (name, code) in names.items():
        store.add_gl_account(ACCOUNT_IDS[role], name, code)
    return store


@pytest.fixture
def policy() -> SalesPostingPolicy:
    """Policy mapping every role to its seeded account."""
    return SalesPostingPolicy(
        accounts=PolicyAccounts(**{role.value: ACCOUNT_IDS[role] for role in AccountRole})
    )


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client
