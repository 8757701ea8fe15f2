"""Value types passed between the summarizer, journal builder and poster."""

from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from hera_ledger.finance.smart_codes import DAILY_SALES_JOURNAL, JOURNAL_LINE_GL, SalesBucket

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a store amount (str, int, float, None) to cents."""
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def day_window(day: date) -> tuple[datetime, datetime]:
    """Return the UTC [start, end) bounds of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


@dataclass
class SalesTotals:
    """The nine accumulators of a daily sales summary."""

    service_net: Decimal = ZERO
    product_net: Decimal = ZERO
    vat: Decimal = ZERO
    discounts: Decimal = ZERO
    tips: Decimal = ZERO
    cash: Decimal = ZERO
    card: Decimal = ZERO
    gift: Decimal = ZERO
    returns: Decimal = ZERO

    def add(self, bucket: SalesBucket, amount: Decimal) -> None:
        setattr(self, bucket.value, getattr(self, bucket.value) + amount)

    def get(self, bucket: SalesBucket) -> Decimal:
        return getattr(self, bucket.value)

    def is_zero(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))

    def to_dict(self) -> dict[str, str]:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}


@dataclass
class SalesSummary:
    """Sales totals for one branch on one calendar day."""

    organization_id: str
    branch_id: str
    day: date
    currency: str
    totals: SalesTotals = field(default_factory=SalesTotals)
    transaction_count: int = 0


@dataclass
class JournalLine:
    """A single GL line; exactly one of debit/credit is non-zero."""

    line_number: int
    account_id: str
    role: str
    day: date
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    smart_code: str = JOURNAL_LINE_GL

    @property
    def amount(self) -> Decimal:
        return max(self.debit, self.credit)

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "source": "daily-sales",
            "day": self.day.isoformat(),
            "account_type": "gl",
            "role": self.role,
        }

    def to_record(self, organization_id: str) -> dict[str, Any]:
        return {
            "organization_id": organization_id,
            "line_number": self.line_number,
            "line_type": "gl",
            "smart_code": self.smart_code,
            "entity_id": self.account_id,
            "debit_amount": str(self.debit),
            "credit_amount": str(self.credit),
            "line_amount": str(self.amount),
            "metadata": self.metadata,
        }


@dataclass
class JournalHeader:
    """Header of a daily sales journal."""

    organization_id: str
    branch_id: str
    when_ts: datetime
    currency: str
    total_amount: Decimal
    memo: str
    transaction_type: str = "journal"
    smart_code: str = DAILY_SALES_JOURNAL
    status: str = "posted"

    @property
    def day(self) -> date:
        return self.when_ts.astimezone(UTC).date()

    @property
    def transaction_code(self) -> str:
        """Idempotency key; unique per organization, branch and day."""
        return f"DAILY-SALES-{self.branch_id}-{self.day.isoformat()}"

    def to_record(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "transaction_type": self.transaction_type,
            "transaction_code": self.transaction_code,
            "smart_code": self.smart_code,
            "transaction_date": self.when_ts.isoformat(),
            "branch_id": self.branch_id,
            "currency": self.currency,
            "status": self.status,
            "total_amount": str(self.total_amount),
            "description": self.memo,
            "metadata": {"source": "daily-sales", "day": self.day.isoformat()},
        }


@dataclass
class JournalPayload:
    """A fully formed journal ready to be written."""

    header: JournalHeader
    lines: list[JournalLine] = field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debit - self.total_credit) < CENT


@dataclass
class PostingResult:
    """Outcome of one scheduler attempt for an organization, branch and day."""

    organization_id: str
    branch_id: str
    day: date
    success: bool
    transaction_id: str | None = None
    error: str | None = None
    skipped: bool = False
    already_posted: bool = False
    total_amount: Decimal | None = None
    transaction_count: int | None = None
    attempts: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "branch_id": self.branch_id,
            "day": self.day.isoformat(),
            "success": self.success,
            "transaction_id": self.transaction_id,
            "error": self.error,
            "skipped": self.skipped,
            "already_posted": self.already_posted,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "transaction_count": self.transaction_count,
            "attempts": self.attempts,
            "timestamp": self.timestamp.isoformat(),
        }
