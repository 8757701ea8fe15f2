"""Turn a daily sales summary into a balanced GL journal."""

from datetime import datetime
from decimal import Decimal

from hera_ledger.finance.models import (
    CENT,
    ZERO,
    JournalHeader,
    JournalLine,
    JournalPayload,
    SalesSummary,
)
from hera_ledger.finance.policy import AccountRole, SalesPostingPolicy
from hera_ledger.finance.smart_codes import SalesBucket

DEBIT = "debit"
CREDIT = "credit"

# Emission order: payments, revenue, VAT, discounts, tips
POSTING_RULES: tuple[tuple[SalesBucket, str, AccountRole], ...] = (
    (SalesBucket.CASH, DEBIT, AccountRole.CASH_CLEARING),
    (SalesBucket.CARD, DEBIT, AccountRole.CARD_CLEARING),
    (SalesBucket.GIFT, CREDIT, AccountRole.GIFTCARD_LIABILITY),
    (SalesBucket.SERVICE_NET, CREDIT, AccountRole.SERVICE_REVENUE),
    (SalesBucket.PRODUCT_NET, CREDIT, AccountRole.PRODUCT_REVENUE),
    (SalesBucket.VAT, CREDIT, AccountRole.VAT_LIABILITY),
    (SalesBucket.DISCOUNTS, DEBIT, AccountRole.DISCOUNTS_CONTRA),
    (SalesBucket.TIPS, CREDIT, AccountRole.TIPS_PAYABLE),
)


def _make_line(
    line_number: int,
    side: str,
    amount: Decimal,
    role: AccountRole,
    policy: SalesPostingPolicy,
    summary: SalesSummary,
) -> JournalLine:
    return JournalLine(
        line_number=line_number,
        account_id=policy.accounts.get(role),
        role=role.value,
        day=summary.day,
        debit=amount if side == DEBIT else ZERO,
        credit=amount if side == CREDIT else ZERO,
    )


def build_journal(
    summary: SalesSummary,
    policy: SalesPostingPolicy,
    posting_timestamp: datetime,
) -> JournalPayload:
    """Build the daily sales journal for a summary.

    Totals that are zero or negative produce no line. When debits and
    credits differ by a cent or more, one ``rounding_diff`` line is added
    on the short side.

    Args:
        summary: Sales totals for one branch and day.
        policy: Account mapping for the organization.
        posting_timestamp: Timestamp recorded on the journal header.

    Returns:
        The journal payload; it may have no lines for an all-zero summary.
    """
    lines: list[JournalLine] = []
    for bucket, side, role in POSTING_RULES:
        amount = summary.totals.get(bucket)
        if amount <= 0:
            continue
        lines.append(_make_line(len(lines) + 1, side, amount, role, policy, summary))

    difference = sum((line.debit - line.credit for line in lines), ZERO).quantize(CENT)
    if difference != 0:
        side = CREDIT if difference > 0 else DEBIT
        lines.append(
            _make_line(
                len(lines) + 1, side, abs(difference), AccountRole.ROUNDING_DIFF, policy, summary
            )
        )

    header = JournalHeader(
        organization_id=summary.organization_id,
        branch_id=summary.branch_id,
        when_ts=posting_timestamp,
        currency=summary.currency,
        # Size of one side of the balanced journal
        total_amount=sum((line.debit for line in lines), ZERO),
        memo=(
            f"Daily sales {summary.day.isoformat()} for branch {summary.branch_id} "
            f"({summary.transaction_count} transactions)"
        ),
    )
    return JournalPayload(header=header, lines=lines)
