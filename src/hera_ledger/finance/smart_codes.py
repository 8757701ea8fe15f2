"""Smart codes read and written by the posting pipeline."""

from enum import Enum

POLICY_SMART_CODE = "HERA.FINANCE.POLICY.SALES_POSTING.v1"
DAILY_SALES_JOURNAL = "HERA.FINANCE.JOURNAL.DAILY_SALES.v1"
JOURNAL_LINE_GL = "HERA.FINANCE.JOURNAL.LINE.GL.V1"
SCHEDULER_LOG = "HERA.FINANCE.SCHEDULER.DAILY_POST.LOG.v1"

# Sale headers included in the daily summary
SALES_TRANSACTION_CODES: tuple[str, ...] = (
    "HERA.SALON.POS.SALE.HEADER.v1",
    "HERA.SALON.POS.TXN.SALE.v1",
    "HERA.SALON.POS.TXN.SALE.v2",
    "HERA.SALON.POS.SALE.TXN.RETAIL.v1",
    "HERA.POS.SALE.TXN.v1",
)


class SalesBucket(str, Enum):
    """Accumulators of a daily sales summary."""

    SERVICE_NET = "service_net"
    PRODUCT_NET = "product_net"
    VAT = "vat"
    DISCOUNTS = "discounts"
    TIPS = "tips"
    CASH = "cash"
    CARD = "card"
    GIFT = "gift"
    RETURNS = "returns"


# Line smart code -> accumulator. VAT and returns are derived, not coded.
LINE_CODE_BUCKETS: dict[str, SalesBucket] = {
    "HERA.SALON.POS.LINE.SERVICE.v1": SalesBucket.SERVICE_NET,
    "HERA.SALON.SERVICE.LINE.ITEM.v1": SalesBucket.SERVICE_NET,
    "HERA.SALON.POS.LINE.PRODUCT.v1": SalesBucket.PRODUCT_NET,
    "HERA.SALON.POS.LINE.RETAIL.v1": SalesBucket.PRODUCT_NET,
    "HERA.SALON.POS.LINE.DISCOUNT.v1": SalesBucket.DISCOUNTS,
    "HERA.SALON.POS.LINE.TIP.v1": SalesBucket.TIPS,
    "HERA.SALON.POS.PAYMENT.CASH.v1": SalesBucket.CASH,
    "HERA.SALON.POS.PAYMENT.CARD.v1": SalesBucket.CARD,
    "HERA.SALON.POS.PAYMENT.GIFTCARD.v1": SalesBucket.GIFT,
}


def is_discount_code(smart_code: str) -> bool:
    """True for line codes that carry a discount."""
    return ".DISCOUNT." in smart_code.upper()
