"""Fiscal period lookup used to block posting into closed periods."""

from dataclasses import dataclass
from datetime import date
from typing import Any

import structlog

from hera_ledger.clients.universal_api import (
    DYNAMIC_DATA,
    ENTITIES,
    Filter,
    UniversalAPIClient,
)

logger = structlog.get_logger(__name__)

PERIOD_FIELDS = ("start_date", "end_date", "status")


@dataclass
class FiscalPeriod:
    entity_id: str
    start_date: date
    end_date: date
    status: str

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def is_closed(self) -> bool:
        return self.status.lower() == "closed"


@dataclass
class PeriodCheck:
    is_open: bool
    reason: str | None = None


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _row_value(row: dict[str, Any]) -> Any:
    for key in ("field_value_date", "field_value_text"):
        if row.get(key):
            return row[key]
    return None


class FiscalPeriodGate:
    """Decides whether a posting date is inside an open fiscal period."""

    def __init__(self, api: UniversalAPIClient):
        self._api = api
        self._logger = logger.bind(component="fiscal_gate")

    async def list_periods(self, organization_id: str) -> list[FiscalPeriod]:
        """All fiscal periods of the organization with usable date ranges."""
        entities = await self._api.read(
            ENTITIES,
            [
                Filter.eq("organization_id", organization_id),
                Filter.eq("entity_type", "fiscal_period"),
            ],
        )
        if not entities:
            return []

        rows = await self._api.read(
            DYNAMIC_DATA,
            [
                Filter.eq("organization_id", organization_id),
                Filter.in_("entity_id", [entity["id"] for entity in entities]),
                Filter.in_("field_name", list(PERIOD_FIELDS)),
            ],
        )
        values: dict[str, dict[str, Any]] = {}
        for row in rows:
            values.setdefault(row["entity_id"], {})[row["field_name"]] = _row_value(row)

        periods: list[FiscalPeriod] = []
        for entity in entities:
            fields = values.get(entity["id"], {})
            start = _parse_date(fields.get("start_date"))
            end = _parse_date(fields.get("end_date"))
            if start is None or end is None:
                self._logger.warning("fiscal_period_without_range", entity_id=entity["id"])
                continue
            periods.append(
                FiscalPeriod(
                    entity_id=entity["id"],
                    start_date=start,
                    end_date=end,
                    status=str(fields.get("status") or "open"),
                )
            )
        return periods

    async def is_open(self, organization_id: str, day: date) -> PeriodCheck:
        """Check the period covering ``day``; a missing period counts as closed."""
        period = next(
            (p for p in await self.list_periods(organization_id) if p.contains(day)), None
        )
        if period is None:
            return PeriodCheck(is_open=False, reason="no fiscal period found")
        if period.is_closed:
            return PeriodCheck(
                is_open=False,
                reason=(
                    f"fiscal period {period.start_date.isoformat()} to "
                    f"{period.end_date.isoformat()} is closed"
                ),
            )
        return PeriodCheck(is_open=True)
