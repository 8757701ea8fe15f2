"""Daily sales posting run across organizations and branches.

The scheduler has no timer loop of its own. An external trigger (cron, a
serverless schedule) calls :meth:`DailySalesScheduler.run_scheduled` once at
the configured local time; running it again for the same day is harmless
because the poster skips journals that already exist.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from hera_ledger.clients.universal_api import (
    ENTITIES,
    ORGANIZATIONS,
    TRANSACTIONS,
    Filter,
    UniversalAPIClient,
)
from hera_ledger.config import Settings, get_settings
from hera_ledger.finance.errors import (
    ConfigurationError,
    PolicyNotFoundError,
    PostingError,
)
from hera_ledger.finance.journal import build_journal
from hera_ledger.finance.models import ZERO, PostingResult, SalesSummary
from hera_ledger.finance.policy import PolicyStore
from hera_ledger.finance.poster import JournalPoster
from hera_ledger.finance.smart_codes import SCHEDULER_LOG
from hera_ledger.finance.summarizer import SalesSummarizer

logger = structlog.get_logger(__name__)


@dataclass
class SchedulerConfig:
    """Settings of the daily posting run."""

    enabled: bool = True
    timezone: str = "Asia/Dubai"
    target_time: str = "23:59"
    organization_ids: list[str] = field(default_factory=list)
    retry_attempts: int = 3
    retry_delay_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SchedulerConfig":
        settings = settings or get_settings()
        return cls(
            enabled=settings.daily_post_enabled,
            timezone=settings.daily_post_timezone,
            target_time=settings.daily_post_time,
            organization_ids=settings.organization_ids,
            retry_attempts=max(settings.daily_post_retry_attempts, 1),
            retry_delay_seconds=settings.daily_post_retry_delay_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_posting_day(now: datetime | None = None) -> date:
    """Yesterday's date in UTC."""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).date() - timedelta(days=1)


def is_scheduled_time(config: SchedulerConfig, now: datetime | None = None) -> bool:
    """True when the wall clock in the configured timezone reads the target HH:MM."""
    now = now or datetime.now(UTC)
    local = now.astimezone(ZoneInfo(config.timezone))
    return local.strftime("%H:%M") == config.target_time


def summarize_results(results: list[PostingResult]) -> dict[str, Any]:
    """Counts and posted amount for a list of results."""
    successful = [r for r in results if r.success]
    total_amount = sum(
        (r.total_amount for r in successful if r.total_amount is not None), ZERO
    )
    return {
        "total": len(results),
        "successful": len(successful),
        "failed": len(results) - len(successful),
        "total_amount": str(total_amount),
    }


class DailySalesScheduler:
    """Posts the previous day's sales journal for every organization.

    Organizations and their branches are processed one after another. A
    failure is recorded in that branch's result and never stops the run.
    """

    def __init__(
        self,
        api: UniversalAPIClient,
        config: SchedulerConfig | None = None,
        policies: PolicyStore | None = None,
        summarizer: SalesSummarizer | None = None,
        poster: JournalPoster | None = None,
    ):
        self._api = api
        self.config = config or SchedulerConfig.from_settings()
        self._policies = policies or PolicyStore(api)
        self._summarizer = summarizer or SalesSummarizer(api)
        self._poster = poster or JournalPoster(api)
        self._logger = logger.bind(component="daily_sales_scheduler")

    # === Discovery ===

    async def list_organizations(self) -> list[str]:
        """Configured organization ids, else every organization in the store."""
        if self.config.organization_ids:
            return list(self.config.organization_ids)
        rows = await self._api.read(ORGANIZATIONS)
        return [str(row["id"]) for row in rows if row.get("id")]

    async def list_branches(self, organization_id: str) -> list[str]:
        """Branch entities of the organization; the organization itself if none."""
        rows = await self._api.read(
            ENTITIES,
            [
                Filter.eq("organization_id", organization_id),
                Filter.eq("entity_type", "branch"),
            ],
        )
        branches = [
            str(row["id"]) for row in rows if row.get("status", "active") == "active"
        ]
        return branches or [organization_id]

    async def branches_to_post(self, organization_id: str, day: date) -> list[str]:
        """Known branches plus any branch key that has sales on ``day`` but no entity."""
        branches = await self.list_branches(organization_id)
        extra = await self._summarizer.sales_branch_ids(organization_id, day) - set(branches)
        if extra:
            self._logger.info(
                "unlisted_sales_branches",
                organization_id=organization_id,
                day=day.isoformat(),
                branches=sorted(extra),
            )
        return branches + sorted(extra)

    # === Posting ===

    async def _post_once(
        self, organization_id: str, branch_id: str, day: date
    ) -> PostingResult:
        policy = await self._policies.get(organization_id)
        if policy is None:
            raise PolicyNotFoundError(organization_id)

        summary = await self._summarizer.summarize_day(organization_id, branch_id, day)
        if summary.totals.is_zero():
            return self._skipped(summary, "no_sales_skipped")

        posting_timestamp = datetime.combine(day, time(23, 59, 59), tzinfo=UTC)
        payload = build_journal(summary, policy, posting_timestamp)
        # Refunds can cancel every postable total while returns stay non-zero
        if not payload.lines:
            return self._skipped(summary, "no_postable_lines_skipped")

        unmapped = sorted({line.role for line in payload.lines if not line.account_id})
        if unmapped:
            raise ConfigurationError(
                f"Missing account mapping for {', '.join(unmapped)} "
                f"in organization {organization_id}"
            )

        outcome = await self._poster.post_or_raise(payload)
        return PostingResult(
            organization_id=organization_id,
            branch_id=branch_id,
            day=day,
            success=True,
            transaction_id=outcome.transaction_id,
            already_posted=outcome.already_exists,
            total_amount=payload.header.total_amount,
            transaction_count=summary.transaction_count,
        )

    def _skipped(self, summary: SalesSummary, event: str) -> PostingResult:
        self._logger.info(
            event,
            organization_id=summary.organization_id,
            branch_id=summary.branch_id,
            day=summary.day.isoformat(),
            returns=str(summary.totals.returns),
        )
        return PostingResult(
            organization_id=summary.organization_id,
            branch_id=summary.branch_id,
            day=summary.day,
            success=True,
            skipped=True,
            total_amount=ZERO,
            transaction_count=summary.transaction_count,
        )

    async def post_daily_sales_for_branch(
        self, organization_id: str, branch_id: str, day: date
    ) -> PostingResult:
        """Post one branch's day, retrying transient failures."""
        log = self._logger.bind(
            organization_id=organization_id, branch_id=branch_id, day=day.isoformat()
        )
        last_error = "unknown error"
        attempt = 0
        while attempt < self.config.retry_attempts:
            attempt += 1
            try:
                result = await self._post_once(organization_id, branch_id, day)
                result.attempts = attempt
                return result
            except PostingError as e:
                last_error = str(e)
                if not e.retryable:
                    log.error("posting_failed", error=last_error, attempt=attempt)
                    break
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
            log.warning("posting_attempt_failed", error=last_error, attempt=attempt)
            if attempt < self.config.retry_attempts:
                await asyncio.sleep(self.config.retry_delay_seconds)

        return PostingResult(
            organization_id=organization_id,
            branch_id=branch_id,
            day=day,
            success=False,
            error=last_error,
            attempts=attempt,
        )

    async def run_for_all_organizations(
        self,
        day: date | None = None,
        organization_ids: list[str] | None = None,
    ) -> list[PostingResult]:
        """Post ``day`` (default yesterday) for every organization and branch."""
        day = day or default_posting_day()
        try:
            org_ids = organization_ids or await self.list_organizations()
        except Exception as e:
            self._logger.error("organization_lookup_failed", error=str(e))
            # No organization to attach an audit row to
            return [
                PostingResult(
                    organization_id="",
                    branch_id="",
                    day=day,
                    success=False,
                    error=f"Organization lookup failed: {e}",
                )
            ]
        self._logger.info("run_starting", day=day.isoformat(), organizations=len(org_ids))

        results: list[PostingResult] = []
        for organization_id in org_ids:
            try:
                branches = await self.branches_to_post(organization_id, day)
            except Exception as e:
                self._logger.error(
                    "branch_lookup_failed", organization_id=organization_id, error=str(e)
                )
                results.append(
                    PostingResult(
                        organization_id=organization_id,
                        branch_id=organization_id,
                        day=day,
                        success=False,
                        error=f"Branch lookup failed: {e}",
                    )
                )
                continue

            for branch_id in branches:
                results.append(
                    await self.post_daily_sales_for_branch(organization_id, branch_id, day)
                )

        await self.write_audit_log(results)
        self._logger.info("run_completed", day=day.isoformat(), **summarize_results(results))
        return results

    async def run_scheduled(
        self, now: datetime | None = None, force: bool = False
    ) -> list[PostingResult]:
        """Entry point for the external time trigger."""
        if not self.config.enabled:
            self._logger.info("daily_posting_disabled")
            return []
        if not force and not self.is_scheduled_time(now):
            self._logger.debug("not_scheduled_time", target_time=self.config.target_time)
            return []
        return await self.run_for_all_organizations()

    def is_scheduled_time(self, now: datetime | None = None) -> bool:
        return is_scheduled_time(self.config, now)

    # === Audit ===

    async def write_audit_log(self, results: list[PostingResult]) -> None:
        """Persist one scheduler_log transaction per result; failures are only logged."""
        for result in results:
            if not result.organization_id:
                continue
            record = {
                "organization_id": result.organization_id,
                "transaction_type": "scheduler_log",
                "smart_code": SCHEDULER_LOG,
                "transaction_date": result.timestamp.isoformat(),
                "branch_id": result.branch_id,
                "status": "completed" if result.success else "failed",
                "total_amount": str(result.total_amount or Decimal("0")),
                "metadata": {
                    "day": result.day.isoformat(),
                    "success": result.success,
                    "transaction_id": result.transaction_id,
                    "error": result.error,
                    "skipped": result.skipped,
                    "already_posted": result.already_posted,
                    "transaction_count": result.transaction_count,
                    "attempts": result.attempts,
                },
            }
            try:
                await self._api.create(TRANSACTIONS, record)
            except Exception as e:
                self._logger.warning(
                    "audit_log_write_failed",
                    organization_id=result.organization_id,
                    branch_id=result.branch_id,
                    error=str(e),
                )

    # === Manual trigger ===

    async def handle_trigger(self, request: dict[str, Any]) -> dict[str, Any]:
        """Handle ``{"action": "run_now" | "get_config", "day"?, "organization_ids"?}``."""
        action = request.get("action")
        if action == "get_config":
            return {"success": True, "config": self.config.to_dict()}
        if action == "run_now":
            day_value = request.get("day")
            day = date.fromisoformat(day_value) if day_value else None
            results = await self.run_for_all_organizations(
                day=day, organization_ids=request.get("organization_ids") or None
            )
            return {
                "success": True,
                "results": [r.to_dict() for r in results],
                "summary": summarize_results(results),
            }
        raise ValueError(f"Unknown action: {action!r}")
