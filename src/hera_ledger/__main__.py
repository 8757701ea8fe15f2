"""Command line entry point for the daily sales posting job."""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Any

from hera_ledger.clients import UniversalAPIClient
from hera_ledger.config import configure_logging
from hera_ledger.finance.policy import PolicyStore
from hera_ledger.finance.scheduler import DailySalesScheduler, summarize_results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hera-ledger",
        description="Post daily sales journals to the HERA general ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run-now                          # Post yesterday for all organizations
  %(prog)s run-now --day=2026-10-18 --org=ORG_ID
  %(prog)s cron                             # Run only at the configured local time
  %(prog)s get-config
  %(prog)s create-policy ORG_ID             # Suggest, validate and save a policy
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_now = sub.add_parser("run-now", help="Post a day immediately")
    run_now.add_argument(
        "--day", type=date.fromisoformat, default=None, help="Day to post (default: yesterday)"
    )
    run_now.add_argument(
        "--org", dest="organization_ids", action="append", default=None,
        help="Organization id (repeatable, default: all)",
    )

    cron = sub.add_parser("cron", help="Run if the scheduled time has come")
    cron.add_argument("--force", action="store_true", help="Ignore the time gate")

    sub.add_parser("get-config", help="Print the scheduler configuration")

    create_policy = sub.add_parser("create-policy", help="Create a default posting policy")
    create_policy.add_argument("organization_id")

    validate_policy = sub.add_parser("validate-policy", help="Validate the saved policy")
    validate_policy.add_argument("organization_id")
    return parser


async def run_command(args: argparse.Namespace) -> tuple[dict[str, Any], bool]:
    """Execute a parsed command; returns (output, ok)."""
    async with UniversalAPIClient() as api:
        scheduler = DailySalesScheduler(api)

        if args.command == "get-config":
            return await scheduler.handle_trigger({"action": "get_config"}), True

        if args.command == "run-now":
            results = await scheduler.run_for_all_organizations(
                day=args.day, organization_ids=args.organization_ids
            )
        elif args.command == "cron":
            results = await scheduler.run_scheduled(force=args.force)
        else:
            policies = PolicyStore(api)
            if args.command == "create-policy":
                written = await policies.create_default(args.organization_id)
                return {
                    "success": written.success,
                    "error": written.error,
                    "policy": written.policy.model_dump(mode="json") if written.policy else None,
                }, written.success

            policy = await policies.get(args.organization_id)
            if policy is None:
                return {"success": False, "error": "no sales posting policy"}, False
            validation = await policies.validate(args.organization_id, policy)
            return {"success": validation.is_valid, "errors": validation.errors}, validation.is_valid

        summary = summarize_results(results)
        return {
            "success": summary["failed"] == 0,
            "results": [r.to_dict() for r in results],
            "summary": summary,
        }, summary["failed"] == 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    output, ok = asyncio.run(run_command(args))
    print(json.dumps(output, indent=2))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
