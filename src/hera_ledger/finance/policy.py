"""Sales posting policy: which GL accounts daily sales are posted to.

The policy is stored as one versioned JSON document per organization in
``core_dynamic_data``. Organizations configured before the document format
still have one row per dotted field path (``accounts.cash_clearing``,
``grouping.by_branch``); those rows are read and migrated transparently and
replaced by a document on the next write.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from hera_ledger.clients.universal_api import (
    DYNAMIC_DATA,
    ENTITIES,
    Filter,
    UniversalAPIClient,
    UniversalAPIError,
)
from hera_ledger.finance.errors import ConfigurationError
from hera_ledger.finance.smart_codes import POLICY_SMART_CODE

logger = structlog.get_logger(__name__)

POLICY_SCHEMA_VERSION = 1
POLICY_FIELD_NAME = "sales_posting_policy"


class AccountRole(str, Enum):
    """Semantic GL roles a sales posting policy must map."""

    SERVICE_REVENUE = "service_revenue"
    PRODUCT_REVENUE = "product_revenue"
    VAT_LIABILITY = "vat_liability"
    DISCOUNTS_CONTRA = "discounts_contra"
    TIPS_PAYABLE = "tips_payable"
    CASH_CLEARING = "cash_clearing"
    CARD_CLEARING = "card_clearing"
    GIFTCARD_LIABILITY = "giftcard_liability"
    ROUNDING_DIFF = "rounding_diff"


# Name/code fragments tried in order when suggesting a mapping
ACCOUNT_CANDIDATES: dict[AccountRole, tuple[str, ...]] = {
    AccountRole.SERVICE_REVENUE: (
        "service revenue", "service sales", "salon revenue", "4100", "4110",
    ),
    AccountRole.PRODUCT_REVENUE: (
        "product revenue", "product sales", "retail sales", "merchandise", "4200", "4210",
    ),
    AccountRole.VAT_LIABILITY: (
        "vat payable", "output vat", "vat output", "vat liability", "sales tax payable",
        "2250", "2300",
    ),
    AccountRole.DISCOUNTS_CONTRA: (
        "sales discount", "discounts allowed", "discount", "4900", "4910",
    ),
    AccountRole.TIPS_PAYABLE: ("tips payable", "gratuities", "tips", "2350", "2360"),
    AccountRole.CASH_CLEARING: (
        "cash clearing", "cash on hand", "cash in hand", "cash", "1100", "1110",
    ),
    AccountRole.CARD_CLEARING: (
        "card clearing", "credit card clearing", "card receivable", "merchant", "1120", "1150",
    ),
    AccountRole.GIFTCARD_LIABILITY: (
        "gift card", "giftcard", "gift voucher", "deferred revenue", "2400", "2410",
    ),
    AccountRole.ROUNDING_DIFF: (
        "rounding", "round off", "round-off", "6999", "7999",
    ),
}


class PolicyAccounts(BaseModel):
    """GL account entity id per role; empty string means unmapped."""

    service_revenue: str = ""
    product_revenue: str = ""
    vat_liability: str = ""
    discounts_contra: str = ""
    tips_payable: str = ""
    cash_clearing: str = ""
    card_clearing: str = ""
    giftcard_liability: str = ""
    rounding_diff: str = ""

    def get(self, role: AccountRole) -> str:
        return getattr(self, role.value)


class PolicyGrouping(BaseModel):
    by_branch: bool = True
    by_tax_rate: bool = True


class SalesPostingPolicy(BaseModel):
    """Per-organization daily sales posting configuration."""

    schema_version: int = POLICY_SCHEMA_VERSION
    accounts: PolicyAccounts = Field(default_factory=PolicyAccounts)
    grouping: PolicyGrouping = Field(default_factory=PolicyGrouping)
    include_cogs_from_inventory: bool = False


@dataclass
class PolicyValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class PolicyWriteResult:
    success: bool
    policy: SalesPostingPolicy | None = None
    error: str | None = None


def migrate_policy_document(document: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a stored policy document to the current schema version."""
    version = int(document.get("schema_version") or 0)
    if version > POLICY_SCHEMA_VERSION:
        raise ConfigurationError(
            f"Sales posting policy schema v{version} is newer than supported "
            f"v{POLICY_SCHEMA_VERSION}"
        )
    migrated = dict(document)
    if version < 1:
        # v0: legacy dotted rows, role keys could also sit at top level
        accounts = dict(migrated.get("accounts") or {})
        for role in AccountRole:
            if role.value in migrated:
                accounts.setdefault(role.value, migrated.pop(role.value))
        migrated["accounts"] = accounts
    migrated["schema_version"] = POLICY_SCHEMA_VERSION
    return migrated


def _field_value(row: dict[str, Any]) -> Any:
    for key in ("field_value_boolean", "field_value_number", "field_value_text"):
        if row.get(key) is not None:
            return row[key]
    return None


def unflatten_fields(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Rebuild a nested dict from legacy dotted-path field rows."""
    document: dict[str, Any] = {}
    for row in rows:
        path = (row.get("field_name") or "").split(".")
        if not path[0]:
            continue
        node = document
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[path[-1]] = _field_value(row)
    return document


def _entity_attr(entity: dict[str, Any], key: str) -> Any:
    if key in entity:
        return entity[key]
    return (entity.get("metadata") or {}).get(key)


def _is_active_gl_account(entity: dict[str, Any]) -> bool:
    ledger_type = str(_entity_attr(entity, "ledger_type") or "").upper()
    is_active = _entity_attr(entity, "is_active")
    if is_active is None:
        is_active = entity.get("status", "active") == "active"
    return ledger_type == "GL" and str(is_active).lower() == "true"


class PolicyStore:
    """Reads, writes, validates and suggests sales posting policies."""

    def __init__(self, api: UniversalAPIClient):
        self._api = api
        self._logger = logger.bind(component="policy")

    async def _read_policy_rows(self, organization_id: str) -> list[dict[str, Any]]:
        return await self._api.read(
            DYNAMIC_DATA,
            [
                Filter.eq("organization_id", organization_id),
                Filter.eq("entity_id", organization_id),
                Filter.eq("smart_code", POLICY_SMART_CODE),
            ],
        )

    async def get(self, organization_id: str) -> SalesPostingPolicy | None:
        """Load the organization's policy, or None if it has none."""
        rows = await self._read_policy_rows(organization_id)
        if not rows:
            return None

        document_row = next(
            (row for row in rows if row.get("field_name") == POLICY_FIELD_NAME), None
        )
        if document_row is not None:
            document = document_row.get("field_value_json")
            if isinstance(document, str):
                try:
                    document = json.loads(document)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Sales posting policy for organization {organization_id} "
                        f"is not valid JSON: {e}"
                    ) from e
        else:
            self._logger.info(
                "legacy_policy_migrated", organization_id=organization_id, fields=len(rows)
            )
            document = unflatten_fields(rows)

        if not isinstance(document, dict):
            raise ConfigurationError(
                f"Sales posting policy for organization {organization_id} is malformed"
            )
        try:
            return SalesPostingPolicy.model_validate(migrate_policy_document(document))
        except ValidationError as e:
            raise ConfigurationError(
                f"Sales posting policy for organization {organization_id} is invalid: {e}"
            ) from e

    async def set(
        self, organization_id: str, policy: SalesPostingPolicy
    ) -> PolicyWriteResult:
        """Replace the organization's policy with ``policy``."""
        try:
            for row in await self._read_policy_rows(organization_id):
                await self._api.delete(DYNAMIC_DATA, row["id"])
            await self._api.create(
                DYNAMIC_DATA,
                {
                    "organization_id": organization_id,
                    "entity_id": organization_id,
                    "smart_code": POLICY_SMART_CODE,
                    "field_name": POLICY_FIELD_NAME,
                    "field_type": "json",
                    "field_value_json": policy.model_dump(mode="json"),
                },
            )
        except UniversalAPIError as e:
            self._logger.error("policy_write_failed", organization_id=organization_id, error=str(e))
            return PolicyWriteResult(success=False, error=str(e))

        self._logger.info("policy_saved", organization_id=organization_id)
        return PolicyWriteResult(success=True, policy=policy)

    async def list_gl_accounts(self, organization_id: str) -> list[dict[str, Any]]:
        """Active GL account entities of the organization."""
        entities = await self._api.read(
            ENTITIES,
            [
                Filter.eq("organization_id", organization_id),
                Filter.eq("entity_type", "account"),
            ],
        )
        return [entity for entity in entities if _is_active_gl_account(entity)]

    async def suggest_mappings(self, organization_id: str) -> dict[str, str]:
        """Guess an account per role from the chart of accounts.

        Roles without a match are left out of the result.
        """
        accounts = await self.list_gl_accounts(organization_id)
        suggestions: dict[str, str] = {}
        for role, candidates in ACCOUNT_CANDIDATES.items():
            match = self._find_account(accounts, candidates)
            if match is not None:
                suggestions[role.value] = match["id"]

        self._logger.info(
            "mappings_suggested",
            organization_id=organization_id,
            mapped=len(suggestions),
            unmapped=[role.value for role in AccountRole if role.value not in suggestions],
        )
        return suggestions

    @staticmethod
    def _find_account(
        accounts: list[dict[str, Any]], candidates: tuple[str, ...]
    ) -> dict[str, Any] | None:
        for candidate in candidates:
            for account in accounts:
                name = str(account.get("entity_name") or "").lower()
                code = str(account.get("entity_code") or "").lower()
                if candidate in name or candidate in code:
                    return account
        return None

    async def validate(
        self, organization_id: str, policy: SalesPostingPolicy
    ) -> PolicyValidation:
        """Check every role maps to an active GL account of the organization."""
        account_ids = {
            str(account["id"]) for account in await self.list_gl_accounts(organization_id)
        }
        errors: list[str] = []
        for role in AccountRole:
            account_id = policy.accounts.get(role)
            if not account_id:
                errors.append(f"Missing account mapping for {role.value}")
            elif account_id not in account_ids:
                errors.append(
                    f"Account {account_id} mapped to {role.value} is not an active GL account"
                )
        return PolicyValidation(is_valid=not errors, errors=errors)

    async def create_default(self, organization_id: str) -> PolicyWriteResult:
        """Suggest, validate and save a policy; saves nothing if invalid."""
        suggestions = await self.suggest_mappings(organization_id)
        policy = SalesPostingPolicy(
            accounts=PolicyAccounts(**suggestions),
            grouping=PolicyGrouping(by_branch=True, by_tax_rate=True),
        )
        validation = await self.validate(organization_id, policy)
        if not validation.is_valid:
            self._logger.warning(
                "default_policy_invalid",
                organization_id=organization_id,
                errors=validation.errors,
            )
            return PolicyWriteResult(
                success=False,
                error="Policy validation failed: " + "; ".join(validation.errors),
            )
        return await self.set(organization_id, policy)
