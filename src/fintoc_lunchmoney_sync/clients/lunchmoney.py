"""
Lunch Money API client.
Lists assets and transactions, inserts transactions and updates asset balances.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import logging

import httpx

from ..models.transaction import (
    Asset,
    Balance,
    InsertOutcome,
    InsertStatus,
    LedgerTransaction,
    Movement,
)
from ..utils.exceptions import UpstreamFetchError, UpstreamWriteError
from .base import HttpApiClient, LedgerAdapter

logger = logging.getLogger(__name__)

TRANSACTIONS_PAGE_SIZE = 1000

# The transactions endpoint defaults to the current month without a range
HISTORY_START = date(1970, 1, 1)

DUPLICATE_MARKER = "already exists"


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e


def transaction_from_payload(data: dict[str, Any]) -> LedgerTransaction:
    """Build a LedgerTransaction from one Lunch Money transaction object."""
    return LedgerTransaction(
        id=int(data["id"]),
        posted_date=date.fromisoformat(data["date"]),
        amount=_decimal(data["amount"]),
        description=data.get("payee") or data.get("original_name") or "",
        external_reference=data.get("external_id") or None,
        asset_id=data.get("asset_id"),
    )


def asset_from_payload(data: dict[str, Any]) -> Asset:
    """Build an Asset from one Lunch Money asset object."""
    return Asset(
        id=int(data["id"]),
        name=data.get("display_name") or data.get("name") or "Unnamed",
        balance=_decimal(data["balance"]),
        currency=(data.get("currency") or "").upper(),
    )


def _format_amount(amount: Decimal) -> str:
    return format(amount, "f")


def _errors(data: dict[str, Any]) -> list[str]:
    errors = data.get("error") or data.get("errors") or []
    if isinstance(errors, str):
        return [errors]
    return [str(e) for e in errors]


class LunchMoneyClient(HttpApiClient, LedgerAdapter):
    """Client for the Lunch Money v1 REST API."""

    service_name = "Lunch Money"

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://dev.lunchmoney.app/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json; charset=utf-8",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> "LunchMoneyClient":
        return cls(
            api_token=config.tokens.lunch_money_api_token,
            base_url=config.http.lunch_money_base_url,
            timeout=config.http.timeout,
            transport=transport,
        )

    def list_assets(self) -> list[Asset]:
        data = self.request_json("GET", "/assets", action="get assets")
        try:
            return [asset_from_payload(item) for item in data["assets"]]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamFetchError(f"Lunch Money: malformed assets payload: {e}") from e

    def list_transactions(self, asset_id: int) -> list[LedgerTransaction]:
        """
        Fetch the asset's whole transaction history, paging by offset.

        Debits come back negative so amounts compare directly with movements.
        """
        transactions: list[LedgerTransaction] = []
        offset = 0
        end_date = date.today() + timedelta(days=1)

        while True:
            data = self.request_json(
                "GET",
                "/transactions",
                params={
                    "asset_id": asset_id,
                    "start_date": HISTORY_START.isoformat(),
                    "end_date": end_date.isoformat(),
                    "debit_as_negative": "true",
                    "offset": offset,
                    "limit": TRANSACTIONS_PAGE_SIZE,
                },
                action="get transactions",
            )

            try:
                rows = data["transactions"]
                page = [transaction_from_payload(row) for row in rows]
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamFetchError(f"Lunch Money: malformed transactions payload: {e}") from e

            # Keep only this asset even if the filter was ignored upstream
            transactions.extend(t for t in page if t.asset_id == asset_id)

            has_more = data.get("has_more")
            if has_more is None:
                has_more = len(rows) == TRANSACTIONS_PAGE_SIZE
            if not rows or not has_more:
                break
            offset += len(rows)

        logger.debug(f"Fetched {len(transactions)} existing transactions for asset {asset_id}")
        return transactions

    def insert_transaction(self, asset_id: int, movement: Movement) -> InsertOutcome:
        transaction = {
            "date": movement.posted_date.isoformat(),
            "payee": movement.payee or movement.description,
            "amount": _format_amount(movement.amount),
            "currency": movement.currency.lower(),
            "asset_id": asset_id,
            "notes": movement.notes,
            "external_id": movement.id,
            "status": "uncleared",
            "original_name": movement.description,
            "is_pending": movement.pending,
        }
        body = {
            "transactions": [{k: v for k, v in transaction.items() if v is not None}],
            "apply_rules": True,
            "check_for_recurring": True,
            "debit_as_negative": True,
        }

        data = self.request_json(
            "POST",
            "/transactions",
            json=body,
            error_cls=UpstreamWriteError,
            action=f"insert transaction {movement.id}",
        )
        if not isinstance(data, dict):
            raise UpstreamWriteError("Lunch Money: unexpected insert response")

        errors = _errors(data)
        ids = data.get("ids") or []
        if ids:
            # Created even when Lunch Money also reports side errors
            if errors:
                logger.warning(f"Lunch Money inserted {movement.id} with errors: {'; '.join(errors)}")
            return InsertOutcome(movement=movement, status=InsertStatus.INSERTED, ledger_id=int(ids[0]))

        if any(DUPLICATE_MARKER in e for e in errors):
            return InsertOutcome(movement=movement, status=InsertStatus.EXISTING)
        if errors:
            raise UpstreamWriteError("Lunch Money: " + "; ".join(errors))
        raise UpstreamWriteError(f"Lunch Money: no id returned for {movement.id}")

    def update_asset_balance(self, asset_id: int, balance: Balance) -> None:
        """Set the asset balance and check the response echoes it back."""
        currency = balance.currency.lower()
        data = self.request_json(
            "PUT",
            f"/assets/{asset_id}",
            json={"balance": _format_amount(balance.amount), "currency": currency},
            error_cls=UpstreamWriteError,
            action=f"update balance of asset {asset_id}",
        )

        try:
            returned = _decimal(data["balance"])
            returned_currency = (data.get("currency") or "").lower()
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamWriteError(f"Lunch Money: malformed asset response: {e}") from e

        if returned != balance.amount:
            raise UpstreamWriteError(
                f"Lunch Money: asset {asset_id} balance is {returned}, expected {balance.amount}"
            )
        if returned_currency != currency:
            raise UpstreamWriteError(
                f"Lunch Money: asset {asset_id} currency is {returned_currency}, expected {currency}"
            )
