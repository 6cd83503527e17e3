"""
Fintoc API client.
Reads account balances and movements and normalizes them into Movement models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
import logging
import re

import httpx

from ..models.transaction import AccountKind, Balance, Movement
from ..utils.exceptions import UpstreamFetchError
from .base import BankDataAdapter, HttpApiClient

logger = logging.getLogger(__name__)

# Digits after the decimal point for the amounts Fintoc reports in minor units
CURRENCY_EXPONENTS = {
    "CLP": 0,
    "USD": 2,
    "EUR": 2,
}

MOVEMENTS_PER_PAGE = 300

# Card purchase prefixes some banks put in front of the merchant name
DESCRIPTION_PREFIX_PATTERN = re.compile(
    r"^(COMPRA INTERNACIONAL|COMPRA NACIONAL|PAGO RECURRENTE|COMPRA INTER\.)\s",
    re.IGNORECASE,
)


class UnsupportedCurrencyError(ValueError):
    """Amount is in a currency whose minor unit is unknown."""

    pass


def to_currency_units(amount: int, currency: str) -> Decimal:
    """
    Convert an integer amount in minor units into currency units.

    Raises:
        UnsupportedCurrencyError: If the currency is not in CURRENCY_EXPONENTS
    """
    code = (currency or "").upper()
    if code not in CURRENCY_EXPONENTS:
        raise UnsupportedCurrencyError(f"Currency {code or '<none>'} is not supported")
    return Decimal(int(amount)).scaleb(-CURRENCY_EXPONENTS[code])


def clean_description(description: str) -> str:
    """Strip common card purchase prefixes from a bank description."""
    return DESCRIPTION_PREFIX_PATTERN.sub("", description or "", count=1)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _payee(data: dict[str, Any]) -> str:
    """Counterparty for transfers, cleaned description for everything else."""
    if data.get("type") == "transfer":
        counterparty = data.get("sender_account") if data.get("amount", 0) > 0 else data.get("recipient_account")
        if counterparty and counterparty.get("holder_name"):
            institution = counterparty.get("institution") or {}
            if institution.get("name"):
                return f"{counterparty['holder_name']} ({institution['name']})"
            return counterparty["holder_name"]
    return clean_description(data.get("description", ""))


def movement_from_payload(data: dict[str, Any]) -> Movement:
    """
    Build a Movement from one Fintoc movement object.

    The posted date is the transaction date when the bank reports one and the
    post date otherwise.

    Raises:
        UnsupportedCurrencyError: If the movement's currency is unknown
        KeyError, ValueError: If the payload is malformed
    """
    currency = data.get("currency") or ""
    posted = _parse_timestamp(data.get("transaction_date")) or _parse_timestamp(data.get("post_date"))
    if posted is None:
        raise ValueError("movement has no transaction_date or post_date")

    return Movement(
        id=data["id"],
        posted_date=posted.date(),
        amount=to_currency_units(data["amount"], currency),
        description=data.get("description") or "",
        currency=currency.upper(),
        payee=_payee(data),
        notes=data.get("comment"),
        pending=bool(data.get("pending", False)),
    )


class FintocClient(HttpApiClient, BankDataAdapter):
    """Client for the Fintoc v1 REST API."""

    service_name = "Fintoc"

    def __init__(
        self,
        secret_token: str,
        base_url: str = "https://api.fintoc.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            headers={
                "Authorization": secret_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.BaseTransport] = None) -> "FintocClient":
        return cls(
            secret_token=config.tokens.fintoc_secret_token,
            base_url=config.http.fintoc_base_url,
            timeout=config.http.timeout,
            transport=transport,
        )

    def list_accounts(self, link_token: str) -> list[dict[str, Any]]:
        """List the accounts reachable through a link token."""
        data = self.request_json(
            "GET",
            "/accounts",
            params={"link_token": link_token},
            action="list accounts",
        )
        if not isinstance(data, list):
            raise UpstreamFetchError("Fintoc: account list is not an array")
        return data

    def list_movements(
        self, account_id: str, link_token: str, since: date, until: date
    ) -> list[Movement]:
        """
        Fetch all movements in the date range, following pagination until an
        empty page. Movements in unsupported currencies are skipped with a
        warning.
        """
        movements: list[Movement] = []
        page = 1

        while True:
            data = self.request_json(
                "GET",
                f"/accounts/{account_id}/movements",
                params={
                    "link_token": link_token,
                    "since": since.isoformat(),
                    "until": until.isoformat(),
                    "per_page": MOVEMENTS_PER_PAGE,
                    "page": page,
                },
                action="get movements",
            )
            if not isinstance(data, list):
                raise UpstreamFetchError("Fintoc: movements payload is not an array")
            if not data:
                break

            for item in data:
                try:
                    movements.append(movement_from_payload(item))
                except UnsupportedCurrencyError as e:
                    logger.warning(f"Skipping movement {item.get('id')}: {e}")
                except (KeyError, TypeError, ValueError) as e:
                    raise UpstreamFetchError(
                        f"Fintoc: malformed movement {item.get('id')!r}: {e}"
                    ) from e

            logger.debug(f"Fetched page {page} with {len(data)} movements for {account_id}")
            page += 1

        return movements

    def get_balance(self, account_id: str, link_token: str, kind: AccountKind) -> Balance:
        """
        Read the account balance.

        Checking and savings accounts report the current balance. Credit
        accounts report the used credit, i.e. limit minus available.
        """
        data = self.request_json(
            "GET",
            f"/accounts/{account_id}",
            params={"link_token": link_token},
            action="get balance",
        )

        try:
            balance = data["balance"]
            if kind == AccountKind.CREDIT:
                minor_units = balance["limit"] - balance["available"]
            else:
                minor_units = balance["current"]
            currency = data["currency"]
            amount = to_currency_units(minor_units, currency)
        except UnsupportedCurrencyError as e:
            raise UpstreamFetchError(f"Fintoc: {e}") from e
        except (KeyError, TypeError) as e:
            raise UpstreamFetchError(f"Fintoc: malformed account payload: {e}") from e

        return Balance(amount=amount, currency=currency.upper())
