"""
Adapter interfaces consumed by the sync engine, and the HTTP plumbing shared
by the concrete API clients.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional
import logging

import httpx

from ..models.transaction import (
    AccountKind,
    Asset,
    Balance,
    InsertOutcome,
    LedgerTransaction,
    Movement,
)
from ..utils.exceptions import SyncError, UpstreamFetchError

logger = logging.getLogger(__name__)


class BankDataAdapter(ABC):
    """Read access to a bank data API."""

    @abstractmethod
    def list_movements(
        self, account_id: str, link_token: str, since: date, until: date
    ) -> list[Movement]:
        """
        List the account's movements posted between two dates, inclusive.

        Raises:
            UpstreamFetchError: On any transport or API failure
        """
        pass

    @abstractmethod
    def get_balance(self, account_id: str, link_token: str, kind: AccountKind) -> Balance:
        """
        Fetch the account's current balance.

        Raises:
            UpstreamFetchError: On any transport or API failure
        """
        pass


class LedgerAdapter(ABC):
    """Read and write access to a ledger API."""

    @abstractmethod
    def list_assets(self) -> list[Asset]:
        pass

    @abstractmethod
    def list_transactions(self, asset_id: int) -> list[LedgerTransaction]:
        """
        List every transaction in the asset.

        Raises:
            UpstreamFetchError: On any transport or API failure
        """
        pass

    @abstractmethod
    def insert_transaction(self, asset_id: int, movement: Movement) -> InsertOutcome:
        """
        Insert one movement as a ledger transaction.

        Returns an INSERTED or EXISTING outcome.

        Raises:
            UpstreamWriteError: If the ledger rejects the transaction
        """
        pass

    @abstractmethod
    def update_asset_balance(self, asset_id: int, balance: Balance) -> None:
        """
        Set the asset's balance.

        Raises:
            UpstreamWriteError: If the update fails or is not reflected
        """
        pass


class HttpApiClient:
    """Thin wrapper around an ``httpx.Client`` that maps failures to SyncErrors."""

    service_name = "API"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.http = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def request_json(
        self,
        method: str,
        path: str,
        error_cls: type[SyncError] = UpstreamFetchError,
        action: str = "request",
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and decode its JSON body.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            error_cls: Exception raised on failure
            action: Short description used in error messages
            **kwargs: Passed to ``httpx.Client.request``

        Raises:
            error_cls: On timeout, transport error, non-2xx status or invalid JSON
        """
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise error_cls(f"{self.service_name}: timed out trying to {action}") from e
        except httpx.HTTPError as e:
            raise error_cls(f"{self.service_name}: failed to {action}: {e}") from e

        if not response.is_success:
            body = response.text[:500]
            logger.debug(f"{self.service_name} {method} {path} -> {response.status_code}: {body}")
            raise error_cls(
                f"{self.service_name}: failed to {action}, code {response.status_code}: {body}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(f"{self.service_name}: invalid JSON trying to {action}") from e
