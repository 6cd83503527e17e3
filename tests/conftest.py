"""Shared fixtures: in-memory bank and ledger adapters and model builders."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from fintoc_lunchmoney_sync.clients.base import BankDataAdapter, LedgerAdapter
from fintoc_lunchmoney_sync.models.transaction import (
    AccountKind,
    AccountPair,
    Asset,
    Balance,
    InsertOutcome,
    InsertStatus,
    LedgerTransaction,
    Movement,
    SyncWindow,
)
from fintoc_lunchmoney_sync.utils.exceptions import UpstreamFetchError, UpstreamWriteError


def make_movement(
    id: str,
    day: date,
    amount: str,
    description: str = "",
    currency: str = "CLP",
) -> Movement:
    return Movement(
        id=id,
        posted_date=day,
        amount=Decimal(amount),
        description=description or f"movement {id}",
        currency=currency,
    )


def make_ledger_txn(
    id: int,
    day: date,
    amount: str,
    ref: Optional[str] = None,
    asset_id: int = 111,
) -> LedgerTransaction:
    return LedgerTransaction(
        id=id,
        posted_date=day,
        amount=Decimal(amount),
        external_reference=ref,
        asset_id=asset_id,
    )


def make_pair(
    account_name: str = "Checking",
    account_id: str = "acc_checking",
    asset_id: str = "111",
    kind: AccountKind = AccountKind.CHECKING,
    skip_movements: bool = False,
    bank_name: str = "Banco",
) -> AccountPair:
    return AccountPair(
        bank_name=bank_name,
        account_name=account_name,
        account_id=account_id,
        asset_id=asset_id,
        kind=kind,
        link_token="link_abc",
        skip_movements=skip_movements,
    )


class FakeBank(BankDataAdapter):
    """Bank adapter serving canned movements and balances per account id."""

    def __init__(self):
        self.movements: dict[str, list[Movement]] = {}
        self.balances: dict[str, Balance] = {}
        self.failing_accounts: set[str] = set()
        self.calls: list[tuple] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def list_movements(self, account_id, link_token, since, until):
        self.calls.append(("list_movements", account_id, since, until))
        if account_id in self.failing_accounts:
            raise UpstreamFetchError("Fintoc: failed to get movements, code 500")
        return list(self.movements.get(account_id, []))

    def get_balance(self, account_id, link_token, kind):
        self.calls.append(("get_balance", account_id, kind))
        if account_id in self.failing_accounts:
            raise UpstreamFetchError("Fintoc: failed to get balance, code 500")
        return self.balances.get(account_id, Balance(Decimal("0"), "CLP"))


class FakeLedger(LedgerAdapter):
    """
    Ledger adapter keeping transactions in memory.

    Inserted transactions keep the movement id as external reference unless
    ``preserve_references`` is off, mimicking a ledger that drops it.
    """

    def __init__(self, preserve_references: bool = True):
        self.preserve_references = preserve_references
        self.transactions: dict[int, list[LedgerTransaction]] = {}
        self.balances: dict[int, Balance] = {}
        self.assets: list[Asset] = []
        self.failing_inserts: set[str] = set()
        self.failing_balance_assets: set[int] = set()
        self.calls: list[tuple] = []
        self._next_id = 1000

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def list_assets(self):
        self.calls.append(("list_assets",))
        return list(self.assets)

    def list_transactions(self, asset_id):
        self.calls.append(("list_transactions", asset_id))
        return list(self.transactions.get(asset_id, []))

    def insert_transaction(self, asset_id, movement):
        self.calls.append(("insert_transaction", asset_id, movement.id))
        if movement.id in self.failing_inserts:
            raise UpstreamWriteError(f"Lunch Money: rejected {movement.id}")

        existing = self.transactions.setdefault(asset_id, [])
        if any(t.external_reference == movement.id for t in existing):
            return InsertOutcome(movement=movement, status=InsertStatus.EXISTING)

        self._next_id += 1
        existing.append(
            LedgerTransaction(
                id=self._next_id,
                posted_date=movement.posted_date,
                amount=movement.amount,
                description=movement.description,
                external_reference=movement.id if self.preserve_references else None,
                asset_id=asset_id,
            )
        )
        return InsertOutcome(movement=movement, status=InsertStatus.INSERTED, ledger_id=self._next_id)

    def update_asset_balance(self, asset_id, balance):
        self.calls.append(("update_asset_balance", asset_id, balance.amount))
        if asset_id in self.failing_balance_assets:
            raise UpstreamWriteError(f"Lunch Money: failed to update balance of asset {asset_id}")
        self.balances[asset_id] = balance


@pytest.fixture
def bank() -> FakeBank:
    return FakeBank()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def window() -> SyncWindow:
    return SyncWindow(
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        end=datetime(2024, 1, 31, tzinfo=timezone.utc),
    )


@pytest.fixture
def pair() -> AccountPair:
    return make_pair()
