"""Adapters for the bank data and ledger APIs."""

from .base import BankDataAdapter, LedgerAdapter
from .fintoc import FintocClient
from .lunchmoney import LunchMoneyClient

__all__ = ["BankDataAdapter", "LedgerAdapter", "FintocClient", "LunchMoneyClient"]
