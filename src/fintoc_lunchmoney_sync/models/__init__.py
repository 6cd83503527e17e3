"""Data models for syncing."""

from .transaction import (
    AccountKind,
    AccountPair,
    Asset,
    Balance,
    InsertOutcome,
    InsertStatus,
    LedgerTransaction,
    MatchMode,
    Movement,
    RunSummary,
    SyncResult,
    SyncWindow,
)

__all__ = [
    "AccountKind",
    "AccountPair",
    "Asset",
    "Balance",
    "InsertOutcome",
    "InsertStatus",
    "LedgerTransaction",
    "MatchMode",
    "Movement",
    "RunSummary",
    "SyncResult",
    "SyncWindow",
]
