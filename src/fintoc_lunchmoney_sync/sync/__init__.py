"""Sync engine."""

from .engine import SyncEngine

__all__ = ["SyncEngine"]
