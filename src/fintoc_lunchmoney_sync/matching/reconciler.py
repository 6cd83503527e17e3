"""
Reconciler: computes which fetched movements are missing from the ledger.
Pure and in-memory; performs no I/O.
"""

from collections.abc import Sequence
import logging

from ..models.transaction import LedgerTransaction, MatchMode, Movement
from .strategies import (
    ExternalReferenceStrategy,
    FingerprintStrategy,
    MatchingStrategy,
)

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Maps (existing ledger transactions, fetched movements) to the ordered list
    of movements to insert.

    In AUTO mode the identifier match is used whenever at least one existing
    transaction carries an external reference, and the (date, amount)
    fingerprint otherwise.
    """

    def __init__(self, match_mode: MatchMode = MatchMode.AUTO):
        self.match_mode = match_mode

    def select_strategy(self, existing: Sequence[LedgerTransaction]) -> MatchingStrategy:
        """
        Choose the matching strategy for one asset's existing transactions.

        Args:
            existing: Ledger transactions already in the asset

        Returns:
            Strategy to apply to every fetched movement
        """
        if self.match_mode == MatchMode.REFERENCE:
            return ExternalReferenceStrategy()
        if self.match_mode == MatchMode.FINGERPRINT:
            return FingerprintStrategy()

        if not existing or any(t.external_reference for t in existing):
            return ExternalReferenceStrategy()
        return FingerprintStrategy()

    def reconcile(
        self,
        existing: Sequence[LedgerTransaction],
        movements: Sequence[Movement],
    ) -> list[Movement]:
        """
        Compute the insert set.

        Args:
            existing: Ledger transactions already in the target asset
            movements: Movements fetched from the bank, in adapter order

        Returns:
            Movements not yet in the ledger, ascending by posted date with
            ties kept in adapter order
        """
        strategy = self.select_strategy(existing)
        index = strategy.build_index(existing)

        missing: list[Movement] = []
        seen_ids: set[str] = set()
        for movement in movements:
            if movement.id in seen_ids:
                logger.warning(f"Movement {movement.id} returned twice by the bank; keeping the first")
                continue
            seen_ids.add(movement.id)

            if not strategy.is_present(movement, index):
                missing.append(movement)

        # sorted() is stable, so same-day movements keep adapter order
        to_insert = sorted(missing, key=lambda m: m.posted_date)

        logger.debug(
            f"Reconciled {len(movements)} movements against {len(existing)} ledger "
            f"transactions using {strategy.name} matching: {len(to_insert)} to insert"
        )
        return to_insert
