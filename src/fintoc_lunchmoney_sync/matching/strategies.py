"""
Matching strategies for deciding whether a movement is already in the ledger.
Each strategy indexes the existing ledger transactions once and answers
membership questions from that index without further I/O.
"""

from abc import ABC, abstractmethod
from collections.abc import Hashable, Iterable

from ..models.transaction import LedgerTransaction, Movement


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies."""

    name: str = "abstract"

    @abstractmethod
    def transaction_key(self, txn: LedgerTransaction) -> Hashable:
        """
        Key under which an existing ledger transaction is indexed.

        Returns None when the transaction cannot take part in this strategy.
        """
        pass

    @abstractmethod
    def movement_key(self, movement: Movement) -> Hashable:
        """Key looked up in the index for an incoming movement."""
        pass

    def build_index(self, existing: Iterable[LedgerTransaction]) -> set:
        """Index existing transactions by this strategy's key."""
        index = set()
        for txn in existing:
            key = self.transaction_key(txn)
            if key is not None:
                index.add(key)
        return index

    def is_present(self, movement: Movement, index: set) -> bool:
        return self.movement_key(movement) in index


class ExternalReferenceStrategy(MatchingStrategy):
    """
    Identifier match - a ledger transaction whose external reference equals
    the movement's remote id represents that movement.
    """

    name = "reference"

    def transaction_key(self, txn: LedgerTransaction) -> Hashable:
        return txn.external_reference or None

    def movement_key(self, movement: Movement) -> Hashable:
        return movement.id


class FingerprintStrategy(MatchingStrategy):
    """
    Fingerprint match on (posted date, amount).

    Coarser than the identifier match: two distinct movements on the same day
    for the same amount are indistinguishable, so one existing transaction
    hides both of them.
    """

    name = "fingerprint"

    def transaction_key(self, txn: LedgerTransaction) -> Hashable:
        return (txn.posted_date, txn.amount)

    def movement_key(self, movement: Movement) -> Hashable:
        return (movement.posted_date, movement.amount)
