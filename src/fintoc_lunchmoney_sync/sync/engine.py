"""
Sync engine: drives fetch, reconcile, insert and balance update for each
account pair, keeping every account's failures inside its own result.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import logging

from ..clients.base import BankDataAdapter, LedgerAdapter
from ..matching.reconciler import Reconciler
from ..models.transaction import (
    AccountPair,
    InsertOutcome,
    InsertStatus,
    Movement,
    RunSummary,
    SyncResult,
    SyncWindow,
)
from ..utils.exceptions import (
    ConfigurationError,
    SyncError,
    UpstreamFetchError,
    UpstreamWriteError,
)

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Orchestrates one sync run over a set of account pairs.

    For each pair the steps run strictly in order: bank balance, bank
    movements, existing ledger transactions, reconciliation, inserts in
    posted-date order, then the balance update. Nothing is retried.
    """

    def __init__(
        self,
        bank: BankDataAdapter,
        ledger: LedgerAdapter,
        reconciler: Optional[Reconciler] = None,
        concurrent: bool = False,
        max_workers: Optional[int] = None,
        dry_run: bool = False,
    ):
        """
        Initialize the sync engine.

        Args:
            bank: Bank data adapter
            ledger: Ledger adapter
            reconciler: Reconciler to use (defaults to AUTO matching)
            concurrent: Run account pairs on a thread pool
            max_workers: Upper bound on the pool size
            dry_run: Compute inserts without writing anything to the ledger
        """
        self.bank = bank
        self.ledger = ledger
        self.reconciler = reconciler or Reconciler()
        self.concurrent = concurrent
        self.max_workers = max_workers
        self.dry_run = dry_run

    @classmethod
    def from_config(cls, config, bank: BankDataAdapter, ledger: LedgerAdapter, dry_run: bool = False) -> "SyncEngine":
        settings = config.sync_settings
        return cls(
            bank=bank,
            ledger=ledger,
            reconciler=Reconciler(settings.match_mode),
            concurrent=settings.concurrent,
            max_workers=settings.max_workers,
            dry_run=dry_run,
        )

    def run(self, pairs: list[AccountPair], window: SyncWindow) -> RunSummary:
        """
        Sync every pair and aggregate the results.

        Never raises for a per-account failure; results come back in the
        order of ``pairs``.
        """
        started_at = datetime.now(timezone.utc)
        logger.info(
            f"Starting sync of {len(pairs)} account(s) from {window.since} to {window.until}"
            + (" (dry run)" if self.dry_run else "")
        )

        # Misconfigured pairs fail on their own; skip the ledger read if none is usable
        balances_before = self._ledger_balances() if any(map(_is_valid, pairs)) else {}

        if self.concurrent and len(pairs) > 1:
            workers = min(len(pairs), self.max_workers or len(pairs))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync") as pool:
                futures = [
                    pool.submit(self._sync_isolated, pair, window, balances_before)
                    for pair in pairs
                ]
                results = [f.result() for f in futures]
        else:
            results = [self._sync_isolated(pair, window, balances_before) for pair in pairs]

        summary = RunSummary(
            window=window,
            results=results,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            dry_run=self.dry_run,
        )
        logger.info(
            f"Sync complete in {summary.processing_time_seconds:.2f}s: "
            f"{summary.total_inserted} inserted, {len(summary.failed_results)} account(s) with failures"
        )
        return summary

    def _ledger_balances(self) -> dict[int, Decimal]:
        """Current ledger balances by asset id, or empty if they cannot be read."""
        try:
            return {asset.id: asset.balance for asset in self.ledger.list_assets()}
        except UpstreamFetchError as e:
            logger.warning(f"Could not read ledger balances before sync: {e}")
            return {}

    def _sync_isolated(
        self,
        pair: AccountPair,
        window: SyncWindow,
        balances_before: dict[int, Decimal],
    ) -> SyncResult:
        try:
            return self.sync_account(pair, window, balances_before)
        except Exception as e:
            logger.exception(f"Unexpected error syncing {pair.label}")
            return SyncResult(pair=pair, dry_run=self.dry_run, error=e)

    def sync_account(
        self,
        pair: AccountPair,
        window: SyncWindow,
        balances_before: Optional[dict[int, Decimal]] = None,
    ) -> SyncResult:
        """
        Run one complete sync for a single account pair.

        Args:
            pair: Account pair to sync
            window: Date range for the movements
            balances_before: Ledger balances read at the start of the run

        Returns:
            SyncResult; expected failures are recorded in ``error``
        """
        result = SyncResult(pair=pair, dry_run=self.dry_run)
        logger.info(f"Syncing {pair.label}")

        try:
            pair.validate()
            asset_id = pair.ledger_asset_id
            if balances_before:
                result.balance_before = balances_before.get(asset_id)

            balance = self.bank.get_balance(pair.account_id, pair.link_token, pair.kind)
            result.balance_after = balance
            logger.info(f"{pair.label}: current bank balance {balance.amount} {balance.currency}")

            if pair.skip_movements:
                result.skipped_movements = True
                logger.info(f"{pair.label}: skipping movements per configuration")
            else:
                movements = self.bank.list_movements(
                    pair.account_id, pair.link_token, window.since, window.until
                )
                result.movements_fetched = len(movements)
                logger.info(f"{pair.label}: fetched {len(movements)} movements")

                existing = self.ledger.list_transactions(asset_id)
                to_insert = self.reconciler.reconcile(existing, movements)
                logger.info(
                    f"{pair.label}: {len(existing)} transactions already in ledger, "
                    f"{len(to_insert)} to insert"
                )
                result.outcomes = self._insert_all(pair, to_insert)

            if self.dry_run:
                logger.info(f"{pair.label}: dry run, balance not updated")
            else:
                self.ledger.update_asset_balance(asset_id, balance)
                result.balance_updated = True
                logger.info(f"{pair.label}: balance updated to {balance.amount} {balance.currency}")

        except SyncError as e:
            logger.error(f"{pair.label}: {type(e).__name__}: {e}")
            result.error = e

        return result

    def _insert_all(self, pair: AccountPair, movements: list[Movement]) -> list[InsertOutcome]:
        """Insert each movement independently; a failure never stops the rest."""
        if self.dry_run:
            return [InsertOutcome(movement=m, status=InsertStatus.PENDING) for m in movements]

        outcomes: list[InsertOutcome] = []
        for movement in movements:
            try:
                outcome = self.ledger.insert_transaction(pair.ledger_asset_id, movement)
            except UpstreamWriteError as e:
                logger.error(f"{pair.label}: failed to insert {movement.id}: {e}")
                outcome = InsertOutcome(movement=movement, status=InsertStatus.FAILED, reason=str(e))
            outcomes.append(outcome)

        inserted = sum(1 for o in outcomes if o.status == InsertStatus.INSERTED)
        existing = sum(1 for o in outcomes if o.status == InsertStatus.EXISTING)
        if existing:
            logger.info(f"{pair.label}: inserted {inserted}, {existing} already existed")
        else:
            logger.info(f"{pair.label}: inserted {inserted}")
        return outcomes


def _is_valid(pair: AccountPair) -> bool:
    try:
        pair.validate()
    except ConfigurationError:
        return False
    return True
