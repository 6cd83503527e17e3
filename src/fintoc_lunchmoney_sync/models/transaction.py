"""Data models for bank movements, ledger transactions and sync results."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
import re

from ..utils.durations import parse_duration
from ..utils.exceptions import ConfigurationError

ACCOUNT_ID_PATTERN = re.compile(r"^acc_[A-Za-z0-9]+$")
ASSET_ID_PATTERN = re.compile(r"^[1-9][0-9]*$")


class AccountKind(Enum):
    """Kind of bank account, which decides how its balance is read."""

    CHECKING = "Checking"
    SAVINGS = "Savings"
    CREDIT = "Credit"


class MatchMode(Enum):
    """How fetched movements are matched against existing ledger transactions."""

    AUTO = "auto"  # Reference if the ledger carries any, otherwise fingerprint
    REFERENCE = "reference"
    FINGERPRINT = "fingerprint"


class InsertStatus(Enum):
    """Outcome of a single insert attempt."""

    INSERTED = "inserted"
    EXISTING = "existing"  # Ledger reported the external id as a duplicate
    FAILED = "failed"
    PENDING = "pending"  # Dry run, nothing written


@dataclass(frozen=True)
class AccountPair:
    """A bank account and the ledger asset it syncs into."""

    bank_name: str
    account_name: str
    account_id: str
    asset_id: str
    kind: AccountKind
    link_token: str = ""
    skip_movements: bool = False

    @property
    def label(self) -> str:
        return f"{self.bank_name} - {self.account_name}"

    @property
    def ledger_asset_id(self) -> int:
        """Numeric ledger asset id. Call validate() first."""
        return int(self.asset_id)

    def validate(self) -> None:
        """
        Check identifiers before any network call is made.

        Raises:
            ConfigurationError: If an identifier is missing or malformed
        """
        if not self.link_token:
            raise ConfigurationError(f"{self.label}: missing link token")
        if not ACCOUNT_ID_PATTERN.match(self.account_id or ""):
            raise ConfigurationError(
                f"{self.label}: account id {self.account_id!r} does not look like "
                f"a Fintoc account id (acc_...)"
            )
        if not ASSET_ID_PATTERN.match(str(self.asset_id or "")):
            raise ConfigurationError(
                f"{self.label}: ledger asset id {self.asset_id!r} is not a positive integer"
            )


@dataclass(frozen=True)
class Movement:
    """
    A single bank transaction as reported by the bank data API.

    Amounts are signed (negative is money out) and already converted from the
    API's minor units into currency units, e.g. -15000 CLP or -12.34 USD.
    """

    id: str
    posted_date: date
    amount: Decimal
    description: str
    currency: str
    payee: Optional[str] = None
    notes: Optional[str] = None
    pending: bool = False


@dataclass(frozen=True)
class LedgerTransaction:
    """An existing transaction in the ledger asset."""

    id: int
    posted_date: date
    amount: Decimal
    description: str = ""
    external_reference: Optional[str] = None
    asset_id: Optional[int] = None


@dataclass(frozen=True)
class Balance:
    """Current balance of a bank account."""

    amount: Decimal
    currency: str


@dataclass(frozen=True)
class Asset:
    """A manually-managed asset in the ledger."""

    id: int
    name: str
    balance: Decimal
    currency: str


@dataclass(frozen=True)
class SyncWindow:
    """Time range over which movements are fetched for one run."""

    start: datetime
    end: Optional[datetime] = None

    @classmethod
    def from_duration(cls, text: str, now: Optional[datetime] = None) -> "SyncWindow":
        """Build a window reaching back ``text`` (e.g. "30d") from ``now``."""
        now = now or datetime.now(timezone.utc)
        return cls(start=now - parse_duration(text), end=now)

    @property
    def resolved_end(self) -> datetime:
        return self.end or datetime.now(timezone.utc)

    @property
    def since(self) -> date:
        return self.start.date()

    @property
    def until(self) -> date:
        return self.resolved_end.date()


@dataclass
class InsertOutcome:
    """Result of attempting to insert one movement into the ledger."""

    movement: Movement
    status: InsertStatus
    ledger_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != InsertStatus.FAILED


@dataclass
class SyncResult:
    """Outcome of syncing one account pair."""

    pair: AccountPair
    movements_fetched: int = 0
    outcomes: list[InsertOutcome] = field(default_factory=list)
    balance_before: Optional[Decimal] = None
    balance_after: Optional[Balance] = None
    balance_updated: bool = False
    skipped_movements: bool = False
    dry_run: bool = False
    error: Optional[Exception] = None

    def _count(self, status: InsertStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def inserted_count(self) -> int:
        return self._count(InsertStatus.INSERTED)

    @property
    def existing_count(self) -> int:
        return self._count(InsertStatus.EXISTING)

    @property
    def failed_count(self) -> int:
        return self._count(InsertStatus.FAILED)

    @property
    def pending_count(self) -> int:
        return self._count(InsertStatus.PENDING)

    @property
    def failures(self) -> list[InsertOutcome]:
        return [o for o in self.outcomes if o.status == InsertStatus.FAILED]

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return f"{type(self.error).__name__}: {self.error}"

    @property
    def succeeded(self) -> bool:
        """True when the account finished without an error or failed insert."""
        return self.error is None and self.failed_count == 0


@dataclass
class RunSummary:
    """Aggregate of all account results from one run."""

    window: SyncWindow
    results: list[SyncResult]
    started_at: datetime
    finished_at: datetime
    dry_run: bool = False

    @property
    def total_fetched(self) -> int:
        return sum(r.movements_fetched for r in self.results)

    @property
    def total_inserted(self) -> int:
        return sum(r.inserted_count for r in self.results)

    @property
    def failed_results(self) -> list[SyncResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_results)

    @property
    def processing_time_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
