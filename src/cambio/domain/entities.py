"""Domain model entities for cambio.

These are pure data classes representing business concepts, independent of
database schema. Services and the CLI only ever see these; the ORM models in
``cambio.database.models`` stay behind the ``Database`` interface.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class TransactionState(str, Enum):
    """Lifecycle states of a transaction."""

    PENDING = "PENDING"
    CURRENT_ACCOUNT = "CURRENT_ACCOUNT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.COMPLETED, TransactionState.CANCELLED)


class MovementType(str, Enum):
    """Direction of a movement from the client's perspective.

    INCOME means the client delivers the asset to the house, EXPENSE means the
    client receives it.
    """

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


@dataclass(frozen=True)
class Client:
    """Client domain entity."""

    id: int
    name: str
    notes: Optional[str]
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class HouseAccount:
    """The exchange house's own account, counterparty to every client movement.

    Backed by the single client row whose name matches the configured
    house-account name.
    """

    client_id: int
    name: str


@dataclass(frozen=True)
class Asset:
    """Asset domain entity (currency, instrument or fee)."""

    id: int
    name: str
    is_percentage: bool
    is_immutable: bool
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class Denomination:
    """Physical note value of an asset."""

    id: int
    asset_id: int
    value: Decimal
    is_active: bool


@dataclass(frozen=True)
class BillDetail:
    """Number of notes of one denomination within a movement."""

    id: int
    movement_id: int
    denomination_id: int
    quantity: int


@dataclass(frozen=True)
class Movement:
    """A single amount of one asset attached to a transaction."""

    id: int
    transaction_id: int
    asset_id: int
    movement_type: MovementType
    amount: Decimal
    percentage_difference: Optional[Decimal]
    notes: Optional[str]
    created_by: Optional[str]
    bill_details: tuple[BillDetail, ...] = ()


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity with its movements."""

    id: int
    client_id: int
    date: date
    state: TransactionState
    notes: Optional[str]
    parent_transaction_id: Optional[int]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    settles_parent: bool = False
    movements: tuple[Movement, ...] = ()


@dataclass(frozen=True)
class Balance:
    """Running balance of one account in one asset.

    Positive means the account owes the house, negative means the house owes
    the account.
    """

    client_id: int
    asset_id: int
    amount: Decimal
    last_transaction_id: Optional[int]
    updated_at: datetime


@dataclass(frozen=True)
class PendingBalance:
    """Outstanding residual of a parent transaction not yet settled by children."""

    client_id: int
    asset_id: int
    transaction_id: int
    amount: Decimal


@dataclass(frozen=True)
class Reconciliation:
    """Trace record linking a reconciliation source to one target."""

    id: int
    source_transaction_id: int
    target_transaction_id: int
    amount: Decimal
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class AuditEntry:
    """Audit log row."""

    id: int
    entity_type: str
    entity_id: str
    action: str
    payload: dict[str, Any]
    actor_id: Optional[str]
    created_at: datetime


# Inputs


@dataclass(frozen=True)
class BillDetailInput:
    """Requested note breakdown for a new movement."""

    denomination_id: int
    quantity: int


@dataclass(frozen=True)
class MovementInput:
    """A movement to be written.

    ``movement_type`` is accepted as a string so callers can pass raw input;
    the transaction service validates and converts it.
    """

    asset_id: int
    movement_type: MovementType | str | None
    amount: Decimal
    percentage_difference: Optional[Decimal] = None
    notes: Optional[str] = None
    bill_details: tuple[BillDetailInput, ...] = ()


@dataclass(frozen=True)
class ReconciliationTarget:
    """One client whose negative balance is settled by a reconciliation."""

    client_id: int
    asset_id: int
    amount: Decimal
    notes: Optional[str] = None


@dataclass(frozen=True)
class PassThroughEntry:
    """One leg of an immutable-asset transfer."""

    client_id: int
    asset_id: int
    movement_type: MovementType | str
    amount: Decimal
    notes: Optional[str] = None


@dataclass(frozen=True)
class TransactionFilter:
    """Search criteria for listing transactions."""

    client_id: Optional[int] = None
    states: tuple[TransactionState, ...] = ()
    parent_transaction_id: Optional[int] = None
    asset_ids: tuple[int, ...] = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    include_cancelled: bool = False


# Results


@dataclass(frozen=True)
class TransactionResult:
    """A transaction together with the client's balances and its children."""

    transaction: Transaction
    balances: tuple[Balance, ...] = ()
    children: tuple[Transaction, ...] = ()


@dataclass(frozen=True)
class Page:
    """One page of transactions."""

    items: list[Transaction]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of a reconciliation batch."""

    source_transaction_id: int
    asset_id: int
    total: Decimal
    target_transactions: tuple[Transaction, ...]
    reconciliations: tuple[Reconciliation, ...]
    balances: tuple[Balance, ...] = field(default=())


@dataclass(frozen=True)
class ClientBalance:
    """A client together with its balance in one asset."""

    client: Client
    amount: Decimal


@dataclass(frozen=True)
class ReconciliationCandidates:
    """Clients that can take part in a reconciliation for one asset."""

    asset: Asset
    owed_by_house: list[ClientBalance]
    owe_house: list[ClientBalance]
