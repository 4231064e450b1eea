"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Optional
from datetime import date
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from cambio.domain.entities import (
    Asset,
    AuditEntry,
    Balance,
    Client,
    Denomination,
    PendingBalance,
    Reconciliation,
    Transaction,
    TransactionFilter,
    TransactionState,
    MovementType,
)


class Database(ABC):
    """Abstract database interface for cambio.

    Write methods commit immediately when called on their own. Inside an
    ``atomic`` block they only flush, and the whole block commits or rolls
    back as one unit.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def atomic(self, operation: str, timeout: Optional[float] = None) -> AbstractContextManager[None]:
        """Run the enclosed writes as one serializable unit.

        Args:
            operation: Operation name, used in error messages and logs
            timeout: Seconds to wait for locks before failing

        Raises:
            ConsistencyError: On a serialization failure or lock timeout
            UnexpectedError: On any non-domain failure inside the unit
        """
        pass

    # Client operations
    @abstractmethod
    def create_client(self, name: str, notes: Optional[str] = None) -> int:
        """Create a new client. Returns client ID."""
        pass

    @abstractmethod
    def get_client(self, client_id: int) -> Optional[Client]:
        """Get client by ID."""
        pass

    @abstractmethod
    def get_client_by_name(self, name: str) -> Optional[Client]:
        """Get client by name."""
        pass

    @abstractmethod
    def list_clients(self) -> list[Client]:
        """List all clients."""
        pass

    # Asset operations
    @abstractmethod
    def create_asset(self, name: str, is_percentage: bool = False, is_immutable: bool = False) -> int:
        """Create a new asset. Returns asset ID."""
        pass

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional[Asset]:
        """Get asset by ID."""
        pass

    @abstractmethod
    def get_asset_by_name(self, name: str) -> Optional[Asset]:
        """Get asset by name."""
        pass

    @abstractmethod
    def list_assets(self) -> list[Asset]:
        """List all assets."""
        pass

    # Denomination operations
    @abstractmethod
    def create_denomination(self, asset_id: int, value: Decimal) -> int:
        """Create a denomination for an asset. Returns denomination ID."""
        pass

    @abstractmethod
    def get_denomination(self, denomination_id: int) -> Optional[Denomination]:
        """Get denomination by ID."""
        pass

    @abstractmethod
    def list_denominations(self, asset_id: int) -> list[Denomination]:
        """List denominations of an asset, highest value first."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(
        self,
        client_id: int,
        date: date,
        state: TransactionState,
        notes: Optional[str] = None,
        parent_transaction_id: Optional[int] = None,
        created_by: Optional[str] = None,
        settles_parent: bool = False,
    ) -> int:
        """Create a transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID, including its movements."""
        pass

    @abstractmethod
    def update_transaction(
        self, transaction_id: int, date: Optional[date] = None, notes: Optional[str] = None
    ) -> None:
        """Update transaction date and/or notes."""
        pass

    @abstractmethod
    def set_transaction_state(self, transaction_id: int, state: TransactionState) -> None:
        """Set transaction state."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction row (movements and bill details cascade)."""
        pass

    @abstractmethod
    def list_transactions(
        self, filters: TransactionFilter, offset: int = 0, limit: Optional[int] = None
    ) -> list[Transaction]:
        """List transactions matching filters, newest first."""
        pass

    @abstractmethod
    def count_transactions(self, filters: TransactionFilter) -> int:
        """Count transactions matching filters."""
        pass

    @abstractmethod
    def list_child_transactions(self, parent_transaction_id: int) -> list[Transaction]:
        """List direct children of a transaction, oldest first."""
        pass

    # Movement operations
    @abstractmethod
    def add_movement(
        self,
        transaction_id: int,
        asset_id: int,
        movement_type: MovementType,
        amount: Decimal,
        percentage_difference: Optional[Decimal] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> int:
        """Add a movement to a transaction. Returns movement ID."""
        pass

    @abstractmethod
    def update_movement(
        self, movement_id: int, amount: Optional[Decimal] = None, notes: Optional[str] = None
    ) -> None:
        """Update a movement's amount and/or notes."""
        pass

    @abstractmethod
    def delete_movements(self, transaction_id: int) -> int:
        """Delete all movements of a transaction. Returns number deleted."""
        pass

    @abstractmethod
    def add_bill_detail(self, movement_id: int, denomination_id: int, quantity: int) -> int:
        """Add a denomination breakdown line to a movement. Returns bill detail ID."""
        pass

    # Balance operations
    @abstractmethod
    def get_balance(self, client_id: int, asset_id: int) -> Optional[Balance]:
        """Get balance for (client, asset)."""
        pass

    @abstractmethod
    def apply_balance_delta(
        self, client_id: int, asset_id: int, delta: Decimal, transaction_id: Optional[int]
    ) -> Balance:
        """Add delta to the (client, asset) balance, creating the row if absent."""
        pass

    @abstractmethod
    def list_balances(
        self, client_id: Optional[int] = None, asset_id: Optional[int] = None
    ) -> list[Balance]:
        """List balances, optionally filtered by client and/or asset."""
        pass

    @abstractmethod
    def detach_balances(self, transaction_id: int) -> int:
        """Clear last_transaction_id on balances that point at a transaction."""
        pass

    @abstractmethod
    def set_pending_balance(
        self, client_id: int, asset_id: int, transaction_id: int, amount: Decimal
    ) -> None:
        """Set (not add to) the pending balance of a parent transaction."""
        pass

    @abstractmethod
    def list_pending_balances(
        self, transaction_id: Optional[int] = None, client_id: Optional[int] = None
    ) -> list[PendingBalance]:
        """List pending balances, optionally filtered."""
        pass

    @abstractmethod
    def delete_pending_balances(self, transaction_id: int) -> int:
        """Delete pending balances keyed to a transaction."""
        pass

    # Reconciliation operations
    @abstractmethod
    def create_reconciliation(
        self,
        source_transaction_id: int,
        target_transaction_id: int,
        amount: Decimal,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> int:
        """Record a reconciliation link. Returns reconciliation ID."""
        pass

    @abstractmethod
    def list_reconciliations(self, transaction_id: Optional[int] = None) -> list[Reconciliation]:
        """List reconciliations where the transaction is source or target."""
        pass

    @abstractmethod
    def delete_reconciliations(self, transaction_id: int) -> int:
        """Delete reconciliations where the transaction is source or target."""
        pass

    # Audit operations
    @abstractmethod
    def add_audit_entry(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        payload: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> int:
        """Write an audit log row. Returns audit entry ID."""
        pass

    @abstractmethod
    def list_audit_entries(
        self, entity_type: Optional[str] = None, entity_id: Optional[str] = None
    ) -> list[AuditEntry]:
        """List audit entries, oldest first."""
        pass
