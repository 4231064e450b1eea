"""Transaction domain service: state machine and balance propagation."""

import logging
from datetime import date as date_type
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence

from cambio.config import Settings
from cambio.database.base import Database
from cambio.domain.audit import AuditSink, DatabaseAuditSink, record_quietly
from cambio.domain.balances import (
    TOLERANCE,
    ZERO,
    BalanceDeltas,
    coverage_residuals,
    is_covered,
    propagate,
    residual_deltas,
)
from cambio.domain.directory import Directory
from cambio.domain.entities import (
    Asset,
    Movement,
    MovementInput,
    MovementType,
    Page,
    Transaction,
    TransactionFilter,
    TransactionResult,
    TransactionState,
)
from cambio.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    denomination_not_found,
    illegal_transition,
    same_state,
    terminal_transaction,
    transaction_has_children,
    transaction_not_found,
)

logger = logging.getLogger(__name__)

ENTITY = "Transaction"

ALLOWED_TRANSITIONS: dict[TransactionState, frozenset[TransactionState]] = {
    TransactionState.PENDING: frozenset(
        {
            TransactionState.CURRENT_ACCOUNT,
            TransactionState.COMPLETED,
            TransactionState.CANCELLED,
        }
    ),
    TransactionState.CURRENT_ACCOUNT: frozenset({TransactionState.COMPLETED}),
    TransactionState.COMPLETED: frozenset(),
    TransactionState.CANCELLED: frozenset(),
}


def coerce_state(state: TransactionState | str) -> TransactionState:
    """Convert raw input to a TransactionState or raise ValidationError."""
    try:
        return TransactionState(state)
    except ValueError:
        valid = ", ".join(s.value for s in TransactionState)
        raise ValidationError(f"Invalid transaction state '{state}'. Valid states: {valid}")


def coerce_movement_type(movement_type: MovementType | str | None) -> MovementType:
    """Convert raw input to a MovementType or raise ValidationError."""
    if movement_type is None or (isinstance(movement_type, str) and not movement_type.strip()):
        raise ValidationError("Every movement requires a movement type (INCOME or EXPENSE)")
    try:
        if isinstance(movement_type, str):
            movement_type = movement_type.strip().upper()
        return MovementType(movement_type)
    except ValueError:
        raise ValidationError(f"Invalid movement type '{movement_type}'. Use INCOME or EXPENSE")


def coerce_amount(amount) -> Decimal:
    """Convert raw input to a non-negative Decimal or raise ValidationError."""
    if amount is None:
        raise ValidationError("Every movement requires an amount")
    try:
        value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount '{amount}'")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Movement amount must be zero or positive, got {amount}")
    return value


class TransactionService:
    """Service for creating transactions and moving them through their lifecycle.

    Balances are only touched when a transaction leaves PENDING. Every write
    runs inside one ``Database.atomic`` unit together with its balance updates.
    """

    def __init__(
        self,
        db: Database,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize transaction service.

        Args:
            db: Database instance
            directory: Client/asset lookups (defaults to one over ``db``)
            audit: Audit sink (defaults to the audit_logs table)
            settings: Runtime settings (house account name, timeouts)
        """
        self.db = db
        self.settings = settings or Settings()
        self.directory = directory or Directory(db, self.settings.house_account_name)
        self.audit = audit or DatabaseAuditSink(db)

    # Lookups

    def require_transaction(self, transaction_id: int) -> Transaction:
        """Get a transaction or raise NotFoundError."""
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    def require_mutable(self, txn: Transaction) -> None:
        """Raise ConflictError if the transaction is COMPLETED or CANCELLED."""
        if txn.state.is_terminal:
            raise ConflictError(terminal_transaction(txn.id, txn.state.value))

    def settling_children(self, transaction_id: int) -> list[Transaction]:
        """Settlement children that have been booked and are not yet completed.

        Remainder children left by a split are ordinary obligations of their
        own and never count here.
        """
        return [
            child
            for child in self.db.list_child_transactions(transaction_id)
            if child.settles_parent and child.state == TransactionState.CURRENT_ACCOUNT
        ]

    def skip_assets(self, movements: Iterable[Movement | MovementInput]) -> frozenset[int]:
        """Asset IDs among the movements that are excluded from balance tracking."""
        return self.directory.immutable_asset_ids(m.asset_id for m in movements)

    # Movement validation and writes

    def validate_details(self, details: Sequence[MovementInput]) -> list[tuple[MovementInput, Asset, MovementType, Decimal]]:
        """Validate every movement before anything is written.

        Raises:
            ValidationError: If a movement has no/invalid type or a negative amount
            NotFoundError: If a movement references an unknown asset
        """
        validated = []
        for detail in details:
            movement_type = coerce_movement_type(detail.movement_type)
            amount = coerce_amount(detail.amount)
            asset = self.directory.find_asset(detail.asset_id)
            validated.append((detail, asset, movement_type, amount))
        return validated

    def _bill_note(self, detail: MovementInput, asset: Asset, amount: Decimal) -> Optional[str]:
        """Check the note breakdown of a movement.

        Returns a note describing a total mismatch, or None when it matches.
        """
        if not detail.bill_details:
            return None

        total = ZERO
        for bill in detail.bill_details:
            if bill.quantity < 1:
                raise ValidationError(f"Bill quantity must be at least 1, got {bill.quantity}")
            denomination = self.db.get_denomination(bill.denomination_id)
            if denomination is None:
                raise NotFoundError(denomination_not_found(bill.denomination_id))
            if denomination.asset_id != asset.id:
                raise ValidationError(
                    f"Denomination {denomination.id} belongs to asset {denomination.asset_id}, "
                    f"not to asset {asset.id}"
                )
            total += denomination.value * bill.quantity

        if abs(total - amount) > TOLERANCE:
            logger.warning(
                "Bill breakdown for asset %s totals %s but movement amount is %s", asset.id, total, amount
            )
            return f"Bill breakdown totals {total}, movement amount is {amount}"
        return None

    def write_movements(
        self,
        transaction_id: int,
        validated: list[tuple[MovementInput, Asset, MovementType, Decimal]],
        created_by: Optional[str] = None,
    ) -> None:
        """Write validated movements and their bill details."""
        for detail, asset, movement_type, amount in validated:
            notes = detail.notes
            mismatch = self._bill_note(detail, asset, amount)
            if mismatch is not None:
                notes = f"{notes} | {mismatch}" if notes else mismatch
            movement_id = self.db.add_movement(
                transaction_id=transaction_id,
                asset_id=asset.id,
                movement_type=movement_type,
                amount=amount,
                percentage_difference=detail.percentage_difference,
                notes=notes,
                created_by=created_by,
            )
            for bill in detail.bill_details:
                self.db.add_bill_detail(movement_id, bill.denomination_id, bill.quantity)

    # Balance propagation

    def apply_deltas(self, client_id: int, deltas: BalanceDeltas, transaction_id: Optional[int]) -> None:
        """Apply client deltas and the mirrored house deltas as balance upserts."""
        house = self.directory.find_house_account()
        for asset_id, delta in deltas.client.items():
            if delta == ZERO:
                continue
            self.db.apply_balance_delta(client_id, asset_id, delta, transaction_id)
            self.db.apply_balance_delta(house.client_id, asset_id, deltas.house.get(asset_id), transaction_id)

    def transaction_deltas(self, txn: Transaction) -> BalanceDeltas:
        """Deltas a transaction applies when it is booked.

        Settling children already carry their share, so it is offset here and
        the parent obligation is counted exactly once.
        """
        children = self.settling_children(txn.id)
        movements = list(txn.movements)
        for child in children:
            movements.extend(child.movements)
        skip = self.skip_assets(movements)

        deltas = propagate(txn.movements, skip)
        for child in children:
            deltas = deltas - propagate(child.movements, skip)
        return deltas

    def book(self, txn: Transaction) -> None:
        """Run balance propagation for a transaction leaving PENDING."""
        deltas = self.transaction_deltas(txn)
        self.apply_deltas(txn.client_id, deltas, txn.id)
        logger.info("Applied balances of transaction %s for client %s", txn.id, txn.client_id)

    def refresh_pending_balances(self, parent: Transaction) -> bool:
        """Force the parent's pending balances to its uncovered residual.

        Returns:
            True when every parent (asset, movement type) is covered by
            settling children within the tolerance
        """
        children = self.settling_children(parent.id)
        if not children:
            self.db.delete_pending_balances(parent.id)
            return False

        child_movements = [m for child in children for m in child.movements]
        skip = self.skip_assets(list(parent.movements) + child_movements)
        residuals = coverage_residuals(
            [m for m in parent.movements if m.asset_id not in skip],
            [m for m in child_movements if m.asset_id not in skip],
        )
        covered = is_covered(residuals)
        deltas = residual_deltas(residuals)
        house = self.directory.find_house_account()

        for asset_id, amount in deltas.client.items():
            client_amount = ZERO if covered else amount
            self.db.set_pending_balance(parent.client_id, asset_id, parent.id, client_amount)
            self.db.set_pending_balance(house.client_id, asset_id, parent.id, -client_amount)
        return covered

    # State machine

    def transition(
        self, transaction_id: int, new_state: TransactionState, actor_id: Optional[str] = None
    ) -> Transaction:
        """Move a transaction to a new state inside the current unit.

        Raises:
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If the state is unchanged or the edge is not allowed
        """
        txn = self.require_transaction(transaction_id)
        self.require_mutable(txn)
        if new_state == txn.state:
            raise ValidationError(same_state(txn.id, txn.state.value))
        if new_state not in ALLOWED_TRANSITIONS[txn.state]:
            raise ValidationError(illegal_transition(txn.id, txn.state.value, new_state.value))

        self.db.set_transaction_state(txn.id, new_state)

        if txn.state == TransactionState.PENDING and new_state in (
            TransactionState.CURRENT_ACCOUNT,
            TransactionState.COMPLETED,
        ):
            self.book(txn)

        if new_state == TransactionState.CURRENT_ACCOUNT:
            self.refresh_pending_balances(txn)
        elif new_state.is_terminal:
            self.db.delete_pending_balances(txn.id)

        self.audit.record(
            ENTITY,
            txn.id,
            "STATE_CHANGE",
            {"previousState": txn.state.value, "newState": new_state.value},
            actor_id,
        )
        logger.info("Transaction %s moved from %s to %s", txn.id, txn.state.value, new_state.value)
        return self.require_transaction(txn.id)

    # Public operations

    def create_in_unit(
        self,
        client_id: int,
        details: Sequence[MovementInput],
        state: TransactionState,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        parent_transaction_id: Optional[int] = None,
        created_by: Optional[str] = None,
        settles_parent: bool = False,
    ) -> Transaction:
        """Create a transaction inside the current unit (see create_transaction)."""
        self.directory.find_client(client_id)
        if self.directory.is_house(client_id):
            raise ValidationError("Transactions cannot be opened for the house account")
        if state == TransactionState.CANCELLED:
            raise ValidationError("A transaction cannot be created in state CANCELLED")
        if parent_transaction_id is not None:
            self.require_transaction(parent_transaction_id)

        validated = self.validate_details(details)
        transaction_id = self.db.create_transaction(
            client_id=client_id,
            date=date or date_type.today(),
            state=state,
            notes=notes,
            parent_transaction_id=parent_transaction_id,
            created_by=created_by,
            settles_parent=settles_parent,
        )
        self.write_movements(transaction_id, validated, created_by)
        txn = self.require_transaction(transaction_id)

        if state != TransactionState.PENDING:
            self.book(txn)
        return txn

    def create_transaction(
        self,
        client_id: int,
        details: Optional[Sequence[MovementInput]] = None,
        state: TransactionState | str = TransactionState.PENDING,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        parent_transaction_id: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> TransactionResult:
        """Create a transaction with its movements.

        Args:
            client_id: Client the transaction belongs to
            details: Movements to record
            state: Initial state (PENDING, CURRENT_ACCOUNT or COMPLETED)
            date: Transaction date (defaults to today)
            notes: Optional notes
            parent_transaction_id: Optional parent; only PENDING children may be
                created here, settlements go through create_child_transaction
            created_by: Actor creating the transaction

        Returns:
            TransactionResult with the client's balances after the write

        Raises:
            NotFoundError: If the client, an asset or the parent doesn't exist
            ValidationError: If a movement is malformed, the state is invalid or
                a booked child is requested
        """
        state = coerce_state(state)
        if parent_transaction_id is not None and state != TransactionState.PENDING:
            raise ValidationError(
                f"Child transactions of transaction {parent_transaction_id} must be created PENDING; "
                f"use create_child_transaction to settle a parent"
            )
        with self.db.atomic("create_transaction", self.settings.create_timeout):
            txn = self.create_in_unit(
                client_id=client_id,
                details=list(details or []),
                state=state,
                date=date,
                notes=notes,
                parent_transaction_id=parent_transaction_id,
                created_by=created_by,
            )

        record_quietly(
            self.audit,
            ENTITY,
            txn.id,
            "CREATE",
            {"clientId": txn.client_id, "state": txn.state, "movements": len(txn.movements)},
            created_by,
        )
        logger.info("Created transaction %s for client %s in state %s", txn.id, txn.client_id, txn.state.value)
        return self.result(txn)

    def result(self, txn: Transaction, include_children: bool = False) -> TransactionResult:
        """Bundle a transaction with the client's balances (and optionally its children)."""
        children = tuple(self.db.list_child_transactions(txn.id)) if include_children else ()
        return TransactionResult(
            transaction=txn,
            balances=tuple(self.db.list_balances(client_id=txn.client_id)),
            children=children,
        )

    def get_transaction(self, transaction_id: int) -> TransactionResult:
        """Get a transaction with its movements, client balances and children.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        return self.result(self.require_transaction(transaction_id), include_children=True)

    def list_transactions(
        self, filters: Optional[TransactionFilter] = None, page: int = 1, limit: int = 10
    ) -> Page:
        """List transactions matching filters, one page at a time.

        Args:
            filters: Search criteria (cancelled transactions excluded by default)
            page: 1-based page number
            limit: Page size

        Raises:
            ValidationError: If page or limit is below 1
        """
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be at least 1")
        filters = filters or TransactionFilter()
        items = self.db.list_transactions(filters, offset=(page - 1) * limit, limit=limit)
        total = self.db.count_transactions(filters)
        return Page(items=items, total=total, page=page, limit=limit)

    def update_in_unit(
        self,
        transaction_id: int,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        details: Optional[Sequence[MovementInput]] = None,
        replace_details: bool = False,
        updated_by: Optional[str] = None,
    ) -> Transaction:
        """Update a transaction inside the current unit (see update_transaction)."""
        txn = self.require_transaction(transaction_id)
        self.require_mutable(txn)

        self.db.update_transaction(txn.id, date=date, notes=notes)

        if details:
            if txn.parent_transaction_id is not None and txn.state == TransactionState.CURRENT_ACCOUNT:
                raise ValidationError(
                    f"Movements of settlement transaction {txn.id} cannot be changed; "
                    "remove it and create a new child instead"
                )
            validated = self.validate_details(details)
            if replace_details:
                self.db.delete_movements(txn.id)
            self.write_movements(txn.id, validated, updated_by)
            updated = self.require_transaction(txn.id)

            if txn.state == TransactionState.CURRENT_ACCOUNT:
                skip = self.skip_assets(list(txn.movements) + list(updated.movements))
                adjustment = propagate(updated.movements, skip) - propagate(txn.movements, skip)
                self.apply_deltas(txn.client_id, adjustment, txn.id)
                self.refresh_pending_balances(updated)
            elif self.settling_children(txn.id):
                self.refresh_pending_balances(updated)

        return self.require_transaction(txn.id)

    def update_transaction(
        self,
        transaction_id: int,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        details: Optional[Sequence[MovementInput]] = None,
        replace_details: bool = False,
        updated_by: Optional[str] = None,
    ) -> TransactionResult:
        """Update transaction fields and movements.

        State changes go through ``update_state``. When the transaction's
        balances are already applied (CURRENT_ACCOUNT), the difference between
        the new and old movements is applied to the balances.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If a new movement is malformed
        """
        with self.db.atomic("update_transaction", self.settings.create_timeout):
            txn = self.update_in_unit(
                transaction_id,
                date=date,
                notes=notes,
                details=details,
                replace_details=replace_details,
                updated_by=updated_by,
            )
        record_quietly(
            self.audit,
            ENTITY,
            txn.id,
            "UPDATE",
            {"date": date, "notes": notes, "newMovements": len(details or []), "replaceDetails": replace_details},
            updated_by,
        )
        return self.result(txn)

    def update_state(
        self,
        transaction_id: int,
        new_state: TransactionState | str,
        updated_by: Optional[str] = None,
    ) -> TransactionResult:
        """Change the state of a transaction.

        Leaving PENDING for CURRENT_ACCOUNT or COMPLETED applies the
        transaction's balances; no other edge touches them.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If the state is unchanged or the transition is not allowed
        """
        new_state = coerce_state(new_state)
        with self.db.atomic("update_state", self.settings.create_timeout):
            txn = self.transition(transaction_id, new_state, updated_by)
        return self.result(txn)

    def cancel_transaction(self, transaction_id: int, cancelled_by: Optional[str] = None) -> TransactionResult:
        """Cancel a PENDING transaction. No balance is ever applied.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If the transaction is not PENDING
        """
        with self.db.atomic("cancel_transaction", self.settings.create_timeout):
            txn = self.require_transaction(transaction_id)
            self.require_mutable(txn)
            if txn.state != TransactionState.PENDING:
                raise ValidationError(
                    f"Only PENDING transactions can be cancelled; transaction {txn.id} is {txn.state.value}"
                )
            txn = self.transition(txn.id, TransactionState.CANCELLED, cancelled_by)
        return self.result(txn)

    def remove_transaction(self, transaction_id: int, removed_by: Optional[str] = None) -> Transaction:
        """Delete a transaction that is not COMPLETED and has no children.

        Applied balances of a CURRENT_ACCOUNT transaction are reversed unless it
        settles a parent whose own booking already offsets it. Its movements,
        reconciliation links and pending balances are deleted in the same unit.

        Returns:
            The transaction as it was before deletion

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or has children
        """
        with self.db.atomic("remove_transaction", self.settings.create_timeout):
            txn = self.require_transaction(transaction_id)
            if txn.state == TransactionState.COMPLETED:
                raise ConflictError(terminal_transaction(txn.id, txn.state.value))
            children = self.db.list_child_transactions(txn.id)
            if children:
                raise ConflictError(transaction_has_children(txn.id, len(children)))

            parent = None
            if txn.parent_transaction_id is not None:
                parent = self.db.get_transaction(txn.parent_transaction_id)

            if txn.state == TransactionState.CURRENT_ACCOUNT:
                # The parent booking already offsets a settlement child
                netted = (
                    txn.settles_parent
                    and parent is not None
                    and parent.state in (TransactionState.CURRENT_ACCOUNT, TransactionState.COMPLETED)
                )
                if not netted:
                    deltas = propagate(txn.movements, self.skip_assets(txn.movements)).negated()
                    self.apply_deltas(txn.client_id, deltas, None)

            self.db.delete_reconciliations(txn.id)
            self.db.delete_pending_balances(txn.id)
            self.db.detach_balances(txn.id)
            self.db.delete_transaction(txn.id)

            if parent is not None and not parent.state.is_terminal:
                self.refresh_pending_balances(parent)

        record_quietly(self.audit, ENTITY, txn.id, "DELETE", {"state": txn.state}, removed_by)
        logger.info("Removed transaction %s", txn.id)
        return txn
