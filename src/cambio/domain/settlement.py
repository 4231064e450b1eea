"""Settlement service: partial completion, percentage splits and child transactions."""

import logging
from datetime import date as date_type
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from cambio.config import Settings
from cambio.database.base import Database
from cambio.domain.audit import AuditSink, record_quietly
from cambio.domain.balances import HUNDRED, ZERO, propagate, split_amount
from cambio.domain.directory import Directory
from cambio.domain.entities import (
    MovementInput,
    MovementType,
    Transaction,
    TransactionResult,
    TransactionState,
)
from cambio.domain.errors import ValidationError
from cambio.domain.transaction import ENTITY, TransactionService, coerce_state

logger = logging.getLogger(__name__)

COMPLETION_STATES = (TransactionState.CURRENT_ACCOUNT, TransactionState.COMPLETED)


def coerce_percentage(percentage) -> Decimal:
    """Convert raw input to a Decimal percentage or raise ValidationError."""
    try:
        value = Decimal(str(percentage))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid percentage '{percentage}'")
    if not value.is_finite():
        raise ValidationError(f"Invalid percentage '{percentage}'")
    return value


def require_partial(percentage: Decimal) -> None:
    if not ZERO < percentage < HUNDRED:
        raise ValidationError(f"Partial percentage must be between 0 and 100 (exclusive), got {percentage}")


class SettlementService:
    """Service for settling transactions over time.

    A transaction can be split by percentage (the settled share is applied,
    the remainder moves to a PENDING child) or settled by CURRENT_ACCOUNT
    children that together cover the parent's movements.
    """

    def __init__(
        self,
        db: Database,
        transactions: Optional[TransactionService] = None,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize settlement service.

        Args:
            db: Database instance
            transactions: Transaction service sharing the same database
            directory: Client/asset lookups
            audit: Audit sink
            settings: Runtime settings
        """
        self.db = db
        self.transactions = transactions or TransactionService(
            db, directory=directory, audit=audit, settings=settings
        )
        self.settings = self.transactions.settings
        self.directory = self.transactions.directory
        self.audit = self.transactions.audit

    def _completion_state(self, state: TransactionState | str) -> TransactionState:
        state = coerce_state(state)
        if state not in COMPLETION_STATES:
            raise ValidationError(f"Completion state must be CURRENT_ACCOUNT or COMPLETED, got {state.value}")
        return state

    def split_in_unit(
        self,
        transaction_id: int,
        percentage: Decimal,
        completion_state: TransactionState = TransactionState.COMPLETED,
        create_child_for_remaining: bool = True,
        child_date: Optional[date_type] = None,
        actor_id: Optional[str] = None,
    ) -> tuple[Transaction, Optional[Transaction]]:
        """Split a transaction inside the current unit (see split_transaction)."""
        require_partial(percentage)
        txn = self.transactions.require_transaction(transaction_id)
        self.transactions.require_mutable(txn)
        if self.transactions.settling_children(txn.id):
            raise ValidationError(
                f"Transaction {txn.id} is being settled by child transactions and cannot be split"
            )

        remainder = []
        for movement in txn.movements:
            settled, remaining = split_amount(movement.amount, percentage)
            self.db.update_movement(movement.id, amount=settled)
            if remaining > ZERO:
                remainder.append(
                    MovementInput(
                        asset_id=movement.asset_id,
                        movement_type=MovementType(movement.movement_type),
                        amount=remaining,
                        percentage_difference=movement.percentage_difference,
                        notes=movement.notes,
                    )
                )

        if txn.state == TransactionState.PENDING:
            self.transactions.transition(txn.id, completion_state, actor_id)
        else:
            # Full amounts are already booked; take the remainder back out
            skip = self.transactions.skip_assets(txn.movements)
            self.transactions.apply_deltas(txn.client_id, propagate(remainder, skip).negated(), txn.id)
            if completion_state != txn.state:
                self.transactions.transition(txn.id, completion_state, actor_id)

        child = None
        if create_child_for_remaining and remainder:
            child = self.transactions.create_in_unit(
                client_id=txn.client_id,
                details=remainder,
                state=TransactionState.PENDING,
                date=child_date or txn.date,
                notes=f"Remaining {HUNDRED - percentage}% of transaction {txn.id}",
                parent_transaction_id=txn.id,
                created_by=actor_id,
            )

        logger.info(
            "Split transaction %s at %s%%%s",
            txn.id,
            percentage,
            f", remainder in transaction {child.id}" if child else "",
        )
        return self.transactions.require_transaction(txn.id), child

    def split_transaction(
        self,
        transaction_id: int,
        percentage,
        completion_state: TransactionState | str = TransactionState.COMPLETED,
        create_child_for_remaining: bool = True,
        split_by: Optional[str] = None,
    ) -> TransactionResult:
        """Settle a percentage of a transaction and defer the rest.

        Every movement is scaled to ``percentage``. A PENDING transaction
        moves to ``completion_state`` and applies the scaled amounts; a
        CURRENT_ACCOUNT transaction has the remainder taken back out of its
        balances. The remainder of each movement goes to a PENDING child.

        Args:
            transaction_id: Transaction to split
            percentage: Settled share, strictly between 0 and 100
            completion_state: CURRENT_ACCOUNT or COMPLETED
            create_child_for_remaining: Whether to create the PENDING child
            split_by: Actor performing the split

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If the percentage is out of range or the
                transaction is being settled by children
        """
        percentage = coerce_percentage(percentage)
        completion_state = self._completion_state(completion_state)
        with self.db.atomic("split_transaction", self.settings.settlement_timeout):
            txn, child = self.split_in_unit(
                transaction_id,
                percentage,
                completion_state=completion_state,
                create_child_for_remaining=create_child_for_remaining,
                actor_id=split_by,
            )
        record_quietly(
            self.audit,
            ENTITY,
            txn.id,
            "SPLIT",
            {"percentage": percentage, "childTransactionId": child.id if child else None},
            split_by,
        )
        return self._result(txn, child)

    def update_transaction(
        self,
        transaction_id: int,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        details: Optional[Sequence[MovementInput]] = None,
        replace_details: bool = False,
        completion_percentage=None,
        create_child_for_remaining: bool = True,
        completion_state: TransactionState | str = TransactionState.COMPLETED,
        updated_by: Optional[str] = None,
    ) -> TransactionResult:
        """Update a transaction and optionally settle a percentage of it.

        Field and movement changes behave as ``TransactionService.update_transaction``.
        A ``completion_percentage`` of 100 moves the transaction to
        ``completion_state``; a value between 0 and 100 splits it. Everything
        happens in one atomic unit.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the transaction is COMPLETED or CANCELLED
            ValidationError: If input is malformed or the percentage is out of range
        """
        completion_state = self._completion_state(completion_state)
        percentage = None
        if completion_percentage is not None:
            percentage = coerce_percentage(completion_percentage)
            if percentage != HUNDRED:
                require_partial(percentage)

        child = None
        with self.db.atomic("update_transaction", self.settings.settlement_timeout):
            txn = self.transactions.update_in_unit(
                transaction_id,
                date=date,
                notes=notes,
                details=details,
                replace_details=replace_details,
                updated_by=updated_by,
            )
            if percentage == HUNDRED:
                if txn.state != completion_state:
                    txn = self.transactions.transition(txn.id, completion_state, updated_by)
            elif percentage is not None:
                txn, child = self.split_in_unit(
                    txn.id,
                    percentage,
                    completion_state=completion_state,
                    create_child_for_remaining=create_child_for_remaining,
                    actor_id=updated_by,
                )

        record_quietly(
            self.audit,
            ENTITY,
            txn.id,
            "UPDATE",
            {
                "date": date,
                "notes": notes,
                "newMovements": len(details or []),
                "completionPercentage": percentage,
            },
            updated_by,
        )
        return self._result(txn, child)

    def create_partial_transaction(
        self,
        client_id: int,
        details: Sequence[MovementInput],
        initial_percentage=None,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        estimated_completion_date: Optional[date_type] = None,
        created_by: Optional[str] = None,
    ) -> TransactionResult:
        """Create a transaction of which only a share is settled now.

        With ``initial_percentage`` the transaction is COMPLETED for that
        share and a PENDING child, dated ``estimated_completion_date`` when
        given, carries the rest. Without it the whole transaction is PENDING.

        Raises:
            NotFoundError: If the client or an asset doesn't exist
            ValidationError: If input is malformed or the percentage is out of range
        """
        if initial_percentage is None:
            return self.transactions.create_transaction(
                client_id,
                details=details,
                state=TransactionState.PENDING,
                date=date,
                notes=notes,
                created_by=created_by,
            )

        percentage = coerce_percentage(initial_percentage)
        require_partial(percentage)
        with self.db.atomic("create_partial_transaction", self.settings.settlement_timeout):
            txn = self.transactions.create_in_unit(
                client_id=client_id,
                details=list(details),
                state=TransactionState.PENDING,
                date=date,
                notes=notes,
                created_by=created_by,
            )
            txn, child = self.split_in_unit(
                txn.id,
                percentage,
                completion_state=TransactionState.COMPLETED,
                child_date=estimated_completion_date,
                actor_id=created_by,
            )

        record_quietly(
            self.audit,
            ENTITY,
            txn.id,
            "CREATE",
            {"clientId": client_id, "initialPercentage": percentage, "childTransactionId": child.id if child else None},
            created_by,
        )
        return self._result(txn, child)

    def complete_pending_transaction(
        self,
        transaction_id: int,
        completion_percentage=100,
        custom_details: Optional[Sequence[MovementInput]] = None,
        notes: Optional[str] = None,
        completion_date: Optional[date_type] = None,
        completed_by: Optional[str] = None,
    ) -> TransactionResult:
        """Complete a PENDING transaction in full or in part.

        Args:
            transaction_id: PENDING transaction to complete
            completion_percentage: 100 for a full completion, otherwise the
                settled share (strictly between 0 and 100)
            custom_details: Movements replacing the transaction's movements
            notes: New notes
            completion_date: New transaction date
            completed_by: Actor completing the transaction

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If the transaction is not PENDING or the
                percentage is out of range
        """
        percentage = coerce_percentage(completion_percentage)
        if percentage != HUNDRED:
            require_partial(percentage)

        child = None
        with self.db.atomic("complete_pending_transaction", self.settings.settlement_timeout):
            txn = self.transactions.require_transaction(transaction_id)
            if txn.state != TransactionState.PENDING:
                raise ValidationError(
                    f"Only PENDING transactions can be completed; transaction {txn.id} is {txn.state.value}"
                )
            if custom_details or notes is not None or completion_date is not None:
                self.transactions.update_in_unit(
                    txn.id,
                    date=completion_date,
                    notes=notes,
                    details=custom_details,
                    replace_details=True,
                    updated_by=completed_by,
                )
            if percentage == HUNDRED:
                txn = self.transactions.transition(txn.id, TransactionState.COMPLETED, completed_by)
            else:
                txn, child = self.split_in_unit(
                    txn.id, percentage, completion_state=TransactionState.COMPLETED, actor_id=completed_by
                )

        return self._result(txn, child)

    def create_child_transaction(
        self,
        parent_transaction_id: int,
        details: Sequence[MovementInput],
        client_id: Optional[int] = None,
        date: Optional[date_type] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> TransactionResult:
        """Settle part of a parent transaction with a CURRENT_ACCOUNT child.

        The child is booked immediately. The parent's pending balances are
        then forced to the amount its children do not cover yet. Once every
        parent (asset, movement type) is covered within the tolerance, the
        parent and all its CURRENT_ACCOUNT children become COMPLETED.

        Args:
            parent_transaction_id: Transaction being settled
            details: Movements of the child
            client_id: Client of the child (defaults to the parent's client)
            date: Child date (defaults to today)
            notes: Child notes
            created_by: Actor creating the child

        Returns:
            TransactionResult of the child

        Raises:
            NotFoundError: If the parent or an asset doesn't exist
            ValidationError: If the parent is not PENDING or CURRENT_ACCOUNT,
                or the client differs from the parent's
        """
        with self.db.atomic("create_child_transaction", self.settings.settlement_timeout):
            parent = self.transactions.require_transaction(parent_transaction_id)
            if parent.state not in (TransactionState.PENDING, TransactionState.CURRENT_ACCOUNT):
                raise ValidationError(
                    f"Child transactions need a PENDING or CURRENT_ACCOUNT parent; "
                    f"transaction {parent.id} is {parent.state.value}"
                )
            if client_id is not None and client_id != parent.client_id:
                raise ValidationError(
                    f"Child transaction must belong to client {parent.client_id} like its parent, got {client_id}"
                )

            child = self.transactions.create_in_unit(
                client_id=parent.client_id,
                details=list(details),
                state=TransactionState.CURRENT_ACCOUNT,
                date=date,
                notes=notes,
                parent_transaction_id=parent.id,
                created_by=created_by,
                settles_parent=True,
            )

            if parent.state == TransactionState.CURRENT_ACCOUNT:
                # The parent already booked the full obligation
                skip = self.transactions.skip_assets(child.movements)
                self.transactions.apply_deltas(
                    parent.client_id, propagate(child.movements, skip).negated(), parent.id
                )

            if self.transactions.refresh_pending_balances(parent):
                self._complete_settled(parent, created_by)
            child = self.transactions.require_transaction(child.id)

        record_quietly(
            self.audit,
            ENTITY,
            child.id,
            "CREATE",
            {"clientId": child.client_id, "parentTransactionId": parent.id, "state": child.state},
            created_by,
        )
        logger.info("Created child transaction %s of transaction %s", child.id, parent.id)
        return self.transactions.result(child)

    def _complete_settled(self, parent: Transaction, actor_id: Optional[str]) -> None:
        """Mark a fully covered parent and its settling children COMPLETED."""
        settled = [parent] + self.transactions.settling_children(parent.id)
        for txn in settled:
            self.db.set_transaction_state(txn.id, TransactionState.COMPLETED)
            self.audit.record(
                ENTITY,
                txn.id,
                "STATE_CHANGE",
                {
                    "previousState": txn.state.value,
                    "newState": TransactionState.COMPLETED.value,
                    "settledParentId": parent.id,
                },
                actor_id,
            )
        logger.info(
            "Transaction %s fully settled by %d child transaction(s)", parent.id, len(settled) - 1
        )

    def _result(self, txn: Transaction, child: Optional[Transaction]) -> TransactionResult:
        return TransactionResult(
            transaction=txn,
            balances=tuple(self.db.list_balances(client_id=txn.client_id)),
            children=(child,) if child is not None else (),
        )
