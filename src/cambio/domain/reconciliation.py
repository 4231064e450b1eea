"""Reconciliation service: moving a client's debt onto clients the house owes."""

import logging
from datetime import date as date_type
from decimal import Decimal
from typing import Optional, Sequence

from cambio.config import Settings
from cambio.database.base import Database
from cambio.domain.audit import AuditSink, DatabaseAuditSink, record_quietly
from cambio.domain.balances import ZERO
from cambio.domain.directory import Directory
from cambio.domain.entities import (
    ClientBalance,
    MovementInput,
    MovementType,
    ReconciliationCandidates,
    ReconciliationResult,
    ReconciliationTarget,
    TransactionState,
)
from cambio.domain.errors import (
    NotFoundError,
    ValidationError,
    insufficient_balance,
    transaction_not_found,
)
from cambio.domain.transaction import TransactionService, coerce_amount

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Service for redistributing balances between clients.

    A client that owes the house (positive balance) settles part of that debt
    by having the house pay it out to clients the house owes (negative
    balances). Only client balances move: the source drops by the total and
    every target rises by its amount, so balances still sum to zero without
    touching the house account.
    """

    def __init__(
        self,
        db: Database,
        transactions: Optional[TransactionService] = None,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize reconciliation service.

        Args:
            db: Database instance
            transactions: Transaction service used for movement validation
            directory: Client/asset lookups
            audit: Audit sink
            settings: Runtime settings
        """
        self.db = db
        self.transactions = transactions or TransactionService(
            db, directory=directory, audit=audit or DatabaseAuditSink(db), settings=settings
        )
        self.settings = self.transactions.settings
        self.directory = self.transactions.directory
        self.audit = self.transactions.audit

    def _balance_amount(self, client_id: int, asset_id: int) -> Decimal:
        balance = self.db.get_balance(client_id, asset_id)
        return balance.amount if balance else ZERO

    def reconcile(
        self,
        source_transaction_id: int,
        source_asset_id: int,
        targets: Sequence[ReconciliationTarget],
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        date: Optional[date_type] = None,
    ) -> ReconciliationResult:
        """Pay out part of a client's debt to clients the house owes.

        For every target a COMPLETED transaction with one EXPENSE movement is
        created and linked to the source transaction.

        Args:
            source_transaction_id: Transaction of the client whose debt is used
            source_asset_id: Asset being reconciled
            targets: Clients receiving the amounts
            notes: Notes for the reconciliation links
            created_by: Actor running the reconciliation
            date: Date of the target transactions (defaults to today)

        Returns:
            ReconciliationResult with the new transactions, links and balances

        Raises:
            NotFoundError: If the transaction, asset or a target client doesn't exist
            ValidationError: If targets are empty, amounts are not positive,
                the asset differs, or an amount exceeds an available balance
        """
        if not targets:
            raise ValidationError("At least one reconciliation target is required")

        with self.db.atomic("reconcile", self.settings.reconcile_timeout):
            source = self.db.get_transaction(source_transaction_id)
            if source is None:
                raise NotFoundError(transaction_not_found(source_transaction_id))
            asset = self.directory.find_asset(source_asset_id)
            if self.directory.is_house(source.client_id):
                raise ValidationError("The house account cannot be the source of a reconciliation")

            amounts = []
            for target in targets:
                amount = coerce_amount(target.amount)
                if amount <= ZERO:
                    raise ValidationError(f"Reconciliation amount must be positive, got {target.amount}")
                self.directory.find_client(target.client_id)
                if target.client_id == source.client_id:
                    raise ValidationError("A client cannot be reconciled against itself")
                if self.directory.is_house(target.client_id):
                    raise ValidationError("The house account cannot be a reconciliation target")
                if target.asset_id != asset.id:
                    raise ValidationError(
                        f"Target asset {target.asset_id} differs from source asset {asset.id}; "
                        "cross-asset reconciliation is not supported"
                    )
                amounts.append(amount)

            total = sum(amounts, ZERO)
            source_balance = self._balance_amount(source.client_id, asset.id)
            if source_balance <= ZERO:
                raise ValidationError(
                    f"Client {source.client_id} has no debt in asset {asset.id} to reconcile "
                    f"(balance {source_balance})"
                )
            if total > source_balance:
                raise ValidationError(insufficient_balance(source.client_id, asset.id, total, source_balance))

            # Several targets may name the same client; they share its balance
            available: dict[int, Decimal] = {}
            for target, amount in zip(targets, amounts):
                if target.client_id not in available:
                    target_balance = self._balance_amount(target.client_id, asset.id)
                    if target_balance >= ZERO:
                        raise ValidationError(
                            f"The house owes client {target.client_id} nothing in asset {asset.id} "
                            f"(balance {target_balance})"
                        )
                    available[target.client_id] = -target_balance
                if amount > available[target.client_id]:
                    raise ValidationError(
                        insufficient_balance(target.client_id, asset.id, amount, available[target.client_id])
                    )
                available[target.client_id] -= amount

            target_transactions = []
            reconciliations = []
            for target, amount in zip(targets, amounts):
                txn_id = self.db.create_transaction(
                    client_id=target.client_id,
                    date=date or date_type.today(),
                    state=TransactionState.COMPLETED,
                    notes=target.notes or f"Reconciliation from transaction {source.id}",
                    created_by=created_by,
                )
                detail = MovementInput(asset_id=asset.id, movement_type=MovementType.EXPENSE, amount=amount)
                self.transactions.write_movements(
                    txn_id, self.transactions.validate_details([detail]), created_by
                )
                self.db.apply_balance_delta(target.client_id, asset.id, amount, txn_id)
                reconciliation_id = self.db.create_reconciliation(
                    source_transaction_id=source.id,
                    target_transaction_id=txn_id,
                    amount=amount,
                    notes=notes,
                    created_by=created_by,
                )
                target_transactions.append(self.db.get_transaction(txn_id))
                reconciliations.append(reconciliation_id)

            self.db.apply_balance_delta(source.client_id, asset.id, -total, source.id)

            created = set(reconciliations)
            links = tuple(r for r in self.db.list_reconciliations(transaction_id=source.id) if r.id in created)
            balances = tuple(
                self.db.get_balance(client_id, asset.id) for client_id in [source.client_id] + sorted(available)
            )

        logger.info(
            "Reconciled %s of asset %s from transaction %s into %d target(s)",
            total,
            asset.id,
            source.id,
            len(target_transactions),
        )
        record_quietly(
            self.audit,
            "Reconciliation",
            source.id,
            "RECONCILE",
            {
                "assetId": asset.id,
                "total": total,
                "targets": [{"transactionId": t.id, "clientId": t.client_id} for t in target_transactions],
            },
            created_by,
        )
        return ReconciliationResult(
            source_transaction_id=source.id,
            asset_id=asset.id,
            total=total,
            target_transactions=tuple(target_transactions),
            reconciliations=links,
            balances=balances,
        )

    def find_clients_for_reconciliation(self, asset_id: int) -> ReconciliationCandidates:
        """List clients with an open balance in an asset.

        The house account and zero balances are left out. Clients the house
        owes come first by largest amount, then clients owing the house.

        Raises:
            NotFoundError: If the asset doesn't exist
        """
        asset = self.directory.find_asset(asset_id)
        house = self.directory.find_house_account()

        owed_by_house = []
        owe_house = []
        for balance in self.db.list_balances(asset_id=asset.id):
            if balance.client_id == house.client_id or balance.amount == ZERO:
                continue
            entry = ClientBalance(client=self.directory.find_client(balance.client_id), amount=balance.amount)
            if balance.amount < ZERO:
                owed_by_house.append(entry)
            else:
                owe_house.append(entry)

        owed_by_house.sort(key=lambda e: (e.amount, e.client.id))
        owe_house.sort(key=lambda e: (-e.amount, e.client.id))
        return ReconciliationCandidates(asset=asset, owed_by_house=owed_by_house, owe_house=owe_house)
