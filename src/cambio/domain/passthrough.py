"""Pass-through of immutable assets such as cheques and transfers."""

import logging
from datetime import date as date_type
from decimal import Decimal
from typing import Optional, Sequence

from cambio.config import Settings
from cambio.database.base import Database
from cambio.domain.audit import AuditSink, record_quietly
from cambio.domain.balances import TOLERANCE, ZERO
from cambio.domain.directory import Directory
from cambio.domain.entities import (
    MovementInput,
    MovementType,
    PassThroughEntry,
    Transaction,
    TransactionFilter,
    TransactionState,
)
from cambio.domain.errors import ValidationError
from cambio.domain.transaction import TransactionService

logger = logging.getLogger(__name__)


class PassThroughService:
    """Service for instruments the house only hands on.

    Immutable assets are received from one client and delivered to another
    unchanged. They are recorded as COMPLETED transactions but never touch
    balances.
    """

    def __init__(
        self,
        db: Database,
        transactions: Optional[TransactionService] = None,
        directory: Optional[Directory] = None,
        audit: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.transactions = transactions or TransactionService(
            db, directory=directory, audit=audit, settings=settings
        )
        self.settings = self.transactions.settings
        self.directory = self.transactions.directory
        self.audit = self.transactions.audit

    def conciliate_immutable_assets(
        self,
        client_transactions: Sequence[PassThroughEntry],
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        date: Optional[date_type] = None,
    ) -> list[Transaction]:
        """Record the hand-over of immutable assets between clients.

        One COMPLETED transaction with one movement is created per entry.
        Every transaction after the first is linked to the first as its child
        so the batch can be traced. Incoming and outgoing totals are logged but
        do not have to match.

        Args:
            client_transactions: One entry per client movement
            notes: Notes for every created transaction (entry notes go on the movement)
            created_by: Actor recording the batch
            date: Date of the transactions (defaults to today)

        Returns:
            The created transactions, first one being the batch root

        Raises:
            NotFoundError: If a client or asset doesn't exist
            ValidationError: If the batch is empty, an asset is not immutable,
                or an amount is not positive
        """
        if not client_transactions:
            raise ValidationError("At least one pass-through entry is required")

        totals: dict[tuple[int, MovementType], Decimal] = {}
        created: list[Transaction] = []
        with self.db.atomic("conciliate_immutable_assets", self.settings.create_timeout):
            validated = []
            for entry in client_transactions:
                self.directory.find_client(entry.client_id)
                if self.directory.is_house(entry.client_id):
                    raise ValidationError("The house account cannot take part in a pass-through")
                detail = MovementInput(
                    asset_id=entry.asset_id,
                    movement_type=entry.movement_type,
                    amount=entry.amount,
                    notes=entry.notes,
                )
                [movement] = self.transactions.validate_details([detail])
                _, asset, _, amount = movement
                if not asset.is_immutable:
                    raise ValidationError(f"Asset '{asset.name}' is not immutable and cannot pass through")
                if amount <= ZERO:
                    raise ValidationError(f"Pass-through amount must be positive, got {entry.amount}")
                validated.append((entry, movement))

            root_id = None
            for entry, movement in validated:
                txn_id = self.db.create_transaction(
                    client_id=entry.client_id,
                    date=date or date_type.today(),
                    state=TransactionState.COMPLETED,
                    notes=notes,
                    parent_transaction_id=root_id,
                    created_by=created_by,
                )
                if root_id is None:
                    root_id = txn_id
                self.transactions.write_movements(txn_id, [movement], created_by)
                _, asset, movement_type, amount = movement
                totals[(asset.id, movement_type)] = totals.get((asset.id, movement_type), ZERO) + amount
                created.append(self.transactions.require_transaction(txn_id))

        summary = {}
        for asset_id in sorted({key[0] for key in totals}):
            income = totals.get((asset_id, MovementType.INCOME), ZERO)
            expense = totals.get((asset_id, MovementType.EXPENSE), ZERO)
            summary[asset_id] = {"income": income, "expense": expense}
            if abs(income - expense) > TOLERANCE:
                logger.warning(
                    "Pass-through batch %s for asset %s is unbalanced: received %s, delivered %s",
                    root_id,
                    asset_id,
                    income,
                    expense,
                )
        logger.info("Recorded pass-through batch %s with %d transaction(s)", root_id, len(created))
        record_quietly(
            self.audit,
            "Transaction",
            root_id,
            "PASS_THROUGH",
            {"transactionIds": [t.id for t in created], "totals": summary},
            created_by,
        )
        return created

    def find_open_immutable_asset_transactions(self, asset_id: Optional[int] = None) -> list[Transaction]:
        """List PENDING or CURRENT_ACCOUNT transactions holding immutable assets.

        Args:
            asset_id: Restrict to one immutable asset

        Raises:
            NotFoundError: If the asset doesn't exist
            ValidationError: If the asset is not immutable
        """
        if asset_id is not None:
            asset = self.directory.find_asset(asset_id)
            if not asset.is_immutable:
                raise ValidationError(f"Asset '{asset.name}' is not immutable")
            asset_ids = (asset.id,)
        else:
            asset_ids = tuple(a.id for a in self.db.list_assets() if a.is_immutable)

        if not asset_ids:
            return []
        filters = TransactionFilter(
            states=(TransactionState.PENDING, TransactionState.CURRENT_ACCOUNT),
            asset_ids=asset_ids,
        )
        return self.db.list_transactions(filters)
