"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the ORM schema can change
without touching services.
"""

from cambio.domain import entities as domain
from cambio.database.models import (
    Client as ORMClient,
    Asset as ORMAsset,
    Denomination as ORMDenomination,
    Transaction as ORMTransaction,
    Movement as ORMMovement,
    BillDetail as ORMBillDetail,
    Balance as ORMBalance,
    PendingBalance as ORMPendingBalance,
    Reconciliation as ORMReconciliation,
    AuditLog as ORMAuditLog,
)


def client_to_domain(orm_client: ORMClient) -> domain.Client:
    """Convert SQLAlchemy Client model to domain Client entity."""
    return domain.Client(
        id=orm_client.id,
        name=orm_client.name,
        notes=orm_client.notes,
        is_active=orm_client.is_active,
        created_at=orm_client.created_at,
    )


def asset_to_domain(orm_asset: ORMAsset) -> domain.Asset:
    """Convert SQLAlchemy Asset model to domain Asset entity."""
    return domain.Asset(
        id=orm_asset.id,
        name=orm_asset.name,
        is_percentage=orm_asset.is_percentage,
        is_immutable=orm_asset.is_immutable,
        is_active=orm_asset.is_active,
        created_at=orm_asset.created_at,
    )


def denomination_to_domain(orm_denomination: ORMDenomination) -> domain.Denomination:
    """Convert SQLAlchemy Denomination model to domain Denomination entity."""
    return domain.Denomination(
        id=orm_denomination.id,
        asset_id=orm_denomination.asset_id,
        value=orm_denomination.value,
        is_active=orm_denomination.is_active,
    )


def bill_detail_to_domain(orm_bill: ORMBillDetail) -> domain.BillDetail:
    """Convert SQLAlchemy BillDetail model to domain BillDetail entity."""
    return domain.BillDetail(
        id=orm_bill.id,
        movement_id=orm_bill.movement_id,
        denomination_id=orm_bill.denomination_id,
        quantity=orm_bill.quantity,
    )


def movement_to_domain(orm_movement: ORMMovement) -> domain.Movement:
    """Convert SQLAlchemy Movement model to domain Movement entity."""
    return domain.Movement(
        id=orm_movement.id,
        transaction_id=orm_movement.transaction_id,
        asset_id=orm_movement.asset_id,
        movement_type=domain.MovementType(orm_movement.movement_type),
        amount=orm_movement.amount,
        percentage_difference=orm_movement.percentage_difference,
        notes=orm_movement.notes,
        created_by=orm_movement.created_by,
        bill_details=tuple(bill_detail_to_domain(b) for b in orm_movement.bill_details),
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model (with movements) to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        client_id=orm_transaction.client_id,
        date=orm_transaction.date,
        state=domain.TransactionState(orm_transaction.state),
        notes=orm_transaction.notes,
        parent_transaction_id=orm_transaction.parent_transaction_id,
        created_by=orm_transaction.created_by,
        created_at=orm_transaction.created_at,
        updated_at=orm_transaction.updated_at,
        settles_parent=orm_transaction.settles_parent,
        movements=tuple(movement_to_domain(m) for m in orm_transaction.movements),
    )


def balance_to_domain(orm_balance: ORMBalance) -> domain.Balance:
    """Convert SQLAlchemy Balance model to domain Balance entity."""
    return domain.Balance(
        client_id=orm_balance.client_id,
        asset_id=orm_balance.asset_id,
        amount=orm_balance.amount,
        last_transaction_id=orm_balance.last_transaction_id,
        updated_at=orm_balance.updated_at,
    )


def pending_balance_to_domain(orm_pending: ORMPendingBalance) -> domain.PendingBalance:
    """Convert SQLAlchemy PendingBalance model to domain PendingBalance entity."""
    return domain.PendingBalance(
        client_id=orm_pending.client_id,
        asset_id=orm_pending.asset_id,
        transaction_id=orm_pending.transaction_id,
        amount=orm_pending.amount,
    )


def reconciliation_to_domain(orm_reconciliation: ORMReconciliation) -> domain.Reconciliation:
    """Convert SQLAlchemy Reconciliation model to domain Reconciliation entity."""
    return domain.Reconciliation(
        id=orm_reconciliation.id,
        source_transaction_id=orm_reconciliation.source_transaction_id,
        target_transaction_id=orm_reconciliation.target_transaction_id,
        amount=orm_reconciliation.amount,
        notes=orm_reconciliation.notes,
        created_by=orm_reconciliation.created_by,
        created_at=orm_reconciliation.created_at,
    )


def audit_entry_to_domain(orm_audit: ORMAuditLog) -> domain.AuditEntry:
    """Convert SQLAlchemy AuditLog model to domain AuditEntry entity."""
    return domain.AuditEntry(
        id=orm_audit.id,
        entity_type=orm_audit.entity_type,
        entity_id=orm_audit.entity_id,
        action=orm_audit.action,
        payload=dict(orm_audit.payload or {}),
        actor_id=orm_audit.actor_id,
        created_at=orm_audit.created_at,
    )
