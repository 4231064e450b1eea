"""Tests for reconciliation between clients."""

from decimal import Decimal

import pytest

from cambio.domain.entities import (
    MovementInput,
    MovementType,
    ReconciliationTarget,
    TransactionState,
)
from cambio.domain.errors import NotFoundError, ValidationError


@pytest.fixture
def debts(transaction_service, clients, assets):
    """Ana owes the house 3000 USD; the house owes Bruno 3000 and Carla 500."""

    def _book(client_id, movement_type, amount):
        return transaction_service.create_transaction(
            client_id,
            details=[MovementInput(asset_id=assets["USD"], movement_type=movement_type, amount=Decimal(amount))],
            state=TransactionState.COMPLETED,
        ).transaction

    source = _book(clients["Ana"], MovementType.EXPENSE, "3000")
    _book(clients["Bruno"], MovementType.INCOME, "3000")
    _book(clients["Carla"], MovementType.INCOME, "500")
    return source


def _snapshot(db):
    return {(b.client_id, b.asset_id): b.amount for b in db.list_balances()}


class TestReconcile:
    def test_full_reconciliation(
        self, reconciliation_service, debts, clients, assets, house, balance_of, temp_db, assert_zero_sum
    ):
        house_before = balance_of(house.client_id, assets["USD"])

        result = reconciliation_service.reconcile(
            debts.id, assets["USD"], [ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("3000"))]
        )

        assert result.total == Decimal("3000")
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("0")
        assert balance_of(clients["Bruno"], assets["USD"]) == Decimal("0")
        assert balance_of(house.client_id, assets["USD"]) == house_before
        assert len(result.reconciliations) == 1
        assert result.reconciliations[0].source_transaction_id == debts.id
        assert len(temp_db.list_reconciliations(transaction_id=debts.id)) == 1
        assert_zero_sum()

    def test_target_transactions_are_completed_expenses(self, reconciliation_service, debts, clients, assets):
        result = reconciliation_service.reconcile(
            debts.id,
            assets["USD"],
            [
                ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("1000")),
                ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("500"), notes="Carla paid out"),
            ],
            notes="weekly netting",
            created_by="manager",
        )

        assert [t.client_id for t in result.target_transactions] == [clients["Bruno"], clients["Carla"]]
        for txn in result.target_transactions:
            assert txn.state == TransactionState.COMPLETED
            [movement] = txn.movements
            assert movement.movement_type == MovementType.EXPENSE
            assert movement.asset_id == assets["USD"]
        assert result.target_transactions[1].notes == "Carla paid out"
        assert [r.amount for r in result.reconciliations] == [Decimal("1000"), Decimal("500")]
        assert result.reconciliations[0].notes == "weekly netting"

    def test_partial_reconciliation_balances(
        self, reconciliation_service, debts, clients, assets, balance_of, assert_zero_sum
    ):
        result = reconciliation_service.reconcile(
            debts.id,
            assets["USD"],
            [
                ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("1000")),
                ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("500")),
            ],
        )

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("1500")
        assert balance_of(clients["Bruno"], assets["USD"]) == Decimal("-2000")
        assert balance_of(clients["Carla"], assets["USD"]) == Decimal("0")
        assert {b.client_id: b.amount for b in result.balances}[clients["Ana"]] == Decimal("1500")
        assert_zero_sum()

    def test_reconciliation_is_audited(self, reconciliation_service, debts, clients, assets, temp_db):
        reconciliation_service.reconcile(
            debts.id, assets["USD"], [ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("100"))]
        )

        [entry] = temp_db.list_audit_entries(entity_type="Reconciliation", entity_id=str(debts.id))
        assert entry.action == "RECONCILE"
        assert entry.payload["total"] == "100"


class TestReconcileBounds:
    def test_more_than_source_balance(self, reconciliation_service, debts, clients, assets, temp_db):
        before = _snapshot(temp_db)

        with pytest.raises(ValidationError, match="cannot reconcile"):
            reconciliation_service.reconcile(
                debts.id,
                assets["USD"],
                [
                    ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("3000")),
                    ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("500")),
                ],
            )

        assert _snapshot(temp_db) == before
        assert temp_db.list_reconciliations() == []

    def test_more_than_target_balance(self, reconciliation_service, debts, clients, assets, temp_db):
        before = _snapshot(temp_db)

        with pytest.raises(ValidationError, match="cannot reconcile"):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("600"))]
            )

        assert _snapshot(temp_db) == before

    def test_targets_of_same_client_share_its_balance(self, reconciliation_service, debts, clients, assets, temp_db):
        before = _snapshot(temp_db)

        with pytest.raises(ValidationError):
            reconciliation_service.reconcile(
                debts.id,
                assets["USD"],
                [
                    ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("300")),
                    ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("300")),
                ],
            )

        assert _snapshot(temp_db) == before

    def test_target_must_be_owed(self, reconciliation_service, transaction_service, debts, clients, assets, client_service):
        dora = client_service.create_client("Dora")

        with pytest.raises(ValidationError, match="owes client"):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(dora, assets["USD"], Decimal("10"))]
            )

    def test_source_must_owe(self, reconciliation_service, transaction_service, debts, clients, assets):
        bruno_txn = transaction_service.list_transactions().items
        source = next(t for t in bruno_txn if t.client_id == clients["Bruno"])

        with pytest.raises(ValidationError, match="no debt"):
            reconciliation_service.reconcile(
                source.id, assets["USD"], [ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("10"))]
            )

    def test_cross_asset_targets_are_rejected(self, reconciliation_service, debts, clients, assets):
        with pytest.raises(ValidationError, match="cross-asset"):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(clients["Bruno"], assets["ARS"], Decimal("10"))]
            )

    def test_empty_targets(self, reconciliation_service, debts, assets):
        with pytest.raises(ValidationError, match="At least one"):
            reconciliation_service.reconcile(debts.id, assets["USD"], [])

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, reconciliation_service, debts, clients, assets, amount):
        with pytest.raises(ValidationError):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal(amount))]
            )

    def test_target_cannot_be_source_client(self, reconciliation_service, debts, clients, assets):
        with pytest.raises(ValidationError, match="itself"):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(clients["Ana"], assets["USD"], Decimal("10"))]
            )

    def test_target_cannot_be_house(self, reconciliation_service, debts, house, assets):
        with pytest.raises(ValidationError, match="house account"):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(house.client_id, assets["USD"], Decimal("10"))]
            )

    def test_unknown_source(self, reconciliation_service, clients, assets):
        with pytest.raises(NotFoundError):
            reconciliation_service.reconcile(
                999, assets["USD"], [ReconciliationTarget(clients["Bruno"], assets["USD"], Decimal("10"))]
            )

    def test_unknown_target_client(self, reconciliation_service, debts, assets):
        with pytest.raises(NotFoundError):
            reconciliation_service.reconcile(
                debts.id, assets["USD"], [ReconciliationTarget(999, assets["USD"], Decimal("10"))]
            )


class TestFindClientsForReconciliation:
    def test_candidates(self, reconciliation_service, debts, clients, assets):
        candidates = reconciliation_service.find_clients_for_reconciliation(assets["USD"])

        assert candidates.asset.id == assets["USD"]
        assert [(c.client.id, c.amount) for c in candidates.owed_by_house] == [
            (clients["Bruno"], Decimal("-3000")),
            (clients["Carla"], Decimal("-500")),
        ]
        assert [(c.client.id, c.amount) for c in candidates.owe_house] == [(clients["Ana"], Decimal("3000"))]

    def test_zero_balances_are_left_out(self, reconciliation_service, debts, clients, assets):
        reconciliation_service.reconcile(
            debts.id, assets["USD"], [ReconciliationTarget(clients["Carla"], assets["USD"], Decimal("500"))]
        )

        candidates = reconciliation_service.find_clients_for_reconciliation(assets["USD"])

        assert clients["Carla"] not in [c.client.id for c in candidates.owed_by_house]

    def test_unknown_asset(self, reconciliation_service, house):
        with pytest.raises(NotFoundError):
            reconciliation_service.find_clients_for_reconciliation(999)
