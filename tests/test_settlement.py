"""Tests for percentage splits, partial transactions and child settlement."""

from datetime import date
from decimal import Decimal

import pytest

from cambio.domain.entities import MovementInput, MovementType, TransactionState
from cambio.domain.errors import ConflictError, NotFoundError, ValidationError


def _income(asset_id, amount):
    return MovementInput(asset_id=asset_id, movement_type=MovementType.INCOME, amount=Decimal(amount))


def _expense(asset_id, amount):
    return MovementInput(asset_id=asset_id, movement_type=MovementType.EXPENSE, amount=Decimal(amount))


def _pending_amounts(db, transaction_id):
    return {(p.client_id, p.asset_id): p.amount for p in db.list_pending_balances(transaction_id=transaction_id)}


class TestPartialTransaction:
    def test_partial_creates_completed_share_and_pending_child(
        self, settlement_service, clients, assets, house, balance_of, assert_zero_sum
    ):
        """Half of a 1000 EXPENSE is applied now, the other half waits in a child."""
        result = settlement_service.create_partial_transaction(
            clients["Ana"], [_expense(assets["USD"], "1000")], initial_percentage=50
        )

        txn = result.transaction
        assert txn.state == TransactionState.COMPLETED
        assert txn.movements[0].amount == Decimal("500")
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("500")
        assert balance_of(house.client_id, assets["USD"]) == Decimal("-500")

        [child] = result.children
        assert child.state == TransactionState.PENDING
        assert child.parent_transaction_id == txn.id
        assert child.movements[0].amount == Decimal("500")
        assert child.movements[0].movement_type == MovementType.EXPENSE
        assert_zero_sum()

    def test_child_is_dated_at_estimated_completion(self, settlement_service, clients, assets):
        result = settlement_service.create_partial_transaction(
            clients["Ana"],
            [_expense(assets["USD"], "1000")],
            initial_percentage=25,
            date=date(2024, 6, 1),
            estimated_completion_date=date(2024, 6, 15),
        )

        assert result.transaction.date == date(2024, 6, 1)
        assert result.children[0].date == date(2024, 6, 15)
        assert result.children[0].movements[0].amount == Decimal("750")

    def test_without_percentage_everything_is_pending(self, settlement_service, clients, assets, temp_db):
        result = settlement_service.create_partial_transaction(clients["Ana"], [_expense(assets["USD"], "1000")])

        assert result.transaction.state == TransactionState.PENDING
        assert result.children == ()
        assert temp_db.list_balances() == []

    @pytest.mark.parametrize("percentage", [0, 100, 120, -5])
    def test_percentage_out_of_range(self, settlement_service, clients, assets, temp_db, percentage):
        with pytest.raises(ValidationError):
            settlement_service.create_partial_transaction(
                clients["Ana"], [_expense(assets["USD"], "1000")], initial_percentage=percentage
            )
        assert temp_db.list_balances() == []

    def test_completing_the_remainder_settles_everything(
        self, settlement_service, clients, assets, balance_of, assert_zero_sum
    ):
        result = settlement_service.create_partial_transaction(
            clients["Ana"], [_expense(assets["USD"], "1000")], initial_percentage=40
        )

        settlement_service.complete_pending_transaction(result.children[0].id)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("1000")
        assert_zero_sum()


class TestSplitTransaction:
    def test_split_pending(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100"), _expense(assets["ARS"], "90000")]
        ).transaction

        result = settlement_service.split_transaction(txn.id, 30)

        assert result.transaction.state == TransactionState.COMPLETED
        assert [m.amount for m in result.transaction.movements] == [Decimal("30"), Decimal("27000")]
        assert [m.amount for m in result.children[0].movements] == [Decimal("70"), Decimal("63000")]
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-30")
        assert balance_of(clients["Ana"], assets["ARS"]) == Decimal("27000")

    def test_split_current_account_takes_remainder_back(
        self, settlement_service, clients, assets, balance_of, assert_zero_sum
    ):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.CURRENT_ACCOUNT
        ).transaction

        result = settlement_service.split_transaction(txn.id, 40)

        assert result.transaction.state == TransactionState.COMPLETED
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-40")
        assert result.children[0].state == TransactionState.PENDING
        assert_zero_sum()

        settlement_service.complete_pending_transaction(result.children[0].id)
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert_zero_sum()

    def test_split_into_current_account(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.split_transaction(txn.id, 50, completion_state="CURRENT_ACCOUNT")

        assert result.transaction.state == TransactionState.CURRENT_ACCOUNT
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-50")

    def test_split_without_child(self, settlement_service, clients, assets, temp_db):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.split_transaction(txn.id, 60, create_child_for_remaining=False)

        assert result.children == ()
        assert temp_db.list_child_transactions(txn.id) == []

    def test_split_terminal_transaction(self, settlement_service, clients, assets):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.COMPLETED
        ).transaction

        with pytest.raises(ConflictError):
            settlement_service.split_transaction(txn.id, 50)

    def test_split_rejects_pending_completion_state(self, settlement_service, clients, assets):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        with pytest.raises(ValidationError, match="Completion state"):
            settlement_service.split_transaction(txn.id, 50, completion_state=TransactionState.PENDING)

    def test_parent_being_settled_cannot_be_split(self, settlement_service, clients, assets):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "10")])

        with pytest.raises(ValidationError, match="settled by child"):
            settlement_service.split_transaction(parent.id, 50)


class TestUpdateWithCompletion:
    def test_full_completion(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.update_transaction(txn.id, notes="paid", completion_percentage=100)

        assert result.transaction.state == TransactionState.COMPLETED
        assert result.transaction.notes == "paid"
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")

    def test_partial_completion_splits(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.update_transaction(
            txn.id, details=[_income(assets["USD"], "100")], completion_percentage=25
        )

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-50")
        assert [m.amount for m in result.children[0].movements] == [Decimal("75"), Decimal("75")]

    def test_invalid_completion_percentage_changes_nothing(self, settlement_service, clients, assets, temp_db):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        with pytest.raises(ValidationError):
            settlement_service.update_transaction(txn.id, notes="x", completion_percentage=0)

        assert temp_db.get_transaction(txn.id).notes is None


class TestCompletePendingTransaction:
    def test_complete_with_custom_details(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.complete_pending_transaction(
            txn.id,
            custom_details=[_income(assets["USD"], "98")],
            notes="counted 98",
            completion_date=date(2024, 2, 2),
        )

        assert result.transaction.state == TransactionState.COMPLETED
        assert [m.amount for m in result.transaction.movements] == [Decimal("98")]
        assert result.transaction.date == date(2024, 2, 2)
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-98")

    def test_partial_completion(self, settlement_service, clients, assets, balance_of):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        result = settlement_service.complete_pending_transaction(txn.id, completion_percentage=50)

        assert result.children[0].state == TransactionState.PENDING
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-50")

    def test_only_pending_can_be_completed(self, settlement_service, clients, assets):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.CURRENT_ACCOUNT
        ).transaction

        with pytest.raises(ValidationError, match="Only PENDING"):
            settlement_service.complete_pending_transaction(txn.id)

    def test_percentage_out_of_range(self, settlement_service, clients, assets):
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        with pytest.raises(ValidationError):
            settlement_service.complete_pending_transaction(txn.id, completion_percentage=150)


class TestChildSettlement:
    def test_children_covering_parent_complete_everything(
        self, settlement_service, clients, assets, house, balance_of, temp_db, assert_zero_sum
    ):
        """Two children summing to 100 within a cent complete a 100 INCOME parent."""
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        first = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "60")])

        assert first.transaction.state == TransactionState.CURRENT_ACCOUNT
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-60")
        assert _pending_amounts(temp_db, parent.id) == {
            (clients["Ana"], assets["USD"]): Decimal("-40"),
            (house.client_id, assets["USD"]): Decimal("40"),
        }
        assert_zero_sum()

        second = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "39.99")])

        assert second.transaction.state == TransactionState.COMPLETED
        assert temp_db.get_transaction(parent.id).state == TransactionState.COMPLETED
        assert temp_db.get_transaction(first.transaction.id).state == TransactionState.COMPLETED
        assert set(_pending_amounts(temp_db, parent.id).values()) == {Decimal("0")}
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-99.99")
        assert_zero_sum()

    def test_settlement_is_audited_per_transaction(self, settlement_service, clients, assets, temp_db):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        a = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "50")]).transaction
        b = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "50")]).transaction

        for transaction_id in (parent.id, a.id, b.id):
            changes = [
                e.payload
                for e in temp_db.list_audit_entries(entity_type="Transaction", entity_id=str(transaction_id))
                if e.action == "STATE_CHANGE"
            ]
            assert changes[-1]["newState"] == "COMPLETED"
            assert changes[-1]["settledParentId"] == parent.id

    def test_children_against_booked_parent_count_once(
        self, settlement_service, clients, assets, balance_of, assert_zero_sum
    ):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.CURRENT_ACCOUNT
        ).transaction

        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "30")])
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")

        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "70")])
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert settlement_service.transactions.get_transaction(parent.id).transaction.state == (
            TransactionState.COMPLETED
        )
        assert_zero_sum()

    def test_booking_parent_after_children_applies_only_residual(
        self, settlement_service, clients, assets, balance_of, temp_db, assert_zero_sum
    ):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "60")])

        settlement_service.transactions.update_state(parent.id, TransactionState.CURRENT_ACCOUNT)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert _pending_amounts(temp_db, parent.id)[(clients["Ana"], assets["USD"])] == Decimal("-40")
        assert_zero_sum()

        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "40")])
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert temp_db.get_transaction(parent.id).state == TransactionState.COMPLETED
        assert_zero_sum()

    def test_partial_coverage_of_multi_asset_parent(self, settlement_service, clients, assets, temp_db):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100"), _expense(assets["ARS"], "90000")]
        ).transaction

        settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "100")])

        assert temp_db.get_transaction(parent.id).state == TransactionState.PENDING
        assert _pending_amounts(temp_db, parent.id)[(clients["Ana"], assets["ARS"])] == Decimal("90000")

    def test_removing_child_of_pending_parent_reverses_it(
        self, settlement_service, clients, assets, balance_of, temp_db, assert_zero_sum
    ):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        child = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "60")]).transaction

        settlement_service.transactions.remove_transaction(child.id)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("0")
        assert temp_db.list_pending_balances(transaction_id=parent.id) == []
        assert_zero_sum()

    def test_removing_child_of_booked_parent_keeps_obligation(
        self, settlement_service, clients, assets, balance_of, assert_zero_sum
    ):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.CURRENT_ACCOUNT
        ).transaction
        child = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "30")]).transaction

        settlement_service.transactions.remove_transaction(child.id)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert_zero_sum()

    def test_removing_child_of_parent_completed_later_keeps_obligation(
        self, settlement_service, clients, assets, balance_of, assert_zero_sum
    ):
        """Completing the parent books only the residual, so the child stays netted."""
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        child = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "60")]).transaction
        settlement_service.transactions.update_state(parent.id, TransactionState.COMPLETED)
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")

        settlement_service.transactions.remove_transaction(child.id)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert_zero_sum()

    def test_split_remainder_is_an_independent_obligation(
        self, settlement_service, clients, assets, balance_of, temp_db, assert_zero_sum
    ):
        """Booking then removing a split remainder leaves only the settled share."""
        txn = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        result = settlement_service.split_transaction(txn.id, 50, completion_state=TransactionState.CURRENT_ACCOUNT)
        [remainder] = result.children
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-50")

        settlement_service.transactions.update_state(remainder.id, TransactionState.CURRENT_ACCOUNT)
        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-100")
        assert settlement_service.transactions.settling_children(txn.id) == []
        assert temp_db.list_pending_balances(transaction_id=txn.id) == []

        settlement_service.transactions.remove_transaction(remainder.id)

        assert balance_of(clients["Ana"], assets["USD"]) == Decimal("-50")
        assert temp_db.get_transaction(txn.id).state == TransactionState.CURRENT_ACCOUNT
        assert_zero_sum()

    def test_child_needs_open_parent(self, settlement_service, clients, assets):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")], state=TransactionState.COMPLETED
        ).transaction

        with pytest.raises(ValidationError, match="PENDING or CURRENT_ACCOUNT"):
            settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "10")])

    def test_child_must_share_client(self, settlement_service, clients, assets, temp_db):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction

        with pytest.raises(ValidationError, match="must belong to client"):
            settlement_service.create_child_transaction(
                parent.id, [_income(assets["USD"], "10")], client_id=clients["Bruno"]
            )
        assert temp_db.list_child_transactions(parent.id) == []

    def test_unknown_parent(self, settlement_service, assets):
        with pytest.raises(NotFoundError):
            settlement_service.create_child_transaction(999, [_income(assets["USD"], "10")])

    def test_settlement_child_movements_are_fixed(self, settlement_service, clients, assets):
        parent = settlement_service.transactions.create_transaction(
            clients["Ana"], details=[_income(assets["USD"], "100")]
        ).transaction
        child = settlement_service.create_child_transaction(parent.id, [_income(assets["USD"], "10")]).transaction

        with pytest.raises(ValidationError, match="cannot be changed"):
            settlement_service.transactions.update_transaction(child.id, details=[_income(assets["USD"], "5")])
