"""Tests for balance arithmetic."""

from decimal import Decimal

from cambio.domain.balances import (
    AssetDeltas,
    aggregate_movements,
    coverage_residuals,
    is_covered,
    propagate,
    residual_deltas,
    split_amount,
)
from cambio.domain.entities import MovementInput, MovementType


def _m(asset_id, movement_type, amount):
    return MovementInput(asset_id=asset_id, movement_type=movement_type, amount=Decimal(amount))


class TestPropagate:
    def test_income_lowers_client_balance(self):
        deltas = propagate([_m(1, MovementType.INCOME, "5000")])

        assert deltas.client.get(1) == Decimal("-5000")
        assert deltas.house.get(1) == Decimal("5000")

    def test_expense_raises_client_balance(self):
        deltas = propagate([_m(1, MovementType.EXPENSE, "250.50")])

        assert deltas.client.get(1) == Decimal("250.50")
        assert deltas.house.get(1) == Decimal("-250.50")

    def test_movements_of_same_asset_net_out(self):
        deltas = propagate(
            [
                _m(1, MovementType.INCOME, "100"),
                _m(1, MovementType.EXPENSE, "40"),
                _m(2, MovementType.EXPENSE, "95000"),
            ]
        )

        assert deltas.client.get(1) == Decimal("-60")
        assert deltas.client.get(2) == Decimal("95000")
        for asset_id, amount in deltas.client.items():
            assert deltas.house.get(asset_id) == -amount

    def test_skipped_assets_are_excluded(self):
        deltas = propagate(
            [_m(1, MovementType.INCOME, "100"), _m(9, MovementType.INCOME, "3000")],
            skip_assets={9},
        )

        assert deltas.client.asset_ids() == [1]
        assert deltas.house.asset_ids() == [1]

    def test_items_iterate_in_asset_order(self):
        deltas = propagate(
            [
                _m(3, MovementType.INCOME, "1"),
                _m(1, MovementType.INCOME, "1"),
                _m(2, MovementType.INCOME, "1"),
            ]
        )

        assert [asset_id for asset_id, _ in deltas.client.items()] == [1, 2, 3]

    def test_empty_movements_give_empty_deltas(self):
        assert not propagate([])

    def test_difference_of_deltas(self):
        old = propagate([_m(1, MovementType.INCOME, "100")])
        new = propagate([_m(1, MovementType.INCOME, "150")])

        diff = new - old

        assert diff.client.get(1) == Decimal("-50")
        assert diff.house.get(1) == Decimal("50")


class TestAssetDeltas:
    def test_negated(self):
        deltas = AssetDeltas({1: Decimal("10"), 2: Decimal("-3")})

        negated = deltas.negated()

        assert negated.get(1) == Decimal("-10")
        assert negated.get(2) == Decimal("3")

    def test_missing_asset_is_zero(self):
        assert AssetDeltas().get(7) == Decimal("0")


class TestSplitAmount:
    def test_parts_add_up(self):
        settled, remaining = split_amount(Decimal("100"), Decimal("33.33"))

        assert settled == Decimal("33.33")
        assert remaining == Decimal("66.67")
        assert settled + remaining == Decimal("100")

    def test_settled_part_rounds_half_up(self):
        settled, remaining = split_amount(Decimal("10.01"), 50)

        assert settled == Decimal("5.01")
        assert remaining == Decimal("5.00")

    def test_half(self):
        assert split_amount(Decimal("1000"), 50) == (Decimal("500.00"), Decimal("500.00"))


class TestCoverage:
    def test_aggregate_sums_per_asset_and_type(self):
        totals = aggregate_movements(
            [
                _m(1, MovementType.INCOME, "60"),
                _m(1, MovementType.INCOME, "40"),
                _m(1, MovementType.EXPENSE, "5"),
            ]
        )

        assert totals == {
            (1, MovementType.EXPENSE): Decimal("5"),
            (1, MovementType.INCOME): Decimal("100"),
        }

    def test_covered_within_tolerance(self):
        parent = [_m(1, MovementType.INCOME, "100")]
        children = [_m(1, MovementType.INCOME, "60"), _m(1, MovementType.INCOME, "39.99")]

        residuals = coverage_residuals(parent, children)

        assert residuals == {(1, MovementType.INCOME): Decimal("0.01")}
        assert is_covered(residuals)

    def test_not_covered_beyond_tolerance(self):
        parent = [_m(1, MovementType.INCOME, "100")]
        children = [_m(1, MovementType.INCOME, "60"), _m(1, MovementType.INCOME, "39.98")]

        assert not is_covered(coverage_residuals(parent, children))

    def test_over_coverage_counts_as_covered(self):
        parent = [_m(1, MovementType.INCOME, "100")]
        children = [_m(1, MovementType.INCOME, "100.50")]

        assert is_covered(coverage_residuals(parent, children))

    def test_keys_only_in_children_are_ignored(self):
        parent = [_m(1, MovementType.INCOME, "100")]
        children = [_m(1, MovementType.INCOME, "100"), _m(2, MovementType.EXPENSE, "5")]

        assert list(coverage_residuals(parent, children)) == [(1, MovementType.INCOME)]

    def test_every_key_must_be_covered(self):
        parent = [_m(1, MovementType.INCOME, "100"), _m(2, MovementType.EXPENSE, "90000")]
        children = [_m(1, MovementType.INCOME, "100")]

        assert not is_covered(coverage_residuals(parent, children))

    def test_residual_deltas_follow_movement_signs(self):
        residuals = {
            (1, MovementType.INCOME): Decimal("40"),
            (2, MovementType.EXPENSE): Decimal("1000"),
        }

        deltas = residual_deltas(residuals)

        assert deltas.client.get(1) == Decimal("-40")
        assert deltas.client.get(2) == Decimal("1000")
        assert deltas.house.get(1) == Decimal("40")
