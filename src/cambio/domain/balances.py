"""Balance arithmetic shared by every operation that touches the Balance Store.

Sign convention: a client's balance is positive when the client owes the house
and negative when the house owes the client. A movement the client delivers
(INCOME) lowers the client's balance, a movement the client receives (EXPENSE)
raises it. The house side is always the exact negation, so per asset the sum of
all balances stays zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Collection, Iterable, Iterator, Protocol

from cambio.domain.entities import MovementType

TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


class MovementLike(Protocol):
    asset_id: int
    movement_type: MovementType
    amount: Decimal


@dataclass
class AssetDeltas:
    """Per-asset signed amounts, iterated in ascending asset id order."""

    values: dict[int, Decimal] = field(default_factory=dict)

    def add(self, asset_id: int, amount: Decimal) -> None:
        self.values[asset_id] = self.values.get(asset_id, ZERO) + amount

    def get(self, asset_id: int) -> Decimal:
        return self.values.get(asset_id, ZERO)

    def items(self) -> Iterator[tuple[int, Decimal]]:
        for asset_id in sorted(self.values):
            yield asset_id, self.values[asset_id]

    def asset_ids(self) -> list[int]:
        return sorted(self.values)

    def negated(self) -> "AssetDeltas":
        return AssetDeltas({asset_id: -amount for asset_id, amount in self.values.items()})

    def __sub__(self, other: "AssetDeltas") -> "AssetDeltas":
        result = AssetDeltas(dict(self.values))
        for asset_id, amount in other.values.items():
            result.add(asset_id, -amount)
        return result

    def __bool__(self) -> bool:
        return bool(self.values)


@dataclass
class BalanceDeltas:
    """Client-side deltas and the mirrored house-side deltas of one propagation."""

    client: AssetDeltas
    house: AssetDeltas

    def negated(self) -> "BalanceDeltas":
        return BalanceDeltas(client=self.client.negated(), house=self.house.negated())

    def __sub__(self, other: "BalanceDeltas") -> "BalanceDeltas":
        return BalanceDeltas(client=self.client - other.client, house=self.house - other.house)

    def __bool__(self) -> bool:
        return bool(self.client)


def client_delta(movement_type: MovementType, amount: Decimal) -> Decimal:
    """Signed change of the client's balance for one movement."""
    if movement_type == MovementType.INCOME:
        return -amount
    return amount


def deltas_from_client(client: AssetDeltas) -> BalanceDeltas:
    """Build a balanced pair from client-side deltas."""
    return BalanceDeltas(client=client, house=client.negated())


def propagate(
    movements: Iterable[MovementLike], skip_assets: Collection[int] = ()
) -> BalanceDeltas:
    """Compute the client and house deltas for a set of movements.

    Args:
        movements: Movements of one transaction
        skip_assets: Asset IDs excluded from balance tracking (immutable assets)

    Returns:
        BalanceDeltas whose house side is the negation of the client side
    """
    client = AssetDeltas()
    for movement in movements:
        if movement.asset_id in skip_assets:
            continue
        client.add(movement.asset_id, client_delta(movement.movement_type, movement.amount))
    return deltas_from_client(client)


def quantize(amount: Decimal) -> Decimal:
    """Round an amount to cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def split_amount(amount: Decimal, percentage: Decimal) -> tuple[Decimal, Decimal]:
    """Split an amount into the settled percentage and the remainder.

    The settled part is rounded to cents and the remainder takes the rounding
    difference, so both always add up to the original amount.
    """
    settled = quantize(amount * Decimal(percentage) / HUNDRED)
    return settled, amount - settled


def aggregate_movements(
    movements: Iterable[MovementLike],
) -> dict[tuple[int, MovementType], Decimal]:
    """Sum movement amounts per (asset, movement type)."""
    totals: dict[tuple[int, MovementType], Decimal] = {}
    for movement in movements:
        key = (movement.asset_id, MovementType(movement.movement_type))
        totals[key] = totals.get(key, ZERO) + movement.amount
    return dict(sorted(totals.items(), key=lambda item: (item[0][0], item[0][1].value)))


def coverage_residuals(
    parent_movements: Iterable[MovementLike], child_movements: Iterable[MovementLike]
) -> dict[tuple[int, MovementType], Decimal]:
    """Parent amount minus the amount covered by children, per parent key.

    Keys that only appear in children are ignored.
    """
    parent_totals = aggregate_movements(parent_movements)
    child_totals = aggregate_movements(child_movements)
    return {key: total - child_totals.get(key, ZERO) for key, total in parent_totals.items()}


def is_covered(residuals: dict[tuple[int, MovementType], Decimal]) -> bool:
    """True when every parent key is covered by children within the tolerance."""
    return all(residual <= TOLERANCE for residual in residuals.values())


def residual_deltas(
    residuals: dict[tuple[int, MovementType], Decimal], skip_assets: Collection[int] = ()
) -> BalanceDeltas:
    """Client/house deltas of the still uncovered part of a parent."""
    client = AssetDeltas()
    for (asset_id, movement_type), residual in residuals.items():
        if asset_id in skip_assets:
            continue
        client.add(asset_id, client_delta(movement_type, residual))
    return deltas_from_client(client)
