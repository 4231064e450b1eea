"""CLI helpers for parsing movement and target options."""

from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.entities import (
    BillDetailInput,
    MovementInput,
    PassThroughEntry,
    ReconciliationTarget,
)
from cambio.domain.errors import ValidationError
from cambio.utils.amount_parser import parse_amount
from cambio.utils.resolver import resolve_asset, resolve_client


def _parse_bills(asset_service: AssetService, asset_id: int, bills: str) -> tuple[BillDetailInput, ...]:
    """Parse a note breakdown like "100x4+50x2" into bill details."""
    by_value = {d.value: d.id for d in asset_service.list_denominations(asset_id)}
    parsed = []
    for part in bills.split("+"):
        value_str, sep, quantity_str = part.strip().lower().partition("x")
        if not sep or not quantity_str.strip().isdigit():
            raise ValidationError(f"Invalid note breakdown '{part}', expected VALUExQUANTITY")
        value = parse_amount(value_str)
        denomination_id = by_value.get(value)
        if denomination_id is None:
            raise ValidationError(f"Asset {asset_id} has no {value} denomination")
        parsed.append(BillDetailInput(denomination_id=denomination_id, quantity=int(quantity_str)))
    return tuple(parsed)


def parse_detail(asset_service: AssetService, detail: str) -> MovementInput:
    """Parse ``ASSET:TYPE:AMOUNT[:BILLS]`` into a movement.

    Examples:
        "USD:INCOME:500"
        "USD:EXPENSE:250:100x2+50x1"

    Raises:
        ValidationError: If the option is malformed
        NotFoundError: If the asset does not exist
    """
    parts = detail.split(":")
    if len(parts) not in (3, 4):
        raise ValidationError(f"Invalid detail '{detail}', expected ASSET:TYPE:AMOUNT[:BILLS]")
    asset_id = resolve_asset(asset_service, parts[0])
    amount = parse_amount(parts[2])
    bills = _parse_bills(asset_service, asset_id, parts[3]) if len(parts) == 4 else ()
    return MovementInput(asset_id=asset_id, movement_type=parts[1], amount=amount, bill_details=bills)


def parse_target(client_service: ClientService, asset_id: int, target: str) -> ReconciliationTarget:
    """Parse ``CLIENT:AMOUNT`` into a reconciliation target in ``asset_id``."""
    client, sep, amount = target.rpartition(":")
    if not sep or not client:
        raise ValidationError(f"Invalid target '{target}', expected CLIENT:AMOUNT")
    return ReconciliationTarget(
        client_id=resolve_client(client_service, client),
        asset_id=asset_id,
        amount=parse_amount(amount),
    )


def parse_entry(client_service: ClientService, asset_service: AssetService, entry: str) -> PassThroughEntry:
    """Parse ``CLIENT:ASSET:TYPE:AMOUNT`` into a pass-through entry."""
    parts = entry.rsplit(":", 3)
    if len(parts) != 4:
        raise ValidationError(f"Invalid entry '{entry}', expected CLIENT:ASSET:TYPE:AMOUNT")
    client, asset, movement_type, amount = parts
    return PassThroughEntry(
        client_id=resolve_client(client_service, client),
        asset_id=resolve_asset(asset_service, asset),
        movement_type=movement_type,
        amount=parse_amount(amount),
    )
