"""Reconciliation commands."""

import click
from cambio.cli.details import parse_target
from cambio.cli.error_handling import handle_domain_error
from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.reconciliation import ReconciliationService
from cambio.domain.transaction import TransactionService
from cambio.utils.resolver import resolve_asset


def _service(ctx) -> ReconciliationService:
    transactions = TransactionService(ctx.obj["db"], settings=ctx.obj["settings"])
    return ReconciliationService(ctx.obj["db"], transactions=transactions)


@click.group()
def reconcile_group():
    """Move client debt onto clients the house owes."""
    pass


@reconcile_group.command("run")
@click.argument("source_transaction_id", type=int)
@click.argument("asset", metavar="ASSET")
@click.option("--target", "-t", "targets", multiple=True, required=True, help="Target as CLIENT:AMOUNT (repeatable)")
@click.option("--notes", help="Notes for the reconciliation")
@click.pass_context
def run_reconciliation(ctx, source_transaction_id: int, asset: str, targets: tuple[str, ...], notes: str | None):
    """Reconcile the debt behind SOURCE_TRANSACTION_ID in ASSET.

    The source client's balance drops by the total and every target client's
    balance rises by its amount.

    Examples:
        cambio reconcile run 12 USD -t "Ana Gomez:300" -t "Luis Diaz:200"
    """
    service = _service(ctx)
    client_service = ClientService(ctx.obj["db"], house_account_name=ctx.obj["settings"].house_account_name)

    try:
        asset_id = resolve_asset(AssetService(ctx.obj["db"]), asset)
        parsed = [parse_target(client_service, asset_id, t) for t in targets]
        result = service.reconcile(source_transaction_id, asset_id, parsed, notes=notes)
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Reconciled {result.total:,.2f} from transaction {result.source_transaction_id}")
    for txn in result.target_transactions:
        click.echo(f"  Transaction {txn.id} for client {txn.client_id}")
    click.echo("Balances:")
    for b in result.balances:
        click.echo(f"  Client {b.client_id:5d} {b.amount:>15,.2f}")


@reconcile_group.command("candidates")
@click.argument("asset", metavar="ASSET")
@click.pass_context
def list_candidates(ctx, asset: str):
    """List clients with an open balance in ASSET."""
    service = _service(ctx)

    try:
        candidates = service.find_clients_for_reconciliation(resolve_asset(AssetService(ctx.obj["db"]), asset))
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not candidates.owed_by_house and not candidates.owe_house:
        click.echo(f"No open balances in {candidates.asset.name}.")
        return

    click.echo(f"\nHouse owes ({candidates.asset.name}):")
    click.echo("-" * 60)
    for entry in candidates.owed_by_house:
        click.echo(f"ID: {entry.client.id:3d} | {entry.client.name:30s} {-entry.amount:>15,.2f}")
    click.echo(f"\nOwe the house ({candidates.asset.name}):")
    click.echo("-" * 60)
    for entry in candidates.owe_house:
        click.echo(f"ID: {entry.client.id:3d} | {entry.client.name:30s} {entry.amount:>15,.2f}")


def register_commands(cli: click.Group) -> None:
    """Register reconciliation commands with main CLI."""
    cli.add_command(reconcile_group, name="reconcile")
