"""Immutable-asset pass-through commands."""

import click
from cambio.cli.details import parse_entry
from cambio.cli.error_handling import handle_domain_error
from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.passthrough import PassThroughService
from cambio.domain.transaction import TransactionService
from cambio.utils.resolver import resolve_asset


def _service(ctx) -> PassThroughService:
    transactions = TransactionService(ctx.obj["db"], settings=ctx.obj["settings"])
    return PassThroughService(ctx.obj["db"], transactions=transactions)


@click.group()
def passthrough_group():
    """Hand cheques, transfers and other immutable assets between clients."""
    pass


@passthrough_group.command("run")
@click.option(
    "--entry", "-e", "entries", multiple=True, required=True, help="Entry as CLIENT:ASSET:TYPE:AMOUNT (repeatable)"
)
@click.option("--notes", help="Notes for every created transaction")
@click.pass_context
def run_passthrough(ctx, entries: tuple[str, ...], notes: str | None):
    """Record a batch of immutable-asset hand-overs.

    Examples:
        cambio passthrough run -e "Ana Gomez:Cheque:INCOME:5000" -e "Luis Diaz:Cheque:EXPENSE:5000"
    """
    service = _service(ctx)
    client_service = ClientService(ctx.obj["db"], house_account_name=ctx.obj["settings"].house_account_name)
    asset_service = AssetService(ctx.obj["db"])

    try:
        parsed = [parse_entry(client_service, asset_service, e) for e in entries]
        created = service.conciliate_immutable_assets(parsed, notes=notes)
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Recorded {len(created)} pass-through transaction(s): {', '.join(str(t.id) for t in created)}")


@passthrough_group.command("open")
@click.option("--asset", help="Immutable asset name or ID")
@click.pass_context
def list_open(ctx, asset: str | None):
    """List open transactions still holding immutable assets."""
    service = _service(ctx)

    try:
        asset_id = resolve_asset(AssetService(ctx.obj["db"]), asset) if asset else None
        transactions = service.find_open_immutable_asset_transactions(asset_id)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not transactions:
        click.echo("No open transactions found.")
        return
    for txn in transactions:
        click.echo(f"Transaction ID: {txn.id} | {txn.date} | {txn.state.value} | Client: {txn.client_id}")


def register_commands(cli: click.Group) -> None:
    """Register pass-through commands with main CLI."""
    cli.add_command(passthrough_group, name="passthrough")
