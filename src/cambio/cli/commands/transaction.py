"""Transaction management commands."""

import click
from cambio.cli.details import parse_detail
from cambio.cli.error_handling import handle_domain_error
from cambio.domain.asset import AssetService
from cambio.domain.client import ClientService
from cambio.domain.entities import Transaction, TransactionFilter, TransactionResult, TransactionState
from cambio.domain.settlement import SettlementService
from cambio.domain.transaction import TransactionService
from cambio.utils.amount_parser import parse_percentage
from cambio.utils.date_parser import parse_date
from cambio.utils.resolver import resolve_asset, resolve_client

STATES = [s.value for s in TransactionState]
DETAIL_HELP = "Movement as ASSET:TYPE:AMOUNT[:BILLS], e.g. USD:INCOME:500 or USD:EXPENSE:250:100x2+50x1 (repeatable)"


def _services(ctx) -> tuple[TransactionService, SettlementService]:
    transactions = TransactionService(ctx.obj["db"], settings=ctx.obj["settings"])
    return transactions, SettlementService(ctx.obj["db"], transactions=transactions)


def _echo_transaction(ctx, txn: Transaction, indent: str = "") -> None:
    assets = {a.id: a.name for a in AssetService(ctx.obj["db"]).list_assets()}
    client = ctx.obj["db"].get_client(txn.client_id)
    parent = f" | Parent: {txn.parent_transaction_id}" if txn.parent_transaction_id else ""

    click.echo(f"{indent}Transaction ID: {txn.id} | {txn.date} | {txn.state.value}{parent}")
    click.echo(f"{indent}  Client: {client.name if client else 'Unknown'} (ID: {txn.client_id})")
    if txn.notes:
        click.echo(f"{indent}  Notes: {txn.notes}")
    for m in txn.movements:
        notes = f" | {m.notes}" if m.notes else ""
        click.echo(
            f"{indent}  {m.movement_type.value:8s} {assets.get(m.asset_id, m.asset_id)!s:12s} {m.amount:>15,.2f}{notes}"
        )


def _echo_result(ctx, result: TransactionResult) -> None:
    _echo_transaction(ctx, result.transaction)
    for child in result.children:
        click.echo("  Child:")
        _echo_transaction(ctx, child, indent="    ")
    if result.balances:
        assets = {a.id: a.name for a in AssetService(ctx.obj["db"]).list_assets()}
        click.echo("  Balances:")
        for b in result.balances:
            click.echo(f"    {assets.get(b.asset_id, b.asset_id)!s:12s} {b.amount:>15,.2f}")


def _parse_details(ctx, details: tuple[str, ...]):
    asset_service = AssetService(ctx.obj["db"])
    return [parse_detail(asset_service, d) for d in details]


def _parse_optional_date(value: str | None):
    return parse_date(value) if value is not None else None


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("create")
@click.argument("client", metavar="CLIENT")
@click.option("--detail", "-d", "details", multiple=True, required=True, help=DETAIL_HELP)
@click.option(
    "--state",
    type=click.Choice(STATES, case_sensitive=False),
    default=TransactionState.PENDING.value,
    show_default=True,
    help="Initial state",
)
@click.option("--date", help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday')")
@click.option("--notes", help="Notes")
@click.option("--partial", help="Settle only this percentage now; the rest goes to a PENDING child")
@click.option("--estimated-completion-date", help="Date of the PENDING child created by --partial")
@click.pass_context
def create_transaction(
    ctx,
    client: str,
    details: tuple[str, ...],
    state: str,
    date: str | None,
    notes: str | None,
    partial: str | None,
    estimated_completion_date: str | None,
):
    """Create a transaction for a client.

    CLIENT can be a client name or ID. INCOME movements are what the client
    delivers to the house, EXPENSE movements what the client receives.

    Examples:
        cambio transaction create "Juan Perez" -d USD:INCOME:100 -d ARS:EXPENSE:95000 --state COMPLETED
        cambio transaction create 3 -d USD:INCOME:1000 --partial 40 --estimated-completion-date "in 2 weeks"
    """
    transactions, settlement = _services(ctx)

    try:
        client_id = resolve_client(ClientService(ctx.obj["db"]), client)
        movements = _parse_details(ctx, details)
        txn_date = _parse_optional_date(date)
        if partial is not None:
            result = settlement.create_partial_transaction(
                client_id,
                movements,
                initial_percentage=parse_percentage(partial),
                date=txn_date,
                notes=notes,
                estimated_completion_date=_parse_optional_date(estimated_completion_date),
            )
        else:
            result = transactions.create_transaction(
                client_id, details=movements, state=state.upper(), date=txn_date, notes=notes
            )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created transaction {result.transaction.id}")
    _echo_result(ctx, result)


@transaction_group.command("show")
@click.argument("transaction_id", type=int)
@click.pass_context
def show_transaction(ctx, transaction_id: int):
    """Show a transaction with its movements, children and the client's balances."""
    transactions, _ = _services(ctx)

    try:
        result = transactions.get_transaction(transaction_id)
    except ValueError as e:
        handle_domain_error(ctx, e)

    _echo_result(ctx, result)


@transaction_group.command("list")
@click.option("--client", help="Client name or ID")
@click.option("--state", "states", multiple=True, type=click.Choice(STATES, case_sensitive=False), help="State (repeatable)")
@click.option("--asset", "assets", multiple=True, help="Asset name or ID (repeatable)")
@click.option("--parent", type=int, help="Only children of this transaction")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'yesterday')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")
@click.option("--include-cancelled", is_flag=True, help="Include CANCELLED transactions")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_context
def list_transactions(
    ctx,
    client: str | None,
    states: tuple[str, ...],
    assets: tuple[str, ...],
    parent: int | None,
    start_date: str | None,
    end_date: str | None,
    include_cancelled: bool,
    page: int,
    limit: int,
):
    """List transactions, newest first.

    CANCELLED transactions are hidden unless --include-cancelled or --state is given.
    """
    transactions, _ = _services(ctx)

    try:
        filters = TransactionFilter(
            client_id=resolve_client(ClientService(ctx.obj["db"]), client) if client else None,
            states=tuple(TransactionState(s.upper()) for s in states),
            parent_transaction_id=parent,
            asset_ids=tuple(resolve_asset(AssetService(ctx.obj["db"]), a) for a in assets),
            start_date=_parse_optional_date(start_date),
            end_date=_parse_optional_date(end_date),
            include_cancelled=include_cancelled,
        )
        result = transactions.list_transactions(filters, page=page, limit=limit)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not result.items:
        click.echo("No transactions found.")
        return

    click.echo(f"\nFound {result.total} transaction(s), page {result.page} of {result.total_pages}:")
    click.echo("=" * 80)
    for txn in result.items:
        _echo_transaction(ctx, txn)


@transaction_group.command("update")
@click.argument("transaction_id", type=int)
@click.option("--date", help="Transaction date")
@click.option("--notes", help="Notes")
@click.option("--detail", "-d", "details", multiple=True, help=DETAIL_HELP)
@click.option("--replace-details", is_flag=True, help="Replace existing movements instead of adding to them")
@click.option("--complete", "completion_percentage", help="Settle this percentage (100 for all of it)")
@click.option(
    "--completion-state",
    type=click.Choice([TransactionState.CURRENT_ACCOUNT.value, TransactionState.COMPLETED.value], case_sensitive=False),
    default=TransactionState.COMPLETED.value,
    show_default=True,
)
@click.option("--no-child", is_flag=True, help="Do not create a PENDING child for the remainder")
@click.pass_context
def update_transaction(
    ctx,
    transaction_id: int,
    date: str | None,
    notes: str | None,
    details: tuple[str, ...],
    replace_details: bool,
    completion_percentage: str | None,
    completion_state: str,
    no_child: bool,
):
    """Update a transaction.

    Updates only the fields that are provided. With --complete the given
    percentage is settled in the same step.

    Examples:
        cambio transaction update 1 --notes "Collected at the counter"
        cambio transaction update 1 -d USD:INCOME:50
        cambio transaction update 1 --complete 60
    """
    _, settlement = _services(ctx)

    try:
        result = settlement.update_transaction(
            transaction_id,
            date=_parse_optional_date(date),
            notes=notes,
            details=_parse_details(ctx, details),
            replace_details=replace_details,
            completion_percentage=parse_percentage(completion_percentage) if completion_percentage else None,
            create_child_for_remaining=not no_child,
            completion_state=completion_state.upper(),
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Updated transaction {transaction_id}")
    _echo_result(ctx, result)


@transaction_group.command("state")
@click.argument("transaction_id", type=int)
@click.argument("new_state", type=click.Choice(STATES, case_sensitive=False))
@click.pass_context
def change_state(ctx, transaction_id: int, new_state: str):
    """Move a transaction to a new state.

    Examples:
        cambio transaction state 1 CURRENT_ACCOUNT
        cambio transaction state 1 COMPLETED
    """
    transactions, _ = _services(ctx)

    try:
        result = transactions.update_state(transaction_id, new_state.upper())
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Transaction {transaction_id} is now {result.transaction.state.value}")


@transaction_group.command("cancel")
@click.argument("transaction_id", type=int)
@click.pass_context
def cancel_transaction(ctx, transaction_id: int):
    """Cancel a PENDING transaction."""
    transactions, _ = _services(ctx)

    try:
        transactions.cancel_transaction(transaction_id)
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Cancelled transaction {transaction_id}")


@transaction_group.command("delete")
@click.argument("transaction_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: int, yes: bool) -> None:
    """Delete a transaction that is not COMPLETED and has no children.

    Examples:
        cambio transaction delete 1
    """
    transactions, _ = _services(ctx)

    try:
        transactions.get_transaction(transaction_id)
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not yes and not click.confirm(f"Are you sure you want to delete transaction {transaction_id}?"):
        click.echo("Deletion cancelled.")
        return

    try:
        transactions.remove_transaction(transaction_id)
        click.echo(f"Deleted transaction {transaction_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@transaction_group.command("child")
@click.argument("parent_id", type=int)
@click.option("--detail", "-d", "details", multiple=True, required=True, help=DETAIL_HELP)
@click.option("--date", help="Child transaction date")
@click.option("--notes", help="Notes")
@click.pass_context
def create_child(ctx, parent_id: int, details: tuple[str, ...], date: str | None, notes: str | None):
    """Settle part of a transaction with a child transaction.

    When the children cover the parent, the parent and its children are
    completed.

    Examples:
        cambio transaction child 7 -d USD:INCOME:400
    """
    _, settlement = _services(ctx)

    try:
        result = settlement.create_child_transaction(
            parent_id, _parse_details(ctx, details), date=_parse_optional_date(date), notes=notes
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created child transaction {result.transaction.id} of transaction {parent_id}")
    _echo_result(ctx, result)


@transaction_group.command("complete")
@click.argument("transaction_id", type=int)
@click.option("--percentage", default="100", show_default=True, help="Percentage to settle")
@click.option("--detail", "-d", "details", multiple=True, help=f"Replacement movements. {DETAIL_HELP}")
@click.option("--date", help="Completion date")
@click.option("--notes", help="Notes")
@click.pass_context
def complete_transaction(
    ctx, transaction_id: int, percentage: str, details: tuple[str, ...], date: str | None, notes: str | None
):
    """Complete a PENDING transaction in full or in part.

    Examples:
        cambio transaction complete 4
        cambio transaction complete 4 --percentage 50
        cambio transaction complete 4 -d USD:INCOME:980 --notes "Final amount agreed"
    """
    _, settlement = _services(ctx)

    try:
        result = settlement.complete_pending_transaction(
            transaction_id,
            completion_percentage=parse_percentage(percentage),
            custom_details=_parse_details(ctx, details) or None,
            notes=notes,
            completion_date=_parse_optional_date(date),
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Completed transaction {transaction_id}")
    _echo_result(ctx, result)


@transaction_group.command("split")
@click.argument("transaction_id", type=int)
@click.argument("percentage")
@click.option(
    "--completion-state",
    type=click.Choice([TransactionState.CURRENT_ACCOUNT.value, TransactionState.COMPLETED.value], case_sensitive=False),
    default=TransactionState.COMPLETED.value,
    show_default=True,
)
@click.option("--no-child", is_flag=True, help="Do not create a PENDING child for the remainder")
@click.pass_context
def split_transaction(ctx, transaction_id: int, percentage: str, completion_state: str, no_child: bool):
    """Settle PERCENTAGE of a transaction and move the rest to a PENDING child.

    Examples:
        cambio transaction split 4 40
    """
    _, settlement = _services(ctx)

    try:
        result = settlement.split_transaction(
            transaction_id,
            parse_percentage(percentage),
            completion_state=completion_state.upper(),
            create_child_for_remaining=not no_child,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Split transaction {transaction_id}")
    _echo_result(ctx, result)


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
