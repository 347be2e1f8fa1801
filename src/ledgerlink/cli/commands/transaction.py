"""Transaction commands."""

import click
from ledgerlink.cli.account_resolution import resolve_account_or_exit
from ledgerlink.cli.error_handling import handle_domain_error
from ledgerlink.domain.account import AccountService
from ledgerlink.domain.entities import Classification
from ledgerlink.domain.errors import DomainError
from ledgerlink.domain.transaction import TransactionService
from ledgerlink.utils.amount_parser import parse_amount
from ledgerlink.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--date", "date_str", required=True, help="Transaction date (YYYY-MM-DD or DD/MM/YYYY)")
@click.option("--amount", required=True, help="Signed amount (e.g., -45.00 or 1200,50)")
@click.option("--description", default="", help="Transaction description")
@click.option("--category", help="Category label")
@click.pass_context
def add_transaction(ctx, account: str, date_str: str, amount: str, description: str, category):
    """Record a transaction by hand.

    Examples:
        ledgerlink transaction add --account 1 --date 2024-03-01 --amount -45.00 --description "CARREFOUR PARIS"
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    try:
        txn_date = parse_date(date_str)
        txn_amount = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
        return

    service = TransactionService(db)
    try:
        transaction_id = service.create_transaction(
            account_id=account_id,
            date=txn_date,
            amount=txn_amount,
            description=description,
            category=category,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    txn = service.get_transaction(transaction_id)
    click.echo(
        f"Created transaction {transaction_id}: {txn.classification.value} "
        f"({txn.classification_confidence:.2f})"
    )


@transaction_group.command("list")
@click.option("--account", help="Account name or ID")
@click.option("--start-date", help="Start date (YYYY-MM-DD)")
@click.option("--end-date", help="End date (YYYY-MM-DD)")
@click.option(
    "--classification",
    type=click.Choice([c.value for c in Classification], case_sensitive=False),
    help="Only this classification",
)
@click.option("--batch", "import_batch_id", type=int, help="Only transactions of this import batch")
@click.pass_context
def list_transactions(ctx, account, start_date, end_date, classification, import_batch_id):
    """List transactions, newest first."""
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account) if account is not None else None

    try:
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None
    except ValueError as e:
        click.echo(f"Error: Invalid date: {e}", err=True)
        ctx.exit(1)
        return

    transactions = TransactionService(db).list_transactions(
        account_id=account_id,
        start_date=start,
        end_date=end,
        classification=Classification(classification.upper()) if classification else None,
        import_batch_id=import_batch_id,
    )
    if not transactions:
        click.echo("No transactions found.")
        return

    for txn in transactions:
        manual = " *" if txn.manually_classified else ""
        linked = f" -> {txn.linked_account_id}" if txn.linked_account_id is not None else ""
        click.echo(
            f"{txn.id:5d} | {txn.date} | acct {txn.account_id:3d} | {txn.amount:>12} | "
            f"{txn.description[:35]:35s} | {txn.classification.value}{linked} "
            f"{txn.classification_confidence:.2f}{manual}"
        )


@transaction_group.command("show")
@click.argument("transaction_id", type=int)
@click.pass_context
def show_transaction(ctx, transaction_id: int):
    """Show one transaction in full."""
    txn = TransactionService(ctx.obj["db"]).get_transaction(transaction_id)
    if txn is None:
        click.echo(f"Error: Transaction {transaction_id} not found", err=True)
        ctx.exit(1)
        return

    click.echo(f"Transaction {txn.id}")
    click.echo(f"  Account: {txn.account_id}")
    click.echo(f"  Date: {txn.date}")
    click.echo(f"  Amount: {txn.amount}")
    click.echo(f"  Description: {txn.description}")
    click.echo(f"  Category: {txn.category or '-'}")
    click.echo(f"  Classification: {txn.classification.value}")
    click.echo(f"  Confidence: {txn.classification_confidence:.2f}")
    click.echo(f"  Linked account: {txn.linked_account_id if txn.linked_account_id is not None else '-'}")
    click.echo(f"  Manually classified: {'yes' if txn.manually_classified else 'no'}")
    click.echo(f"  Import batch: {txn.import_batch_id if txn.import_batch_id is not None else '-'}")
    click.echo(f"  Fingerprint: {txn.fingerprint}")


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
