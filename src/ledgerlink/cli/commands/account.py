"""Account management commands."""

import click
from ledgerlink.cli.account_resolution import resolve_account_or_exit, resolve_bank_or_exit
from ledgerlink.cli.error_handling import handle_domain_error
from ledgerlink.domain.account import AccountService
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.entities import AccountType
from ledgerlink.domain.errors import DomainError
from ledgerlink.utils.amount_parser import parse_amount


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--bank", required=True, help="Bank name or ID")
@click.option(
    "--type",
    "account_type",
    type=click.Choice([t.value for t in AccountType], case_sensitive=False),
    default=AccountType.CHECKING.value,
    show_default=True,
)
@click.option("--currency", default="EUR", show_default=True, help="ISO currency code")
@click.option("--number", "account_number", help="Account number or IBAN")
@click.option("--balance", default="0", help="Opening balance")
@click.pass_context
def create_account(ctx, name: str, bank: str, account_type: str, currency: str, account_number, balance: str):
    """Create a new account.

    Examples:
        ledgerlink account create "Compte courant" --bank "Societe Generale" --number FR7630003000...
        ledgerlink account create "Livret A" --bank 1 --type SAVINGS
    """
    db = ctx.obj["db"]
    bank_id = resolve_bank_or_exit(ctx, BankService(db), bank)
    service = AccountService(db)
    try:
        opening = parse_amount(balance)
        account_id = service.create_account(
            bank_id=bank_id,
            name=name,
            account_type=account_type,
            currency=currency,
            account_number=account_number,
            balance=opening,
        )
        click.echo(f"Created account '{name.strip()}' (ID: {account_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.option("--bank", help="Only accounts of this bank (name or ID)")
@click.option("--all", "include_archived", is_flag=True, help="Include archived accounts")
@click.pass_context
def list_accounts(ctx, bank: str | None, include_archived: bool):
    """List accounts."""
    db = ctx.obj["db"]
    bank_id = resolve_bank_or_exit(ctx, BankService(db), bank) if bank is not None else None
    service = AccountService(db)
    accounts = service.list_accounts(bank_id=bank_id, include_archived=include_archived)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 80)
    for acc in accounts:
        status = "" if acc.active else " (archived)"
        click.echo(
            f"ID: {acc.id:3d} | {acc.name:25s} | Bank: {acc.bank_id:3d} | "
            f"{acc.account_type.value:8s} | {acc.balance:>12} {acc.currency} | "
            f"{service.get_transaction_count(acc.id):5d} txns{status}"
        )


@account_group.command("rename")
@click.argument("account", metavar="ACCOUNT")
@click.argument("new_name", metavar="NEW_NAME")
@click.pass_context
def rename_account(ctx, account: str, new_name: str) -> None:
    """Rename an account.

    ACCOUNT can be an account name or ID.
    NEW_NAME is the new name for the account.
    """
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    try:
        service.rename_account(account_id, new_name)
        click.echo(f"Renamed account to '{new_name.strip()}'")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("archive")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def archive_account(ctx, account: str) -> None:
    """Archive an account, keeping its transactions.

    ACCOUNT can be an account name or ID.
    """
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    service.archive_account(account_id)
    click.echo(f"Archived account {account_id}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
