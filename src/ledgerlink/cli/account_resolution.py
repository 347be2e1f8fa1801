"""CLI helpers resolving bank and account references."""

from __future__ import annotations

import click

from ledgerlink.domain.account import AccountService
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.errors import NotFoundError, ValidationError


def resolve_bank(bank_service: BankService, bank: str | int) -> int:
    """Resolve a bank name or ID to a bank ID.

    Raises:
        NotFoundError: If no bank matches
    """
    try:
        bank_id = int(bank)
    except (TypeError, ValueError):
        bank_id = None
    if bank_id is not None:
        if bank_service.get_bank(bank_id) is None:
            raise NotFoundError(f"Bank ID {bank_id} not found")
        return bank_id

    for candidate in bank_service.list_banks(include_archived=True):
        if candidate.name.lower() == str(bank).strip().lower():
            return candidate.id
    raise NotFoundError(f"Bank '{bank}' not found")


def resolve_account(account_service: AccountService, account: str | int) -> int:
    """Resolve an account name or ID to an account ID.

    Raises:
        NotFoundError: If no account matches
        ValidationError: If the name is shared by accounts of several banks
    """
    try:
        account_id = int(account)
    except (TypeError, ValueError):
        account_id = None
    if account_id is not None:
        if account_service.get_account(account_id) is None:
            raise NotFoundError(f"Account ID {account_id} not found")
        return account_id

    matches = [acc for acc in account_service.list_accounts(include_archived=True) if acc.name == account]
    if not matches:
        raise NotFoundError(f"Account '{account}' not found")
    if len(matches) > 1:
        ids = ", ".join(str(acc.id) for acc in matches)
        raise ValidationError(f"Several accounts are named '{account}' (IDs {ids}); use the ID")
    return matches[0].id


def resolve_bank_or_exit(ctx: click.Context, bank_service: BankService, bank: str | int) -> int:
    """Resolve bank name or ID, or exit with a CLI error."""
    try:
        return resolve_bank(bank_service, bank)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str | int
) -> int:
    """Resolve account name or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_account(account_service, account)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
