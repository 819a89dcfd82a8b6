"""Command group: account shortcuts (deposit, withdraw)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from histctl.commands._base import HistGroup

if TYPE_CHECKING:
    from histctl.commands._context import AppContext


@click.group(
    cls=HistGroup,
    examples="""\
  histctl account deposit 100
  histctl account withdraw 30
  histctl --json account withdraw 500""",
)
def account() -> None:
    """Move money in or out of an account receiver."""


@account.command()
@click.argument("amount", type=int)
@click.pass_obj
def deposit(app: AppContext, amount: int) -> None:
    """Add AMOUNT to the balance."""
    app.emit(app.engine.execute("deposit", {"amount": amount}))


@account.command()
@click.argument("amount", type=int)
@click.pass_obj
def withdraw(app: AppContext, amount: int) -> None:
    """Take AMOUNT from the balance (overdraft limit applies)."""
    app.emit(app.engine.execute("withdraw", {"amount": amount}))
