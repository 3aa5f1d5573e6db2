"""CLI for Split Ledger."""

import typer

from .ledger.cli import expense_app, group_app, settle_app

app = typer.Typer(
    name="split-ledger",
    help="Track shared group expenses and settle up with the fewest payments",
)

app.add_typer(group_app, name="group", help="Manage groups and their members")
app.add_typer(expense_app, name="expense", help="Record and browse shared expenses")
app.add_typer(settle_app, name="settle", help="See who owes whom and settle up")


if __name__ == "__main__":
    app()
