"""CLI commands for groups, expenses and settlements."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..db import Database
from ..exceptions import SplitLedgerError
from ..models import SettlementInstruction
from .money import from_minor_units
from .planner import find_instruction
from .queries import LedgerQueries
from .service import LedgerService
from .ui import confirm_settlement, select_participants_interactive

group_app = typer.Typer(name="group", help="Manage groups and their members")
expense_app = typer.Typer(name="expense", help="Record and browse shared expenses")
settle_app = typer.Typer(name="settle", help="See who owes whom and settle up")

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def _ledger(verbose: bool) -> Iterator[LedgerService]:
    """Open the configured ledger and report failures the same way everywhere."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path, timeout=settings.busy_timeout)
        yield LedgerService(settings, db)
    except SplitLedgerError as e:
        console.print(f"\n[bold red]Error ({e.reason}):[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(minor: int, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    amount = from_minor_units(minor)
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def display_instructions(instructions: list[SettlementInstruction], title: str):
    """Display settlement instructions in a table."""
    if not instructions:
        console.print("[green]✓ All settled up![/green]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Payer", style="cyan")
    table.add_column("Payee", style="cyan")
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Splits", justify="right", style="dim")

    for instruction in instructions:
        table.add_row(
            instruction.payer,
            instruction.payee,
            format_money(instruction.amount_minor),
            str(len(instruction.split_ids)),
        )

    console.print(table)


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def create_group(
    name: str = typer.Argument(..., help="Group name"),
    owner: str = typer.Option(..., "--owner", "-o", help="Creating member's ID"),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a group; the owner becomes its first member."""
    with _ledger(verbose) as service:
        group = service.create_group(name, owner, description)
        console.print(f"[bold green]✓ Created group '{group.name}'[/bold green]")
        console.print(f"  ID: [cyan]{group.id}[/cyan]")


@group_app.command("add-member")
def add_member(
    group_id: str = typer.Argument(..., help="Group ID"),
    user_id: str = typer.Argument(..., help="Member ID to add"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a member to a group."""
    with _ledger(verbose) as service:
        group = service.add_member(group_id, user_id)
        console.print(
            f"[green]✓ {user_id} joined '{group.name}' "
            f"({len(group.members)} members)[/green]"
        )


@group_app.command("list")
def list_groups(
    member: str | None = typer.Option(None, "--member", "-m", help="Only this member's groups"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List groups."""
    with _ledger(verbose) as service:
        groups = service.db.list_groups(user_id=member)
        if not groups:
            console.print("[yellow]No groups found.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Owner")
        table.add_column("Members", no_wrap=False)
        for group in groups:
            table.add_row(group.id, group.name, group.created_by, ", ".join(group.members))
        console.print(table)


@group_app.command("members")
def group_members(
    group_id: str = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a group's members."""
    with _ledger(verbose) as service:
        group = service.db.get_group(group_id)
        console.print(f"\n[bold]{group.name}[/bold]")
        if group.description:
            console.print(f"[dim]{group.description}[/dim]")
        for user_id in group.members:
            owner = " [dim](owner)[/dim]" if user_id == group.created_by else ""
            console.print(f"  • {user_id}{owner}")


# ============================================================================
# Expenses
# ============================================================================


@expense_app.command("add")
def add_expense(
    group_id: str = typer.Argument(..., help="Group ID"),
    description: str = typer.Argument(..., help="What was paid for"),
    amount: str = typer.Argument(..., help="Amount, e.g. 30.00"),
    paid_by: str = typer.Option(..., "--paid-by", "-p", help="Member who paid"),
    participants: list[str] | None = typer.Option(
        None, "--with", "-w", help="Member sharing the cost (repeatable, default: everyone)"
    ),
    pick: bool = typer.Option(
        False, "--pick", help="Pick participants interactively"
    ),
    category: str | None = typer.Option(None, "--category", "-c"),
    currency: str | None = typer.Option(None, "--currency"),
    expense_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Expense date (default: today)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record an expense split equally among participants.

    Any cent left over after dividing is given to participants in
    alphabetical order, so the shares always add up to the amount.
    """
    with _ledger(verbose) as service:
        if pick:
            members = sorted(service.db.members_of(group_id))
            participants = select_participants_interactive(members, paid_by)
            if participants is None:
                console.print("[yellow]Cancelled.[/yellow]")
                return
        elif not participants:
            participants = None

        expense, splits = service.add_expense(
            group_id=group_id,
            description=description,
            amount=amount,
            paid_by=paid_by,
            participants=participants,
            category=category,
            currency=currency,
            expense_date=expense_date.date() if expense_date else None,
        )

        console.print(
            f"[bold green]✓ Added '{expense.description}' "
            f"({format_money(expense.amount_minor, use_color=False).strip()} "
            f"{expense.currency})[/bold green]"
        )

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Member", style="cyan")
        table.add_column("Share", justify="right", width=12)
        table.add_column("Status")
        for split in splits:
            status = "[dim]paid[/dim]" if split.settled else "[yellow]owes[/yellow]"
            table.add_row(split.user_id, format_money(split.amount_minor), status)
        console.print(table)


@expense_app.command("list")
def list_expenses(
    group_id: str | None = typer.Option(None, "--group", "-g", help="Group ID"),
    member: str | None = typer.Option(None, "--member", "-m", help="Member ID"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max rows"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List recent expenses."""
    with _ledger(verbose) as service:
        queries = LedgerQueries(service.db)
        expenses = queries.recent_expenses(
            group_id=group_id,
            user_id=member,
            limit=limit or service.settings.recent_expense_limit,
        )
        if not expenses:
            console.print("[yellow]No expenses yet.[/yellow]")
            return

        table = Table(title="Recent Expenses", show_header=True, header_style="bold magenta")
        table.add_column("Date", style="dim")
        table.add_column("Description", style="cyan", width=32)
        table.add_column("Category", style="yellow")
        table.add_column("Paid by")
        table.add_column("Amount", justify="right", width=12)
        for expense in expenses:
            desc = expense.description
            table.add_row(
                str(expense.expense_date),
                desc[:32] + "..." if len(desc) > 32 else desc,
                expense.category or "[dim]—[/dim]",
                expense.paid_by,
                format_money(expense.amount_minor),
            )
        console.print(table)


# ============================================================================
# Balances & settlement
# ============================================================================


@settle_app.command("balances")
def show_balances(
    group_id: str | None = typer.Option(None, "--group", "-g", help="Group ID"),
    member: str | None = typer.Option(None, "--member", "-m", help="Member ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show raw (unnetted) who-owes-whom balances."""
    with _ledger(verbose) as service:
        balances = service.balances(group_id=group_id, user_id=member)
        if not balances:
            console.print("[green]✓ Nobody owes anything.[/green]")
            return

        table = Table(title="Balances", show_header=True, header_style="bold magenta")
        table.add_column("Debtor", style="cyan")
        table.add_column("Creditor", style="cyan")
        table.add_column("Amount", justify="right", width=12)
        for (debtor, creditor), balance in sorted(balances.items()):
            table.add_row(debtor, creditor, format_money(balance.amount_minor))
        console.print(table)


@settle_app.command("plan")
def show_plan(
    group_id: str | None = typer.Option(None, "--group", "-g", help="Group ID"),
    member: str | None = typer.Option(
        None, "--member", "-m", help="Only settlements involving this member"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show the netted settlement plan."""
    with _ledger(verbose) as service:
        instructions = service.plan(group_id=group_id, user_id=member)
        display_instructions(instructions, title="Settlements")


@settle_app.command("pay")
def settle_pair(
    debtor: str = typer.Argument(..., help="Member paying"),
    creditor: str = typer.Argument(..., help="Member being paid"),
    group_id: str | None = typer.Option(None, "--group", "-g", help="Group ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark what DEBTOR owes CREDITOR after netting as settled."""
    with _ledger(verbose) as service:
        if not yes:
            preview = find_instruction(service.plan(group_id=group_id), debtor, creditor)
            if (
                preview is not None
                and preview.payer == debtor
                and not confirm_settlement(preview)
            ):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        instruction, updated = service.settle_between(
            debtor, creditor, group_id=group_id, payer=debtor
        )

        console.print(
            f"\n[bold green]✓ {instruction.payer} paid {instruction.payee} "
            f"{format_money(instruction.amount_minor, use_color=False).strip()}"
            f"[/bold green]"
        )
        console.print(f"[dim]{updated} splits marked settled[/dim]")


@settle_app.command("summary")
def summary(
    user_id: str = typer.Argument(..., help="Member ID"),
    group_id: str | None = typer.Option(None, "--group", "-g", help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what a member owes and is owed."""
    with _ledger(verbose) as service:
        queries = LedgerQueries(service.db)
        outstanding = queries.outstanding(user_id, group_id=group_id)

        console.print(f"\n[bold]Summary for {user_id}:[/bold]")
        if group_id is None:
            stats = queries.dashboard(user_id)
            console.print(f"  Total expenses: {format_money(stats.total_expenses_minor)}")
            console.print(f"  Your share:     {format_money(stats.your_share_minor)}")
        else:
            console.print(
                f"  Group spend:    {format_money(queries.total_spend(group_id))}"
            )
            console.print(
                f"  Your share:     "
                f"{format_money(queries.member_share(group_id, user_id))}"
            )
        console.print(f"  You owe:        {format_money(-outstanding.owes_minor)}")
        console.print(f"  You are owed:   {format_money(outstanding.owed_minor)}")
        console.print(f"  Net:            {format_money(outstanding.net_minor)}")

        for creditor, minor in outstanding.owes_to.items():
            console.print(f"    → owes {creditor} {format_money(minor, use_color=False)}")
        for debtor, minor in outstanding.owed_by.items():
            console.print(f"    ← {debtor} owes you {format_money(minor, use_color=False)}")
