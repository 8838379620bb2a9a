"""CLI for the ``cashflow`` package.

Typer-based console interface over the aggregation, insight and store
modules. Environment variables (``OPENAI_API_KEY``, ``DATABASE_URL`` and the
``CASHFLOW_*`` settings) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs.

Transactions come from ``--csv-path`` when given, otherwise from the database
for ``--user``. Errors are written to stderr as ``Error: ...`` and the process
exits with status 1.
"""

from __future__ import annotations

import csv
import json
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import FinancialSummary, InsightResult, Transaction

console = Console()

DEFAULT_USER = "local"


# ---- Module-level option objects (ruff B008) ---------------------------------

CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Read transactions from this CSV instead of the database.",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    ..., "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
USER_OPTION: OptionInfo = typer.Option(
    ..., "--user", help="External user identifier owning the transactions."
)
AS_OF_OPTION: OptionInfo = typer.Option(
    ..., "--as-of", formats=["%Y-%m-%d"], help="Reference date for time windows (default: today)."
)
DATE_OPTION: OptionInfo = typer.Option(
    ..., "--date", formats=["%Y-%m-%d"], help="Transaction date (default: today)."
)


# ---- Small helpers -----------------------------------------------------------


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    raise typer.Exit(1)


def _money(amount: Decimal | float) -> str:
    return f"₹{Decimal(str(amount)):,.2f}"


def _load_transactions(
    csv_path: Path | None, database_url: str | None, user: str
) -> list[Transaction]:
    """Return transactions newest first from the CSV or the database."""

    if csv_path is not None:
        from .ingest.csv_import import load_transactions_from_csv

        items = load_transactions_from_csv(csv_path)
        return sorted(items, key=lambda t: t.date, reverse=True)

    from db.client import session_scope

    from .store import list_transactions

    with session_scope(database_url=database_url) as session:
        return [s.transaction for s in list_transactions(session, user)]


def _reference_date(as_of: datetime | None) -> date:
    return as_of.date() if as_of is not None else date.today()


def _render_summary(summary: FinancialSummary) -> None:
    totals = Table(title="Totals", show_header=False)
    totals.add_column("Metric")
    totals.add_column("Value", justify="right")
    totals.add_row("Income", _money(summary.total_income))
    totals.add_row("Expense", _money(summary.total_expense))
    totals.add_row("Net balance", _money(summary.net_balance))
    totals.add_row("Savings rate", f"{summary.savings_rate:.1f}%")
    totals.add_row("Entries", str(summary.total_entries))
    totals.add_row(
        "Period",
        f"{summary.data_period.start_date} to {summary.data_period.end_date}",
    )
    console.print(totals)

    cats = Table(title="Categories")
    cats.add_column("Category")
    cats.add_column("Income", justify="right")
    cats.add_column("Expense", justify="right")
    cats.add_column("Count", justify="right")
    for name, b in summary.category_breakdown.items():
        cats.add_row(name, _money(b.income), _money(b.expense), str(b.count))
    console.print(cats)

    if summary.top_categories:
        top = Table(title="Top spending")
        top.add_column("Category")
        top.add_column("Amount", justify="right")
        for c in summary.top_categories:
            top.add_row(c.category, _money(c.amount))
        console.print(top)

    methods = Table(title="Payment methods")
    methods.add_column("Method")
    methods.add_column("Amount", justify="right")
    for method, amount in summary.payment_method_breakdown.items():
        methods.add_row(method, _money(amount))
    console.print(methods)

    if summary.monthly_trends:
        months = Table(title="Monthly trends (last 6 months)")
        months.add_column("Month")
        months.add_column("Income", justify="right")
        months.add_column("Expense", justify="right")
        for key in sorted(summary.monthly_trends):
            m = summary.monthly_trends[key]
            months.add_row(key, _money(m.income), _money(m.expense))
        console.print(months)


def _render_insight(result: InsightResult) -> None:
    ins = result.insight
    if result.degraded:
        console.print(f"[yellow]Showing fallback insights: {result.error or 'reply unusable'}[/]")
    if result.cached:
        console.print("[dim]cached[/]")
    console.print(
        Panel(
            f"Health score: {ins.health_score}/100\n"
            f"Income {_money(ins.total_income)} | Expense {_money(ins.total_expense)} | "
            f"Net {_money(ins.net_balance)} | Savings {ins.savings_rate:.1f}%",
            title="Financial health",
            border_style="green",
        )
    )
    for title, body in (
        ("Spending", ins.spending_analysis),
        ("Savings", ins.savings_insights),
        ("Budget", ins.budget_recommendations),
        ("Trends", ins.trend_analysis),
        ("Risk", ins.risk_assessment),
    ):
        console.print(Panel(body, title=title, border_style="blue"))
    console.print(Panel("\n".join(f"• {t}" for t in ins.smart_tips), title="Smart tips"))
    console.print(
        Panel("\n".join(f"• {a}" for a in ins.priority_actions), title="Priority actions")
    )


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Track income and expenses and get AI-generated insights (OpenAI Responses API). "
        "Loads OPENAI_API_KEY and DATABASE_URL from a local .env before running."
    ),
)


@app.command("summary")
def summary_cmd(
    csv_path: Annotated[Path | None, CSV_PATH_OPTION] = None,
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
    as_of: Annotated[datetime | None, AS_OF_OPTION] = None,
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """Show totals, category breakdowns and trends."""

    from .aggregate import aggregate
    from .prompting import serialize_summary_to_json

    try:
        txs = _load_transactions(csv_path, database_url, user)
    except FileNotFoundError:
        _fail(f"File not found: {csv_path}")
    except (csv.Error, ValueError, LookupError, RuntimeError, OSError) as e:
        _fail(str(e))

    summary = aggregate(txs, now=_reference_date(as_of))
    if summary is None:
        console.print("No financial data yet. Add a transaction to get started.")
        return
    if as_json:
        typer.echo(serialize_summary_to_json(summary))
        return
    _render_summary(summary)


@app.command("insights")
def insights_cmd(
    csv_path: Annotated[Path | None, CSV_PATH_OPTION] = None,
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
    as_of: Annotated[datetime | None, AS_OF_OPTION] = None,
    refresh: bool = typer.Option(False, "--refresh", help="Ignore and replace any cached insight."),
    as_json: bool = typer.Option(False, "--json", help="Print the insight as JSON."),
) -> None:
    """Generate (or reuse cached) AI insights for a user's transactions."""

    from .insights import NoFinancialDataError, generate_insights, refresh_insights

    try:
        txs = _load_transactions(csv_path, database_url, user)
    except FileNotFoundError:
        _fail(f"File not found: {csv_path}")
    except (csv.Error, ValueError, LookupError, RuntimeError, OSError) as e:
        _fail(str(e))

    flow = refresh_insights if refresh else generate_insights
    try:
        result = flow(txs, user_key=user, now=_reference_date(as_of))
    except NoFinancialDataError as e:
        _fail(str(e))
    except RuntimeError as e:
        _fail(f"insights failed: {e}")

    if as_json:
        typer.echo(json.dumps(result.insight.to_wire(), indent=2, ensure_ascii=False))
        return
    _render_insight(result)


@app.command("chat")
def chat_cmd(
    csv_path: Annotated[Path | None, CSV_PATH_OPTION] = None,
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
    message: str | None = typer.Option(
        None, "--message", "-m", help="Ask one question and exit (default: interactive)."
    ),
) -> None:
    """Ask the financial advisor questions about your data."""

    from .insights import ask_advisor
    from .term_ui import run_chat_loop

    try:
        txs = _load_transactions(csv_path, database_url, user)
    except FileNotFoundError:
        _fail(f"File not found: {csv_path}")
    except (csv.Error, ValueError, LookupError, RuntimeError, OSError) as e:
        _fail(str(e))

    if message is not None:
        try:
            typer.echo(ask_advisor(message, txs))
        except (ValueError, RuntimeError) as e:
            _fail(str(e))
        return

    console.print("[dim]Ask about your finances. Type 'exit' or press Ctrl+D to quit.[/]")
    run_chat_loop(
        lambda msg, history: ask_advisor(msg, txs, history=history),
        write=lambda text: console.print(Panel(text, title="Advisor", border_style="cyan")),
    )


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, typer.Argument(help="CSV file with type,amount,category,date")],
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
) -> None:
    """Persist every transaction in a CSV for a user."""

    from db.client import session_scope

    from .ingest.csv_import import load_transactions_from_csv
    from .store import add_transaction, ensure_user_record, refresh_financial_summary

    try:
        txs = load_transactions_from_csv(csv_path)
    except FileNotFoundError:
        _fail(f"File not found: {csv_path}")
    except (csv.Error, ValueError, OSError) as e:
        _fail(f"Failed to parse CSV: {e}")

    try:
        with session_scope(database_url=database_url) as session:
            ensure_user_record(session, user)
            for tx in txs:
                add_transaction(session, user, tx)
            totals = refresh_financial_summary(session, user)
    except (ValueError, LookupError, RuntimeError) as e:
        _fail(f"import failed: {e}")
    typer.echo(f"Imported {len(txs)} transactions. Net balance: {_money(totals['net_balance'])}")


@app.command("add")
def add_cmd(
    tx_type: str = typer.Option(..., "--type", help="income or expense"),
    amount: str = typer.Option(..., "--amount", help="Amount in rupees (>= 0)."),
    category: str | None = typer.Option(
        None, "--category", help="Category name (prompted when omitted)."
    ),
    payment_method: str = typer.Option("cash", "--payment-method", help="cash or upi"),
    on: Annotated[datetime | None, DATE_OPTION] = None,
    description: str = typer.Option("", "--description"),
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
) -> None:
    """Record one income or expense entry."""

    from db.client import session_scope

    from .categories import list_categories
    from .store import add_transaction, ensure_user_record, refresh_financial_summary
    from .term_ui import prompt_category

    if category is None:
        try:
            with session_scope(database_url=database_url) as session:
                names = [c.name for c in list_categories(session)]
        except RuntimeError as e:
            _fail(str(e))
        category = prompt_category(names)
        if category is None:
            _fail("canceled")

    try:
        with session_scope(database_url=database_url) as session:
            ensure_user_record(session, user)
            stored = add_transaction(
                session,
                user,
                {
                    "type": tx_type,
                    "amount": amount,
                    "category": category,
                    "payment_method": payment_method,
                    "date": _reference_date(on),
                    "description": description,
                },
            )
            refresh_financial_summary(session, user)
    except (ValueError, LookupError, RuntimeError) as e:
        _fail(str(e))
    typer.echo(f"Added transaction {stored.id}")


@app.command("list")
def list_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
    limit: int | None = typer.Option(None, "--limit", min=1),
) -> None:
    """List stored transactions, newest first."""

    from db.client import session_scope

    from .store import list_transactions

    try:
        with session_scope(database_url=database_url) as session:
            rows = list_transactions(session, user, limit=limit)
    except (LookupError, RuntimeError) as e:
        _fail(str(e))

    table = Table(title=f"Transactions for {user}")
    for col in ("ID", "Date", "Type", "Amount", "Category", "Method", "Description"):
        table.add_column(col, justify="right" if col in ("ID", "Amount") else "left")
    for s in rows:
        t = s.transaction
        table.add_row(
            str(s.id),
            t.date.isoformat(),
            t.type,
            _money(t.amount),
            t.category,
            t.payment_method,
            t.description,
        )
    console.print(table)


@app.command("delete")
def delete_cmd(
    transaction_id: int = typer.Argument(..., help="Transaction id (see `list`)."),
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
) -> None:
    """Delete one of the user's transactions."""

    from db.client import session_scope

    from .store import delete_transaction, refresh_financial_summary

    try:
        with session_scope(database_url=database_url) as session:
            delete_transaction(session, user, transaction_id)
            refresh_financial_summary(session, user)
    except (LookupError, RuntimeError) as e:
        _fail(str(e))
    typer.echo(f"Deleted transaction {transaction_id}")


@app.command("categories")
def categories_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    add: str | None = typer.Option(None, "--add", help="Create a custom category."),
    color: str | None = typer.Option(None, "--color", help="#RRGGBB color for --add."),
) -> None:
    """List categories, or create one with --add."""

    from db.client import session_scope

    from .categories import create_category, list_categories

    try:
        with session_scope(database_url=database_url) as session:
            if add is not None:
                created = create_category(session, add, color)
                typer.echo(f"Created category {created.name} ({created.color})")
                return
            cats = list_categories(session)
    except (ValueError, RuntimeError) as e:
        _fail(str(e))

    table = Table(title="Categories")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Kind")
    for c in cats:
        table.add_row(c.name, c.color, "default" if c.is_default else "custom")
    console.print(table)


@app.command("preferences")
def preferences_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user: Annotated[str, USER_OPTION] = DEFAULT_USER,
    currency: str | None = typer.Option(None, "--currency"),
    date_format: str | None = typer.Option(None, "--date-format"),
    theme: str | None = typer.Option(None, "--theme"),
) -> None:
    """Show or update display preferences."""

    from db.client import session_scope

    from .store import ensure_user_record, get_preferences, update_preferences

    changes = {
        k: v
        for k, v in (("currency", currency), ("dateFormat", date_format), ("theme", theme))
        if v is not None
    }
    try:
        with session_scope(database_url=database_url) as session:
            ensure_user_record(session, user)
            prefs = (
                update_preferences(session, user, changes)
                if changes
                else get_preferences(session, user)
            )
    except (ValueError, LookupError, RuntimeError) as e:
        _fail(str(e))
    typer.echo(json.dumps(prefs, indent=2, sort_keys=True))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
