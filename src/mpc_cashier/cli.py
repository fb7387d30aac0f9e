import asyncio
import typer
import logging
import sys
if sys.platform == "win32":
    # asyncpg не работает с ProactorEventLoop, который в Windows по умолчанию.
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
from mpc_cashier.config import get_settings
from mpc_cashier import create_cashier, resolve_model
from mpc_cashier.exceptions import CashierError
from mpc_cashier.logging import configure_logging
from mpc_cashier.utils.cli_utils import get_rich_console, mapping_table

from mpc_cashier.db.base import Base
from sqlalchemy.ext.asyncio import create_async_engine


app = typer.Typer(help="CLI for mpc-cashier management.")
merchant_key_app = typer.Typer(help="Manage the merchant QuickPayments key.")
app.add_typer(merchant_key_app, name="merchant-key")

logger = logging.getLogger(__name__)
console = get_rich_console()


@app.callback()
def main(log_level: str = typer.Option(None, "--log-level", help="JSON logs to stdout at this level.")):
    if log_level:
        configure_logging(log_level)


@app.command()
def init():
    """
    Creates the billing tables (payment_methods, subscriptions and the owner table).
    """
    console.rule("[bold cyan]Database Initialization[/bold cyan]")

    with console.status("Creating database tables...", spinner="dots"):
        async def _create_tables():
            try:
                settings = get_settings()
                # Модель владельца должна быть импортирована до create_all
                resolve_model(settings.model)
                engine = create_async_engine(settings.postgres.get_pg_dsn())

                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

                await engine.dispose()
            except Exception as e:
                console.print(f"[bold red]✖[/bold red] Database initialization FAILED: {e}")
                raise typer.Exit(code=1)
            console.print("[bold green]✔[/bold green] Database tables created successfully.")

        asyncio.run(_create_tables())


@app.command()
def check():
    """Checks connectivity to PostgreSQL and the payment gateway."""
    console.rule("[bold cyan]Connection Check[/bold cyan]")

    async def _check() -> bool:
        cashier = create_cashier()
        try:
            statuses = await cashier.check_connections()
        finally:
            await cashier.aclose()

        all_ok = True
        for service, label in (("postgres", "PostgreSQL"), ("gateway", "Gateway")):
            status = statuses.get(service, "unknown error")
            if status == "ok":
                console.print(f"[bold green]✔[/bold green] {label} connection: OK")
            else:
                all_ok = False
                console.print(f"[bold red]✖[/bold red] {label} connection: FAILED ({status})")
        return all_ok

    try:
        ok = asyncio.run(_check())
    except CashierError as e:
        console.print(f"[bold red]✖[/bold red] {e}")
        raise typer.Exit(code=1)
    if not ok:
        raise typer.Exit(code=1)


def _run_merchant_key(action: str, title: str):
    async def _call():
        cashier = create_cashier()
        try:
            return await getattr(cashier.quickpayments, action)()
        finally:
            await cashier.aclose()

    try:
        response = asyncio.run(_call())
    except CashierError as e:
        console.print(f"[bold red]✖[/bold red] {title} FAILED: {e}")
        raise typer.Exit(code=1)

    if isinstance(response, dict) and response:
        console.print(mapping_table(response, title=title))
    else:
        console.print(f"[bold green]✔[/bold green] {title}: done")


@merchant_key_app.command("show")
def merchant_key_show():
    """Shows the current QuickPayments key."""
    _run_merchant_key("get_merchant_key", "QuickPayments key")


@merchant_key_app.command("create")
def merchant_key_create():
    """Creates (rotates) the QuickPayments key."""
    _run_merchant_key("create_merchant_key", "New QuickPayments key")


@merchant_key_app.command("delete")
def merchant_key_delete():
    """Deletes the QuickPayments key."""
    _run_merchant_key("delete_merchant_key", "Delete QuickPayments key")
