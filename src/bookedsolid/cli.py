"""Typer CLI for BookedSolid."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="bookedsolid", help="BookedSolid: billing reconciliation and admin audit service")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the BookedSolid API server."""
    import uvicorn
    from bookedsolid.app import create_app

    console.print(f"[bold green]Starting BookedSolid on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("create-admin")
def create_admin(
    email: str = typer.Argument(..., help="Admin email address"),
    name: str = typer.Option(..., prompt=True, help="Display name"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password",
    ),
    role: str = typer.Option("SUPER_ADMIN", help="Admin role"),
):
    """Create the first admin account directly in the database."""
    from bookedsolid.common.exceptions import BookedSolidError
    from bookedsolid.common.security import create_session_token
    from bookedsolid.deps import get_db, get_user_service
    from bookedsolid.users.passwords import check_admin_password

    async def _run():
        db = get_db()
        await db.init()
        await db.create_all()
        try:
            async with db.get_session() as session:
                return await get_user_service().create_admin(
                    session, email=email, name=name, password=password, role=role,
                )
        finally:
            await db.close()

    try:
        check_admin_password(password)
        user = asyncio.run(_run())
    except BookedSolidError as e:
        console.print(f"[bold red]{e.code}[/bold red]: {e.message}")
        raise typer.Exit(1)

    console.print(f"[bold green]Created[/bold green] {user.admin_role} {user.email} ({user.id})")
    console.print(f"  Session token: {create_session_token(user.id)}")


@app.command("check-prices")
def check_prices():
    """Show the Stripe price id configured for every plan and interval."""
    from bookedsolid.common.config import get_settings
    from bookedsolid.common.exceptions import BillingConfigError
    from bookedsolid.billing.plans import PlanCatalog

    catalog = PlanCatalog.from_settings(get_settings())
    table = Table(title="Stripe prices")
    table.add_column("Plan")
    table.add_column("Monthly")
    table.add_column("Annual")
    for plan in catalog.plans:
        table.add_row(plan.key, plan.monthly_price_id or "-", plan.annual_price_id or "-")
    console.print(table)

    try:
        catalog.validate_price_ids()
    except BillingConfigError as e:
        console.print(f"[bold red]INVALID[/bold red]: {e.message}")
        raise typer.Exit(1)
    console.print("[bold green]All price ids configured[/bold green]")


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check BookedSolid server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green]: v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
