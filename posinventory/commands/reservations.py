# posinventory/commands/reservations.py
import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..context import AppContext, run_with_context
from ..models.inventory import Reservation

app = typer.Typer(help="Hold stock for orders in checkout")
console = Console()


def print_reservation(reservation: Reservation, as_json: bool, title: str) -> None:
    if as_json:
        typer.echo(json.dumps(reservation.model_dump(mode="json"), indent=2))
        return

    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Reservation", reservation.id)
    table.add_row("Product", reservation.product_id)
    table.add_row("Quantity", str(reservation.quantity))
    table.add_row("Order", reservation.order_id)
    table.add_row("Status", reservation.status.value)
    table.add_row("Expires", reservation.expires_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    console.print(table)


@app.command("create")
def create_reservation(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="Product ID"),
    quantity: int = typer.Argument(..., min=1, help="Units to hold"),
    order_id: str = typer.Option(..., "--order", "-o", help="Order the units are held for"),
    minutes: Optional[int] = typer.Option(None, "--minutes", "-m", min=1, help="Minutes until the hold expires"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Reserve stock for an order."""
    async def reserve(app_ctx: AppContext) -> Reservation:
        return await app_ctx.reservations.reserve(product_id, quantity, order_id, expiration_minutes=minutes)

    print_reservation(run_with_context(ctx.obj, reserve), as_json, "Stock Reserved")


@app.command("confirm")
def confirm_reservation(
    ctx: typer.Context,
    reservation_id: str = typer.Argument(..., help="Reservation ID"),
    user_id: Optional[str] = typer.Option(None, "--user", help="User confirming the sale"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Confirm a reservation, turning it into a sale."""
    async def confirm(app_ctx: AppContext) -> Reservation:
        return await app_ctx.reservations.confirm(reservation_id, user_id=user_id)

    print_reservation(run_with_context(ctx.obj, confirm), as_json, "Reservation Confirmed")


@app.command("release")
def release_reservation(
    ctx: typer.Context,
    reservation_id: str = typer.Argument(..., help="Reservation ID"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Cancel a reservation and return its units to available stock."""
    async def release(app_ctx: AppContext) -> Reservation:
        return await app_ctx.reservations.release(reservation_id)

    print_reservation(run_with_context(ctx.obj, release), as_json, "Reservation Released")


@app.command("cleanup")
def cleanup_reservations(ctx: typer.Context):
    """Release every expired reservation."""
    async def cleanup(app_ctx: AppContext) -> List[str]:
        return await app_ctx.reservations.cleanup_expired()

    released = run_with_context(ctx.obj, cleanup)
    if released:
        console.print(f"[green]Released {len(released)} expired reservation(s)[/green]")
        for reservation_id in released:
            console.print(f"  {reservation_id}")
    else:
        console.print("No expired reservations")
