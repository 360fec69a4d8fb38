# posinventory/commands/payments.py
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..errors import POSInventoryError
from ..payments.callbacks import PaymentCallbackVerifier, PaymentProvider

app = typer.Typer(help="Payment gateway callback tools")
console = Console()


@app.command("verify")
def verify_callback(
    ctx: typer.Context,
    provider: PaymentProvider = typer.Argument(..., help="Gateway that sent the callback"),
    payload_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file holding the callback parameters"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """
    Check the signature of a saved gateway callback.

    Merchant secrets come from the ``payments`` configuration section
    (for example POSINV_PAYMENTS__VNPAY_SECRET).
    """
    try:
        params = json.loads(payload_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise POSInventoryError(f"{payload_file} is not valid JSON: {e}")

    callback = PaymentCallbackVerifier(ctx.obj.payments).verify(provider.value, params)

    if as_json:
        typer.echo(json.dumps(callback.model_dump(mode="json", exclude={"raw"}), indent=2))
        return

    table = Table(title=f"{provider.value} callback verified")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Order", callback.order_id)
    table.add_row("Transaction", callback.transaction_id or "-")
    table.add_row("Amount", f"{callback.amount:,} VND")
    table.add_row("Result", "[green]paid[/green]" if callback.success else "[red]failed[/red]")
    console.print(table)
