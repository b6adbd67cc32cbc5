"""
Color Relay CLI.

Command-line entry for running the relay and checking a running instance.
"""

import asyncio
import time

import httpx
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="relay",
    help="Color Relay Gateway CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (default: HOST setting)"),
    port: int = typer.Option(None, help="Listening port (default: PORT setting)"),
):
    """Run the relay server until SIGINT/SIGTERM."""
    from relay_gateway.server import run_server

    exit_code = run_server(host=host, port=port)
    raise typer.Exit(exit_code)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Relay base URL"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show detailed stats"),
):
    """Check a running relay's health endpoint."""

    async def _health() -> int:
        path = "/health/detailed" if detailed else "/health"
        table = Table(title="Relay Health")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")

        async with httpx.AsyncClient(timeout=5.0) as client:
            try:
                start = time.time()
                response = await client.get(url.rstrip("/") + path)
                elapsed = (time.time() - start) * 1000
            except httpx.HTTPError as e:
                console.print(f"[red]✗ {type(e).__name__}: {e}[/red]")
                return 1

        if response.status_code != 200:
            console.print(f"[red]✗ Status {response.status_code}[/red]")
            return 1

        for key, value in response.json().items():
            table.add_row(key, str(value))
        table.add_row("response_time", f"{elapsed:.0f}ms")
        console.print(table)
        return 0

    exit_code = asyncio.run(_health())
    if exit_code:
        raise typer.Exit(exit_code)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    app()
