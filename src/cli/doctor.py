"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.api_client import StockApiClient
from cli.ui_components import print_banner
from core.config import AppSettings, get_user_env_file, write_user_env_vars
from core.domain.errors import RemoteError

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_api(settings: AppSettings) -> tuple[bool, str]:
    """Lists areas as a cheap authenticated round-trip."""

    try:
        async with StockApiClient.from_settings(settings) as api:
            areas = await api.list_areas()
    except RemoteError as exc:
        return False, exc.message
    return True, f"{len(areas)} areas"


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()
    print_banner(_console)

    table = Table(title="stockdocs doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("API base URL", "OK", settings.api_base_url)
    if settings.api_token:
        table.add_row("API token", "OK", "Bearer token configured")
    else:
        table.add_row("API token", "OPTIONAL", "No token set -> requests are sent unauthenticated")
    env_file = get_user_env_file()
    table.add_row("User config", "OK" if env_file.exists() else "MISSING", str(env_file))
    table.add_row("Log file", "OK", str(settings.log_file) if settings.log_file else "console only")

    # Connectivity
    ok_api, detail_api = asyncio.run(_check_api(settings))
    table.add_row("Inventory API", "OK" if ok_api else "FAIL", detail_api)

    _console.print(table)

    if not ok_api:
        _console.print(
            "\n[yellow]Note:[/yellow] run `stockdocs doctor setup-api` to store the server URL and token."
        )
        raise typer.Exit(code=1)


@app.command(name="setup-api")
def setup_api(
    base_url: str | None = typer.Option(None, "--base-url", help="Inventory server URL."),
    token: str | None = typer.Option(None, "--token", help="Bearer token (empty to skip)."),
) -> None:
    """Store the server URL and token in the user config .env."""

    settings = AppSettings()
    if base_url is None:
        base_url = typer.prompt("API base URL", default=settings.api_base_url, show_default=True)
    if token is None:
        token = typer.prompt("API token", default="", show_default=False, hide_input=True)

    base_url = base_url.strip()
    if not base_url.startswith(("http://", "https://")):
        raise typer.BadParameter("base URL must start with http:// or https://")

    env_path = write_user_env_vars(
        {
            "STOCKDOCS_API_BASE_URL": base_url,
            "STOCKDOCS_API_TOKEN": token.strip() or None,
        }
    )

    _console.print(f"[green]Saved API config to:[/green] {env_path}")
