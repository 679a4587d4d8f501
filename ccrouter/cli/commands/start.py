"""Start command for the ccr CLI."""

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from ccrouter.core.config import Config, ConfigService, config
from ccrouter.core.logging import configure_root_logging


def build_config_table(settings: Config, host: str, port: int) -> Table:
    router = ConfigService.from_file(settings.config_file).router

    table = Table(title="Claude Code Router Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Host", host)
    table.add_row("Port", str(port))
    table.add_row("Config File", settings.config_file)
    table.add_row("Default Model", str(router.get("default") or "-"))
    table.add_row("Long Context Model", str(router.get("longContext") or "-"))
    table.add_row("API Timeout", f"{settings.api_timeout:g}s")
    table.add_row("Token Stats", "Enabled" if settings.token_stats_enabled else "Disabled")
    return table


def start(
    host: str = typer.Option(None, "--host", help="Override host"),
    port: int = typer.Option(None, "--port", help="Override port"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
) -> None:
    """Start the gateway server."""
    console = Console()

    server_host = host or config.host
    server_port = port or config.port

    console.print(build_config_table(config, server_host, server_port))
    _start_server(server_host, server_port, reload)


def _start_server(host: str, port: int, reload: bool) -> None:
    """Start the uvicorn server."""
    log_level = configure_root_logging().lower()
    uvicorn.run(
        "ccrouter.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
