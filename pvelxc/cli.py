#!/usr/bin/env python3
"""pvelxc CLI - Converge Proxmox LXC containers to a desired state."""
from typing import Optional

import typer
from rich.console import Console

from pvelxc.cli_container_commands import register_container_commands
from pvelxc.cli_support import setup_file_logging
from pvelxc.core.logger import get_logger

app = typer.Typer(
    name="pvelxc",
    help="""pvelxc - Proxmox LXC container lifecycle

Create, start, stop, clone and delete containers, waiting until the
cluster confirms every change.

Quick start:
  pvelxc create container.yml   # Create and converge a container
  pvelxc status pve 105         # Show status and addresses
  pvelxc delete pve 105         # Stop, delete, wait for the VMID

Set PVELXC_MOCK=1 to run against an in-memory cluster.
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    gateway_config: Optional[str] = typer.Option(
        None, "--gateway-config", "-g", help="YAML file with Proxmox API settings (default: PROXMOX_* env)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Write debug logs to the log file."),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Log file path (default: /var/log/pvelxc/pvelxc.log)."),
) -> None:
    ctx.obj = {"gateway_config": gateway_config}
    if verbose or log_file:
        setup_file_logging(log_file=log_file, verbose=verbose)


register_container_commands(app, console)

if __name__ == "__main__":
    app()
