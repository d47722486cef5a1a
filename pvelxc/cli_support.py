"""Shared utilities for pvelxc CLI modules."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from pvelxc.core.config import GatewaySettings
from pvelxc.core.errors import LifecycleError
from pvelxc.services.proxmox.containers import ContainerLifecycle
from pvelxc.services.proxmox.manager import ProxmoxManager, mock_enabled


def is_mock() -> bool:
    """Return True when CLI runs in mock mode (PVELXC_MOCK=1)."""
    return mock_enabled()


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from pvelxc.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def get_lifecycle(gateway_config: Optional[str] = None) -> ContainerLifecycle:
    """Return a ContainerLifecycle for the configured (or mock) cluster."""
    if is_mock():
        return ProxmoxManager(mock=True).lifecycle()
    settings = GatewaySettings.from_file(gateway_config) if gateway_config else GatewaySettings.from_env()
    return ProxmoxManager(settings=settings).lifecycle()


def fail(console: Console, error: LifecycleError) -> None:
    """Report a lifecycle error and exit with status 1."""
    print_error(console, escape(str(error)))
    if error.present:
        print_warning(console, f"Container {error.identity} still exists and may need manual cleanup")
    raise typer.Exit(1)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting.

    Args:
        console: Rich console for output
        message: Success message
        prefix: Prefix symbol (default: ✓)
    """
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")
