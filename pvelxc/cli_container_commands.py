"""Container lifecycle CLI commands."""
from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from pvelxc.cli_support import fail, get_lifecycle, print_error, print_success
from pvelxc.config import ManifestError, ManifestLoader
from pvelxc.core.errors import LifecycleError
from pvelxc.models.container import CloneRequest, ContainerIdentity, ContainerSpec, Status


def _load_spec(console: Console, manifest: str) -> ContainerSpec:
    try:
        return ManifestLoader(manifest).to_spec()
    except ManifestError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(2) from exc


def _parse_status(console: Console, value: str) -> Status:
    status = Status.parse(value)
    if status is None:
        console.print(f"[red]Error:[/red] status must be 'stopped' or 'running', got {value!r}")
        raise typer.Exit(2)
    return status


def register_container_commands(root: typer.Typer, console: Console) -> None:
    """Attach container lifecycle commands to the main CLI."""

    def lifecycle(ctx: typer.Context):
        try:
            return get_lifecycle((ctx.obj or {}).get("gateway_config"))
        except (FileNotFoundError, ValueError) as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(2) from exc

    @root.command("create")
    def create_command(
        ctx: typer.Context,
        manifest: str = typer.Argument(..., help="Container manifest (YAML)."),
    ) -> None:
        """Create a container from a manifest and converge it."""
        spec = _load_spec(console, manifest)
        try:
            result = lifecycle(ctx).create_container(spec)
        except LifecycleError as exc:
            fail(console, exc)

        print_success(console, f"Container {result.identity} is {result.status.value}")
        for net in result.networks:
            if net.computed_address:
                console.print(f"  {net.name}: [cyan]{net.computed_address}[/cyan]")

    @root.command("template")
    def template_command(
        ctx: typer.Context,
        manifest: str = typer.Argument(..., help="Container manifest (YAML)."),
    ) -> None:
        """Create a container, run its commands and convert it to a template."""
        spec = _load_spec(console, manifest)
        try:
            identity = lifecycle(ctx).create_template(spec)
        except LifecycleError as exc:
            fail(console, exc)
        print_success(console, f"Template {identity} created")

    @root.command("clone")
    def clone_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        source: int = typer.Argument(..., help="VMID of the container or template to clone."),
        vmid: Optional[int] = typer.Option(None, "--vmid", help="VMID for the clone (default: next free)."),
        hostname: Optional[str] = typer.Option(None, "--hostname", help="Hostname of the clone."),
        description: Optional[str] = typer.Option(None, "--description", help="Description of the clone."),
        pool: Optional[str] = typer.Option(None, "--pool", help="Resource pool to add the clone to."),
        snapshot: Optional[str] = typer.Option(None, "--snapshot", help="Snapshot of the source to clone."),
        bwlimit: Optional[int] = typer.Option(None, "--bwlimit", help="I/O bandwidth limit in KiB/s."),
        status: str = typer.Option("stopped", "--status", "-s", help="Desired status: stopped or running."),
    ) -> None:
        """Linked-clone a container and converge the clone."""
        request = CloneRequest(
            node=node,
            source_vmid=source,
            vmid=vmid,
            hostname=hostname,
            description=description,
            pool=pool,
            snapshot=snapshot,
            bwlimit=bwlimit,
            status=_parse_status(console, status),
        )
        try:
            result = lifecycle(ctx).clone_container(request)
        except LifecycleError as exc:
            fail(console, exc)

        print_success(console, f"Clone {result.identity} is {result.status.value}")
        for iface in result.interfaces:
            console.print(f"  {iface.name}: [cyan]{iface.ipv4}[/cyan]")

    @root.command("status")
    def status_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        vmid: int = typer.Argument(..., help="Container VMID."),
    ) -> None:
        """Show a container's status and, when running, its addresses."""
        identity = ContainerIdentity(node, vmid)
        engine = lifecycle(ctx)
        try:
            result = engine.read_container(identity, Status.STOPPED)
            interfaces = engine.networks.observe(identity) if result.status == Status.RUNNING.value else []
        except LifecycleError as exc:
            fail(console, exc)

        table = Table(title=f"Container {identity}")
        table.add_column("Interface")
        table.add_column("IPv4")
        table.add_column("IPv6")
        for iface in interfaces:
            table.add_row(iface.name, iface.ipv4 or "-", iface.ipv6 or "-")

        colour = "green" if result.status == Status.RUNNING.value else "yellow"
        console.print(f"Status: [{colour}]{result.status}[/{colour}]")
        if interfaces:
            console.print(table)

    def _converge(ctx: typer.Context, node: str, vmid: int, desired: Status) -> None:
        identity = ContainerIdentity(node, vmid)
        try:
            lifecycle(ctx).update_status(identity, desired)
        except LifecycleError as exc:
            fail(console, exc)
        print_success(console, f"Container {identity} is {desired.value}")

    @root.command("start")
    def start_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        vmid: int = typer.Argument(..., help="Container VMID."),
    ) -> None:
        """Converge a container to running."""
        _converge(ctx, node, vmid, Status.RUNNING)

    @root.command("stop")
    def stop_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        vmid: int = typer.Argument(..., help="Container VMID."),
    ) -> None:
        """Converge a container to stopped."""
        _converge(ctx, node, vmid, Status.STOPPED)

    @root.command("delete")
    def delete_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        vmid: int = typer.Argument(..., help="Container VMID."),
    ) -> None:
        """Stop and delete a container, waiting until its VMID is free."""
        identity = ContainerIdentity(node, vmid)
        try:
            lifecycle(ctx).delete_container(identity)
        except LifecycleError as exc:
            fail(console, exc)
        print_success(console, f"Container {identity} deleted")

    @root.command("exec")
    def exec_command(
        ctx: typer.Context,
        node: str = typer.Argument(..., help="Proxmox node name."),
        vmid: int = typer.Argument(..., help="Container VMID."),
        command: List[str] = typer.Argument(..., help="Command to run inside the container.", metavar="COMMAND..."),
    ) -> None:
        """Run a command inside a running container."""
        if not command:
            print_error(console, "Provide a command to execute.")
            raise typer.Exit(2)

        identity = ContainerIdentity(node, vmid)
        try:
            lifecycle(ctx).run_commands(identity, [" ".join(command)])
        except LifecycleError as exc:
            fail(console, exc)
        print_success(console, f"Command finished in {identity}")
