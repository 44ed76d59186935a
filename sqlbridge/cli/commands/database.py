"""Database CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import click
from rich.table import Table

from sqlbridge.cli.utils import console, frame_table, print_exception, run_async
from sqlbridge.config import get_config
from sqlbridge.db import Connection, get_connection_manager
from sqlbridge.db.connection import ConnectionManager
from sqlbridge.db.engine import ResultSet
from sqlbridge.exceptions import ConfigurationError, SQLBridgeError


def _manager(ctx: click.Context) -> ConnectionManager:
    config = get_config(ctx.obj.get('config'))
    return get_connection_manager(config)


def _run_with_connection(
    ctx: click.Context,
    connection_name: Optional[str],
    action: Callable[[Connection], Awaitable[Any]],
) -> Any:
    """Open the named connection, run ``action`` on it and close everything."""
    async def runner() -> Any:
        manager = _manager(ctx)
        try:
            connection = await manager.open_connection(connection_name or ctx.obj.get('connection'))
            return await action(connection)
        finally:
            await manager.close_all_connections()

    try:
        return run_async(runner())
    except ConfigurationError as exc:
        print_exception("Configuration Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc
    except SQLBridgeError as exc:
        print_exception("Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connections, queries and scripts."""
    pass


@db_group.command(name="test")
@click.option("--connection", "-c", "connection_name", help="Specific connection to test (default: all)")
@click.pass_context
def test_connection_command(ctx: click.Context, connection_name: Optional[str]) -> None:
    """Test database connections."""
    async def runner() -> Dict[str, Dict[str, Any]]:
        manager = _manager(ctx)
        try:
            if connection_name:
                return {connection_name: await manager.test_connection(connection_name)}
            return await manager.test_all_connections()
        finally:
            await manager.close_all_connections()

    try:
        results = run_async(runner())
    except SQLBridgeError as exc:
        print_exception("Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    console.print("[bold blue]Testing Database Connections[/bold blue]\n")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Connection", style="cyan")
    table.add_column("Status", style="yellow")
    table.add_column("Time (ms)", style="green")
    table.add_column("Message")
    failed = False
    for name, result in results.items():
        ok = result['status'] == 'success'
        failed = failed or not ok
        table.add_row(
            name,
            "✅ success" if ok else "❌ failed",
            str(result['response_time']),
            result['message'],
        )
    console.print(table)
    if failed:
        raise SystemExit(1)


@db_group.command(name="status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show configured connections."""
    try:
        manager = _manager(ctx)
    except SQLBridgeError as exc:
        print_exception("Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    status_info = manager.get_connection_status()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Connection", style="cyan")
    table.add_column("Driver", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Default", style="blue")

    for name, info in status_info['connections'].items():
        status_icon = "🟢 Open" if info['open'] else "⚪ Closed"
        is_default = "✓" if name == status_info['default_connection'] else ""
        table.add_row(name, info['driver'], status_icon, is_default)

    console.print("[bold blue]Database Connection Status[/bold blue]\n")
    console.print(table)
    console.print(
        f"\nTotal: {status_info['total_open']} open / {status_info['total_configured']} configured"
    )


@db_group.command(name="query")
@click.argument("sql")
@click.option("--connection", "-c", "connection_name", help="Connection to query (default: default connection)")
@click.option("--packet-size", type=int, default=0, show_default=True, help="Rows per streamed packet (0 = all)")
@click.pass_context
def query_command(ctx: click.Context, sql: str, connection_name: Optional[str], packet_size: int) -> None:
    """Run a query and print every result set."""
    async def action(connection: Connection) -> Dict[int, ResultSet]:
        sets: Dict[int, ResultSet] = {}
        async for packet in connection.query_packets(sql, raw=True, packet_size=packet_size):
            result_set = sets.setdefault(packet['set'], ResultSet(columns=packet['meta']))
            result_set.rows.extend(packet['rows'])
        return sets

    sets = _run_with_connection(ctx, connection_name, action)
    if not sets:
        console.print("[yellow]No rows returned[/yellow]")
        return
    for index, result_set in sorted(sets.items()):
        frame = result_set.to_dataframe()
        console.print(frame_table(frame, title=f"Result set {index + 1}"))
        console.print(f"[dim]{len(frame)} row(s)[/dim]\n")


@db_group.command(name="describe")
@click.argument("table_name")
@click.option("--connection", "-c", "connection_name", help="Connection to inspect (default: default connection)")
@click.pass_context
def describe_command(ctx: click.Context, table_name: str, connection_name: Optional[str]) -> None:
    """Describe the columns of a table or view."""
    async def action(connection: Connection):
        return await connection.table_descriptor(table_name)

    descriptor = _run_with_connection(ctx, connection_name, action)
    kind = "Table" if descriptor.kind == 'T' else "View"
    table = Table(show_header=True, header_style="bold magenta", title=f"{kind} {descriptor.name}")
    table.add_column("Column", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Length")
    table.add_column("Precision")
    table.add_column("Scale")
    table.add_column("Nullable")
    table.add_column("PK", style="yellow")
    for column in descriptor.columns:
        table.add_row(
            column.name,
            column.type,
            "" if column.max_length is None else str(column.max_length),
            "" if column.precision is None else str(column.precision),
            "" if column.scale is None else str(column.scale),
            "✓" if column.is_nullable else "",
            "✓" if column.is_primary_key else "",
        )
    console.print(table)


@db_group.command(name="run")
@click.argument("script_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--connection", "-c", "connection_name", help="Connection to run on (default: default connection)")
@click.pass_context
def run_command(ctx: click.Context, script_file: str, connection_name: Optional[str]) -> None:
    """Run a SQL script whose blocks are separated by GO lines."""
    script = Path(script_file).read_text(encoding='utf-8')

    async def action(connection: Connection) -> None:
        await connection.run(script)

    _run_with_connection(ctx, connection_name, action)
    console.print(f"[green]✅ Script '{script_file}' executed[/green]")


@db_group.command(name="check-login")
@click.argument("login")
@click.option("--password", prompt=True, hide_input=True, help="Password to check")
@click.option("--connection", "-c", "connection_name", help="Connection to check against (default: default connection)")
@click.pass_context
def check_login_command(ctx: click.Context, login: str, password: str, connection_name: Optional[str]) -> None:
    """Check whether a login and password can connect."""
    async def runner() -> bool:
        manager = _manager(ctx)
        connection = manager.get_connection(connection_name or ctx.obj.get('connection'))
        return await connection.check_login(login, password)

    try:
        valid = run_async(runner())
    except SQLBridgeError as exc:
        print_exception("Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    if valid:
        console.print(f"[green]✅ Login '{login}' is valid[/green]")
    else:
        console.print(f"[red]❌ Login '{login}' was refused[/red]")
        raise SystemExit(1)
