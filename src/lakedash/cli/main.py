"""CLI for lakedash.

handy for poking at a datasource without a dashboard in front of it: check
it connects, see what a template expands to, run it, browse the catalog.
"""

import csv
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from lakedash.compiler.formatting import pretty_sql
from lakedash.compiler.macros import expand_macros
from lakedash.config.loader import DatasourceRegistry, load_datasources
from lakedash.datasource import Datasource
from lakedash.models.query import DataQuery, FillMode, Frame, HealthStatus, QueryContext

app = typer.Typer(
    name="lakedash",
    help="lakedash - dashboard SQL against Databricks",
    no_args_is_help=True,
)
console = Console()

ConfigOption = Annotated[
    Path, typer.Option("--config", "-c", help="Datasource config file")
]
DEFAULT_CONFIG = Path("./lakedash.yaml")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """lakedash - dashboard SQL against Databricks."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    # the callback runs once per invocation, don't stack handlers
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def get_datasource(config: Path, name: str) -> Datasource:
    registry = DatasourceRegistry.from_file(config, validate=False)
    return registry.get(name)


@app.command("datasources")
def list_datasources(config: ConfigOption = DEFAULT_CONFIG) -> None:
    """List configured datasources."""
    try:
        settings = load_datasources(config)
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise typer.Exit(1)

    if not settings:
        console.print("[yellow]No datasources defined[/yellow]")
        return

    table = Table(title="Datasources")
    table.add_column("Name", style="cyan")
    table.add_column("Engine", style="green")
    table.add_column("Host")
    table.add_column("Auth", style="yellow")

    for s in settings:
        table.add_row(
            s.name,
            s.engine,
            s.hostname or s.database or "-",
            s.authentication_method.value if s.engine == "databricks" else "-",
        )

    console.print(table)


@app.command()
def health(
    name: Annotated[str, typer.Argument(help="Datasource name")],
    config: ConfigOption = DEFAULT_CONFIG,
    token: Annotated[
        str | None, typer.Option("--token", help="Caller token for pass-through auth")
    ] = None,
) -> None:
    """Check a datasource with SELECT 1."""
    try:
        datasource = get_datasource(config, name)
    except Exception as e:
        console.print(f"[red]Error loading datasource: {e}[/red]")
        raise typer.Exit(1)

    with datasource:
        result = datasource.check_health(_headers(token))

    if result.status == HealthStatus.OK:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(1)


@app.command()
def query(
    name: Annotated[str, typer.Argument(help="Datasource name")],
    sql: Annotated[str, typer.Argument(help="SQL template, macros allowed")],
    config: ConfigOption = DEFAULT_CONFIG,
    time_from: Annotated[
        str | None, typer.Option("--from", help="Range start (ISO 8601, default: 6h ago)")
    ] = None,
    time_to: Annotated[
        str | None, typer.Option("--to", help="Range end (ISO 8601, default: now)")
    ] = None,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Interval in seconds")] = 60.0,
    wide: Annotated[bool, typer.Option("--wide", "-w", help="Pivot long to wide")] = False,
    fill: Annotated[
        str, typer.Option("--fill", help="Wide fill mode: null, previous, value")
    ] = "null",
    fill_value: Annotated[float, typer.Option("--fill-value", help="Value for --fill value")] = 0.0,
    show_sql: Annotated[bool, typer.Option("--sql", "-s", help="Show expanded SQL")] = False,
    output: Annotated[
        str, typer.Option("--output", "-o", help="Output format: table, json, csv")
    ] = "table",
    token: Annotated[
        str | None, typer.Option("--token", help="Caller token for pass-through auth")
    ] = None,
) -> None:
    """Run a dashboard query against a datasource."""
    try:
        data_query = DataQuery(
            ref_id="A",
            raw_sql=sql,
            time_range=_time_range(time_from, time_to),
            interval=timedelta(seconds=interval),
            query_settings={
                "convert_long_to_wide": wide,
                "fill_mode": _fill_mode(fill),
                "fill_value": fill_value,
            },
        )
    except Exception as e:
        console.print(f"[red]Invalid query: {e}[/red]")
        raise typer.Exit(1)

    try:
        datasource = get_datasource(config, name)
    except Exception as e:
        console.print(f"[red]Error loading datasource: {e}[/red]")
        raise typer.Exit(1)

    with datasource:
        response = datasource.query_data([data_query], _headers(token))["A"]

    if response.error:
        console.print(f"[red]Query error: {response.error}[/red]")
        raise typer.Exit(1)

    frame = response.frames[0]
    if show_sql:
        console.print(Syntax(pretty_sql(frame.sql), "sql", theme="monokai", line_numbers=True))
        console.print()

    _output_frame(frame, output)


@app.command()
def render(
    sql: Annotated[str, typer.Argument(help="SQL template, macros allowed")],
    time_from: Annotated[
        str | None, typer.Option("--from", help="Range start (ISO 8601, default: 6h ago)")
    ] = None,
    time_to: Annotated[
        str | None, typer.Option("--to", help="Range end (ISO 8601, default: now)")
    ] = None,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Interval in seconds")] = 60.0,
    pretty: Annotated[bool, typer.Option("--pretty", "-p", help="Pretty-print with sqlglot")] = False,
) -> None:
    """Expand macros in a template without running it."""
    try:
        time_range = _time_range(time_from, time_to)
    except ValueError as e:
        console.print(f"[red]Invalid time range: {e}[/red]")
        raise typer.Exit(1)

    ctx = QueryContext(
        time_from=time_range["from"],
        time_to=time_range["to"],
        interval=timedelta(seconds=interval),
        raw_template=sql,
    )
    expanded = expand_macros(sql, ctx)

    if pretty:
        console.print(Syntax(pretty_sql(expanded), "sql", theme="monokai"))
    else:
        # plain print so the output can be piped
        typer.echo(expanded)


@app.command()
def browse(
    name: Annotated[str, typer.Argument(help="Datasource name")],
    path: Annotated[
        str, typer.Argument(help="catalogs, schemas, tables, columns or defaults")
    ] = "catalogs",
    config: ConfigOption = DEFAULT_CONFIG,
    catalog: Annotated[str | None, typer.Option("--catalog", help="Catalog name")] = None,
    schema: Annotated[str | None, typer.Option("--schema", help="Schema name")] = None,
    table: Annotated[str | None, typer.Option("--table", help="Table name")] = None,
) -> None:
    """Browse catalogs, schemas, tables and columns."""
    try:
        datasource = get_datasource(config, name)
    except Exception as e:
        console.print(f"[red]Error loading datasource: {e}[/red]")
        raise typer.Exit(1)

    body = {"catalog": catalog, "schema": schema, "table": table}
    with datasource:
        status, payload = datasource.call_resource(path, body)

    if status != 200:
        console.print(f"[red]{payload}[/red]")
        raise typer.Exit(1)

    typer.echo(json.dumps(payload, indent=2, default=str))


def _headers(token: str | None) -> dict[str, str] | None:
    return {"Authorization": token} if token else None


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _time_range(time_from: str | None, time_to: str | None) -> dict[str, datetime]:
    # same default as a fresh dashboard panel: the last 6 hours
    to = _parse_time(time_to) if time_to else datetime.now(timezone.utc)
    start = _parse_time(time_from) if time_from else to - timedelta(hours=6)
    return {"from": start, "to": to}


def _fill_mode(value: str) -> FillMode:
    try:
        return FillMode[value.upper()]
    except KeyError:
        raise ValueError(f"Unknown fill mode: {value}. Use: null, previous, value") from None


def _output_frame(frame: Frame, output_format: str) -> None:
    """Output a frame in the specified format."""
    if output_format == "json":
        typer.echo(json.dumps(frame.data, indent=2, default=str))
    elif output_format == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(frame.columns)
        for row in frame.data:
            writer.writerow([_cell(row.get(c)) for c in frame.columns])
        typer.echo(buffer.getvalue(), nl=False)
    else:
        table = Table(title=f"Query Results ({frame.row_count} rows, {frame.execution_time_ms}ms)")
        for col in frame.columns:
            table.add_column(col)

        for row in frame.data:
            table.add_row(*[_cell(row.get(c)) for c in frame.columns])

        console.print(table)


def _cell(value: object) -> str:
    return "" if value is None else str(value)


if __name__ == "__main__":
    app()
