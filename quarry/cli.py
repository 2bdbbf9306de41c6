# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Command-line interface for Quarry."""

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from quarry import __version__
from quarry.analysis.profiler import generate_quality_report, profile_data
from quarry.analysis.schema_detector import detect_schema, suggest_column_descriptions
from quarry.catalog.file.parser import ParseOptions, parse_file
from quarry.core.config import Config, ConnectionConfig, SourceDefinition
from quarry.core.errors import QuarryError
from quarry.core.models import (
    DataSource,
    DataType,
    FetchOptions,
    FilterCondition,
    OrderByClause,
    SourceType,
)
from quarry.engine import DataEngine
from quarry.sql.builder import QueryBuilderConfig, build_sql_query, validate_query_config
from quarry.sql.optimizer import OptimizationContext, QueryOptimizer, suggest_optimizations

console = Console()

# Failures reported as a one-line error instead of a traceback
_CLI_ERRORS = (QuarryError, OSError, KeyError, ValueError, yaml.YAMLError)


def _fail(error: Exception) -> None:
    message = error.args[0] if isinstance(error, KeyError) and error.args else error
    console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def _configure_debug_logging() -> None:
    # Write debug logs to file (keeps terminal output clean)
    log_file = Path(".quarry/debug.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    logging.getLogger("quarry").addHandler(file_handler)
    logging.getLogger("quarry").setLevel(logging.DEBUG)


def _parse_local(path: str, limit: Optional[int] = None, detect: bool = True):
    buffer = Path(path).read_bytes()
    return parse_file(buffer, Path(path).name, ParseOptions(limit=limit, detect_schema=detect))


def _rows_table(columns: list[str], rows: list[dict[str, Any]], title: Optional[str] = None) -> Table:
    table = Table(title=title, show_header=True)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*["" if row.get(c) is None else str(row.get(c)) for c in columns])
    return table


def _type_name(data_type: Any) -> str:
    return DataType(data_type).value


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def _parse_filter(text: str) -> FilterCondition:
    """COLUMN:OPERATOR[:VALUE]; VALUE is read as YAML so [1, 2] is a list."""
    parts = text.split(":", 2)
    if len(parts) < 2:
        raise click.BadParameter(f"Expected COLUMN:OPERATOR[:VALUE], got '{text}'")
    value = yaml.safe_load(parts[2]) if len(parts) == 3 else None
    return FilterCondition(column=parts[0], operator=parts[1], value=value)


def _parse_order(text: str) -> OrderByClause:
    column, _, direction = text.partition(":")
    return OrderByClause(column=column, direction=(direction or "ASC").upper())


def _load_source(config: str, source: str) -> tuple[Config, SourceDefinition]:
    cfg = Config.from_yaml(config)
    return cfg, cfg.get_source(source)


def _probe_config(definition: SourceDefinition) -> ConnectionConfig:
    if definition.type == SourceType.DATABASE:
        return definition.database.connection
    if definition.type == SourceType.API:
        api = definition.api
        return ConnectionConfig(
            api_url=api.url,
            username=api.auth_username,
            password=api.auth_password,
            options=dict(api.headers),
        )
    return ConnectionConfig()


@click.group()
@click.version_option(version=__version__, prog_name="quarry")
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging to .quarry/debug.log.",
)
def cli(debug: bool):
    """Quarry - unified data access and analysis engine.

    Parse, profile and query files, databases and HTTP APIs.

    \b
    Quick start:
        quarry parse sales.csv
        quarry profile sales.csv
        quarry fetch -c quarry.yaml -s sales --limit 10
    """
    if debug:
        _configure_debug_logging()


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--limit", "-n", type=int, default=None, help="Rows to return.")
@click.option("--no-detect", is_flag=True, help="Type every column as string.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables.")
def parse(file: str, limit: Optional[int], no_detect: bool, as_json: bool):
    """Parse a CSV, Excel or JSON file and show its columns.

    \b
    Examples:
        quarry parse data.csv
        quarry parse data.xlsx --limit 5 --json
    """
    try:
        parsed = _parse_local(file, limit, detect=not no_detect)
    except _CLI_ERRORS as e:
        _fail(e)

    if as_json:
        _print_json({
            "row_count": parsed.row_count,
            "column_count": parsed.column_count,
            "columns": [c.to_dict() for c in parsed.columns],
            "rows": parsed.rows,
        })
        return

    table = Table(title=f"{Path(file).name}: {parsed.row_count} rows", show_header=True)
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Nullable")
    table.add_column("Samples", style="dim")
    for column in parsed.columns:
        table.add_row(
            column.column_name,
            _type_name(column.data_type),
            "yes" if column.is_nullable else "no",
            ", ".join(str(v) for v in column.sample_values),
        )
    console.print(table)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables.")
def profile(file: str, as_json: bool):
    """Profile data quality for a file.

    \b
    Examples:
        quarry profile data.csv
    """
    try:
        parsed = _parse_local(file)
        data_profile = profile_data(parsed.rows, parsed.columns)
    except _CLI_ERRORS as e:
        _fail(e)
    report = generate_quality_report(data_profile)

    if as_json:
        _print_json({"profile": asdict(data_profile), "report": asdict(report)})
        return

    table = Table(title=f"Profile: {data_profile.row_count} rows", show_header=True)
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Null %", justify="right")
    table.add_column("Unique %", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Issues")
    for col in data_profile.column_profiles:
        table.add_row(
            col.column_name,
            _type_name(col.data_type),
            f"{col.null_percentage:.1f}",
            f"{col.unique_percentage:.1f}",
            f"{col.quality_score:.0f}",
            ", ".join(f"{i.type} ({i.severity})" for i in col.issues),
        )
    console.print(table)
    console.print(f"\n{report.summary}")
    for item in report.recommendations:
        console.print(f"  - {item}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def schema(file: str):
    """Detect primary keys and relationships in a file.

    \b
    Examples:
        quarry schema orders.csv
    """
    try:
        parsed = _parse_local(file)
        detected = detect_schema(parsed)
    except _CLI_ERRORS as e:
        _fail(e)

    descriptions = suggest_column_descriptions(detected.columns, parsed.rows)
    table = Table(title="Columns", show_header=True)
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Key")
    table.add_column("Description", style="dim")
    for column in detected.columns:
        table.add_row(
            column.column_name,
            _type_name(column.data_type),
            "PK" if column.is_primary_key else "",
            descriptions.get(column.column_name, ""),
        )
    console.print(table)

    if detected.relationships_skipped:
        console.print("[yellow]Relationship detection skipped (too many columns)[/yellow]")
    for rel in detected.relationships:
        console.print(f"  {rel.from_column} -> {rel.to_column} ({rel.type}, {rel.confidence:.0%})")

    quality = detected.data_quality
    console.print(
        f"\nCompleteness {quality.completeness:.0%}, uniqueness {quality.uniqueness:.0%}, "
        f"validity {quality.validity:.0%}, consistency {quality.consistency:.0%}"
    )


@cli.command()
@click.argument("query")
@click.option("--row-count", type=int, default=None, help="Known table row count.")
@click.option("--index", "indexes", multiple=True, help="Available index (repeatable).")
@click.option("--common-filter", "common_filters", multiple=True, help="Commonly filtered column.")
def optimize(query: str, row_count: Optional[int], indexes: tuple, common_filters: tuple):
    """Annotate a SQL query with estimates and advice.

    \b
    Examples:
        quarry optimize "select * from orders" --row-count 50000
    """
    context = OptimizationContext(
        available_indexes=list(indexes),
        table_row_count=row_count,
        common_filters=list(common_filters),
    )
    plan = QueryOptimizer().optimize(query, context)
    console.print(f"[bold]Query:[/bold] {plan.optimized_query}")
    console.print(f"Estimated rows: {plan.estimated_rows:,}  cost: {plan.estimated_cost}")
    if plan.indexes:
        console.print(f"Indexes: {', '.join(plan.indexes)}")
    for warning in plan.warnings:
        console.print(f"[yellow]WARN[/yellow] {warning}")
    for suggestion in suggest_optimizations(query):
        console.print(f"[dim]- {suggestion}[/dim]")


@cli.command("build-sql")
@click.argument("query_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--dialect", "-d",
    type=click.Choice(["postgresql", "mysql", "sqlserver"]),
    default="postgresql",
    help="Target SQL dialect.",
)
def build_sql(query_file: str, dialect: str):
    """Render a YAML query description as SQL.

    \b
    Examples:
        quarry build-sql report.yaml --dialect sqlserver
    """
    try:
        data = yaml.safe_load(Path(query_file).read_text()) or {}
        config = QueryBuilderConfig.from_dict(data)
    except _CLI_ERRORS as e:
        _fail(e)

    result = validate_query_config(config)
    if not result.valid:
        for error in result.errors:
            console.print(f"[red]Error:[/red] {error}")
        sys.exit(1)
    try:
        console.print(build_sql_query(config, dialect), soft_wrap=True)
    except _CLI_ERRORS as e:
        _fail(e)


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to config YAML file.")
@click.option("--source", "-s", required=True, help="Source name in the config.")
@click.option("--limit", "-n", type=int, default=None, help="Maximum rows.")
@click.option("--offset", type=int, default=None, help="Rows to skip.")
@click.option("--column", "columns", multiple=True, help="Column to return (repeatable).")
@click.option("--filter", "filters", multiple=True, help="COLUMN:OPERATOR[:VALUE] (repeatable).")
@click.option("--order-by", "order_by", multiple=True, help="COLUMN[:asc|desc] (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
def fetch(
    config: str,
    source: str,
    limit: Optional[int],
    offset: Optional[int],
    columns: tuple,
    filters: tuple,
    order_by: tuple,
    as_json: bool,
):
    """Fetch rows from a configured data source.

    \b
    Examples:
        quarry fetch -c quarry.yaml -s sales --limit 10
        quarry fetch -c quarry.yaml -s sales --filter region:equals:West --order-by amount:desc
    """
    try:
        cfg, definition = _load_source(config, source)
        options = FetchOptions(
            limit=limit,
            offset=offset,
            columns=list(columns),
            filters=[_parse_filter(f) for f in filters],
            order_by=[_parse_order(o) for o in order_by],
        )
        engine = DataEngine(cfg)
        try:
            result = engine.fetch_data(
                DataSource(id=source, name=source, type=definition.type, provider=definition.provider),
                definition.source_config(),
                options,
            )
        finally:
            engine.close()
    except _CLI_ERRORS as e:
        _fail(e)

    if as_json:
        _print_json(result.to_dict())
        return

    console.print(_rows_table(result.columns, result.rows, title=source))
    counts = f"{result.row_count} rows"
    if result.matched_count is not None:
        counts += f", {result.matched_count} matched"
    if result.total_count is not None:
        counts += f", {result.total_count} total"
    console.print(f"[dim]{counts}[/dim]")


@cli.command("test-connection")
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to config YAML file.")
@click.option("--source", "-s", required=True, help="Source name in the config.")
def test_connection(config: str, source: str):
    """Check that a configured data source is reachable.

    \b
    Examples:
        quarry test-connection -c quarry.yaml -s warehouse
    """
    try:
        cfg, definition = _load_source(config, source)
        engine = DataEngine(cfg)
        try:
            result = engine.test_database_connection(
                definition.type, definition.provider, _probe_config(definition)
            )
        finally:
            engine.close()
    except _CLI_ERRORS as e:
        _fail(e)

    latency = f" ({result.latency:.0f} ms)" if result.latency is not None else ""
    if result.success:
        console.print(f"[green]OK[/green] {result.message}{latency}")
    else:
        console.print(f"[red]FAIL[/red] {result.message}{latency}")
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to config YAML file.")
@click.option("--source", "-s", required=True, help="Database source name in the config.")
@click.option("--table", "table_name", default=None, help="Show the columns of one table.")
def tables(config: str, source: str, table_name: Optional[str]):
    """List tables of a database source, or one table's columns.

    \b
    Examples:
        quarry tables -c quarry.yaml -s warehouse
        quarry tables -c quarry.yaml -s warehouse --table orders
    """
    try:
        cfg, definition = _load_source(config, source)
        if definition.type != SourceType.DATABASE:
            raise ValueError(f"Source '{source}' is not a database")
        engine = DataEngine(cfg)
        try:
            if table_name:
                table_schema = engine.get_table_schema(
                    definition.provider, definition.database.connection, table_name
                )
            else:
                found = engine.list_database_tables(definition.provider, definition.database.connection)
        finally:
            engine.close()
    except _CLI_ERRORS as e:
        _fail(e)

    if table_name:
        table = Table(title=table_name, show_header=True)
        table.add_column("Column", style="cyan")
        table.add_column("Type")
        table.add_column("Nullable")
        table.add_column("Key")
        for col in table_schema.columns:
            table.add_row(col.name, col.type, "yes" if col.nullable else "no", "PK" if col.primary_key else "")
        console.print(table)
        return

    table = Table(title=f"{source}: {len(found)} tables", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Schema", style="dim")
    for item in found:
        table.add_row(item.name, item.type, item.schema or "")
    console.print(table)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
