# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Command-line interface for nlcube."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from nlcube.catalog.schema_catalog import SchemaCatalog
from nlcube.catalog.sql_qualifier import qualify
from nlcube.core.config import Config
from nlcube.core.errors import NlCubeError
from nlcube.query.orchestrator import NLQueryOrchestrator, QueryResult
from nlcube.storage.duckdb_pool import SubjectConnections
from nlcube.storage.ingest import FileIngestor
from nlcube.storage.subjects import SubjectDirectory

console = Console()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_CONFIG = Path("config.yaml")


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """Attach a single stderr handler to the nlcube logger."""
    logger = logging.getLogger("nlcube")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else level.upper())
    logger.propagate = False

    if debug:
        # Write debug logs to file as well
        log_file = Path('.nlcube/debug.log')
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
        console.print(f"[dim]Debug logs: {log_file}[/dim]")


class Workspace:
    """Subject directory, handles and catalog wired from one Config."""

    def __init__(self, config: Config):
        self.config = config
        self.directory = SubjectDirectory(config.data_dir, config.storage.database_extension)
        self.connections = SubjectConnections(self.directory, read_only=config.storage.read_only)
        self.catalog = SchemaCatalog(self.directory, self.connections, config.catalog)
        self._orchestrator: Optional[NLQueryOrchestrator] = None

    def orchestrator(self) -> NLQueryOrchestrator:
        if self._orchestrator is None:
            from nlcube.providers import create_generator
            generator = create_generator(self.config.llm)
            self._orchestrator = NLQueryOrchestrator(
                self.catalog, self.connections, generator, self.config.query
            )
        return self._orchestrator

    def close(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.close()
        self.connections.close_all()


def _load_config(path: Optional[str]) -> Config:
    if path:
        return Config.from_yaml(path)
    if DEFAULT_CONFIG.exists():
        return Config.from_yaml(DEFAULT_CONFIG)
    return Config()


def _workspace(ctx: click.Context) -> Workspace:
    obj = ctx.ensure_object(dict)
    if "workspace" not in obj:
        try:
            cfg = _load_config(obj.get("config_path"))
        except (OSError, ValueError) as e:
            console.print(f"[red]Config error:[/red] {escape(str(e))}")
            sys.exit(1)
        setup_logging(cfg.log_level, obj.get("debug", False))
        workspace = Workspace(cfg)
        ctx.call_on_close(workspace.close)
        obj["workspace"] = workspace
    return obj["workspace"]


def _fail(e: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
    sys.exit(1)


def _print_result(result: QueryResult, limit: int) -> None:
    console.print(f"[dim]SQL:[/dim] {escape(result.sql_used)}", highlight=False, soft_wrap=True)
    if result.fallback_used:
        console.print(f"[yellow]Fallback used.[/yellow] Original error: {escape(str(result.original_error))}",
                      highlight=False, soft_wrap=True)

    table = Table(show_header=True)
    for column in result.columns:
        table.add_column(str(column))
    for row in result.rows[:limit]:
        table.add_row(*["NULL" if v is None else str(v) for v in row])
    if result.columns:
        console.print(table)

    shown = min(limit, result.row_count)
    console.print(
        f"[dim]{result.row_count} rows ({shown} shown) in {result.execution_time_ms:.1f} ms[/dim]"
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="nlcube")
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True),
    help="Path to config YAML file (default: ./config.yaml if present).",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging (also written to .nlcube/debug.log).",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], debug: bool):
    """nlcube - natural-language queries over per-subject DuckDB databases.

    \b
    Quick start:
        nlcube init
        nlcube subjects create sales
        nlcube load sales orders.csv
        nlcube ask sales "How many orders were placed?"
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug


# =============================================================================
# Subjects
# =============================================================================

@cli.group()
def subjects():
    """Create, list and delete subjects."""
    pass


@subjects.command("list")
@click.pass_context
def subjects_list(ctx: click.Context):
    """List active subjects."""
    ws = _workspace(ctx)
    names = ws.directory.list_subjects()
    if not names:
        console.print("[dim]No subjects.[/dim]")
        return

    table = Table(title="Subjects", show_header=True)
    table.add_column("Subject", style="cyan")
    table.add_column("Files")
    for name in names:
        table.add_row(name, str(ws.directory.file_count(name)))
    console.print(table)


@subjects.command("create")
@click.argument("name")
@click.pass_context
def subjects_create(ctx: click.Context, name: str):
    """Create a subject with an empty database."""
    ws = _workspace(ctx)
    try:
        info = ws.directory.create(name)
        ws.catalog.refresh_subject(name)
    except NlCubeError as e:
        _fail(e)
    console.print(f"[green]Created:[/green] {name} ({escape(str(info.database_path))})", highlight=False)


@subjects.command("delete")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def subjects_delete(ctx: click.Context, name: str, yes: bool):
    """Delete a subject and all of its files."""
    ws = _workspace(ctx)
    if not yes and not click.confirm(f"Delete subject {name} and all its data?"):
        console.print("[dim]Aborted.[/dim]")
        return
    try:
        ws.directory.delete(name, connections=ws.connections)
    except NlCubeError as e:
        _fail(e)
    ws.catalog.forget(name)
    console.print(f"[green]Deleted:[/green] {name}")


# =============================================================================
# Data and schema
# =============================================================================

@cli.command()
@click.argument("subject")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--table", "-t", "table_name", help="Target table name (default: file name).")
@click.pass_context
def load(ctx: click.Context, subject: str, file: str, table_name: Optional[str]):
    """Load a CSV or Parquet FILE as a table of SUBJECT."""
    ws = _workspace(ctx)
    ingestor = FileIngestor(ws.directory, ws.connections)
    try:
        rows = ingestor.load_file_as_table(file, table_name, subject)
        ws.catalog.refresh_subject(subject)
    except NlCubeError as e:
        _fail(e)
    console.print(f"[green]Loaded[/green] {rows} rows into {subject}", highlight=False)


@cli.command()
@click.argument("subject")
@click.pass_context
def tables(ctx: click.Context, subject: str):
    """List the tables of SUBJECT."""
    ws = _workspace(ctx)
    try:
        ws.catalog.refresh_subject(subject)
    except NlCubeError as e:
        _fail(e)

    names = ws.catalog.tables_of(subject)
    if not names:
        console.print("[dim]No tables.[/dim]")
        return

    table = Table(title=f"Tables in {subject}", show_header=True)
    table.add_column("Table", style="cyan")
    table.add_column("Columns")
    for name in names:
        columns = ws.catalog.columns_of(subject, name) or []
        table.add_row(name, ", ".join(c.name for c in columns))
    console.print(table)


@cli.command()
@click.argument("subject")
@click.pass_context
def schema(ctx: click.Context, subject: str):
    """Show the schema document used for SQL generation."""
    ws = _workspace(ctx)
    try:
        ws.catalog.refresh_subject(subject)
        document = ws.catalog.to_context_document(subject)
    except NlCubeError as e:
        _fail(e)
    console.print(document, markup=False, highlight=False, soft_wrap=True)


@cli.command()
@click.argument("subject", required=False)
@click.pass_context
def ddl(ctx: click.Context, subject: Optional[str]):
    """Show CREATE TABLE statements for SUBJECT (or every subject)."""
    ws = _workspace(ctx)
    try:
        if subject:
            ws.catalog.refresh_subject(subject)
        else:
            ws.catalog.refresh()
        statements = ws.catalog.to_ddl(subject)
    except NlCubeError as e:
        _fail(e)
    if not statements:
        console.print("[dim]No tables.[/dim]")
        return
    console.print(statements, markup=False, highlight=False, soft_wrap=True)


# =============================================================================
# Queries
# =============================================================================

@cli.command("qualify")
@click.argument("subject")
@click.argument("sql")
@click.pass_context
def qualify_cmd(ctx: click.Context, subject: str, sql: str):
    """Print SQL rewritten against SUBJECT's tables without running it."""
    ws = _workspace(ctx)
    try:
        ws.catalog.refresh_subject(subject)
    except NlCubeError as e:
        _fail(e)
    console.print(qualify(sql, subject, ws.catalog.snapshot()), markup=False, highlight=False, soft_wrap=True)


@cli.command()
@click.argument("subject")
@click.argument("sql_text", metavar="SQL")
@click.option("--limit", "-n", default=50, help="Maximum rows to display.")
@click.pass_context
def sql(ctx: click.Context, subject: str, sql_text: str, limit: int):
    """Run SQL directly against SUBJECT (no fallback)."""
    ws = _workspace(ctx)
    orchestrator = NLQueryOrchestrator(ws.catalog, ws.connections, generator=None, config=ws.config.query)
    try:
        result = orchestrator.run_sql(sql_text, subject)
    except NlCubeError as e:
        _fail(e)
    finally:
        orchestrator.close()
    _print_result(result, limit)


@cli.command()
@click.argument("subject")
@click.argument("question")
@click.option("--limit", "-n", default=50, help="Maximum rows to display.")
@click.pass_context
def ask(ctx: click.Context, subject: str, question: str, limit: int):
    """Answer a natural-language QUESTION about SUBJECT."""
    ws = _workspace(ctx)
    try:
        with console.status("[bold]Generating SQL...", spinner="dots"):
            result = ws.orchestrator().run_nl_query(question, subject)
    except (NlCubeError, ImportError, ValueError) as e:
        _fail(e)
    _print_result(result, limit)


@cli.command()
def init():
    """Create a sample config file.

    Generates config.yaml in the current directory with example settings.
    """
    sample_config = '''# nlcube configuration

# Where subject databases live: <data_dir>/<subject>/<subject>.duckdb
storage:
  data_dir: data
  read_only: false

# SQL generation backend: ollama | openai | remote | anthropic
llm:
  provider: ollama
  model: sqlcoder
  base_url: http://localhost:11434
  temperature: 0.1
  max_tokens: 2000
  # provider: openai
  # model: gpt-4o
  # api_key: sk-... (defaults to the OPENAI_API_KEY environment variable)

catalog:
  sample_rows: 3
  # Tried when metadata queries return nothing
  probe_table_names: [orders, customers, products, sales]
  # Optional stand-in columns for tables whose columns cannot be discovered
  # fallback_schemas:
  #   orders:
  #     - {name: order_id, type: INTEGER, nullable: false}
  #     - {name: total_amount, type: DOUBLE}

query:
  fallback_enabled: true
  fallback_tables: [orders, customers, products, sales]

log_level: INFO
'''

    config_path = DEFAULT_CONFIG

    if config_path.exists():
        if not click.confirm("config.yaml already exists. Overwrite?"):
            console.print("[dim]Aborted.[/dim]")
            return

    config_path.write_text(sample_config)
    console.print(f"[green]Created:[/green] {config_path}")
    console.print("\n[dim]Edit the file to configure your data directory and model.[/dim]")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
