"""ai-query CLI entrypoint."""

from __future__ import annotations

import click

from aiquery_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors, pass_cli_context
from aiquery_cli.shared.providers import PROVIDER_AUTO

from . import render
from .catalog import DEFAULT_SCHEMA, SQLiteCatalog
from .pipeline import QueryGenerator
from .transport import SDKTransport
from .types import ExplainRequest, QueryRequest

FORMAT_CHOICES = ("table", "json")


def _db_option(func):
    return click.option(
        "--db",
        "db_path",
        required=True,
        type=click.Path(dir_okay=False, path_type=str),
        help="SQLite database to read schema metadata from.",
    )(func)


def _provider_options(func):
    func = click.option(
        "--provider",
        default=PROVIDER_AUTO,
        show_default=True,
        help="Provider to use: openai, anthropic, gemini or auto.",
    )(func)
    return click.option("--api-key", default=None, help="API key for this request only.")(func)


@click.group(help="Generate and explain SQL with LLM providers.")
@common_cli_options
@handle_cli_errors
def cli(cli_ctx: CLIContext) -> None:
    """Primary Click group for ai-query commands."""
    cli_ctx.logger.debug("ai-query group initialised.")


@cli.command("generate")
@click.argument("text", type=str)
@_db_option
@_provider_options
@pass_cli_context
@handle_cli_errors
def generate(cli_ctx: CLIContext, text: str, db_path: str, api_key: str | None, provider: str) -> None:
    """Generate a SQL query from a natural-language request."""
    generator = _build_generator(cli_ctx, db_path)
    request = QueryRequest(natural_language=text, api_key=api_key, provider=provider)
    result = generator.generate_query(request, cli_ctx.overrides)
    if not result.success:
        raise click.ClickException(result.error_message)
    click.echo(render.format_response(result, cli_ctx.effective_config()))


@cli.command("explain")
@click.argument("query", type=str)
@_db_option
@_provider_options
@pass_cli_context
@handle_cli_errors
def explain(cli_ctx: CLIContext, query: str, db_path: str, api_key: str | None, provider: str) -> None:
    """Explain the execution plan of an existing query."""
    generator = _build_generator(cli_ctx, db_path)
    request = ExplainRequest(query_text=query, api_key=api_key, provider=provider)
    result = generator.explain_query(request, cli_ctx.overrides)
    if not result.success:
        raise click.ClickException(result.error_message)
    render.render_explain_result(result)


@cli.command("tables")
@_db_option
@click.option("--format", "output_format", default="table", show_default=True, type=click.Choice(FORMAT_CHOICES))
@pass_cli_context
@handle_cli_errors
def tables(cli_ctx: CLIContext, db_path: str, output_format: str) -> None:
    """List tables and views with estimated row counts."""
    schema = SQLiteCatalog(db_path).get_database_tables()
    render.render_tables(schema, output_format=output_format, logger=cli_ctx.logger)


@cli.command("table")
@click.argument("name", type=str)
@_db_option
@click.option("--schema", "schema_name", default=DEFAULT_SCHEMA, show_default=True, help="Schema containing the table.")
@click.option("--format", "output_format", default="table", show_default=True, type=click.Choice(FORMAT_CHOICES))
@pass_cli_context
@handle_cli_errors
def table(cli_ctx: CLIContext, name: str, db_path: str, schema_name: str, output_format: str) -> None:
    """Show columns, keys and indexes for one table."""
    details = SQLiteCatalog(db_path).get_table_details(name, schema_name)
    render.render_table_details(details, output_format=output_format)
    cli_ctx.logger.debug(f"Described {schema_name}.{name} ({len(details.columns)} columns).")


@cli.command("config")
@pass_cli_context
@handle_cli_errors
def show_config(cli_ctx: CLIContext) -> None:
    """Show the effective configuration with API keys masked."""
    render.render_config(cli_ctx.effective_config())


def _build_generator(cli_ctx: CLIContext, db_path: str) -> QueryGenerator:
    return QueryGenerator(
        cli_ctx.config_service,
        SQLiteCatalog(db_path),
        SDKTransport(cli_ctx.logger),
        cli_ctx.logger,
    )


def main() -> None:  # pragma: no cover - thin wrapper
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
