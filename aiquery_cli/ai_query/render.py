"""Output rendering helpers for ai-query."""

from __future__ import annotations

import json
import sys
import textwrap
from dataclasses import fields
from typing import IO, Any, Iterable

from rich import box
from rich.console import Console
from rich.table import Table

from aiquery_cli.shared.config import Configuration
from aiquery_cli.shared.logging import Logger

from .types import DatabaseSchema, ExplainResult, QueryResult, TableDetails

COMMENT = "--"
TEXT_WIDTH = 78
WARNING_WIDTH = 70
ROW_LIMIT_NOTE = "-- Note: Row limit was automatically applied to this query for safety"


def format_response(result: QueryResult, config: Configuration) -> str:
    """Render a successful QueryResult as JSON or as SQL followed by ``--`` comments."""
    if config.response.use_formatted_response:
        return format_json_response(result, config)
    return format_text_response(result, config)


def format_json_response(result: QueryResult, config: Configuration) -> str:
    settings = config.response
    payload: dict[str, Any] = {"query": result.generated_query, "success": result.success}
    if settings.show_explanation and result.explanation:
        payload["explanation"] = result.explanation
    if settings.show_warnings and result.warnings:
        payload["warnings"] = list(result.warnings)
    if settings.show_suggested_visualization and result.suggested_visualization:
        payload["suggested_visualization"] = result.suggested_visualization
    if result.row_limit_applied:
        payload["row_limit_applied"] = True
    return json.dumps(payload, indent=2)


def format_text_response(result: QueryResult, config: Configuration) -> str:
    settings = config.response
    blocks = [f"-- Query:\n{result.generated_query}"]
    if settings.show_explanation and result.explanation:
        blocks.append("\n".join(["-- Explanation:", *_wrap_paragraphs(result.explanation, TEXT_WIDTH)]))
    if settings.show_warnings and result.warnings:
        header = "-- Warning:" if len(result.warnings) == 1 else "-- Warnings:"
        blocks.append("\n".join([header, *_wrap_warnings(result.warnings)]))
    if settings.show_suggested_visualization and result.suggested_visualization:
        blocks.append(
            "\n".join(["-- Suggested Visualization:", *_wrap_paragraphs(result.suggested_visualization, TEXT_WIDTH)])
        )
    if result.row_limit_applied:
        blocks.append(ROW_LIMIT_NOTE)
    return "\n\n".join(blocks)


def _wrap_paragraphs(text: str, width: int) -> list[str]:
    prefix = f"{COMMENT}   "
    lines: list[str] = []
    paragraphs = [part.strip() for part in text.split("\n\n") if part.strip()]
    for index, paragraph in enumerate(paragraphs):
        if index:
            lines.append(COMMENT)
        lines.extend(_wrap(paragraph, width, prefix, prefix))
    return lines


def _wrap_warnings(warnings: Iterable[str]) -> list[str]:
    lines: list[str] = []
    for number, warning in enumerate(warnings, start=1):
        lines.extend(_wrap(warning, WARNING_WIDTH, f"{COMMENT}   {number}. ", f"{COMMENT}      "))
    return lines


def _wrap(text: str, width: int, initial: str, subsequent: str) -> list[str]:
    wrapped = textwrap.wrap(
        " ".join(text.split()),
        width=width,
        initial_indent=initial,
        subsequent_indent=subsequent,
        break_long_words=False,
        break_on_hyphens=False,
    )
    return wrapped or [initial.rstrip()]


def render_explain_result(result: ExplainResult, *, stream: IO[str] | None = None) -> None:
    """Print the plan followed by the model's analysis."""
    output_stream = stream or sys.stdout
    console = Console(file=output_stream, highlight=False, force_terminal=False)
    console.print("[bold]Query[/bold]")
    console.print(result.query, markup=False)
    console.print()
    console.print("[bold]Execution plan[/bold]")
    console.print(result.explain_output or "(empty)", markup=False)
    console.print()
    console.print("[bold]Analysis[/bold]")
    console.print(result.ai_explanation, markup=False)


def render_tables(
    schema: DatabaseSchema,
    *,
    output_format: str,
    logger: Logger,
    stream: IO[str] | None = None,
) -> None:
    """Render the table list as a Rich table or JSON."""
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        payload = [
            {
                "table_name": table.table_name,
                "schema_name": table.schema_name,
                "table_type": table.table_type,
                "estimated_rows": table.estimated_rows,
            }
            for table in schema.tables
        ]
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return

    if not schema.tables:
        logger.info("No tables found in the database.")
        return

    console = Console(file=output_stream, highlight=False, force_terminal=False)
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Schema")
    table.add_column("Table", style="bold")
    table.add_column("Type")
    table.add_column("Rows", justify="right")
    for info in schema.tables:
        table.add_row(info.schema_name, info.table_name, info.table_type, f"~{info.estimated_rows}")
    console.print(table)


def render_table_details(
    details: TableDetails,
    *,
    output_format: str,
    stream: IO[str] | None = None,
) -> None:
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        payload = {
            "table_name": details.table_name,
            "schema_name": details.schema_name,
            "columns": [
                {
                    "column_name": column.column_name,
                    "data_type": column.data_type,
                    "is_nullable": column.is_nullable,
                    "column_default": column.column_default,
                    "is_primary_key": column.is_primary_key,
                    "is_foreign_key": column.is_foreign_key,
                    "foreign_table": column.foreign_table,
                    "foreign_column": column.foreign_column,
                }
                for column in details.columns
            ],
            "indexes": list(details.indexes),
        }
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return

    console = Console(file=output_stream, highlight=False, force_terminal=False)
    console.print(f"[bold]{details.schema_name}.{details.table_name}[/bold]")
    column_table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    column_table.add_column("Column")
    column_table.add_column("Type")
    column_table.add_column("Nullable")
    column_table.add_column("Default")
    column_table.add_column("Key")
    for column in details.columns:
        key = "PK" if column.is_primary_key else ""
        if column.is_foreign_key:
            reference = f"FK -> {column.foreign_table}.{column.foreign_column}"
            key = f"{key} {reference}".strip()
        column_table.add_row(
            column.column_name,
            column.data_type,
            "yes" if column.is_nullable else "no",
            column.column_default,
            key,
        )
    console.print(column_table)
    if details.indexes:
        console.print("Indexes: " + ", ".join(details.indexes), markup=False)


def mask_secret(value: str) -> str:
    """Show only enough of an API key to recognise it."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def render_config(config: Configuration, *, stream: IO[str] | None = None) -> None:
    """Print the effective configuration with API keys masked."""
    output_stream = stream or sys.stdout
    console = Console(file=output_stream, highlight=False, force_terminal=False)
    console.print(f"Config file: {config.source_path or '(none)'}", markup=False)

    settings = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    settings.add_column("Section")
    settings.add_column("Key")
    settings.add_column("Value")
    for section_name, section in (
        ("general", config.general),
        ("query", config.query),
        ("response", config.response),
        ("prompts", config.prompts),
    ):
        for item in fields(section):
            value = getattr(section, item.name)
            if section_name == "prompts":
                value = "(custom)" if value else "(built-in)"
            settings.add_row(section_name, item.name, str(value))
    console.print(settings)

    providers = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    providers.add_column("Provider", style="bold", no_wrap=True)
    providers.add_column("API key", no_wrap=True)
    providers.add_column("Model")
    providers.add_column("Max tokens", justify="right")
    providers.add_column("Temperature", justify="right")
    providers.add_column("Endpoint")
    for entry in config.providers:
        providers.add_row(
            entry.provider.value,
            mask_secret(entry.api_key),
            entry.default_model,
            str(entry.default_max_tokens),
            str(entry.default_temperature),
            entry.api_endpoint or "(default)",
        )
    if config.providers:
        console.print(providers)
    else:
        console.print("No providers configured.")
