"""Prompt construction for query generation and plan explanation."""

from __future__ import annotations

import re
from typing import Protocol, Sequence

from aiquery_cli.shared.config import Configuration
from aiquery_cli.shared.exceptions import CatalogError, PromptBuildError
from aiquery_cli.shared.logging import Logger, get_logger

from .types import DatabaseSchema, PromptPair, QueryRequest, TableDetails, TableInfo

# Tables that get full column detail in the user prompt.
MAX_DETAILED_TABLES = 5

SYSTEM_PROMPT = """You are a senior SQL database analyst who writes correct, efficient queries.

Rules:
- Use only the tables and columns listed in the schema context; never invent names.
- Prefer read-only SELECT statements. Only produce INSERT, UPDATE, DELETE or DDL when the
  request explicitly asks for a data change, and say so in the warnings.
- Qualify ambiguous columns with table aliases and use explicit JOIN syntax.
- If the request cannot be answered from the schema, return an empty "sql" and explain why.

Respond with JSON only, no extra text, using exactly these keys:
{
  "sql": "the SQL statement",
  "explanation": "what the query does, in plain language",
  "warnings": ["performance or correctness caveats"],
  "row_limit_applied": false,
  "suggested_visualization": "table | bar | line | pie"
}"""

EXPLAIN_SYSTEM_PROMPT = """You are a SQL query performance expert. You receive a query and the
database's EXPLAIN ANALYZE (or EXPLAIN QUERY PLAN) output.

Explain in plain language:
1. What the plan does, step by step.
2. Where the time or I/O goes (scans, joins, sorts, temporary structures).
3. Concrete optimization recommendations: indexes, rewrites, statistics.

Be specific and reference the operators in the plan. Keep the answer concise."""


class SchemaCatalog(Protocol):
    """Read-only schema source consumed by the prompt builder."""

    def get_database_tables(self) -> DatabaseSchema: ...

    def get_table_details(self, table_name: str, schema_name: str = "main") -> TableDetails: ...


def get_system_prompt(config: Configuration) -> str:
    return config.prompts.system_prompt or SYSTEM_PROMPT


def get_explain_system_prompt(config: Configuration) -> str:
    return config.prompts.explain_system_prompt or EXPLAIN_SYSTEM_PROMPT


def format_schema_for_ai(schema: DatabaseSchema) -> str:
    """Render one line per table: ``schema.name (type, ~N rows)``."""
    if not schema.tables:
        return "No tables found in the database."
    lines = [f"Available tables ({len(schema.tables)}):"]
    for table in schema.tables:
        lines.append(
            f"- {table.schema_name}.{table.table_name} ({table.table_type.lower()}, ~{table.estimated_rows} rows)"
        )
    return "\n".join(lines)


def format_table_details_for_ai(details: TableDetails) -> str:
    lines = [f"Table {details.schema_name}.{details.table_name}:", "Columns:"]
    for column in details.columns:
        parts = [f"  - {column.column_name} {column.data_type or 'ANY'}"]
        parts.append("NULL" if column.is_nullable else "NOT NULL")
        if column.column_default:
            parts.append(f"DEFAULT {column.column_default}")
        if column.is_primary_key:
            parts.append("PRIMARY KEY")
        if column.is_foreign_key:
            parts.append(f"REFERENCES {column.foreign_table}({column.foreign_column})")
        lines.append(" ".join(parts))
    if details.indexes:
        lines.append("Indexes: " + ", ".join(details.indexes))
    return "\n".join(lines)


def select_relevant_tables(text: str, schema: DatabaseSchema, limit: int = MAX_DETAILED_TABLES) -> list[TableInfo]:
    """Return up to ``limit`` tables whose names appear as words in ``text``.

    Matching is case-insensitive and tolerates simple plurals in either
    direction (``order``/``orders``, ``category``/``categories``).
    """
    words = set(re.findall(r"[a-z0-9_]+", text.lower()))
    matched: list[TableInfo] = []
    for table in schema.tables:
        if _name_variants(table.table_name) & words:
            matched.append(table)
            if len(matched) >= limit:
                break
    return matched


def _name_variants(name: str) -> set[str]:
    lowered = name.lower()
    variants = {lowered}
    if lowered.endswith("ies"):
        variants.add(lowered[:-3] + "y")
    elif lowered.endswith("s"):
        variants.add(lowered[:-1])
    elif lowered.endswith("y"):
        variants.add(lowered[:-1] + "ies")
        variants.add(lowered + "s")
    else:
        variants.add(lowered + "s")
    return variants


class PromptBuilder:
    """Assemble system/user prompt pairs from configuration and schema metadata."""

    def __init__(self, config: Configuration, logger: Logger | None = None) -> None:
        self._config = config
        self._logger = logger or get_logger()

    def build_query_prompt(self, request: QueryRequest, catalog: SchemaCatalog) -> PromptPair:
        try:
            schema = catalog.get_database_tables()
            relevant = select_relevant_tables(request.natural_language, schema)
            details = [catalog.get_table_details(table.table_name, table.schema_name) for table in relevant]
        except CatalogError as exc:
            raise PromptBuildError(f"Failed to read database schema: {exc}") from exc

        self._logger.debug(
            f"Schema context: {len(schema.tables)} table(s), {len(details)} with column detail."
        )
        return PromptPair(system=get_system_prompt(self._config), user=self.build_user_prompt(request, schema, details))

    def build_user_prompt(
        self,
        request: QueryRequest,
        schema: DatabaseSchema,
        details: Sequence[TableDetails] = (),
    ) -> str:
        sections = [f"Request: {request.natural_language.strip()}"]
        query_settings = self._config.query
        if query_settings.enforce_limit:
            sections.append(
                f"If the query is a SELECT without a LIMIT, limit results to {query_settings.default_limit} rows."
            )
        sections.append(format_schema_for_ai(schema))
        if details:
            sections.append("Detailed schema for tables referenced in the request:")
            sections.extend(format_table_details_for_ai(detail) for detail in details)
        return "\n\n".join(sections)

    def build_explain_prompt(self, query_text: str, explain_output: str) -> PromptPair:
        user = (
            "Analyze the performance of this query.\n\n"
            f"Query:\n{query_text.strip()}\n\n"
            f"Execution plan:\n{explain_output.strip()}"
        )
        return PromptPair(system=get_explain_system_prompt(self._config), user=user)
