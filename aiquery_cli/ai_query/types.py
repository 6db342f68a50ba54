"""Data structures shared across ai-query modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from aiquery_cli.shared.config import ProviderConfig
from aiquery_cli.shared.providers import PROVIDER_AUTO, Provider

VISUALIZATIONS = ("table", "bar", "line", "pie")


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """Natural-language request for SQL generation."""

    natural_language: str
    api_key: str | None = None
    provider: str = PROVIDER_AUTO


@dataclass(frozen=True, slots=True)
class ExplainRequest:
    """Existing SQL whose execution plan should be analysed."""

    query_text: str
    api_key: str | None = None
    provider: str = PROVIDER_AUTO


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Structured outcome of one generation call."""

    generated_query: str = ""
    explanation: str = ""
    warnings: tuple[str, ...] = ()
    row_limit_applied: bool = False
    suggested_visualization: str = ""
    success: bool = False
    error_message: str = ""

    @classmethod
    def failure(cls, message: str) -> QueryResult:
        return cls(success=False, error_message=message)


@dataclass(frozen=True, slots=True)
class ExplainResult:
    """EXPLAIN output plus the model's performance analysis."""

    query: str = ""
    explain_output: str = ""
    ai_explanation: str = ""
    success: bool = False
    error_message: str = ""

    @classmethod
    def failure(cls, query: str, message: str) -> ExplainResult:
        return cls(query=query, success=False, error_message=message)


@dataclass(frozen=True, slots=True)
class TableInfo:
    table_name: str
    schema_name: str
    table_type: str
    estimated_rows: int


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    column_name: str
    data_type: str
    is_nullable: bool = True
    column_default: str = ""
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_table: str = ""
    foreign_column: str = ""


@dataclass(frozen=True, slots=True)
class TableDetails:
    table_name: str
    schema_name: str
    columns: Sequence[ColumnInfo] = ()
    indexes: Sequence[str] = ()


@dataclass(frozen=True, slots=True)
class DatabaseSchema:
    tables: Sequence[TableInfo] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class ProviderSelectionResult:
    """Resolved provider, credential and tuning for a single call."""

    provider: Provider = Provider.UNKNOWN
    config: ProviderConfig | None = None
    api_key: str = ""
    success: bool = False
    error_message: str = ""


@dataclass(frozen=True, slots=True)
class PromptPair:
    system: str
    user: str
