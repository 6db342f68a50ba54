"""Core pipeline for generating and explaining SQL queries."""

from __future__ import annotations

from typing import Mapping, Protocol

from aiquery_cli.shared.config import ConfigService, Configuration
from aiquery_cli.shared.exceptions import (
    CatalogError,
    PromptBuildError,
    ProviderAPIError,
    ProviderResolutionError,
    ValidationError,
)
from aiquery_cli.shared.logging import Logger, get_logger
from aiquery_cli.shared.providers import Provider, defaults_for

from .catalog import DEFAULT_SCHEMA
from .errors import translate_api_error
from .parser import ResponseParser, indicates_failure
from .prompts import PromptBuilder, SchemaCatalog
from .selector import ProviderSelector, model_settings
from .transport import CompletionTransport, ProviderRequest
from .types import (
    DatabaseSchema,
    ExplainRequest,
    ExplainResult,
    PromptPair,
    ProviderSelectionResult,
    QueryRequest,
    QueryResult,
    TableDetails,
)

Overrides = Mapping[Provider, str | None]


class ExplainingCatalog(SchemaCatalog, Protocol):
    """Schema catalog that can also produce an execution plan."""

    def explain(self, query: str) -> str: ...


class QueryGenerator:
    """Run one request end to end and always return a structured result.

    Configuration problems are raised so that a broken setup fails loudly.
    Every other failure (bad input, no provider, catalog errors, provider API
    errors and unparseable answers) becomes ``success=False`` with a message.
    """

    def __init__(
        self,
        config_service: ConfigService,
        catalog: ExplainingCatalog,
        transport: CompletionTransport,
        logger: Logger | None = None,
    ) -> None:
        self.config_service = config_service
        self.catalog = catalog
        self.transport = transport
        self.logger = logger or get_logger()

    def generate_query(self, request: QueryRequest, overrides: Overrides | None = None) -> QueryResult:
        config = self.config_service.effective_config(overrides)
        try:
            _validate_text(request.natural_language, config, "Query text")
            selection = self._select(config, request.provider, request.api_key)
            prompt = PromptBuilder(config, self.logger).build_query_prompt(request, self.catalog)
            raw = self._complete(config, selection, prompt)
        except (ValidationError, ProviderResolutionError, PromptBuildError, ProviderAPIError) as exc:
            self.logger.debug(f"Query generation failed: {exc}")
            return QueryResult.failure(str(exc))

        result = ResponseParser(config.query, self.logger).parse(raw)
        if result.success and not result.generated_query:
            if indicates_failure(result) and result.explanation:
                return QueryResult.failure(result.explanation)
            message = "The model returned an empty query."
            if result.explanation:
                message = f"{message} {result.explanation}"
            return QueryResult.failure(message)
        return result

    def explain_query(self, request: ExplainRequest, overrides: Overrides | None = None) -> ExplainResult:
        config = self.config_service.effective_config(overrides)
        query_text = request.query_text.strip()
        try:
            _validate_text(query_text, config, "Query")
            selection = self._select(config, request.provider, request.api_key)
            explain_output = self.catalog.explain(query_text)
        except CatalogError as exc:
            return ExplainResult.failure(query_text, f"Failed to explain query: {exc}")
        except (ValidationError, ProviderResolutionError) as exc:
            return ExplainResult.failure(query_text, str(exc))

        prompt = PromptBuilder(config, self.logger).build_explain_prompt(query_text, explain_output)
        try:
            analysis = self._complete(config, selection, prompt).strip()
        except ProviderAPIError as exc:
            return ExplainResult(query=query_text, explain_output=explain_output, error_message=str(exc))

        if not analysis:
            return ExplainResult(
                query=query_text,
                explain_output=explain_output,
                error_message="The model returned an empty analysis.",
            )
        return ExplainResult(query=query_text, explain_output=explain_output, ai_explanation=analysis, success=True)

    def get_database_tables(self) -> DatabaseSchema:
        return self.catalog.get_database_tables()

    def get_table_details(self, table_name: str, schema_name: str = DEFAULT_SCHEMA) -> TableDetails:
        return self.catalog.get_table_details(table_name, schema_name)

    def _select(self, config: Configuration, preference: str, api_key: str | None) -> ProviderSelectionResult:
        selection = ProviderSelector(config, self.logger).select(preference, api_key)
        if not selection.success:
            raise ProviderResolutionError(selection.error_message)
        return selection

    def _complete(self, config: Configuration, selection: ProviderSelectionResult, prompt: PromptPair) -> str:
        settings = model_settings(selection)
        request = ProviderRequest(
            provider=selection.provider,
            api_key=selection.api_key,
            model=settings.model,
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            endpoint=settings.endpoint,
            timeout_ms=config.general.request_timeout_ms,
            max_retries=config.general.max_retries,
        )
        try:
            return self.transport.complete(request)
        except ProviderAPIError as exc:
            label = defaults_for(selection.provider).label
            self.logger.debug(f"{label} API error (HTTP {exc.status_code}): {exc.body[:500]}")
            # Surface only the translated sentence, never the raw payload.
            message = translate_api_error(label, exc.status_code, exc.body)
            raise ProviderAPIError(exc.status_code, message) from exc


def _validate_text(text: str, config: Configuration, label: str) -> None:
    stripped = text.strip()
    if not stripped:
        raise ValidationError(f"{label} cannot be empty.")
    limit = config.query.max_query_length
    if len(stripped) > limit:
        raise ValidationError(f"{label} is too long ({len(stripped)} characters, maximum {limit}).")
