"""Shared CLI helpers and decorators."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import click

from .config import ConfigService, Configuration
from .exceptions import AIQueryError, ConfigurationError
from .logging import Logger, get_logger
from .providers import PROVIDER_PRIORITY, Provider

F = TypeVar("F", bound=Callable[..., Any])

ENV_PREFIX = "AIQUERY_"


@dataclass(slots=True)
class CLIContext:
    """Runtime context shared across CLI invocations."""

    config_service: ConfigService
    verbose: bool
    logger: Logger
    overrides: dict[Provider, str | None] = field(default_factory=dict)

    def effective_config(self) -> Configuration:
        return self.config_service.effective_config(self.overrides)


pass_cli_context = click.make_pass_decorator(CLIContext)


def override_param_name(provider: Provider) -> str:
    return f"{provider.value}_api_key"


def override_envvar(provider: Provider) -> str:
    return f"{ENV_PREFIX}{provider.value.upper()}_API_KEY"


def common_cli_options(func: F) -> F:
    """Decorator injecting shared CLI options and context creation.

    Besides ``--config`` and ``--verbose`` every provider gets a session
    ``--<provider>-api-key`` option (also read from ``AIQUERY_<PROVIDER>_API_KEY``)
    that is layered over the config file without modifying it.
    """

    @click.option("--config", "config_path", type=click.Path(path_type=str), help="Path to config file.")
    @click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
    @click.pass_context
    @functools.wraps(func)
    def wrapper(
        ctx: click.Context,
        *args: Any,
        config_path: str | None = None,
        verbose: bool = False,
        **kwargs: Any,
    ) -> Any:
        overrides = {provider: kwargs.pop(override_param_name(provider), None) for provider in PROVIDER_PRIORITY}
        # Chatter stays off until the config file's [general] section says otherwise.
        logger = get_logger(verbose=verbose, enabled=verbose)
        cli_ctx = CLIContext(
            config_service=ConfigService(config_path, logger=logger),
            verbose=verbose,
            logger=logger,
            overrides=overrides,
        )
        ctx.obj = cli_ctx
        kwargs["cli_ctx"] = cli_ctx
        return func(*args, **kwargs)

    for provider in reversed(PROVIDER_PRIORITY):
        wrapper = click.option(
            f"--{provider.value}-api-key",
            override_param_name(provider),
            envvar=override_envvar(provider),
            default=None,
            metavar="KEY",
            help=f"Session API key for {provider.value}; overrides the config file.",
        )(wrapper)
    return wrapper  # type: ignore[return-value]


def handle_cli_errors(func: F) -> F:
    """Convert project exceptions into Click-friendly errors."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ConfigurationError as exc:
            raise click.ClickException(f"Configuration error: {exc}") from exc
        except AIQueryError as exc:
            raise click.ClickException(str(exc)) from exc
        except click.ClickException:
            raise
        except Exception as exc:  # pragma: no cover
            raise click.ClickException(f"Unexpected error: {exc}") from exc

    return wrapper  # type: ignore[return-value]
