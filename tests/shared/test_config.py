from __future__ import annotations

import threading
from pathlib import Path

import pytest

from aiquery_cli.shared import config as config_module
from aiquery_cli.shared.config import (
    ConfigService,
    Configuration,
    GeneralSettings,
    ProviderConfig,
    QuerySettings,
    ResponseSettings,
    load_config,
    parse_bool,
    parse_config,
)
from aiquery_cli.shared.exceptions import ConfigMissingError, ConfigParseError
from aiquery_cli.shared.logging import get_logger
from aiquery_cli.shared.providers import Provider

FULL_CONFIG = """
[general]
log_level = DEBUG
enable_logging = yes
request_timeout_ms = 45000
max_retries = 5

[query]
enforce_limit = false
default_limit = 250
max_query_length = 2000

[response]
show_explanation = 0
show_warnings = TRUE
show_suggested_visualization = true
use_formatted_response = true

[anthropic]
api_key = "sk-ant-123"
default_model = claude-custom
max_tokens = 1024
temperature = 0.2

[openai]
api_key = 'sk-openai'  # personal key
api_endpoint = https://proxy.example.com/v1
"""


def test_parse_config_defaults_when_empty(recording_logger) -> None:
    cfg = parse_config("", logger=recording_logger)

    assert cfg.providers == ()
    assert cfg.general == GeneralSettings()
    assert cfg.query == QuerySettings(enforce_limit=True, default_limit=1000, max_query_length=4000)
    assert cfg.response == ResponseSettings()
    assert cfg.prompts.system_prompt == ""
    assert cfg.default_provider.provider is Provider.OPENAI
    assert cfg.default_provider.default_model == "gpt-4o"
    assert cfg.default_provider.api_key == ""


def test_parse_config_reads_every_section(recording_logger) -> None:
    cfg = parse_config(FULL_CONFIG, logger=recording_logger)

    assert cfg.general == GeneralSettings(
        log_level="DEBUG", enable_logging=True, request_timeout_ms=45000, max_retries=5
    )
    assert cfg.query == QuerySettings(enforce_limit=False, default_limit=250, max_query_length=2000)
    assert cfg.response == ResponseSettings(
        show_explanation=False,
        show_warnings=True,
        show_suggested_visualization=True,
        use_formatted_response=True,
    )
    assert [entry.provider for entry in cfg.providers] == [Provider.ANTHROPIC, Provider.OPENAI]
    assert cfg.default_provider.provider is Provider.ANTHROPIC

    anthropic = cfg.provider_config(Provider.ANTHROPIC)
    assert anthropic == ProviderConfig(
        provider=Provider.ANTHROPIC,
        api_key="sk-ant-123",
        default_model="claude-custom",
        default_max_tokens=1024,
        default_temperature=0.2,
    )

    openai = cfg.provider_config(Provider.OPENAI)
    assert openai is not None
    assert openai.api_key == "sk-openai"
    assert openai.default_model == "gpt-4o"
    assert openai.default_max_tokens == 16384
    assert openai.api_endpoint == "https://proxy.example.com/v1"
    assert cfg.provider_config(Provider.GEMINI) is None
    assert recording_logger.messages("warning") == []


def test_inline_comment_after_quoted_key_is_stripped(recording_logger) -> None:
    cfg = parse_config('[openai]\napi_key = "sk-abc"  # note', logger=recording_logger)

    assert cfg.provider_config(Provider.OPENAI).api_key == "sk-abc"


def test_unknown_section_and_stray_keys_only_warn(recording_logger) -> None:
    content = "log_level = DEBUG\n[mystery]\nanswer = 42\n[general]\nlog_level = ERROR\n"

    cfg = parse_config(content, logger=recording_logger)

    assert cfg.general.log_level == "ERROR"
    warnings = recording_logger.messages("warning")
    assert any("outside a section" in message for message in warnings)
    assert any("Invalid section 'mystery'" in message for message in warnings)
    assert any("invalid section 'mystery'" in message for message in warnings)


def test_unclosed_quote_skips_only_that_key(recording_logger) -> None:
    cfg = parse_config('[gemini]\napi_key = "AIza\ndefault_model = gemini-pro\n', logger=recording_logger)

    gemini = cfg.provider_config(Provider.GEMINI)
    assert gemini is not None
    assert gemini.api_key == ""
    assert gemini.default_model == "gemini-pro"
    assert any("Unclosed quote" in message for message in recording_logger.messages("warning"))


def test_unknown_key_in_known_section_is_ignored(recording_logger) -> None:
    cfg = parse_config("[query]\nshoe_size = 11\n", logger=recording_logger)

    assert cfg.query == QuerySettings()
    assert recording_logger.messages("warning") == []


def test_non_numeric_value_is_a_parse_error(recording_logger) -> None:
    with pytest.raises(ConfigParseError, match="expects a number"):
        parse_config("[query]\ndefault_limit = lots\n", logger=recording_logger)


@pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-infinity"])
def test_non_finite_temperature_is_a_parse_error(value: str, recording_logger) -> None:
    with pytest.raises(ConfigParseError, match="finite number"):
        parse_config(f"[openai]\ntemperature = {value}\n", logger=recording_logger)


def test_malformed_line_is_a_parse_error(recording_logger) -> None:
    with pytest.raises(ConfigParseError):
        parse_config("[general]\nthis is not ini\n", logger=recording_logger)


def test_invalid_boolean_falls_back_to_false(recording_logger) -> None:
    cfg = parse_config("[response]\nshow_warnings = maybe\n", logger=recording_logger)

    assert cfg.response.show_warnings is False
    assert any("Invalid boolean" in message for message in recording_logger.messages("warning"))


@pytest.mark.parametrize(
    "value, expected",
    [("true", True), ("YES", True), ("1", True), ("false", False), ("No", False), ("0", False)],
)
def test_parse_bool_accepts_common_spellings(value: str, expected: bool, recording_logger) -> None:
    assert parse_bool(value, recording_logger) is expected
    assert recording_logger.messages("warning") == []


def test_non_positive_limits_keep_defaults(recording_logger) -> None:
    cfg = parse_config("[query]\ndefault_limit = 0\nmax_query_length = -5\n", logger=recording_logger)

    assert cfg.query.default_limit == 1000
    assert cfg.query.max_query_length == 4000
    assert len(recording_logger.messages("warning")) == 2


def test_temperature_is_clamped(recording_logger) -> None:
    cfg = parse_config("[openai]\ntemperature = 3.5\n[gemini]\ntemperature = -1\n", logger=recording_logger)

    assert cfg.provider_config(Provider.OPENAI).default_temperature == 2.0
    assert cfg.provider_config(Provider.GEMINI).default_temperature == 0.0
    assert len(recording_logger.messages("warning")) == 2


def test_prompt_file_contents_are_loaded(tmp_path: Path, recording_logger) -> None:
    prompt_file = tmp_path / "system.txt"
    prompt_file.write_text("You write SQLite.\nKeep it short.\n", encoding="utf-8")

    cfg = parse_config(
        f'[prompts]\nsystem_prompt = "{prompt_file}"\nexplain_system_prompt = "Be brief"\n',
        logger=recording_logger,
    )

    assert cfg.prompts.system_prompt == "You write SQLite.\nKeep it short."
    assert cfg.prompts.explain_system_prompt == "Be brief"


def test_with_overrides_replaces_existing_key(recording_logger) -> None:
    base = parse_config(FULL_CONFIG, logger=recording_logger)

    effective = base.with_overrides({Provider.ANTHROPIC: "sk-session"})

    anthropic = effective.provider_config(Provider.ANTHROPIC)
    assert anthropic.api_key == "sk-session"
    assert anthropic.default_model == "claude-custom"
    assert base.provider_config(Provider.ANTHROPIC).api_key == "sk-ant-123"


def test_with_overrides_synthesizes_missing_provider() -> None:
    base = Configuration()

    effective = base.with_overrides({Provider.GEMINI: "AIza-session", Provider.OPENAI: None})

    assert [entry.provider for entry in effective.providers] == [Provider.GEMINI]
    gemini = effective.provider_config(Provider.GEMINI)
    assert gemini == ProviderConfig.from_defaults(Provider.GEMINI, api_key="AIza-session")
    assert gemini.default_model == "gemini-2.5-flash"


@pytest.mark.parametrize(
    "overrides",
    [
        {Provider.OPENAI: "sk-1"},
        {Provider.GEMINI: "AIza"},
        {Provider.OPENAI: "sk-1", Provider.ANTHROPIC: "sk-2", Provider.GEMINI: "sk-3"},
        {Provider.ANTHROPIC: ""},
    ],
)
def test_override_then_reset_reproduces_base(overrides, write_config, recording_logger) -> None:
    path = write_config(FULL_CONFIG)
    service = ConfigService(path, logger=recording_logger, configure_logging=False)
    base = service.get_config()

    service.effective_config(overrides)
    reset = service.effective_config({provider: None for provider in Provider})

    assert reset == base
    assert service.effective_config() == base


def test_load_config_missing_file_raises_with_guidance(tmp_path: Path, recording_logger) -> None:
    missing = tmp_path / "nope.config"

    with pytest.raises(ConfigMissingError) as excinfo:
        load_config(missing, logger=recording_logger)

    assert str(missing) in str(excinfo.value)
    assert "[openai]" in str(excinfo.value)
    assert any("not found" in message for message in recording_logger.messages("warning"))


def test_load_config_reads_exact_path(write_config, recording_logger) -> None:
    path = write_config("[openai]\napi_key = sk-file\n", name="custom.ini")

    cfg = load_config(path, logger=recording_logger)

    assert cfg.source_path == path
    assert cfg.provider_config(Provider.OPENAI).api_key == "sk-file"


def test_config_service_uses_home_directory(tmp_path: Path, recording_logger) -> None:
    (tmp_path / ".aiquery.config").write_text("[gemini]\napi_key = from-home\n", encoding="utf-8")

    service = ConfigService(logger=recording_logger, env={"HOME": str(tmp_path)}, configure_logging=False)

    assert service.loaded is False
    assert service.get_provider_config(Provider.GEMINI).api_key == "from-home"
    assert service.loaded is True


def test_config_service_loads_once_across_threads(
    monkeypatch: pytest.MonkeyPatch, write_config, recording_logger
) -> None:
    path = write_config("[openai]\napi_key = sk-once\n")
    calls: list[Path] = []
    real_load = config_module.load_config

    def counting_load(config_path, *, logger=None):
        calls.append(config_path)
        return real_load(config_path, logger=logger)

    monkeypatch.setattr(config_module, "load_config", counting_load)
    service = ConfigService(path, logger=recording_logger, configure_logging=False)
    results: list[Configuration] = []
    threads = [threading.Thread(target=lambda: results.append(service.get_config())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_config_service_reset_forces_reload(write_config, recording_logger) -> None:
    path = write_config("[openai]\napi_key = first\n")
    service = ConfigService(path, logger=recording_logger, configure_logging=False)
    assert service.get_config().provider_config(Provider.OPENAI).api_key == "first"

    path.write_text("[openai]\napi_key = second\n", encoding="utf-8")
    assert service.get_config().provider_config(Provider.OPENAI).api_key == "first"

    service.reset()
    assert service.loaded is False
    assert service.get_config().provider_config(Provider.OPENAI).api_key == "second"


def test_explicit_load_replaces_cached_base(write_config, recording_logger) -> None:
    first = write_config("[openai]\napi_key = first\n", name="first.ini")
    second = write_config("[anthropic]\napi_key = second\n", name="second.ini")
    service = ConfigService(first, logger=recording_logger, configure_logging=False)
    service.get_config()

    loaded = service.load(second)

    assert service.get_config() is loaded
    assert loaded.default_provider.provider is Provider.ANTHROPIC


def test_config_service_configures_logger(write_config) -> None:
    path = write_config("[general]\nenable_logging = true\nlog_level = WARNING\n")
    logger = get_logger(enabled=False)

    ConfigService(path, logger=logger).get_config()

    assert logger.enabled is True
    assert logger.level == 30


def test_config_service_missing_default_file(tmp_path: Path, recording_logger) -> None:
    service = ConfigService(logger=recording_logger, env={"HOME": str(tmp_path)})

    with pytest.raises(ConfigMissingError):
        service.get_config()
    assert service.loaded is False
