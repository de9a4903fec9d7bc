"""Tests for engine configuration and credential loading."""

import json
from pathlib import Path

import pytest

from dreamscribe_engine.config import DEFAULT_BASE_URLS, EngineConfig, ProviderFamily, load_api_keys


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "GOOGLE_GEMINI_API_KEY",
        "DEEPSEEK_API_KEY",
        "DEEPSEEK_KEY",
        "API_KEY_DEEPSEEK",
        "DREAMSCRIBE_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    for family in ProviderFamily:
        monkeypatch.delenv(f"DREAMSCRIBE_{family.name}_BASE_URL", raising=False)


class TestEngineConfig:
    def test_defaults(self) -> None:
        cfg = EngineConfig()

        assert cfg.request_timeout == 60.0
        assert cfg.availability_ttl == 3600
        assert cfg.model_error_markers == ("model", "does not exist")
        assert cfg.base_url(ProviderFamily.GEMINI) == DEFAULT_BASE_URLS[ProviderFamily.GEMINI]

    def test_from_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DREAMSCRIBE_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("DREAMSCRIBE_DEEPSEEK_BASE_URL", "http://proxy.local/deepseek/")

        cfg = EngineConfig.from_env()

        assert cfg.request_timeout == 12.5
        assert cfg.base_url(ProviderFamily.DEEPSEEK) == "http://proxy.local/deepseek"
        assert cfg.base_url(ProviderFamily.OPENAI) == DEFAULT_BASE_URLS[ProviderFamily.OPENAI]

    def test_from_env_ignores_bad_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DREAMSCRIBE_REQUEST_TIMEOUT", "soon")

        assert EngineConfig.from_env().request_timeout == 60.0


class TestLoadApiKeys:
    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", " sk-openai ")
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")

        assert load_api_keys() == {"openai": "sk-openai", "gemini": "g-key"}

    def test_keys_file_wins_over_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        keys_file = tmp_path / "keys.json"
        keys_file.write_text(json.dumps({"anthropic_api_key": "file-key", "DEEPSEEK_API_KEY": "ds-key"}))

        keys = load_api_keys(str(keys_file))

        assert keys == {"anthropic": "file-key", "deepseek": "ds-key"}

    def test_unreadable_keys_file_falls_back(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-env")
        bad = tmp_path / "keys.json"
        bad.write_text("{not json")

        assert load_api_keys(str(bad)) == {"deepseek": "ds-env"}
