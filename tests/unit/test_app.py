"""Tests for the command line entry point."""

import json

import pytest

from dreamscribe_engine import app


@pytest.fixture(autouse=True)
def no_env_keys(monkeypatch):
    for name in (
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "GOOGLE_GEMINI_API_KEY",
        "DEEPSEEK_API_KEY",
        "DEEPSEEK_KEY",
        "API_KEY_DEEPSEEK",
    ):
        monkeypatch.delenv(name, raising=False)


def test_parse_selection() -> None:
    assert app.parse_selection(["openai:gpt-4o", " gemini ", "deepseek:"]) == [
        ("openai", "gpt-4o"),
        ("gemini", None),
        ("deepseek", None),
    ]


def test_providers(capsys) -> None:
    assert app.main(["providers"]) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert [line.split("\t")[0] for line in lines] == ["openai", "anthropic", "gemini", "deepseek"]


def test_estimate(capsys) -> None:
    assert app.main(["estimate", "--provider", "gemini", "--tokens", "4000"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out == {"provider": "gemini", "tokens": 4000, "cost": 0.002}


def test_generate_without_key_fails_fast(tmp_path) -> None:
    code = app.main(["generate", "--provider", "openai", "--prompt", "A fox", "--data_dir", str(tmp_path)])

    assert code == 1


def test_compare_needs_two_providers(tmp_path) -> None:
    code = app.main(["compare", "--select", "openai", "--prompt", "A fox", "--data_dir", str(tmp_path)])

    assert code == 2
    assert not (tmp_path / "comparisons.jsonl").exists()


def test_compare_missing_key_rejected(tmp_path) -> None:
    keys = tmp_path / "keys.json"
    keys.write_text(json.dumps({"openai_api_key": "sk-test"}), encoding="utf-8")

    code = app.main([
        "compare",
        "--select", "openai",
        "--select", "anthropic",
        "--keys_file", str(keys),
        "--data_dir", str(tmp_path),
    ])

    assert code == 2
    assert not (tmp_path / "logs").exists()


def test_history_on_empty_data_dir(tmp_path, capsys) -> None:
    assert app.main(["history", "--data_dir", str(tmp_path)]) == 0
    assert "provider_id" in capsys.readouterr().out


def test_history_shows_one_stored_run(tmp_path, capsys) -> None:
    (tmp_path / "comparisons.jsonl").write_text(
        json.dumps({"id": "ab_7", "complete": True, "winner_id": None, "variants": []}) + "\n",
        encoding="utf-8",
    )

    assert app.main(["history", "--data_dir", str(tmp_path), "--run_id", "ab_7"]) == 0
    assert json.loads(capsys.readouterr().out)["id"] == "ab_7"
    assert app.main(["history", "--data_dir", str(tmp_path), "--run_id", "ab_8"]) == 1
