"""Tests for Config resolution order."""

import pytest

from surgical_coder.config import Config

_ENV_KEYS = [
    "SURGICAL_MODEL", "SURGICAL_API_KEY", "OPENAI_API_KEY", "SURGICAL_TEMPERATURE",
    "LLM_MAX_RETRIES", "STREAM_RESPONSES", "SURGICAL_BACKUP_RETENTION",
    "SURGICAL_CODE_EXTENSIONS", "SURGICAL_SYNTAX_CHECK", "SURGICAL_RECOGNIZED_TOOL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    cfg = Config()
    assert cfg.SYNTAX_CHECK == "brackets"
    assert cfg.CODE_EXTENSIONS == [".ts", ".tsx", ".js", ".jsx"]
    assert cfg.BACKUP_RETENTION is None
    assert cfg.RECOGNIZED_TOOL == "generate_code"
    assert cfg.STREAM_RESPONSES is False
    assert cfg.API_KEY == ""


def test_yaml_file_overrides_defaults(tmp_path):
    path = tmp_path / ".surgical.yaml"
    path.write_text(
        "model: local-model\n"
        "backup_retention: 10\n"
        "code_extensions: [py, .PYI]\n"
        "syntax_check: tree_sitter\n"
        "stream: true\n",
        encoding="utf-8",
    )

    cfg = Config.load(str(path))

    assert cfg.MODEL == "local-model"
    assert cfg.BACKUP_RETENTION == 10
    assert cfg.CODE_EXTENSIONS == [".py", ".pyi"]
    assert cfg.SYNTAX_CHECK == "tree_sitter"
    assert cfg.STREAM_RESPONSES is True


def test_env_overrides_yaml(monkeypatch):
    monkeypatch.setenv("SURGICAL_MODEL", "from-env")
    monkeypatch.setenv("LLM_MAX_RETRIES", "7")
    monkeypatch.setenv("SURGICAL_CODE_EXTENSIONS", "ts, vue")
    monkeypatch.setenv("STREAM_RESPONSES", "TRUE")

    cfg = Config({"model": "from-yaml", "llm_max_retries": 1})

    assert cfg.MODEL == "from-env"
    assert cfg.LLM_MAX_RETRIES == 7
    assert cfg.CODE_EXTENSIONS == [".ts", ".vue"]
    assert cfg.STREAM_RESPONSES is True


def test_api_key_lookup_order(monkeypatch):
    assert Config({"api_key": "yaml-key"}).API_KEY == "yaml-key"
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
    assert Config({"api_key": "yaml-key"}).API_KEY == "openai-key"
    monkeypatch.setenv("SURGICAL_API_KEY", "surgical-key")
    assert Config().API_KEY == "surgical-key"


def test_unknown_syntax_mode_falls_back():
    assert Config({"syntax_check": "strict"}).SYNTAX_CHECK == "brackets"


def test_missing_or_broken_file_gives_defaults(tmp_path):
    assert Config.load(str(tmp_path / "absent.yaml")).MODEL == Config().MODEL

    broken = tmp_path / "broken.yaml"
    broken.write_text("model: [unclosed\n", encoding="utf-8")
    assert Config.load(str(broken)).MODEL == Config().MODEL
