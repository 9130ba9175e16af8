from pathlib import Path

import pytest

from formulary_migrate.config import (
    ConfigError,
    load_run_config,
    load_settings,
    validate_identifier,
)

ENV_VARS = (
    "DB_USER",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_SCHEMA",
    "DB_SSLMODE",
    "COMPILE_TIMEOUT",
    "COMPILE_ISOLATED",
    "MIGRATION_WORKERS",
    "PHARMACY_ID",
    "CREATED_BY",
    "EDITED_BY",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "empty.env"


def write_yaml(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "run.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_settings_defaults(clean_env):
    settings = load_settings(clean_env)
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_schema == "phormulary_dev"
    assert settings.compile_timeout == 60.0
    assert settings.compile_isolated is True
    assert settings.workers == 1
    assert settings.pharmacy_id == 55


def test_settings_from_environment(clean_env, monkeypatch):
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("COMPILE_TIMEOUT", "2.5")
    monkeypatch.setenv("COMPILE_ISOLATED", "no")
    monkeypatch.setenv("MIGRATION_WORKERS", "0")
    monkeypatch.setenv("PHARMACY_ID", "not-a-number")
    settings = load_settings(clean_env)
    assert settings.db_port == 6543
    assert settings.compile_timeout == 2.5
    assert settings.compile_isolated is False
    assert settings.workers == 1
    assert settings.pharmacy_id == 55


def test_settings_from_env_file(clean_env, monkeypatch, tmp_path):
    env_file = tmp_path / "migrate.env"
    env_file.write_text("DB_NAME=formulary\nMIGRATION_WORKERS=4\n", encoding="utf-8")
    # registered so monkeypatch removes what load_dotenv writes
    for name in ("DB_NAME", "MIGRATION_WORKERS"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    settings = load_settings(env_file)
    assert settings.db_name == "formulary"
    assert settings.workers == 4


def test_validate_identifier():
    assert validate_identifier("phormulary_dev") == "phormulary_dev"
    for bad in ("", "1schema", "dev.medication", "dev;drop"):
        with pytest.raises(ConfigError):
            validate_identifier(bad)


def test_load_run_config(tmp_path):
    path = write_yaml(
        tmp_path,
        """
sources:
  - name: chemo-query
    builder: chemo
    path: sheets/ChemoQuery.xlsx
    sheet_name: Query1
    pharmacy_id: 12
    status: publish
    canonicalize:
      div_mode: paragraph
  - builder: adult
    path: adult.xlsx
  - builder: pediatric
    path: peds.xlsx
  - name: no-path
    builder: neonatal
""",
    )
    config = load_run_config(path)
    assert [source.name for source in config.sources] == ["chemo-query", "adult"]

    chemo = config.get("chemo-query")
    assert chemo.path == (tmp_path / "sheets" / "ChemoQuery.xlsx").resolve()
    assert chemo.sheet_name == "Query1"
    assert chemo.pharmacy_id == 12
    assert chemo.canonicalize.div_mode == "paragraph"
    assert chemo.canonicalize.nbsp_mode == "break"

    adult = config.get("adult")
    assert adult.sheet_name == 0
    assert adult.canonicalize is None
    assert config.get("missing") is None


@pytest.mark.parametrize(
    "body",
    [
        "sources: [unclosed",
        "- just\n- a list\n",
        "sources: adult.xlsx\n",
        "sources:\n  - builder: adult\n    path: a.xlsx\n    status: archived\n",
        "sources:\n  - builder: adult\n    path: a.xlsx\n    canonicalize:\n      div_mode: keep\n",
    ],
)
def test_invalid_run_configs(tmp_path, body):
    with pytest.raises(ConfigError):
        load_run_config(write_yaml(tmp_path, body))


def test_missing_run_config(tmp_path):
    with pytest.raises(ConfigError):
        load_run_config(tmp_path / "nope.yaml")
