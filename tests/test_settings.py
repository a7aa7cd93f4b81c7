from pathlib import Path

import pytest

from knolhash.utils.scheduler import DEFAULT_PARAMETERS, InvalidParametersError
from knolhash.workflow.utils.settings import (
    default_settings,
    load_env,
    normalize_settings,
    parse_listen_addr,
    scheduler_parameters,
)


def test_default_settings_from_env(monkeypatch):
    monkeypatch.setenv("KNOLHASH_DB_URL", "/tmp/cards.db")
    monkeypatch.setenv("KNOLHASH_REPOS_DIR", "/tmp/repos")
    monkeypatch.setenv("KNOLHASH_SYNC_INLINE", "no")
    monkeypatch.delenv("KNOLHASH_DESIRED_RETENTION", raising=False)

    settings = default_settings()

    assert settings.db_url == "/tmp/cards.db"
    assert settings.repos_dir == Path("/tmp/repos")
    assert settings.sync_inline is False
    assert settings.desired_retention == DEFAULT_PARAMETERS.desired_retention


def test_default_settings_override(monkeypatch):
    monkeypatch.delenv("KNOLHASH_DB_URL", raising=False)

    settings = default_settings(override={"db_url": "other.db"})

    assert settings.db_url == "other.db"


def test_normalize_settings_aliases():
    normalized = normalize_settings({"db": "x.db", "repos": Path("/r"), "retention": 0.85, "job_id": "j"})

    assert normalized == {"db_url": "x.db", "repos_dir": "/r", "desired_retention": 0.85, "job_id": "j"}
    assert normalize_settings(None) == {}


def test_scheduler_parameters_from_settings(monkeypatch):
    monkeypatch.setenv("KNOLHASH_DESIRED_RETENTION", "0.85")

    params = scheduler_parameters(default_settings())

    assert params.desired_retention == 0.85
    assert params.base_stability_by_rating == DEFAULT_PARAMETERS.base_stability_by_rating
    assert scheduler_parameters(default_settings(override={"desired_retention": 0.9})) is DEFAULT_PARAMETERS


def test_invalid_retention_fails_at_startup():
    with pytest.raises(InvalidParametersError):
        scheduler_parameters(default_settings(override={"desired_retention": 1.5}))


def test_load_env_keeps_existing_values(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text('# comment\nKNOLHASH_DB_URL="from-file.db"\nKNOLHASH_LISTEN_ADDR=0.0.0.0:9000\n', encoding="utf-8")
    monkeypatch.setenv("KNOLHASH_DB_URL", "from-env.db")
    monkeypatch.delenv("KNOLHASH_LISTEN_ADDR", raising=False)

    load_env(env_file)

    assert default_settings().db_url == "from-env.db"
    assert default_settings().listen_addr == "0.0.0.0:9000"


@pytest.mark.parametrize(
    "addr, expected",
    [("127.0.0.1:8080", ("127.0.0.1", 8080)), (":9000", ("0.0.0.0", 9000)), ("localhost:1", ("localhost", 1))],
)
def test_parse_listen_addr(addr, expected):
    assert parse_listen_addr(addr) == expected
