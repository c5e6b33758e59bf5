from __future__ import annotations

from pathlib import Path

import pytest

from common import config
from common.config import Settings
from common.placeholder import DEFAULT_SERVER_URL


_ENV = (
    "QUOTES_STATE_FILE",
    "QUOTES_SESSION_FILE",
    "QUOTES_SERVER_URL",
    "QUOTES_SYNC_INTERVAL",
    "QUOTES_FETCH_LIMIT",
    "QUOTES_STATE_BUCKET",
    "QUOTES_STATE_KEY",
    "QUOTES_FERNET_KEY",
    "PARAM_PREFIX",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = Settings.from_env()
    assert s.state_file is None
    assert s.server_url == DEFAULT_SERVER_URL
    assert s.sync_interval == 30.0
    assert s.fetch_limit == 5
    assert s.state_key == "quotes.json"
    assert not s.uses_s3


def test_env_values(monkeypatch):
    monkeypatch.setenv("QUOTES_STATE_FILE", "/tmp/q/state.json")
    monkeypatch.setenv("QUOTES_SERVER_URL", "http://localhost:9000/posts")
    monkeypatch.setenv("QUOTES_SYNC_INTERVAL", "5")
    monkeypatch.setenv("QUOTES_FETCH_LIMIT", "10")
    monkeypatch.setenv("QUOTES_STATE_BUCKET", "bucket")
    monkeypatch.setenv("QUOTES_STATE_KEY", "")  # empty means default

    s = Settings.from_env()
    assert s.state_file == Path("/tmp/q/state.json")
    assert s.server_url == "http://localhost:9000/posts"
    assert s.sync_interval == 5.0
    assert s.fetch_limit == 10
    assert s.state_key == "quotes.json"
    assert s.uses_s3


@pytest.mark.parametrize("value", ["soon", "0"])
def test_invalid_interval_raises(monkeypatch, value):
    monkeypatch.setenv("QUOTES_SYNC_INTERVAL", value)
    with pytest.raises(RuntimeError):
        Settings.from_env()


def test_overrides_skip_none():
    s = Settings().with_overrides(server_url="http://x", state_file=None)
    assert s.server_url == "http://x"
    assert s.state_file is None


def test_fernet_key_from_env_wins():
    assert Settings(fernet_key="k").resolve_fernet_key() == "k"


def test_fernet_key_from_ssm(monkeypatch):
    seen = {}

    def fake_load(prefix, names):
        seen["prefix"] = prefix
        seen["names"] = list(names)
        return {"fernet_key": "from-ssm"}

    monkeypatch.setattr(config, "load_ssm_params", fake_load)
    assert Settings(param_prefix="/quotes/dev/").resolve_fernet_key() == "from-ssm"
    assert seen == {"prefix": "/quotes/dev/", "names": ["fernet_key"]}


def test_fernet_key_missing_everywhere():
    with pytest.raises(RuntimeError):
        Settings().resolve_fernet_key()
