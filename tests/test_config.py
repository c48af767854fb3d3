"""Tests for configuration loading."""

import pytest

from gitvis.config import DEFAULTS, load_config
from gitvis.errors import ConfigurationError

VARIABLES = [
    "GITVIS_HOST",
    "GITVIS_PORT",
    "GITVIS_CHUNK_SIZE",
    "GITVIS_PAGE_SIZE",
    "GITVIS_CLONE_DEPTH",
    "GITVIS_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in VARIABLES:
        # setenv first so values written by load_dotenv are removed on teardown.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def test_defaults(tmp_path):
    assert load_config(str(tmp_path / "missing.env")) == DEFAULTS


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("GITVIS_PORT", "9000")
    monkeypatch.setenv("GITVIS_LOG_LEVEL", "debug")
    config = load_config(str(tmp_path / "missing.env"))
    assert config["port"] == 9000
    assert config["log_level"] == "DEBUG"


def test_env_file_is_read(tmp_path):
    env_file = tmp_path / "gitvis.env"
    env_file.write_text("GITVIS_CHUNK_SIZE=250\nGITVIS_HOST=0.0.0.0\n")
    config = load_config(str(env_file))
    assert config["chunk_size"] == 250
    assert config["host"] == "0.0.0.0"


@pytest.mark.parametrize("value", ["many", "0", "-5"])
def test_invalid_numbers(monkeypatch, tmp_path, value):
    monkeypatch.setenv("GITVIS_PAGE_SIZE", value)
    with pytest.raises(ConfigurationError, match="GITVIS_PAGE_SIZE"):
        load_config(str(tmp_path / "missing.env"))
