"""Unit tests for dockrelay.core.config — DockRelayConfig loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from dockrelay.core.config import DockRelayConfig, RelayConfig, RuntimeConfig, load_config
from dockrelay.core.constants import POLL_INTERVAL_S, RUNTIME_TIMEOUT_SECONDS
from dockrelay.core.exceptions import ConfigError, ConfigNotFoundError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_config(tmp_path: Path, content: str) -> Path:
    p = tmp_path / "config.toml"
    p.write_text(content)
    return p


FULL_TOML = """
[runtime]
base_url = "tcp://127.0.0.1:2375"
timeout_seconds = 30

[relay]
poll_interval_s = 0.02
read_chunk_bytes = 4096

[session]
working_dir = "/ncp"
tty = true

[logging]
level = "debug"
format = "json"
"""


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "DOCKRELAY_CONFIG",
        "DOCKRELAY_LOG_LEVEL",
        "DOCKRELAY_DOCKER_HOST",
        "DOCKRELAY_RUNTIME_TIMEOUT",
        "DOCKRELAY_POLL_INTERVAL_S",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))


# ---------------------------------------------------------------------------
# Load config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_defaults_when_no_file(self) -> None:
        cfg = load_config()
        assert cfg.runtime.base_url == ""
        assert cfg.runtime.timeout_seconds == RUNTIME_TIMEOUT_SECONDS
        assert cfg.relay.poll_interval_s == POLL_INTERVAL_S
        assert cfg.session.tty is False
        assert cfg.logging.level == "WARNING"
        assert cfg.config_path is None

    def test_full_file(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, FULL_TOML)
        cfg = load_config(p)
        assert cfg.runtime.base_url == "tcp://127.0.0.1:2375"
        assert cfg.runtime.timeout_seconds == 30
        assert cfg.relay.poll_interval_s == 0.02
        assert cfg.relay.read_chunk_bytes == 4096
        assert cfg.session.working_dir == "/ncp"
        assert cfg.session.tty is True
        assert cfg.logging.level == "DEBUG"
        assert cfg.logging.format == "json"
        assert cfg.config_path == p

    def test_partial_file_keeps_defaults(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[session]\nworking_dir = '/src'\n")
        cfg = load_config(p)
        assert cfg.session.working_dir == "/src"
        assert cfg.relay.poll_interval_s == POLL_INTERVAL_S

    def test_missing_explicit_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "nonexistent.toml")

    def test_config_env_var_selects_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        p = _write_config(tmp_path, "[runtime]\ntimeout_seconds = 5\n")
        monkeypatch.setenv("DOCKRELAY_CONFIG", str(p))
        assert load_config().runtime.timeout_seconds == 5

    def test_default_location_is_read(self, tmp_path: Path) -> None:
        cfg_dir = tmp_path / "xdg" / "dockrelay"
        cfg_dir.mkdir(parents=True)
        (cfg_dir / "config.toml").write_text("[session]\ntty = true\n")
        assert load_config().session.tty is True

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "this is not valid toml %%% [[[")
        with pytest.raises(ConfigError):
            load_config(p)

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[runtime]\nsocket = '/tmp/docker.sock'\n")
        with pytest.raises(ConfigError):
            load_config(p)

    def test_timeout_bounds(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[runtime]\ntimeout_seconds = 0\n")
        with pytest.raises(ConfigError):
            load_config(p)

    def test_poll_interval_bounds(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[relay]\npoll_interval_s = 5.0\n")
        with pytest.raises(ConfigError):
            load_config(p)

    def test_bad_log_format(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[logging]\nformat = 'xml'\n")
        with pytest.raises(ConfigError):
            load_config(p)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestEnvOverrides:
    def test_env_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        p = _write_config(tmp_path, FULL_TOML)
        monkeypatch.setenv("DOCKRELAY_DOCKER_HOST", "unix:///run/user/1000/docker.sock")
        monkeypatch.setenv("DOCKRELAY_RUNTIME_TIMEOUT", "90")
        monkeypatch.setenv("DOCKRELAY_POLL_INTERVAL_S", "0.1")
        monkeypatch.setenv("DOCKRELAY_LOG_LEVEL", "error")

        cfg = load_config(p)

        assert cfg.runtime.base_url == "unix:///run/user/1000/docker.sock"
        assert cfg.runtime.timeout_seconds == 90
        assert cfg.relay.poll_interval_s == 0.1
        assert cfg.logging.level == "ERROR"

    def test_non_integer_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCKRELAY_RUNTIME_TIMEOUT", "soon")
        with pytest.raises(ConfigError, match="DOCKRELAY_RUNTIME_TIMEOUT"):
            load_config()

    def test_non_numeric_poll_interval(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCKRELAY_POLL_INTERVAL_S", "fast")
        with pytest.raises(ConfigError, match="DOCKRELAY_POLL_INTERVAL_S"):
            load_config()

    def test_env_value_still_validated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCKRELAY_RUNTIME_TIMEOUT", "9999")
        with pytest.raises(ConfigError):
            load_config()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestModels:
    def test_defaults(self) -> None:
        cfg = DockRelayConfig()
        assert cfg.relay.read_chunk_bytes == 1024

    def test_chunk_size_bounds(self) -> None:
        with pytest.raises(ValueError):
            RelayConfig(read_chunk_bytes=0)
        with pytest.raises(ValueError):
            RelayConfig(read_chunk_bytes=65537)

    def test_runtime_timeout_bounds(self) -> None:
        assert RuntimeConfig(timeout_seconds=600).timeout_seconds == 600
        with pytest.raises(ValueError):
            RuntimeConfig(timeout_seconds=601)
