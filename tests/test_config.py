"""
Tests for host configuration loading.
"""

from pathlib import Path

import pytest

from host.config import DEFAULT_DATA_DIR, Config, load_config

CONFIG_TOML = """
[paths]
data_dir = "{data_dir}"

[network]
timeout = 12.5

[loader]
disabled = ["Noisy"]

[logging]
level = "DEBUG"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "EXTENSION_HOST_DATA_DIR",
        "EXTENSION_HOST_EXTENSIONS_DIR",
        "EXTENSION_HOST_TIMEOUT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_paths(self):
        config = Config()
        assert config.paths.data_path == DEFAULT_DATA_DIR
        assert config.paths.extensions_path == DEFAULT_DATA_DIR / "extensions"
        assert config.paths.repositories_path == DEFAULT_DATA_DIR / "repositories.json"
        assert config.paths.temp_path is None

    def test_no_timeout_by_default(self):
        assert Config().network.timeout_seconds is None

    def test_missing_file(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.toml")
        assert config.logging.level == "INFO"


class TestLoadConfig:
    def test_from_file(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text(CONFIG_TOML.format(data_dir=tmp_path / "data"))

        config = load_config(path)

        assert config.paths.extensions_path == tmp_path / "data" / "extensions"
        assert config.network.timeout_seconds == 12.5
        assert config.loader.disabled == ["Noisy"]
        assert config.logging.level == "DEBUG"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text(CONFIG_TOML.format(data_dir=tmp_path / "data"))
        monkeypatch.setenv("EXTENSION_HOST_EXTENSIONS_DIR", str(tmp_path / "ext"))
        monkeypatch.setenv("EXTENSION_HOST_TIMEOUT", "3")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        config = load_config(path)

        assert config.paths.extensions_path == tmp_path / "ext"
        assert config.paths.repositories_path == tmp_path / "data" / "repositories.json"
        assert config.network.timeout_seconds == 3.0
        assert config.logging.level == "WARNING"

    def test_invalid_timeout_is_ignored(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("EXTENSION_HOST_TIMEOUT", "soon")
        config = load_config(tmp_path / "missing.toml")
        assert config.network.timeout_seconds is None
