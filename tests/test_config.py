"""Tests for YAML/env configuration loading."""

from pathlib import Path

import pytest

from binance_dock.infrastructure.utils.config import PluginConfig, load_config

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for key in ("BINANCE_DOCK_LOG_LEVEL", "BINANCE_DOCK_FEED__RECONNECT_DELAY_SEC", "BINANCE_DOCK_DEFAULTS__SYMBOL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "plugin.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestFromYaml:
    def test_shipped_default_config(self):
        config = PluginConfig.from_yaml(REPO_ROOT / "config" / "default.yaml")

        assert config.binance.ws_base_url == "wss://stream.binance.com:9443/ws"
        assert config.feed.reconnect_delay_sec == 5
        assert config.feed.heartbeat_interval_sec == 180
        assert config.render.size_px == 144
        assert config.defaults.chart_range == "6h"
        assert config.defaults.depth_level == 20

    def test_partial_yaml_keeps_defaults(self, tmp_path):
        config = PluginConfig.from_yaml(_write(tmp_path, "feed:\n  reconnect_delay_sec: 2\n"))

        assert config.feed.reconnect_delay_sec == 2
        assert config.feed.pong_timeout_sec == 10
        assert config.binance.rest_base_url == "https://api.binance.com"

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BINANCE_DOCK_FEED__RECONNECT_DELAY_SEC", "1.5")
        monkeypatch.setenv("BINANCE_DOCK_LOG_LEVEL", "debug")

        config = PluginConfig.from_yaml(_write(tmp_path, "log_level: INFO\nfeed:\n  reconnect_delay_sec: 9\n"))

        assert config.feed.reconnect_delay_sec == 1.5
        assert config.log_level == "DEBUG"

    def test_slot_defaults_are_normalized(self, tmp_path):
        config = PluginConfig.from_yaml(_write(tmp_path, "defaults:\n  symbol: ethusdt\n  bgOpacity: 250\n"))

        assert config.defaults.symbol == "ETHUSDT"
        assert config.defaults.bg_opacity == 100

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PluginConfig.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid YAML"):
            PluginConfig.from_yaml(_write(tmp_path, "feed: [unclosed\n"))

    def test_non_mapping_root(self, tmp_path):
        with pytest.raises(ValueError, match="mapping"):
            PluginConfig.from_yaml(_write(tmp_path, "- a\n- b\n"))

    def test_invalid_values(self, tmp_path):
        with pytest.raises(ValueError, match="validation"):
            PluginConfig.from_yaml(_write(tmp_path, "binance:\n  ws_base_url: http://example.com\n"))

    def test_invalid_log_level(self, tmp_path):
        with pytest.raises(ValueError):
            PluginConfig.from_yaml(_write(tmp_path, "log_level: LOUD\n"))


class TestLoadConfig:
    def test_no_file_uses_builtin_defaults(self):
        config = load_config()

        assert config.feed.reconnect_delay_sec == 5.0
        assert config.defaults.symbol == "BTCUSDT"

    def test_discovers_config_directory(self, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "default.yaml").write_text("render:\n  size_px: 96\n", encoding="utf-8")

        assert load_config().render.size_px == 96

    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, "log_level: WARNING\n")

        assert load_config(path).log_level == "WARNING"
