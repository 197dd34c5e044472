"""
Tests for configuration loading: defaults, config files and env overrides.
"""

import json

from clawdash.config.loader import get_config, load_config, set_config
from clawdash.config.models import DashboardConfig


def test_defaults_follow_environment(isolated_env):
    config = load_config()

    assert config.paths.root_path == isolated_env / "root"
    assert config.paths.home_path == isolated_env / "home"
    assert config.server.port == 3000
    assert config.gateway.ports == [18789, 5000]
    assert config.paths.state_path == isolated_env / "root" / "openclaw-state"


def test_env_overrides(isolated_env, monkeypatch):
    monkeypatch.setenv("DASHBOARD_PORT", "4321")
    monkeypatch.setenv("OPENCLAW_STATE_DIR", str(isolated_env / "state"))
    monkeypatch.setenv("CLAWDASH_LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.server.port == 4321
    assert config.paths.state_path == isolated_env / "state"
    assert config.logging.level == "DEBUG"


def test_bad_port_is_ignored(monkeypatch):
    monkeypatch.setenv("DASHBOARD_PORT", "not-a-port")
    assert load_config().server.port == 3000


def test_yaml_file_in_data_dir(isolated_env):
    data_dir = isolated_env / "root" / "dashboard-data"
    data_dir.mkdir()
    (data_dir / "clawdash.yaml").write_text(
        "server:\n  host: 0.0.0.0\ngateway:\n  ws_port: 19000\n  start_settle: 1\n"
    )

    config = load_config()

    assert config.server.host == "0.0.0.0"
    assert config.gateway.ws_port == 19000
    assert config.gateway.start_settle == 1
    # env still wins for the root
    assert config.paths.root_path == isolated_env / "root"


def test_explicit_json_file(isolated_env, monkeypatch):
    path = isolated_env / "custom.json"
    path.write_text(json.dumps({"server": {"port": 8080}, "chat": {"history_limit": 10}}))
    monkeypatch.setenv("CLAWDASH_CONFIG_PATH", str(path))

    config = load_config()

    assert config.server.port == 8080
    assert config.chat.history_limit == 10


def test_unreadable_config_falls_back_to_defaults(isolated_env):
    path = isolated_env / "broken.yaml"
    path.write_text("server: [unclosed")
    assert load_config(str(path)).server.port == 3000


def test_get_config_is_cached():
    set_config(None)
    try:
        first = get_config()
        assert get_config() is first
        replacement = DashboardConfig()
        set_config(replacement)
        assert get_config() is replacement
    finally:
        set_config(None)
