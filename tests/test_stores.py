"""
Tests for the small JSON / env stores: profiles, settings, allowlist,
profile .env files, and Telegram input validation.
"""

import json

import pytest
import yaml

from clawdash.channels.allowlist import Allowlist
from clawdash.channels.telegram import BotCheck, validate_token, validate_user_id
from clawdash.config.manager import EnvFile
from clawdash.errors import InvalidInputError
from clawdash.profiles.store import ProfileStore
from clawdash.services.settings import SettingsStore, write_yaml_config


# ─── Profiles ──────────────────────────────────────────────────────


def test_missing_profile_file_synthesizes_default(tmp_path):
    store = ProfileStore(tmp_path / "profiles.json")

    profiles = store.list()

    assert [p.id for p in profiles] == ["default"]
    assert profiles[0].active
    saved = json.loads((tmp_path / "profiles.json").read_text())
    assert saved[0]["id"] == "default"
    assert "createdAt" in saved[0]


def test_corrupt_profile_file_reads_as_default(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text("{{{")
    assert ProfileStore(path).active().id == "default"


def test_exactly_one_profile_is_active(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps([
        {"id": "default", "name": "Default", "active": True},
        {"id": "p-1", "name": "Work", "active": True},
    ]))
    store = ProfileStore(path)

    assert [p.active for p in store.list()] == [True, False]

    store.activate("p-1")
    assert store.active().id == "p-1"
    assert [p.id for p in store.list() if p.active] == ["p-1"]
    assert store.get("p-1").last_used_at


def test_activate_unknown_profile(tmp_path):
    with pytest.raises(InvalidInputError):
        ProfileStore(tmp_path / "profiles.json").activate("p-nope")


def test_unknown_profile_fields_are_kept(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps([{"id": "default", "active": True, "color": "teal"}]))
    store = ProfileStore(path)
    store.activate("default")
    assert json.loads(path.read_text())[0]["color"] == "teal"


# ─── Settings ──────────────────────────────────────────────────────


def test_settings_merge_on_save(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    store.save({"openaiApiKey": "sk-1"})
    store.save({"telegramBotToken": "1:abc"})

    settings = store.load()
    assert settings.openai_api_key == "sk-1"
    assert settings.telegram_bot_token == "1:abc"


def test_corrupt_settings_read_as_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("nope")
    assert SettingsStore(path).load().openai_api_key == ""


def test_yaml_config_is_backed_up_and_rewritten(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    settings = store.save({"anthropicApiKey": "sk-ant", "ftpHost": "ftp.example.com"})
    target = tmp_path / "config" / "default.yaml"
    backups = tmp_path / "backups"

    assert write_yaml_config(settings, target, backups) is None
    backup = write_yaml_config(settings, target, backups)

    assert backup is not None and backup.exists()
    text = target.read_text()
    assert text.startswith("# clawdash generated config")
    data = yaml.safe_load(text)
    assert data["gateway"]["mode"] == "local"
    assert data["anthropic"] == {"api_key": "sk-ant"}
    assert data["ftp"] == {"host": "ftp.example.com"}
    assert "openai" not in data


# ─── Allowlist ─────────────────────────────────────────────────────


def test_allowlist_add_is_idempotent(tmp_path):
    allowlist = Allowlist(tmp_path / "credentials" / "telegram-allowFrom.json")

    assert allowlist.add("555")
    assert not allowlist.add(555)
    assert allowlist.read() == ["555"]
    data = json.loads(allowlist.path.read_text())
    assert data == {"version": 1, "allowFrom": ["555"]}


def test_allowlist_tolerates_garbage(tmp_path):
    path = tmp_path / "allow.json"
    path.write_text('{"allowFrom": "555"}')
    assert Allowlist(path).read() == []


# ─── Env files ─────────────────────────────────────────────────────


def test_env_file_set_keeps_other_keys(tmp_path):
    env = EnvFile(tmp_path / "profile" / ".env")
    assert env.get_all() == {}

    env.set("OPENAI_API_KEY", "sk-1")
    env.update({"TELEGRAM_BOT_TOKEN": "1:abc", "OPENAI_API_KEY": "sk-2"})

    assert env.get_all() == {"OPENAI_API_KEY": "sk-2", "TELEGRAM_BOT_TOKEN": "1:abc"}
    assert env.first(["TELEGRAM_TOKEN", "TELEGRAM_BOT_TOKEN"]) == "1:abc"
    assert env.first(["MISSING"]) == ""


# ─── Telegram input ────────────────────────────────────────────────


def test_validate_token():
    assert validate_token("  123456:ABCdefGHIjkl ") == "123456:ABCdefGHIjkl"
    for bad in (None, "", "no-colon", "abc:def"):
        with pytest.raises(InvalidInputError):
            validate_token(bad)


def test_validate_user_id():
    assert validate_user_id(" 555 ") == "555"
    assert validate_user_id(555) == "555"
    for bad in (None, "", "abc", "-5", "5 5"):
        with pytest.raises(InvalidInputError):
            validate_user_id(bad)


def test_bot_check_serialization():
    assert BotCheck(ok=False, error="Unauthorized").to_dict() is None
    assert BotCheck(ok=True, username="bot", first_name="Bot", bot_id=1).to_dict() == {
        "username": "bot",
        "firstName": "Bot",
        "id": 1,
    }
