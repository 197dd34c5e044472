"""
Tests for the config reconciler: merge rules and fan-out writes.
"""

import json

import pytest

from clawdash.errors import ReconcileError
from clawdash.gateway.reconciler import (
    AUDIO_DEFAULTS,
    SKELETON,
    GatewayPatch,
    apply_desired_state,
    apply_patch,
    read_document,
    telegram_patch,
)

from conftest import read_config, write_config


# ─── apply_patch ───────────────────────────────────────────────────


def test_lock_on_empty_location_builds_full_document(tmp_path):
    target = tmp_path / "state" / "openclaw.json"

    outcome = apply_desired_state([target], telegram_patch(token="T", lock_user="555"))

    assert outcome.any_written
    assert outcome.results[0].created
    doc = read_config(target)
    assert doc["gateway"]["mode"] == "local"
    assert doc["channels"]["telegram"] == {
        "botToken": "T",
        "enabled": True,
        "dmPolicy": "allowlist",
        "allowFrom": ["555"],
        "groupPolicy": "allowlist",
    }
    assert doc["plugins"]["entries"]["telegram"]["enabled"] is True
    assert doc["agents"]["defaults"]["model"]["primary"] == SKELETON["agents"]["defaults"]["model"]["primary"]


def test_unlocked_channel_is_open_with_wildcard():
    doc = apply_patch({}, telegram_patch(token="T"))
    telegram = doc["channels"]["telegram"]
    assert telegram["dmPolicy"] == "open"
    assert telegram["allowFrom"] == ["*"]


def test_lock_replaces_existing_allowlist():
    existing = {"channels": {"telegram": {"dmPolicy": "allowlist", "allowFrom": ["1", "2"]}}}
    doc = apply_patch(existing, telegram_patch(lock_user="555"))
    assert doc["channels"]["telegram"]["allowFrom"] == ["555"]
    assert existing["channels"]["telegram"]["allowFrom"] == ["1", "2"]


def test_unrelated_keys_survive_and_voice_is_removed():
    existing = {
        "voice": {"enabled": True},
        "channels": {"discord": {"enabled": True}},
        "agents": {"defaults": {"model": {"primary": "anthropic/claude"}}},
        "custom": [1, 2, 3],
    }
    doc = apply_patch(existing, telegram_patch(token="T"))

    assert "voice" not in doc
    assert doc["channels"]["discord"] == {"enabled": True}
    assert doc["agents"]["defaults"]["model"]["primary"] == "anthropic/claude"
    assert doc["custom"] == [1, 2, 3]


def test_fill_only_keeps_existing_lock_and_audio():
    existing = {
        "channels": {"telegram": {"botToken": "OLD", "dmPolicy": "allowlist", "allowFrom": ["555"]}},
        "tools": {"media": {"audio": {"enabled": True, "maxBytes": 1}}},
        "messages": {"tts": {"auto": "always", "provider": "openai"}},
    }
    patch = telegram_patch(token="NEW", voice=True, fill_only=True)

    doc = apply_patch(existing, patch)

    telegram = doc["channels"]["telegram"]
    assert telegram["botToken"] == "OLD"
    assert telegram["dmPolicy"] == "allowlist"
    assert telegram["allowFrom"] == ["555"]
    assert doc["tools"]["media"]["audio"] == {"enabled": True, "maxBytes": 1}
    assert doc["messages"]["tts"]["provider"] == "openai"


def test_voice_patch_enables_audio_when_disabled():
    existing = {"tools": {"media": {"audio": {"enabled": False}}}}
    doc = apply_patch(existing, GatewayPatch(audio=AUDIO_DEFAULTS, fill_only=True))
    assert doc["tools"]["media"]["audio"] == AUDIO_DEFAULTS


def test_preserve_policy_keeps_open_channel_open():
    existing = {"channels": {"telegram": {"dmPolicy": "pairing"}}}
    doc = apply_patch(existing, telegram_patch(token="T", preserve_policy=True))
    telegram = doc["channels"]["telegram"]
    assert telegram["dmPolicy"] == "pairing"
    assert telegram["botToken"] == "T"
    assert "allowFrom" not in telegram


def test_primary_model_patch():
    doc = apply_patch({}, GatewayPatch(primary_model="openai/gpt-4o"))
    assert doc["agents"]["defaults"]["model"]["primary"] == "openai/gpt-4o"
    assert doc["gateway"]["mode"] == "local"


def test_extra_channel_settings_are_written():
    doc = apply_patch({}, telegram_patch(token="T", streaming="partial"))
    assert doc["channels"]["telegram"]["streaming"] == "partial"


# ─── apply_desired_state ───────────────────────────────────────────


def test_reapplying_the_same_patch_is_a_no_op(tmp_path):
    target = tmp_path / "openclaw.json"
    patch = telegram_patch(token="T", lock_user="555", voice=True)

    apply_desired_state([target], patch)
    first = target.read_bytes()
    outcome = apply_desired_state([target], patch)

    assert target.read_bytes() == first
    assert outcome.results[0].ok
    assert not outcome.results[0].changed


def test_every_location_gets_the_patch(tmp_path):
    a = write_config(tmp_path / "a" / "openclaw.json", {"gateway": {"mode": "remote"}})
    b = tmp_path / "b" / "openclaw.json"

    outcome = apply_desired_state([a, b], telegram_patch(token="T", lock_user="555"))

    assert outcome.written == [a, b]
    for path in (a, b):
        assert read_config(path)["channels"]["telegram"]["allowFrom"] == ["555"]
        assert read_config(path)["gateway"]["mode"] == "local"
    assert outcome.authoritative == a
    assert outcome.authoritative_ok


def test_corrupt_location_is_backed_up_and_rebuilt(tmp_path):
    corrupt = tmp_path / "a" / "openclaw.json"
    corrupt.parent.mkdir()
    corrupt.write_text("{not json")
    valid = write_config(tmp_path / "b" / "openclaw.json", {"custom": True})

    outcome = apply_desired_state([corrupt, valid], telegram_patch(token="T"))

    assert outcome.any_written
    bad = outcome.results[0]
    assert bad.ok and bad.recovered
    assert bad.error.startswith("invalid JSON")
    assert (tmp_path / "a" / "openclaw.json.corrupt").read_text() == "{not json"
    assert read_config(corrupt)["channels"]["telegram"]["botToken"] == "T"
    assert read_config(valid)["custom"] is True


def test_undecodable_location_is_backed_up_and_rebuilt(tmp_path):
    garbled = tmp_path / "a" / "openclaw.json"
    garbled.parent.mkdir()
    garbled.write_bytes(b"\xff\xfe{garbage")
    good = tmp_path / "b" / "openclaw.json"

    outcome = apply_desired_state([garbled, good], telegram_patch(token="T"))

    assert outcome.written == [garbled, good]
    assert outcome.results[0].recovered
    assert (tmp_path / "a" / "openclaw.json.corrupt").read_bytes() == b"\xff\xfe{garbage"
    assert read_config(good)["channels"]["telegram"]["botToken"] == "T"


def test_unwritable_location_does_not_abort_batch(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    unwritable = blocker / "openclaw.json"
    good = tmp_path / "good" / "openclaw.json"

    outcome = apply_desired_state([unwritable, good], telegram_patch(token="T"))

    assert outcome.any_written
    assert outcome.written == [good]
    assert len(outcome.failed) == 1
    assert outcome.failed[0].error
    outcome.raise_if_none_written()


def test_nothing_written_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")

    outcome = apply_desired_state([blocker / "openclaw.json"], telegram_patch(token="T"))

    assert not outcome.any_written
    with pytest.raises(ReconcileError) as info:
        outcome.raise_if_none_written()
    assert info.value.result is outcome


def test_missing_locations_can_be_skipped(tmp_path):
    existing = write_config(tmp_path / "a" / "openclaw.json", {})
    missing = tmp_path / "b" / "openclaw.json"

    outcome = apply_desired_state([existing, missing], telegram_patch(token="T"), create_missing=False)

    assert outcome.results[1].skipped
    assert not missing.exists()
    assert outcome.failed == []


def test_result_serializes(tmp_path):
    target = tmp_path / "openclaw.json"
    data = apply_desired_state([target], telegram_patch(token="T")).to_dict()
    assert data["anyWritten"] is True
    assert data["authoritative"] == str(target)
    assert json.dumps(data)


def test_read_document_tolerates_garbage(tmp_path):
    path = tmp_path / "x.json"
    assert read_document(path) == {}
    path.write_text("[1, 2]")
    assert read_document(path) == {}
    assert read_document(None) == {}
