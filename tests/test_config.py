"""
tests/test_config.py
Tests for smsbr_config.json handling.
"""

import json
from pathlib import Path

from smsbr.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    ensure_config,
    load_config,
    resolve_db_path,
    resolve_order,
    resolve_region,
    save_config,
    startup_file,
)
from smsbr.models.conversations import Order


class TestConfig:

    def test_defaults_when_missing(self, tmp_path):
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_merged_over_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"default_region": "fr"}), encoding="utf-8")
        config = load_config(tmp_path)
        assert config["default_region"] == "fr"
        assert config["api_port"] == DEFAULT_CONFIG["api_port"]

    def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{not json", encoding="utf-8")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_save_roundtrip(self, tmp_path):
        config = dict(DEFAULT_CONFIG, contact_order="asc")
        save_config(config, tmp_path)
        assert load_config(tmp_path)["contact_order"] == "asc"

    def test_ensure_drops_missing_last_file(self, tmp_path):
        save_config(dict(DEFAULT_CONFIG, last_file=str(tmp_path / "gone.xml")), tmp_path)
        assert ensure_config(tmp_path)["last_file"] is None

    def test_ensure_keeps_existing_last_file(self, tmp_path):
        backup = tmp_path / "sms.xml"
        backup.write_text("<smses/>", encoding="utf-8")
        save_config(dict(DEFAULT_CONFIG, last_file=str(backup)), tmp_path)
        assert ensure_config(tmp_path)["last_file"] == str(backup)


class TestResolvers:

    def test_region_from_config(self):
        assert resolve_region({"default_region": "fr"}) == "FR"

    def test_region_from_host(self, monkeypatch):
        monkeypatch.setattr("smsbr.config.host_region", lambda: "DE")
        assert resolve_region({"default_region": None}) == "DE"

    def test_order(self):
        assert resolve_order({"contact_order": "ASC"}, "contact_order") is Order.ASC

    def test_invalid_order_falls_back(self):
        assert resolve_order({"message_order": "sideways"}, "message_order") is Order.ASC


class TestStartupFile:

    def test_none_unless_asked(self):
        assert startup_file(dict(DEFAULT_CONFIG, last_file="/data/sms.xml")) is None

    def test_requested(self):
        config = dict(DEFAULT_CONFIG, last_file="/data/sms.xml")
        assert startup_file(config, requested=True) == Path("/data/sms.xml")

    def test_load_last_file_flag(self):
        config = dict(DEFAULT_CONFIG, last_file="/data/sms.xml", load_last_file=True)
        assert startup_file(config) == Path("/data/sms.xml")

    def test_no_last_file(self):
        config = dict(DEFAULT_CONFIG, load_last_file=True)
        assert startup_file(config, requested=True) is None


class TestDbPath:

    def test_relative_next_to_config(self, tmp_path):
        assert resolve_db_path(DEFAULT_CONFIG, tmp_path) == tmp_path / "smsbr.db"

    def test_absolute_kept(self, tmp_path):
        target = tmp_path / "exports" / "all.db"
        assert resolve_db_path({"db_path": str(target)}, Path("/elsewhere")) == target
