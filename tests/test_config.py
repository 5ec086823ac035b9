"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from lorekeeper.config import LorekeeperConfig, load_config


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ADMIN_EMAILS", raising=False)
        cfg = load_config(_write(tmp_path, "community_name: Hawkins\n"))
        assert cfg.community_name == "Hawkins"
        assert cfg.admin_emails == frozenset()
        assert cfg.leaderboard_limit == 50
        assert cfg.approved_page_size == 20

    def test_emails_merged_and_normalized(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAILS", " Env@Example.com , ")
        cfg = load_config(_write(
            tmp_path,
            "community_name: Hawkins\nadmin_emails:\n  - Yaml@Example.com\n",
        ))
        assert cfg.admin_emails == frozenset({"env@example.com", "yaml@example.com"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_page_size_above_limit_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="approved_page_size"):
            load_config(_write(tmp_path, "community_name: x\napproved_page_size: 500\n"))

    def test_page_size_at_limit_accepted(self, tmp_path):
        cfg = load_config(_write(tmp_path, "community_name: x\napproved_page_size: 100\n"))
        assert cfg.approved_page_size == 100

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "leaderboard_limit: 10\n"))


class TestAllowList:
    def test_case_insensitive(self):
        cfg = LorekeeperConfig(community_name="x", admin_emails=frozenset({"a@b.com"}))
        assert cfg.is_admin_email(" A@B.COM ")
        assert not cfg.is_admin_email(None)
        assert not cfg.is_admin_email("c@d.com")
