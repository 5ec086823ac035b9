"""
lorekeeper.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for community policy settings (admin e-mail
allow-list, leaderboard size, paging).  Secrets and infrastructure
(``DATABASE_URL``, ``JWT_SECRET``) stay in the environment / ``.env``.

The loaded :class:`LorekeeperConfig` is passed explicitly into the
services that need it, so nothing reads the allow-list from a global.

Usage::

    from lorekeeper.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.community_name)           # "Hawkins Theory Board"
    print("a@b.com" in cfg.admin_emails)
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from lorekeeper.constants import MAX_PAGE_SIZE


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LorekeeperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Access: e-mails that are granted the admin role on sight
    admin_emails: frozenset[str] = field(default_factory=frozenset)

    # Display
    leaderboard_limit: int = 50
    approved_page_size: int = 20

    def is_admin_email(self, email: str | None) -> bool:
        """Case-insensitive allow-list check."""
        if not email:
            return False
        return email.strip().lower() in self.admin_emails


def normalize_emails(emails: Iterable[str]) -> frozenset[str]:
    """Lower-case and strip e-mails, dropping blanks."""
    return frozenset(e.strip().lower() for e in emails if e and e.strip())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> LorekeeperConfig:
    """Read *path* and return a :class:`LorekeeperConfig` instance.

    ``ADMIN_EMAILS`` (comma-separated) from the environment is merged into
    the YAML allow-list so deployments can add admins without editing the
    file.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``approved_page_size`` is outside 1..MAX_PAGE_SIZE.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    page_size = int(raw.get("approved_page_size", 20))
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(
            f"approved_page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}"
        )

    env_emails = os.getenv("ADMIN_EMAILS", "").split(",")

    return LorekeeperConfig(
        community_name=raw["community_name"],
        admin_emails=normalize_emails([*(raw.get("admin_emails") or []), *env_emails]),
        leaderboard_limit=int(raw.get("leaderboard_limit", 50)),
        approved_page_size=page_size,
    )
