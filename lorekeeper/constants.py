"""
lorekeeper.constants — Shared Constants
========================================

Single source of truth for field limits, role names and the username
pattern.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Theory field limits
# ---------------------------------------------------------------------------
CONTENT_MIN_LENGTH = 1
CONTENT_MAX_LENGTH = 5000

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 140

DENIAL_REASON_MAX_LENGTH = 500

MIN_SPLIT_PARTS = 2

# ---------------------------------------------------------------------------
# Usernames
# ---------------------------------------------------------------------------
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# ---------------------------------------------------------------------------
# Roles: fixed set, seeded on startup
# ---------------------------------------------------------------------------
ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_READER = "reader"

ROLE_DESCRIPTIONS: dict[str, str] = {
    ROLE_ADMIN: "Moderates theories and manages tags and roles",
    ROLE_EDITOR: "Can retitle and edit theories",
    ROLE_READER: "Read-only access",
}

# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
DEFAULT_LEADERBOARD_LIMIT = 50
MAX_PAGE_SIZE = 100

VOTE_VALUES: frozenset[int] = frozenset({1, -1})
