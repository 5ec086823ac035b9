"""
Lorekeeper — Theory Moderation & Scoring for a Fan Community
==============================================================
Fans submit theories about the series, moderators approve, deny, tag,
retitle or split them, approved theories are publicly ranked by votes,
and a contribution ledger drives the contributor leaderboard.

Package layout::

    lorekeeper/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Field limits, role names, username pattern
    ├── errors.py          # Error taxonomy (validation/not-found/auth/conflict)
    ├── __main__.py        # serve / init-db / backfill-contributions
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Fixed role set seeder
    ├── engine/
    │   ├── lifecycle.py   # Theory status transitions + input checks
    │   └── ranking.py     # Pure score / top-theory / leaderboard ordering
    ├── services/
    │   ├── identity_service.py      # Resolve-or-create users, usernames
    │   ├── tag_service.py           # Tag registry
    │   ├── theory_service.py        # Moderation state machine
    │   ├── vote_service.py          # Vote ledger
    │   ├── contribution_service.py  # Contribution ledger
    │   ├── ranking_service.py       # Top theories + leaderboard queries
    │   ├── admin_service.py         # Audit log + role administration
    │   └── backfill_service.py      # Contribution ledger repair
    └── api/
        ├── main.py        # FastAPI app + error handlers
        ├── deps.py        # Token verification, engine/config injection
        ├── auth.py        # /auth/me, /auth/username
        └── routes/        # Theories, contributions, admin endpoints
"""

__version__ = "0.1.0"
