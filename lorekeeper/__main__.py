"""
lorekeeper.__main__ — Entry point for ``python -m lorekeeper``
===============================================================

Subcommands::

    python -m lorekeeper serve [--host H] [--port P] [--reload]
    python -m lorekeeper init-db
    python -m lorekeeper backfill-contributions [--dry-run]

``init-db`` creates missing tables and seeds the fixed role set; in
production prefer ``alembic upgrade head`` for schema changes.
"""

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv

from lorekeeper.database.engine import create_db_engine, init_db
from lorekeeper.services.backfill_service import backfill_contributions

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("lorekeeper")


def _serve(args: argparse.Namespace) -> None:
    import uvicorn

    logger.info("Starting Lorekeeper API on %s:%d…", args.host, args.port)
    uvicorn.run(
        "lorekeeper.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


def _init_db(args: argparse.Namespace) -> None:
    init_db(create_db_engine())


def _backfill(args: argparse.Namespace) -> None:
    result = backfill_contributions(create_db_engine(), dry_run=args.dry_run)
    logger.info(
        "Backfill complete — approvals=%d votes=%d new=%d%s",
        result["approvals"], result["votes"], result["created"],
        " (dry run)" if result["dry_run"] else "",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lorekeeper", description="Lorekeeper theory board")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=_serve)

    init = sub.add_parser("init-db", help="Create tables and seed roles")
    init.set_defaults(func=_init_db)

    backfill = sub.add_parser(
        "backfill-contributions",
        help="Rebuild missing contribution credit from approvals and votes",
    )
    backfill.add_argument("--dry-run", action="store_true")
    backfill.set_defaults(func=_backfill)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse *argv* and dispatch to the chosen subcommand."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
