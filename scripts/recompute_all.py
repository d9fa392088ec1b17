"""Backfill: re-derive every activity state and rollup.

Run with:
    python scripts/recompute_all.py [--sync-role-defaults] [ENROLLMENT_ID ...]

Safe to re-run; a second pass over unchanged data writes nothing new.
"""

from __future__ import annotations

import argparse
import logging
from uuid import UUID

from pathway_progress.api.dependencies import assignment_service, engine
from pathway_progress.core.config import SETTINGS
from pathway_progress.core.logging import setup_logging

logger = logging.getLogger("recompute_all")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("enrollment_ids", nargs="*", type=UUID)
    parser.add_argument(
        "--sync-role-defaults",
        action="store_true",
        help="create role-default pathway assignments first",
    )
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    ids = args.enrollment_ids or None

    if args.sync_role_defaults:
        created = assignment_service.sync_role_defaults(ids)
        logger.info("Created %d role-default assignment(s)", created)

    results = engine.recompute_all(ids)
    transitions = sum(len(r.transitions) for r in results)
    logger.info("Recomputed %d enrollment(s), %d transition(s)", len(results), transitions)


if __name__ == "__main__":
    main()
