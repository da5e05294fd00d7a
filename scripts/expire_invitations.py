from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
import sys

from sqlalchemy.exc import SQLAlchemyError

from minrisk.core.logging import configure_logging
from minrisk.persistence.db import SessionLocal
from minrisk.persistence.repos.invitations import expire_overdue


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mark overdue pending invitations as expired")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count overdue invitations without committing the update",
    )
    return parser


async def _expire(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        expired = await expire_overdue(session, now=datetime.now(timezone.utc))
        if args.dry_run:
            await session.rollback()
        else:
            await session.commit()
    print(f"expired_invitations={expired} dry_run={args.dry_run}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_expire(args))
    except SQLAlchemyError as exc:
        print(f"expire_invitations failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
