#!/usr/bin/env python3
"""
Recompute every student's debt in a school from recorded payment and
adjustment deltas, and overwrite the stored aggregate.

Usage:
  python scripts/rebuild_student_debts.py <school_id>
  python scripts/rebuild_student_debts.py <school_id> --dry-run
  # Requires DATABASE_URL in .env (or export)
"""
import argparse
import asyncio
import os
import sys
from uuid import UUID

# Load .env from project root
from dotenv import load_dotenv

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"))

# Add project root to path
sys.path.insert(0, _root)

from sqlalchemy import select

from classledger.core.logging import setup_logging
from classledger.database import AsyncSessionLocal, close_db
from classledger.models.enums import UserRole
from classledger.models.school import User
from classledger.services.ledger_service import LedgerService


async def rebuild(school_id: UUID, dry_run: bool) -> int:
    drifted = 0
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(User.id).where(User.school_id == school_id, User.role == UserRole.STUDENT)
        )
        student_ids = list(result.scalars().all())
        print(f"Checking {len(student_ids)} students...")

        for student_id in student_ids:
            if dry_run:
                financial = await LedgerService.get_student_financial(db, school_id, student_id)
                stored = financial.debt if financial else 0
                replayed = await LedgerService.replay_student_debt(db, school_id, student_id)
                if stored != replayed:
                    drifted += 1
                    print(f"  {student_id}: stored={stored} replayed={replayed}")
                continue

            outcome = await LedgerService.rebuild_student_debt(db, school_id, student_id)
            if outcome.drift != 0:
                drifted += 1
                print(f"  {student_id}: {outcome.stored_debt} -> {outcome.replayed_debt}")

    await close_db()
    return drifted


def main():
    parser = argparse.ArgumentParser(description="Rebuild student debt aggregates for a school")
    parser.add_argument("school_id", type=UUID)
    parser.add_argument("--dry-run", action="store_true", help="report drift without writing")
    args = parser.parse_args()

    if not os.getenv("DATABASE_URL"):
        print("ERROR: DATABASE_URL must be set. Add to .env or export.")
        sys.exit(1)

    setup_logging()
    drifted = asyncio.run(rebuild(args.school_id, args.dry_run))
    verb = "found" if args.dry_run else "repaired"
    print(f"DONE: {drifted} drifted balance(s) {verb}.")


if __name__ == "__main__":
    main()
