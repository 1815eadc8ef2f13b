"""
Backfill leadId Script
Gives every lead without a numeric leadId a fresh one.

Leads created before leadId allocation existed (or imported directly into the
collection) have no leadId; the sparse unique index tolerates that, but the UI
and search need one.

Usage (from backend/):
  python -m scripts.backfill_lead_ids [--dry-run]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pymongo.errors import DuplicateKeyError

from database import get_db_context
from drivecrm.models.base import utc_now_iso
from drivecrm.services.lead_id_generator import LeadIdGenerator
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


async def backfill_lead_ids(db, generator: LeadIdGenerator, dry_run: bool = False) -> dict:
    """Assign a leadId to each lead missing one. Returns counts."""
    missing = await db["leads"].find(
        {"$or": [{"leadId": {"$exists": False}}, {"leadId": None}]},
        {"_id": 0, "id": 1}
    ).to_list(length=None)

    stats = {"found": len(missing), "updated": 0, "failed": 0}
    for lead in missing:
        if dry_run:
            continue
        for _ in range(MAX_WRITE_ATTEMPTS):
            candidate = await generator.next_lead_id()
            try:
                result = await db["leads"].update_one(
                    {"id": lead["id"], "$or": [{"leadId": {"$exists": False}}, {"leadId": None}]},
                    {"$set": {"leadId": candidate, "updatedAt": utc_now_iso()}},
                )
            except DuplicateKeyError:
                logger.warning(f"leadId {candidate} taken, retrying for lead {lead['id']}")
                continue
            if result.modified_count:
                stats["updated"] += 1
            break
        else:
            logger.error(f"Could not assign a leadId to lead {lead['id']}")
            stats["failed"] += 1

    return stats


async def main():
    parser = argparse.ArgumentParser(description="Backfill missing lead leadIds")
    parser.add_argument("--dry-run", action="store_true", help="Only count leads missing a leadId")
    args = parser.parse_args()

    async with get_db_context() as db:
        stats = await backfill_lead_ids(db, LeadIdGenerator(db), dry_run=args.dry_run)

    mode = "DRY RUN" if args.dry_run else "DONE"
    print(f"{mode}: {stats['found']} leads without leadId, {stats['updated']} updated, {stats['failed']} failed")


if __name__ == "__main__":
    asyncio.run(main())
