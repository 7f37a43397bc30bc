"""
Run the daily installment status sweep outside the API (cron, manual retry).

Safe to re-run: installments already in their correct status are left alone.
Usage: python -m app.scripts.run_status_sweep [--agency-id UUID]
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional
from uuid import UUID

from app.api.v1.jobs.service import run_daily_status_sweep
from app.core.config import settings
from app.core.exceptions import ServiceError
from app.db.session import AsyncSessionLocal


async def run_status_sweep(agency_id: Optional[UUID] = None) -> int:
    """Run one sweep and print a summary. Returns the process exit code."""
    async with AsyncSessionLocal() as session:
        try:
            summary = await run_daily_status_sweep(session, agency_id=agency_id)
        except ServiceError as e:
            print(f"Status sweep aborted: {e.message}", file=sys.stderr)
            return 1

    print(
        f"Done. {summary.agencies_processed} agency(ies) processed, "
        f"{summary.records_updated} installment(s) updated."
    )
    for result in summary.agencies:
        if result.transitions:
            print(f"  {result.agency_id}: {result.transitions}")
    for error in summary.errors:
        print(f"  FAILED: {error.agency_id}: {error.message}", file=sys.stderr)
    return 1 if summary.agencies_failed and not summary.agencies_processed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Update installment statuses (pending -> due_soon -> overdue).")
    parser.add_argument("--agency-id", type=UUID, default=None, help="Only sweep this agency")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper())
    sys.exit(asyncio.run(run_status_sweep(args.agency_id)))


if __name__ == "__main__":
    main()
