#!/usr/bin/env python3
"""
Run the automation queue once, e.g. from cron.

    python scripts/process_automation.py          # send every due job
    python scripts/process_automation.py --test   # simulate sends, no email/SMS
    python scripts/process_automation.py --list   # show pending jobs only
"""

import argparse
import asyncio
import logging
import os
import sys

# Add the project root to the Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from loopreviews.database import session_scope  # noqa: E402
from loopreviews.services.automation_service import AutomationService  # noqa: E402

logger = logging.getLogger("process_automation")


async def list_jobs() -> int:
    async with session_scope() as db:
        pending = await AutomationService.list_pending(db)
    for job in pending["pendingJobs"]:
        logger.info(
            f"job {job.id}: {job.template_type} to {job.customer_email or job.customer_phone} "
            f"at {job.scheduled_for} (user {job.user_id})")
    logger.info(f"{pending['count']} pending job(s)")
    return 0


async def process(test_mode: bool) -> int:
    async with session_scope() as db:
        outcome = await AutomationService.process_pending(db, test_mode=test_mode)
    if not outcome.get("processedJobs"):
        logger.info(outcome.get("message", "Nothing to do"))
        return 0
    for result in outcome["results"]:
        if result["success"]:
            logger.info(f"job {result['jobId']} ({result['type']}) sent")
        else:
            logger.warning(f"job {result['jobId']} ({result['type']}) failed: {result['error']}")
    logger.info(
        f"processed {outcome['processedJobs']}: "
        f"{outcome['successfulJobs']} ok, {outcome['failedJobs']} failed")
    return 1 if outcome["failedJobs"] else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Process pending review-request automation jobs")
    parser.add_argument("--test", action="store_true", help="simulate sends without delivering")
    parser.add_argument("--list", action="store_true", help="list pending jobs and exit")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    if args.list:
        return asyncio.run(list_jobs())
    return asyncio.run(process(args.test))


if __name__ == "__main__":
    sys.exit(main())
