#!/usr/bin/env python3
"""
Run one scheduled job immediately, in this process.

Useful to trigger a check or a sync by hand without waiting for its cron
expression. The job still takes its Redis lock, so it is skipped if the
worker is running the same job right now.

Usage:
    python scripts/run_job.py intelligent-check
    python scripts/run_job.py --list
"""

import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging
from app.tasks.job_helpers import JobName
from app.tasks.scheduler import JOB_TASKS


def main(argv: list[str]) -> int:
    by_slug = {job.slug: job for job in JobName}

    if not argv or argv[0] in ("-l", "--list"):
        print("Available jobs:")
        for slug in by_slug:
            print(f"  {slug}")
        return 0 if argv else 1

    job = by_slug.get(argv[0].lower())
    if job is None:
        print(f"❌ Unknown job '{argv[0]}' (see --list)")
        return 1

    setup_logging()
    print(f"▶️  Running {job.value}...")

    # Calling the task runs its body locally instead of queueing it
    result = JOB_TASKS[job]()

    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
