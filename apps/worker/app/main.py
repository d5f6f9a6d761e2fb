"""Run one scheduled job outside the HTTP surface, e.g. from cron:

    python -m apps.worker.app.main daily-equity-reset
"""
import argparse
import json
import sys

from apps.api.app.core.logging_config import configure_logging
from apps.api.app.db.session import SessionLocal
from apps.worker.app.jobs.daily_reset import run_daily_reset
from apps.worker.app.jobs.deadline_monitor import run_deadline_monitor
from apps.worker.app.jobs.inactivity_monitor import run_inactivity_monitor

JOBS = {
    "daily-equity-reset": run_daily_reset,
    "challenge-deadline-monitor": run_deadline_monitor,
    "inactivity-monitor": run_inactivity_monitor,
}


def run_job(name: str) -> dict:
    db = SessionLocal()
    try:
        return JOBS[name](db)
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run a scheduled risk job once.")
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args(argv)

    configure_logging()
    result = run_job(args.job)
    print(json.dumps(result, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
