#!/usr/bin/env python3
"""
Job feed cron entry point.

Usage:
    python scripts/run_ingest.py schedule-daily [--limit 4]    # once a day
    python scripts/run_ingest.py process-due                   # every 15 minutes
    python scripts/run_ingest.py ingest [--category-id 3]      # one category now

Example crontab:
    0 6 * * *     cd /srv/niena && python scripts/run_ingest.py schedule-daily
    */15 * * * *  cd /srv/niena && python scripts/run_ingest.py process-due
"""
import argparse
import json
import logging

from niena.core.config import get_settings
from niena.services import ingestion_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Niena job feed ingestion")
    sub = parser.add_subparsers(dest="command", required=True)

    schedule = sub.add_parser("schedule-daily", help="Queue runs for the oldest fetched categories")
    schedule.add_argument("--limit", type=int, default=None)

    sub.add_parser("process-due", help="Claim one due run and ingest it")

    ingest = sub.add_parser("ingest", help="Ingest one category immediately")
    ingest.add_argument("--category-id", type=int, default=None)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.command == "schedule-daily":
        result = ingestion_service.schedule_daily_runs(limit=args.limit)
    elif args.command == "process-due":
        result = ingestion_service.process_due_run()
    else:
        result = ingestion_service.get_ingestion_service().ingest_category(args.category_id)

    print(json.dumps(result, default=str))


if __name__ == "__main__":
    main()
