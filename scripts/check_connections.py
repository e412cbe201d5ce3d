#!/usr/bin/env python3
"""
Connection Check Script

Verifies PostgreSQL, MongoDB, the LLM endpoint and the job-search API key.

Usage:
    python scripts/check_connections.py
    python scripts/check_connections.py --init   # also apply sql/schema.sql and Mongo indexes
"""
import argparse
import sys

from niena.core.config import get_settings
from niena.db.mongodb import check_mongo_connection, collection_counts, init_mongo_indexes
from niena.db.postgres import apply_schema, check_postgres_connection
from niena.services.llm_client import get_llm_client


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check Niena backing services")
    parser.add_argument("--init", action="store_true", help="apply the Postgres schema and Mongo indexes")
    args = parser.parse_args(argv)

    settings = get_settings()
    failures = 0
    print("=" * 50)
    print("NIENA - CONNECTION CHECK")
    print("=" * 50)

    print("\n[1] PostgreSQL...")
    print(f"    Host: {settings.postgres_host}:{settings.postgres_port}  Database: {settings.postgres_db}")
    if check_postgres_connection():
        print("    CONNECTED")
        if args.init:
            apply_schema()
            print("    Schema applied")
    else:
        print("    FAILED")
        failures += 1

    print("\n[2] MongoDB...")
    print(f"    Database: {settings.mongodb_db}")
    if check_mongo_connection():
        print("    CONNECTED")
        if args.init:
            init_mongo_indexes()
            print("    Indexes created")
        for name, count in collection_counts().items():
            print(f"    {name}: {count} docs")
    else:
        print("    FAILED")
        failures += 1

    print("\n[3] LLM API...")
    if settings.llm_api_key:
        print(f"    Base URL: {settings.llm_base_url}  Model: {settings.llm_model}")
        if get_llm_client().check_connection():
            print("    CONNECTED")
        else:
            print("    FAILED")
            failures += 1
    else:
        print("    SKIPPED: LLM_API_KEY not configured")

    print("\n[4] Job search API...")
    if settings.jsearch_api_key:
        print(f"    Base URL: {settings.jsearch_base_url} (key configured)")
    else:
        print("    SKIPPED: JSEARCH_API_KEY not configured")

    print("\n" + "=" * 50)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
