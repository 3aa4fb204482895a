#!/usr/bin/env python3
"""Fetch an archived upload back from the archive table by id.

Usage: retrieve_upload.py --id 42 [--table excel_uploads] [--output-dir .]
Connection comes from DATABASE_URL (``.env`` is honoured).
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from billing_recon.db.archive import UpstreamStorageError, fetch_archived_file


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Retrieve an archived upload by id.")
    parser.add_argument("--table", default="excel_uploads", help="Archive table name")
    parser.add_argument("--id", required=True, type=int, help="Archived file id")
    parser.add_argument("--output-dir", type=Path, default=Path("."), help="Where to write the file")
    args = parser.parse_args()

    db_url = os.getenv("DATABASE_URL")
    if db_url is None:
        print("Environment variable DATABASE_URL is not set.", file=sys.stderr)
        return 1

    conn = psycopg2.connect(db_url)
    try:
        with conn.cursor() as cur:
            name, content = fetch_archived_file(cur, args.table, args.id)
    except UpstreamStorageError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        conn.close()

    args.output_dir.mkdir(parents=True, exist_ok=True)
    # Only the base name; archived names come from uploads
    target = args.output_dir / Path(name).name
    target.write_bytes(content)
    print(f"Wrote {target} ({len(content)} bytes)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
