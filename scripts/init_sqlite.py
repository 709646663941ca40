#!/usr/bin/env python3
"""Create (or recreate) the territory database from db/schema.sql.

Run from the repository root: `python -m scripts.init_sqlite [db_path] [--reset]`.
"""
import asyncio
import sys
from pathlib import Path

import config
from db import init_db, missing_tables


async def main(db_path: str, schema_path: str | None, reset: bool) -> int:
    db_file = Path(db_path).resolve()
    db_file.parent.mkdir(parents=True, exist_ok=True)
    if reset and db_file.exists():
        db_file.unlink()
        print(f"[INIT] Removed existing database at {db_file}")

    await init_db(str(db_file), schema_path)

    missing = await missing_tables(str(db_file))
    if missing:
        print(f"[INIT] ✗ Error: Missing critical tables {missing}", file=sys.stderr)
        return 1
    print(f"[INIT] ✓ Database initialized at {db_file}")
    return 0


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--reset"]
    db_path = args[0] if args else config.DB_PATH
    schema_path = args[1] if len(args) > 1 else None
    sys.exit(asyncio.run(main(db_path, schema_path, "--reset" in sys.argv)))
