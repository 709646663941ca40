from pathlib import Path
from typing import Dict, Iterable, List, Optional
import aiosqlite

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Tables the live engine cannot run without.
CRITICAL_TABLES = ("users", "games", "teams", "game_users", "factories")


async def connect(db_path: str, pragmas: Optional[Dict[str, str]] = None) -> aiosqlite.Connection:
    """Open an aiosqlite connection with named rows and foreign keys enabled.

    Any additional PRAGMA settings in `pragmas` are applied after the defaults.
    Returns an open connection; caller is responsible for closing it.
    """
    conn = await aiosqlite.connect(db_path, isolation_level=None, timeout=30.0)
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA foreign_keys = ON")
    if pragmas:
        for k, v in pragmas.items():
            await conn.execute(f"PRAGMA {k} = {v}")
    return conn


def split_statements(sql: str) -> List[str]:
    """Split a schema script into statements, dropping `--` comments."""
    statements = []
    current = []
    for line in sql.split("\n"):
        if "--" in line:
            line = line[:line.index("--")]
        line = line.strip()
        if not line:
            continue
        current.append(line)
        if line.endswith(";"):
            stmt = " ".join(current).rstrip(";").strip()
            if stmt:
                statements.append(stmt)
            current = []
    return statements


async def init_db(db_path: str, schema_path: Optional[str] = None) -> None:
    """Create every table in the schema (defaults to `db/schema.sql`)."""
    schema_file = Path(schema_path) if schema_path else SCHEMA_PATH
    if not schema_file.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    conn = await connect(db_path)
    try:
        for statement in split_statements(schema_file.read_text()):
            await conn.execute(statement)
    finally:
        await conn.close()


async def missing_tables(db_path: str, required: Iterable[str] = CRITICAL_TABLES) -> List[str]:
    conn = await connect(db_path)
    try:
        async with conn.execute("SELECT name FROM sqlite_master WHERE type='table'") as cursor:
            present = {row[0] for row in await cursor.fetchall()}
    finally:
        await conn.close()
    return [t for t in required if t not in present]


async def ensure_db(db_path: str, schema_path: Optional[str] = None) -> None:
    """Create the database file and schema if the file doesn't exist yet."""
    db_file = Path(db_path)
    if db_file.exists():
        return
    if db_file.parent and not db_file.parent.exists():
        db_file.parent.mkdir(parents=True, exist_ok=True)

    await init_db(db_path, schema_path)
