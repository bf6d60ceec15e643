"""Forward-only SQL migration runner.

Files in ``migrations/`` are named ``NNN_description.sql`` and applied in
version order, each inside its own transaction. A session advisory lock keeps
two runners from applying the same version concurrently.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

import asyncpg

from virtuals.db.models import Table
from virtuals.db.pool import close_pool, get_pool

logger = logging.getLogger(__name__)

MIGRATION_LOCK_ID = 732001
MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


async def _ensure_migrations_table(conn: asyncpg.Connection) -> None:
    await conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {Table.SCHEMA_MIGRATIONS} (
            version INTEGER PRIMARY KEY,
            filename TEXT NOT NULL DEFAULT '',
            applied_at TIMESTAMPTZ DEFAULT now()
        )
    """)


def pending_migrations(migrations_dir: Path, applied: set[int]) -> list[tuple[int, Path]]:
    """(version, path) pairs not yet applied, in version order.

    Files without a numeric prefix are ignored.
    """
    pending = []
    for sql_file in migrations_dir.glob("*.sql"):
        prefix = sql_file.stem.split("_", 1)[0]
        if not prefix.isdigit():
            continue
        version = int(prefix)
        if version not in applied:
            pending.append((version, sql_file))
    return sorted(pending)


def split_sql_statements(sql: str) -> list[str]:
    """Split a script on top-level semicolons.

    Semicolons inside single-quoted strings or $$-quoted bodies are kept.
    Comments are stripped first.
    """
    sql = re.sub(r"--.*$", "", sql, flags=re.MULTILINE)
    sql = re.sub(r"/\*.*?\*/", "", sql, flags=re.DOTALL)

    statements: list[str] = []
    current: list[str] = []
    in_dollar = False
    in_quote = False
    i = 0

    while i < len(sql):
        if sql.startswith("$$", i) and not in_quote:
            in_dollar = not in_dollar
            current.append("$$")
            i += 2
            continue

        char = sql[i]
        if char == "'" and not in_dollar:
            in_quote = not in_quote
        elif char == ";" and not in_dollar and not in_quote:
            statement = "".join(current).strip()
            if statement:
                statements.append(statement + ";")
            current = []
            i += 1
            continue

        current.append(char)
        i += 1

    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


async def migrate(migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """Apply all pending migrations.

    Returns:
        Number of migrations applied (0 when already up to date)

    Raises:
        FileNotFoundError: If the migrations directory is missing
        RuntimeError: If another runner holds the migration lock
    """
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    pool = await get_pool()
    applied_count = 0

    async with pool.acquire() as conn:
        if not await conn.fetchval("SELECT pg_try_advisory_lock($1)", MIGRATION_LOCK_ID):
            raise RuntimeError("Another migration run holds the lock; try again once it finishes")

        try:
            await _ensure_migrations_table(conn)
            rows = await conn.fetch(f"SELECT version FROM {Table.SCHEMA_MIGRATIONS}")
            applied = {row["version"] for row in rows}

            for version, path in pending_migrations(migrations_dir, applied):
                async with conn.transaction():
                    for statement in split_sql_statements(path.read_text(encoding="utf-8")):
                        await conn.execute(statement)
                    await conn.execute(
                        f"INSERT INTO {Table.SCHEMA_MIGRATIONS} (version, filename) VALUES ($1, $2)",
                        version,
                        path.name,
                    )
                applied_count += 1
                logger.info(f"Applied migration {version:03d}: {path.name}")
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", MIGRATION_LOCK_ID)

    return applied_count


async def schema_version() -> Optional[int]:
    """Highest applied migration version, or None on an empty database."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        await _ensure_migrations_table(conn)
        return await conn.fetchval(f"SELECT MAX(version) FROM {Table.SCHEMA_MIGRATIONS}")


def main() -> None:
    """CLI entry point: ``python -m virtuals.db.schema.migrate``."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    async def _run() -> None:
        try:
            applied = await migrate()
            version = await schema_version()
            logger.info(f"{applied} migration(s) applied; schema version {version}")
        finally:
            await close_pool()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
