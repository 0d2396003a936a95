from __future__ import annotations

import aiosqlite


async def connect(db_path: str) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(db_path)
    await conn.execute("PRAGMA journal_mode=WAL;")
    # бот и recovery-джоба пишут в одну базу
    await conn.execute("PRAGMA busy_timeout=5000;")
    return conn
