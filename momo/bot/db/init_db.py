from __future__ import annotations

import logging
from pathlib import Path

from .connection import connect

log = logging.getLogger(__name__)


async def init_db(db_path: str) -> None:
    # гарантируем, что папка под БД существует
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    schema_path = Path(__file__).with_name("schema.sql")
    schema = schema_path.read_text(encoding="utf-8")

    log.info("DB init: %s", db_path)

    conn = await connect(db_path)
    try:
        await conn.executescript(schema)
        await conn.commit()
    finally:
        await conn.close()
