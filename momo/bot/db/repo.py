from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .connection import connect


# -------------------------
# Payments ledger
# -------------------------

@dataclass
class PaymentRecord:
    payment_id: str
    chat_id: int
    provider: str
    phone_number: str
    amount: int
    currency: str
    status: str
    created_at: str
    error_message: Optional[str] = None
    finished_at: Optional[str] = None   # NULL => ещё опрашиваем


_COLUMNS = """
    payment_id, chat_id, provider, phone_number, amount, currency,
    status, error_message, created_at, finished_at
"""


def _row_to_payment(row) -> PaymentRecord:
    return PaymentRecord(
        payment_id=row[0],
        chat_id=row[1],
        provider=row[2],
        phone_number=row[3],
        amount=row[4],
        currency=row[5],
        status=row[6],
        error_message=row[7],
        created_at=row[8],
        finished_at=row[9],
    )


async def record_payment(
    db_path: str,
    *,
    payment_id: str,
    chat_id: int,
    provider: str,
    phone_number: str,
    amount: int,
    currency: str,
    status: str,
) -> PaymentRecord:
    record = PaymentRecord(
        payment_id=payment_id,
        chat_id=chat_id,
        provider=provider,
        phone_number=phone_number,
        amount=amount,
        currency=currency,
        status=status,
        created_at=datetime.utcnow().isoformat(),
    )

    conn = await connect(db_path)
    try:
        await conn.execute(
            """
            INSERT OR IGNORE INTO payments(
              payment_id, chat_id, provider, phone_number, amount, currency, status, created_at
            )
            VALUES(?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.payment_id,
                record.chat_id,
                record.provider,
                record.phone_number,
                record.amount,
                record.currency,
                record.status,
                record.created_at,
            ),
        )
        await conn.commit()
    finally:
        await conn.close()

    return record


async def finish_payment(db_path: str, payment_id: str, status: str, error_message: Optional[str] = None) -> None:
    """Терминальный статус пишем один раз: уже завершённую запись не трогаем."""
    conn = await connect(db_path)
    try:
        await conn.execute(
            """
            UPDATE payments
            SET status=?, error_message=?, finished_at=?
            WHERE payment_id=? AND finished_at IS NULL
            """,
            (status, error_message, datetime.utcnow().isoformat(), payment_id),
        )
        await conn.commit()
    finally:
        await conn.close()


async def get_payment(db_path: str, payment_id: str) -> Optional[PaymentRecord]:
    conn = await connect(db_path)
    try:
        cur = await conn.execute(
            f"SELECT {_COLUMNS} FROM payments WHERE payment_id=?",
            (payment_id,),
        )
        row = await cur.fetchone()
        if not row:
            return None
        return _row_to_payment(row)
    finally:
        await conn.close()


async def get_unfinished_payments(db_path: str, since_iso: str, limit: int = 200) -> list[PaymentRecord]:
    conn = await connect(db_path)
    try:
        cur = await conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM payments
            WHERE finished_at IS NULL AND created_at >= ?
            ORDER BY created_at ASC
            LIMIT ?
            """,
            (since_iso, limit),
        )
        rows = await cur.fetchall()
        return [_row_to_payment(r) for r in rows]
    finally:
        await conn.close()


async def expire_unfinished_before(db_path: str, before_iso: str, error_message: str) -> int:
    conn = await connect(db_path)
    try:
        cur = await conn.execute(
            """
            UPDATE payments
            SET status='expired', error_message=?, finished_at=?
            WHERE finished_at IS NULL AND created_at < ?
            """,
            (error_message, datetime.utcnow().isoformat(), before_iso),
        )
        await conn.commit()
        return cur.rowcount
    finally:
        await conn.close()


async def get_recent_payments(db_path: str, chat_id: int, limit: int = 5) -> list[PaymentRecord]:
    conn = await connect(db_path)
    try:
        cur = await conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM payments
            WHERE chat_id=?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (chat_id, limit),
        )
        rows = await cur.fetchall()
        return [_row_to_payment(r) for r in rows]
    finally:
        await conn.close()
