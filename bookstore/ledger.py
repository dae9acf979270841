"""
Bookstore Service — 売上台帳 (Sale Ledger)

sales テーブルは追記専用。一度書いた行は更新も削除もしない。
合計金額は販売時点の価格で計算して保存するため、
後から価格を変えても過去の売上は変わらない。
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .database import MONEY, TIMESTAMP, as_utc
from .models import to_money

UNKNOWN_BOOK = "Unknown Book"

_INSERT_SALE = text("""
    INSERT INTO sales (book_id, quantity, sold_at, total_amount)
    VALUES (:book_id, :quantity, :sold_at, :total_amount)
    RETURNING id
""").bindparams(
    bindparam("sold_at", type_=TIMESTAMP),
    bindparam("total_amount", type_=MONEY),
)

# 書籍が削除済みでも売上は返すので LEFT JOIN
_SELECT_SALE = text("""
    SELECT s.id, s.book_id, b.title AS book_title, s.quantity, s.sold_at, s.total_amount
    FROM sales s
    LEFT JOIN books b ON b.id = s.book_id
    WHERE s.id = :id
""").columns(sold_at=TIMESTAMP, total_amount=MONEY)

_SELECT_SALES = text("""
    SELECT s.id, s.book_id, b.title AS book_title, s.quantity, s.sold_at, s.total_amount
    FROM sales s
    LEFT JOIN books b ON b.id = s.book_id
    ORDER BY s.sold_at DESC, s.id DESC
""").columns(sold_at=TIMESTAMP, total_amount=MONEY)


def _row_to_dict(row) -> dict:
    return {
        "id": row.id,
        "book_id": row.book_id,
        "book_title": row.book_title or UNKNOWN_BOOK,
        "quantity": row.quantity,
        "sold_at": as_utc(row.sold_at),
        "total_amount": to_money(row.total_amount),
    }


async def append_sale(
    session: AsyncSession,
    book_id: int,
    quantity: int,
    total_amount: Decimal,
    sold_at: datetime,
) -> int:
    """売上を追記し、採番された ID を返す。"""
    result = await session.execute(
        _INSERT_SALE,
        {
            "book_id": book_id,
            "quantity": quantity,
            "sold_at": sold_at,
            "total_amount": total_amount,
        },
    )
    return result.scalar_one()


async def get_sale(session: AsyncSession, sale_id: int) -> dict | None:
    result = await session.execute(_SELECT_SALE, {"id": sale_id})
    row = result.fetchone()
    if not row:
        return None
    return _row_to_dict(row)


async def list_sales(session: AsyncSession) -> list[dict]:
    """全売上を新しい順に返す。"""
    result = await session.execute(_SELECT_SALES)
    return [_row_to_dict(row) for row in result.fetchall()]
