"""
Bookstore Service — 売上分析 (Aggregation Reporter)

売上台帳に対する読み取り専用の集計クエリ。
副作用は無く、同じ台帳に対して何度呼んでも同じ結果を返す。
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .database import MONEY, TIMESTAMP, as_utc
from .exceptions import ValidationError
from .ledger import UNKNOWN_BOOK
from .models import PerformanceSummary, TopBook, to_money

logger = logging.getLogger(__name__)

DEFAULT_TOP_BOOKS = 5

_TOTAL_REVENUE = text(
    "SELECT COALESCE(SUM(total_amount), 0) AS total FROM sales"
).columns(total=MONEY)

_REVENUE_BETWEEN = (
    text("""
        SELECT COALESCE(SUM(total_amount), 0) AS total
        FROM sales
        WHERE sold_at BETWEEN :start AND :end
    """)
    .bindparams(bindparam("start", type_=TIMESTAMP), bindparam("end", type_=TIMESTAMP))
    .columns(total=MONEY)
)

# 同数なら book_id 昇順で順位を固定する
_TOP_SELLING_BOOKS = text("""
    SELECT s.book_id,
           b.title AS book_title,
           b.author AS author,
           SUM(s.quantity) AS total_quantity_sold,
           SUM(s.total_amount) AS total_revenue
    FROM sales s
    LEFT JOIN books b ON b.id = s.book_id
    GROUP BY s.book_id, b.title, b.author
    ORDER BY total_quantity_sold DESC, s.book_id ASC
    LIMIT :limit
""").columns(total_revenue=MONEY)


async def total_revenue(session: AsyncSession) -> Decimal:
    result = await session.execute(_TOTAL_REVENUE)
    return to_money(result.scalar_one())


async def total_sales(session: AsyncSession) -> int:
    result = await session.execute(text("SELECT COUNT(*) FROM sales"))
    return result.scalar_one()


async def total_books_sold(session: AsyncSession) -> int:
    result = await session.execute(
        text("SELECT COALESCE(SUM(quantity), 0) FROM sales")
    )
    return int(result.scalar_one())


async def top_selling_books(
    session: AsyncSession, limit: int = DEFAULT_TOP_BOOKS
) -> list[TopBook]:
    """販売数の多い書籍(書籍ごとの売上金額つき)"""
    if limit <= 0:
        raise ValidationError(f"limit must be positive, got {limit}")
    result = await session.execute(_TOP_SELLING_BOOKS, {"limit": limit})
    return [
        TopBook(
            book_id=row.book_id,
            book_title=row.book_title or UNKNOWN_BOOK,
            author=row.author or "",
            total_quantity_sold=int(row.total_quantity_sold),
            total_revenue=to_money(row.total_revenue),
        )
        for row in result.fetchall()
    ]


async def revenue_between(
    session: AsyncSession, start: datetime, end: datetime
) -> Decimal:
    """start から end まで(両端を含む)の売上合計"""
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise ValidationError(
            f"start_date {start.isoformat()} is after end_date {end.isoformat()}"
        )
    logger.info("Calculating revenue from %s to %s", start, end)
    result = await session.execute(_REVENUE_BETWEEN, {"start": start, "end": end})
    return to_money(result.scalar_one())


async def performance_summary(
    session: AsyncSession, limit: int = DEFAULT_TOP_BOOKS
) -> PerformanceSummary:
    """ダッシュボード概要 — 各集計をまとめて返す"""
    logger.info("Calculating performance summary")
    return PerformanceSummary(
        total_revenue=await total_revenue(session),
        total_sales=await total_sales(session),
        total_books_sold=await total_books_sold(session),
        top_selling_books=await top_selling_books(session, limit),
    )
