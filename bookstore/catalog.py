"""
Bookstore Service — 書籍ストア (Catalog Store)

books テーブルへの読み書き。コミットは呼び出し側(commands)が行う。
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .database import MONEY, TIMESTAMP, as_utc
from .models import to_money

_SELECT_BOOK = text("""
    SELECT id, title, author, isbn, price, stock, created_at, updated_at
    FROM books
    WHERE id = :id
""").columns(price=MONEY, created_at=TIMESTAMP, updated_at=TIMESTAMP)

_SELECT_BOOKS = text("""
    SELECT id, title, author, isbn, price, stock, created_at, updated_at
    FROM books
    ORDER BY title, id
""").columns(price=MONEY, created_at=TIMESTAMP, updated_at=TIMESTAMP)

_INSERT_BOOK = text("""
    INSERT INTO books (title, author, isbn, price, stock, created_at, updated_at)
    VALUES (:title, :author, :isbn, :price, :stock, :now, :now)
    RETURNING id
""").bindparams(bindparam("price", type_=MONEY), bindparam("now", type_=TIMESTAMP))

_UPDATE_BOOK = text("""
    UPDATE books
    SET title = :title, author = :author, isbn = :isbn,
        price = :price, stock = :stock, updated_at = :now
    WHERE id = :id
""").bindparams(bindparam("price", type_=MONEY), bindparam("now", type_=TIMESTAMP))

# 在庫が足りるときだけ減算する条件付き更新(compare-and-swap)
_DECREMENT_STOCK = text("""
    UPDATE books
    SET stock = stock - :qty, updated_at = :now
    WHERE id = :id AND stock >= :qty
    RETURNING stock
""").bindparams(bindparam("now", type_=TIMESTAMP))


def _row_to_dict(row) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "author": row.author,
        "isbn": row.isbn,
        "price": to_money(row.price),
        "stock": row.stock,
        "created_at": as_utc(row.created_at),
        "updated_at": as_utc(row.updated_at),
    }


async def get_book(session: AsyncSession, book_id: int) -> dict | None:
    result = await session.execute(_SELECT_BOOK, {"id": book_id})
    row = result.fetchone()
    if not row:
        return None
    return _row_to_dict(row)


async def list_books(session: AsyncSession) -> list[dict]:
    result = await session.execute(_SELECT_BOOKS)
    return [_row_to_dict(row) for row in result.fetchall()]


async def book_exists(session: AsyncSession, book_id: int) -> bool:
    result = await session.execute(
        text("SELECT 1 FROM books WHERE id = :id"),
        {"id": book_id},
    )
    return result.first() is not None


async def insert_book(
    session: AsyncSession,
    title: str,
    author: str,
    isbn: str | None,
    price: Decimal,
    stock: int,
    now: datetime,
) -> int:
    """新しい書籍を追加し、採番された ID を返す。"""
    result = await session.execute(
        _INSERT_BOOK,
        {
            "title": title,
            "author": author,
            "isbn": isbn,
            "price": price,
            "stock": stock,
            "now": now,
        },
    )
    return result.scalar_one()


async def save_book(
    session: AsyncSession,
    book_id: int,
    title: str,
    author: str,
    isbn: str | None,
    price: Decimal,
    stock: int,
    now: datetime,
) -> bool:
    """既存書籍の全フィールドを上書きする。対象が無ければ False。"""
    result = await session.execute(
        _UPDATE_BOOK,
        {
            "id": book_id,
            "title": title,
            "author": author,
            "isbn": isbn,
            "price": price,
            "stock": stock,
            "now": now,
        },
    )
    return result.rowcount > 0


async def delete_book(session: AsyncSession, book_id: int) -> bool:
    result = await session.execute(
        text("DELETE FROM books WHERE id = :id"),
        {"id": book_id},
    )
    return result.rowcount > 0


async def decrement_stock(
    session: AsyncSession,
    book_id: int,
    quantity: int,
    now: datetime,
) -> int | None:
    """
    在庫を quantity だけ減らし、減算後の在庫数を返す。

    読み取り後に別の書き込みで在庫が減っていた場合は
    WHERE 条件に一致せず None を返す(何も更新しない)。
    """
    result = await session.execute(
        _DECREMENT_STOCK,
        {"id": book_id, "qty": quantity, "now": now},
    )
    row = result.fetchone()
    if not row:
        return None
    return row.stock
