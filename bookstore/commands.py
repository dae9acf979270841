"""
Bookstore Service — コマンドハンドラ (Write 側)

書籍の登録・更新・削除と販売記録を処理する。
販売記録は在庫更新パイプラインの中核:

    1. 書籍の存在と在庫数を確認
    2. 売上を追記し、在庫を条件付きで減算(同一トランザクション)
    3. コミット後、在庫が閾値を下回っていれば通知チャネルへ発行

1〜2 で失敗した場合は何も書き込まず、通知も出さない。
"""

import asyncio
import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog, ledger
from .config import settings
from .database import utcnow
from .events import LowStockEvent
from .exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from .locks import BookLocks
from .models import SaleReceipt, to_money
from .notifications import NotificationChannel

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5


def _validate_book_fields(
    title: str, author: str, isbn: str | None, price: Decimal, stock: int
) -> tuple[str, str, str | None, Decimal]:
    title = (title or "").strip()
    author = (author or "").strip()
    isbn = (isbn or "").strip() or None
    if not title or len(title) > 200:
        raise ValidationError("title must be 1-200 characters")
    if not author or len(author) > 100:
        raise ValidationError("author must be 1-100 characters")
    if isbn is not None and len(isbn) > 13:
        raise ValidationError(f"isbn must be at most 13 characters, got {isbn!r}")
    if price < 0:
        raise ValidationError(f"price must not be negative, got {price}")
    if stock < 0:
        raise ValidationError(f"stock must not be negative, got {stock}")
    return title, author, isbn, to_money(price)


async def create_book(
    session: AsyncSession,
    title: str,
    author: str,
    isbn: str | None,
    price: Decimal,
    stock: int = 0,
) -> dict:
    """書籍登録コマンド"""
    title, author, isbn, price = _validate_book_fields(title, author, isbn, price, stock)

    try:
        book_id = await catalog.insert_book(
            session, title, author, isbn, price, stock, utcnow()
        )
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(f"Book with ISBN {isbn} already exists") from e

    logger.info("Book created with id: %s", book_id)
    return await catalog.get_book(session, book_id)


async def update_book(
    session: AsyncSession,
    book_id: int,
    title: str,
    author: str,
    isbn: str | None,
    price: Decimal,
    stock: int,
) -> dict:
    """
    書籍更新コマンド

    在庫数も直接上書きできる(棚卸し・入荷)。この経路では
    低在庫通知は出さない。
    """
    title, author, isbn, price = _validate_book_fields(title, author, isbn, price, stock)

    try:
        updated = await catalog.save_book(
            session, book_id, title, author, isbn, price, stock, utcnow()
        )
        if not updated:
            raise NotFoundError(f"Book not found with id: {book_id}")
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(f"Book with ISBN {isbn} already exists") from e

    logger.info("Book updated with id: %s", book_id)
    return await catalog.get_book(session, book_id)


async def delete_book(session: AsyncSession, book_id: int) -> None:
    """書籍削除コマンド。売上台帳の行はそのまま残す。"""
    if not await catalog.delete_book(session, book_id):
        raise NotFoundError(f"Book not found with id: {book_id}")
    await session.commit()
    logger.info("Book deleted with id: %s", book_id)


async def record_sale(
    session: AsyncSession,
    channel: NotificationChannel,
    locks: BookLocks,
    book_id: int,
    quantity: int,
) -> SaleReceipt:
    """
    販売記録コマンド

    同じ書籍への販売は locks で直列化する。さらに在庫の減算は
    `stock >= quantity` を条件にした UPDATE で行うため、別プロセスが
    先に在庫を減らしていても在庫がマイナスになることはない。

    低在庫アラートもロックを保持したまま発行するので、同じ書籍の
    アラートは在庫の減る順に届く。発行の待ち時間は NOTIFY_TIMEOUT まで。
    """
    if quantity <= 0:
        raise ValidationError(f"quantity must be positive, got {quantity}")

    async with locks.hold(book_id):
        # 1. 存在確認 → 在庫確認(変更前に検証する)
        book = await catalog.get_book(session, book_id)
        if not book:
            raise NotFoundError(f"Book not found with id: {book_id}")
        if book["stock"] < quantity:
            raise InsufficientStockError(book["stock"], quantity)

        # 2. 売上の追記と在庫の減算を1トランザクションで
        now = utcnow()
        total_amount = to_money(book["price"] * quantity)
        sale_id = await ledger.append_sale(
            session, book_id, quantity, total_amount, now
        )
        remaining = await catalog.decrement_stock(session, book_id, quantity, now)
        if remaining is None:
            # 読み取り後に他のワーカーが在庫を減らした
            await session.rollback()
            current = await catalog.get_book(session, book_id)
            if not current:
                raise NotFoundError(f"Book not found with id: {book_id}")
            raise InsufficientStockError(current["stock"], quantity)
        await session.commit()

        logger.info(
            "Sale created with id: %s, total amount: %s. New stock for book %s: %s",
            sale_id,
            total_amount,
            book_id,
            remaining,
        )

        # 3. 閾値を下回っている間は販売のたびに通知する
        if remaining < LOW_STOCK_THRESHOLD:
            await _publish_low_stock(
                channel,
                LowStockEvent(
                    book_id=book_id,
                    title=book["title"],
                    author=book["author"],
                    remaining_stock=remaining,
                ),
            )

    return SaleReceipt(
        id=sale_id,
        book_id=book_id,
        book_title=book["title"],
        quantity=quantity,
        sold_at=now,
        total_amount=total_amount,
    )


async def _publish_low_stock(channel: NotificationChannel, event: LowStockEvent) -> None:
    """低在庫アラートを発行する。失敗しても販売処理には影響させない。"""
    logger.warning(
        "LOW STOCK ALERT: Book '%s' (ID: %s) has only %s copies left!",
        event.title,
        event.book_id,
        event.remaining_stock,
    )
    try:
        await asyncio.wait_for(
            channel.publish(event.message()), timeout=settings.NOTIFY_TIMEOUT
        )
    except Exception:
        logger.exception("Failed to publish low stock alert for book %s", event.book_id)
