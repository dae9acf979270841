"""
Bookstore Service — データベース接続とスキーマ

エンジン・セッションファクトリの生成とテーブル作成を担う。
クエリは各ストア(catalog / ledger / analytics)で生 SQL として書き、
金額と日時のパラメータだけ型を付けてバインドする。
"""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

# SQLite は Decimal と aware datetime をそのまま扱えないため、
# バインド時・取得時の変換はこれらの型に任せる
MONEY = Numeric(10, 2, asdecimal=True)
TIMESTAMP = DateTime(timezone=True)

metadata = MetaData()

books = Table(
    "books",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("author", String(100), nullable=False),
    Column("isbn", String(13), unique=True, nullable=True),
    Column("price", MONEY, nullable=False),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("created_at", TIMESTAMP, nullable=False),
    Column("updated_at", TIMESTAMP, nullable=False),
    CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
    CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
    # SQLite でも削除済みの ID を再利用させない
    sqlite_autoincrement=True,
)

# book_id は参照のみ(外部キーなし): 書籍を削除しても売上履歴は残す
sales = Table(
    "sales",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("book_id", Integer, nullable=False, index=True),
    Column("quantity", Integer, nullable=False),
    Column("sold_at", TIMESTAMP, nullable=False, index=True),
    Column("total_amount", MONEY, nullable=False),
    CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
)


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する。"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    DB から読んだ日時を UTC の aware datetime に揃える。
    SQLite はタイムゾーンを保存しないので naive は UTC とみなす。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
