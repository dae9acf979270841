"""
Bookstore Service — FastAPI エントリーポイント

書籍 CRUD・販売記録・売上分析の REST API と、
低在庫アラートを配信する WebSocket を提供する。

┌───────────┐  POST /api/books/sale  ┌─────────────────────┐
│  Angular  │ ─────────────────────▶ │ record_sale         │
│ Dashboard │                        │   ↓ 在庫 < 5         │
│           │ ◀── /ws/low-stock ──── │ NotificationChannel │
└───────────┘                        └─────────────────────┘
"""

from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

import anyio

from fastapi import APIRouter, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import analytics, catalog, commands, ledger
from .config import settings
from .database import create_engine, create_session_factory, init_schema
from .exceptions import BookstoreError, NotFoundError
from .locks import BookLocks
from .notifications import create_channel

router = APIRouter()


# ── Request Models ───────────────────────────────


class BookRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=100)
    isbn: str | None = Field(default=None, max_length=13)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(default=0, ge=0)


class SaleRequest(BaseModel):
    book_id: int
    quantity: int = Field(gt=0)


def _session(request: Request):
    return request.app.state.session_factory()


# ── Books ────────────────────────────────────────


@router.get("/api/books")
async def list_books(request: Request):
    async with _session(request) as session:
        return await catalog.list_books(session)


@router.get("/api/books/{book_id}")
async def get_book(book_id: int, request: Request):
    async with _session(request) as session:
        book = await catalog.get_book(session, book_id)
        if not book:
            raise NotFoundError(f"Book not found with id: {book_id}")
        return book


@router.post("/api/books", status_code=201)
async def create_book(req: BookRequest, request: Request):
    async with _session(request) as session:
        return await commands.create_book(
            session, req.title, req.author, req.isbn, req.price, req.stock
        )


@router.put("/api/books/{book_id}")
async def update_book(book_id: int, req: BookRequest, request: Request):
    async with _session(request) as session:
        return await commands.update_book(
            session, book_id, req.title, req.author, req.isbn, req.price, req.stock
        )


@router.delete("/api/books/{book_id}", status_code=204)
async def delete_book(book_id: int, request: Request):
    async with _session(request) as session:
        await commands.delete_book(session, book_id)


@router.post("/api/books/sale", status_code=201)
async def record_sale(req: SaleRequest, request: Request):
    """販売を記録する(在庫減算・低在庫アラート)"""
    async with _session(request) as session:
        return await commands.record_sale(
            session,
            request.app.state.channel,
            request.app.state.locks,
            req.book_id,
            req.quantity,
        )


# ── Sales ────────────────────────────────────────


@router.get("/api/sales")
async def list_sales(request: Request):
    async with _session(request) as session:
        return await ledger.list_sales(session)


@router.get("/api/sales/{sale_id}")
async def get_sale(sale_id: int, request: Request):
    async with _session(request) as session:
        sale = await ledger.get_sale(session, sale_id)
        if not sale:
            raise NotFoundError(f"Sale not found with id: {sale_id}")
        return sale


# ── Analytics ────────────────────────────────────


@router.get("/api/analytics/summary")
async def analytics_summary(request: Request):
    async with _session(request) as session:
        return await analytics.performance_summary(session)


@router.get("/api/analytics/top-books")
async def analytics_top_books(
    request: Request, limit: int = Query(analytics.DEFAULT_TOP_BOOKS, gt=0)
):
    async with _session(request) as session:
        return await analytics.top_selling_books(session, limit)


@router.get("/api/analytics/revenue")
async def analytics_revenue(
    request: Request, start_date: datetime, end_date: datetime
):
    """期間内の売上合計(両端を含む)"""
    async with _session(request) as session:
        revenue = await analytics.revenue_between(session, start_date, end_date)
        return {"start_date": start_date, "end_date": end_date, "revenue": revenue}


@router.get("/api/dashboard")
async def dashboard(request: Request):
    """ダッシュボード — 在庫一覧と売上サマリーを1回のレスポンスで返す"""
    async with _session(request) as session:
        books = await catalog.list_books(session)
        summary = await analytics.performance_summary(session)
        return {
            "books": books,
            "low_stock_books": [
                b for b in books if b["stock"] < commands.LOW_STOCK_THRESHOLD
            ],
            "summary": summary,
        }


# ── Low Stock Alerts (WebSocket) ─────────────────


@router.websocket("/ws/low-stock")
async def low_stock_alerts(websocket: WebSocket):
    """
    低在庫アラートをテキストフレームで配信する。

    accept より先に購読するので、接続確立後に発行された
    メッセージは取りこぼさない。送信側・受信監視側のどちらかが
    終わればタスクグループごと止める。
    """
    channel = websocket.app.state.channel
    async with channel.subscribe() as messages:
        await websocket.accept()
        async with anyio.create_task_group() as tg:
            tg.start_soon(_forward, websocket, messages, tg.cancel_scope)
            tg.start_soon(_wait_for_disconnect, websocket, tg.cancel_scope)


async def _forward(websocket: WebSocket, messages, scope: anyio.CancelScope) -> None:
    try:
        async for message in messages:
            await websocket.send_text(message)
    except WebSocketDisconnect:
        pass
    finally:
        scope.cancel()


async def _wait_for_disconnect(websocket: WebSocket, scope: anyio.CancelScope) -> None:
    # クライアントからの受信は読み捨てる
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        scope.cancel()


@router.get("/health")
async def health():
    return {"status": "ok", "service": "bookstore-service"}


async def _handle_bookstore_error(request: Request, exc: BookstoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(database_url: str | None = None, redis_url: str | None = None) -> FastAPI:
    database_url = database_url or settings.DATABASE_URL
    redis_url = settings.REDIS_URL if redis_url is None else redis_url

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(database_url)
        await init_schema(engine)
        app.state.session_factory = create_session_factory(engine)
        app.state.channel = create_channel(redis_url, settings.LOW_STOCK_CHANNEL)
        app.state.locks = BookLocks()
        yield
        await app.state.channel.close()
        await engine.dispose()

    app = FastAPI(title="Bookstore Service", lifespan=lifespan)

    # CORS 設定(Angular dev server からのアクセスを許可)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BookstoreError, _handle_bookstore_error)
    app.include_router(router)
    return app


app = create_app()
