# tests/conftest.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from bookstore import commands
from bookstore.database import create_engine, create_session_factory, init_schema
from bookstore.locks import BookLocks
from bookstore.main import create_app
from bookstore.notifications import NotificationChannel


class RecordingChannel(NotificationChannel):
    """発行されたメッセージを記録するだけのチャネル"""

    def __init__(self, topic: str = "low_stock") -> None:
        super().__init__(topic)
        self.messages: list[str] = []

    async def publish(self, message: str) -> None:
        self.messages.append(message)

    def subscribe(self):
        raise NotImplementedError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookstore.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def locks() -> BookLocks:
    return BookLocks()


@pytest.fixture
def create_book(session_factory):
    """書籍を1冊登録するヘルパー"""

    async def _create(
        title: str = "Dune",
        author: str = "Frank Herbert",
        isbn: str | None = None,
        price: str = "20.00",
        stock: int = 10,
    ) -> dict:
        async with session_factory() as session:
            return await commands.create_book(
                session, title, author, isbn, Decimal(price), stock
            )

    return _create


@pytest.fixture
def client(tmp_path):
    app = create_app(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", redis_url=""
    )
    with TestClient(app) as client:
        yield client
