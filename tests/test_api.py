"""Tests for the HTTP and WebSocket endpoints."""

from datetime import datetime, timedelta, timezone


def _create(client, **fields) -> dict:
    payload = {"title": "Dune", "author": "Frank Herbert", "price": 20.0, "stock": 10}
    payload.update(fields)
    resp = client.post("/api/books", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client) -> None:
    resp = client.get("/health")
    assert resp.json() == {"status": "ok", "service": "bookstore-service"}


def test_book_crud(client) -> None:
    book = _create(client, isbn="9780441013593")
    assert book["price"] == 20.0
    assert book["stock"] == 10

    assert client.get(f"/api/books/{book['id']}").json()["title"] == "Dune"
    assert [b["id"] for b in client.get("/api/books").json()] == [book["id"]]

    resp = client.put(
        f"/api/books/{book['id']}",
        json={"title": "Dune", "author": "Frank Herbert", "price": 25.5, "stock": 7},
    )
    assert resp.status_code == 200
    assert resp.json()["price"] == 25.5
    assert resp.json()["isbn"] is None

    assert client.delete(f"/api/books/{book['id']}").status_code == 204
    assert client.get(f"/api/books/{book['id']}").status_code == 404
    assert client.delete(f"/api/books/{book['id']}").status_code == 404


def test_missing_book_returns_404(client) -> None:
    resp = client.get("/api/books/999")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Book not found with id: 999"}

    resp = client.put(
        "/api/books/999",
        json={"title": "X", "author": "Y", "price": 1, "stock": 1},
    )
    assert resp.status_code == 404


def test_duplicate_isbn_returns_409(client) -> None:
    _create(client, isbn="9780441013593")
    resp = client.post(
        "/api/books",
        json={"title": "Other", "author": "A", "isbn": "9780441013593", "price": 1},
    )
    assert resp.status_code == 409


def test_invalid_book_returns_422(client) -> None:
    resp = client.post("/api/books", json={"title": "", "author": "A", "price": 1})
    assert resp.status_code == 422
    resp = client.post("/api/books", json={"title": "T", "author": "A", "price": -1})
    assert resp.status_code == 422


def test_record_sale(client) -> None:
    book = _create(client, price=20.0, stock=3)

    resp = client.post("/api/books/sale", json={"book_id": book["id"], "quantity": 2})
    assert resp.status_code == 201
    receipt = resp.json()
    assert receipt["book_title"] == "Dune"
    assert receipt["quantity"] == 2
    assert receipt["total_amount"] == 40.0

    assert client.get(f"/api/books/{book['id']}").json()["stock"] == 1

    resp = client.post("/api/books/sale", json={"book_id": book["id"], "quantity": 2})
    assert resp.status_code == 409
    assert resp.json() == {"detail": "Insufficient stock. Available: 1, Requested: 2"}

    sales = client.get("/api/sales").json()
    assert len(sales) == 1
    assert client.get(f"/api/sales/{receipt['id']}").json()["total_amount"] == 40.0
    assert client.get("/api/sales/999").status_code == 404


def test_record_sale_errors(client) -> None:
    resp = client.post("/api/books/sale", json={"book_id": 999, "quantity": 1})
    assert resp.status_code == 404

    book = _create(client)
    resp = client.post("/api/books/sale", json={"book_id": book["id"], "quantity": 0})
    assert resp.status_code == 422


def test_analytics_endpoints(client) -> None:
    book = _create(client, price=12.5, stock=10)
    client.post("/api/books/sale", json={"book_id": book["id"], "quantity": 4})

    summary = client.get("/api/analytics/summary").json()
    assert summary["total_revenue"] == 50.0
    assert summary["total_sales"] == 1
    assert summary["total_books_sold"] == 4
    assert summary["top_selling_books"][0]["book_title"] == "Dune"

    top = client.get("/api/analytics/top-books", params={"limit": 1}).json()
    assert len(top) == 1
    assert top[0]["total_revenue"] == 50.0
    assert client.get("/api/analytics/top-books", params={"limit": 0}).status_code == 422

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    resp = client.get(
        "/api/analytics/revenue",
        params={
            "start_date": (now - timedelta(days=1)).isoformat(),
            "end_date": (now + timedelta(days=1)).isoformat(),
        },
    )
    assert resp.status_code == 200
    assert resp.json()["revenue"] == 50.0

    resp = client.get(
        "/api/analytics/revenue",
        params={
            "start_date": (now + timedelta(days=1)).isoformat(),
            "end_date": now.isoformat(),
        },
    )
    assert resp.status_code == 422


def test_dashboard(client) -> None:
    low = _create(client, title="Emma", stock=2)
    _create(client, title="Ulysses", stock=20)

    dashboard = client.get("/api/dashboard").json()
    assert [b["title"] for b in dashboard["books"]] == ["Emma", "Ulysses"]
    assert [b["id"] for b in dashboard["low_stock_books"]] == [low["id"]]
    assert dashboard["summary"]["total_sales"] == 0


def test_low_stock_alert_is_pushed_over_websocket(client) -> None:
    book = _create(client, title="Emma", author="Jane Austen", price=20.0, stock=3)

    with client.websocket_connect("/ws/low-stock") as ws:
        resp = client.post(
            "/api/books/sale", json={"book_id": book["id"], "quantity": 2}
        )
        assert resp.status_code == 201
        assert (
            ws.receive_text()
            == 'Low Stock Alert: "Emma" by Jane Austen has only 1 copies remaining!'
        )


def test_websocket_reconnects_and_unsubscribes_on_disconnect(client) -> None:
    book = _create(client, title="Emma", author="Jane Austen", price=20.0, stock=50)
    channel = client.app.state.channel

    for remaining in range(4, 0, -1):
        with client.websocket_connect("/ws/low-stock") as ws:
            assert channel.subscriber_count == 1
            quantity = 46 if remaining == 4 else 1
            resp = client.post(
                "/api/books/sale", json={"book_id": book["id"], "quantity": quantity}
            )
            assert resp.status_code == 201
            assert ws.receive_text().endswith(f"has only {remaining} copies remaining!")
        assert channel.subscriber_count == 0
