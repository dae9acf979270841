"""
Bookstore Service — 例外定義

コマンド層・ストア層はこれらの例外を送出し、
HTTP 層(main.py)がステータスコードに変換する。
"""


class BookstoreError(Exception):
    """アプリケーション例外の基底クラス"""

    status_code: int = 500

    def __init__(self, message: str = "Bookstore operation failed") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFoundError(BookstoreError):
    """書籍または販売記録が存在しない"""

    status_code = 404


class InsufficientStockError(BookstoreError):
    """在庫不足で販売できない"""

    status_code = 409

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock. Available: {available}, Requested: {requested}"
        )
        self.available = available
        self.requested = requested


class ValidationError(BookstoreError):
    status_code = 422


class ConflictError(BookstoreError):
    """一意制約違反(ISBN の重複など)"""

    status_code = 409
