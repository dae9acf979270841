"""
Bookstore Service — イベント定義

在庫ドメインで発生するイベント。永続化はせず、通知チャネルへ
プレーンテキストとして流すだけ。
"""

from pydantic import BaseModel


class LowStockEvent(BaseModel):
    """販売後の在庫が閾値を下回った"""
    book_id: int
    title: str
    author: str
    remaining_stock: int

    def message(self) -> str:
        return (
            f'Low Stock Alert: "{self.title}" by {self.author} '
            f"has only {self.remaining_stock} copies remaining!"
        )
