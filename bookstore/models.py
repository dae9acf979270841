"""
Bookstore Service — レスポンスモデル

金額は内部では Decimal のまま扱い、JSON に出すときだけ float にする。
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from pydantic import BaseModel, PlainSerializer

CENTS = Decimal("0.01")

Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class SaleReceipt(BaseModel):
    """販売記録の結果"""
    id: int
    book_id: int
    book_title: str
    quantity: int
    sold_at: datetime
    total_amount: Money


class TopBook(BaseModel):
    book_id: int
    book_title: str
    author: str
    total_quantity_sold: int
    total_revenue: Money


class PerformanceSummary(BaseModel):
    """ダッシュボード用の売上サマリー"""
    total_revenue: Money
    total_sales: int
    total_books_sold: int
    top_selling_books: list[TopBook]
