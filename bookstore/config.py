"""
Bookstore Service — 設定

環境変数から設定を読み込む。.env ファイルがあればそれも読む。
"""

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./bookstore.db")

    # 空なら単一プロセス用のインメモリチャネルを使う
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    LOW_STOCK_CHANNEL: str = os.getenv("LOW_STOCK_CHANNEL", "low_stock")
    NOTIFY_TIMEOUT: float = float(os.getenv("NOTIFY_TIMEOUT", "1.0"))

    # Angular dev server
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:4200").split(",")
        if origin.strip()
    ]

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
