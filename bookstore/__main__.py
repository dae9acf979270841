"""python -m bookstore でサービスを起動する。"""

import os

import uvicorn

from .logging_config import setup_logging


def main() -> None:
    setup_logging()
    uvicorn.run(
        "bookstore.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
