"""Serve the app with Hypercorn: ``python -m taxrag``."""
import asyncio

from hypercorn.asyncio import serve
from hypercorn.config import Config

from taxrag import config
from taxrag.main import app


def main() -> None:
    hypercorn_config = Config()
    hypercorn_config.bind = [f"{config.HOST}:{config.PORT}"]
    asyncio.run(serve(app, hypercorn_config))


if __name__ == "__main__":
    main()
