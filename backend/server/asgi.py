"""
ASGI entry point.

Used by uvicorn / gunicorn (server.asgi:app), or run directly:

    lifestory-voice            # console script
    python -m server.asgi      # from backend/
"""

import os

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()


def run() -> None:
    """Serve the API on HOST:PORT (defaults 127.0.0.1:8000)."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    uvicorn.run(
        app,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    run()
