"""ASGI entrypoint for the billing API (``uvicorn goviral.main:app``)."""

import os

import uvicorn

from .core.app_factory import create_application

app = create_application()


def run() -> None:
    uvicorn.run(
        "goviral.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
