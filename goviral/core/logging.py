import logging
import os


def configure_logging() -> None:
    """Configure structured logging defaults for the billing service."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # httpx logs every provider request at INFO, including query strings.
    if level != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
