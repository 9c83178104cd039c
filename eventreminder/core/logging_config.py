import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the reminder process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx logs every request at INFO; one line per reminder is enough
    logging.getLogger("httpx").setLevel(logging.WARNING)
