"""Logging setup shared by the API, CLI and worker."""

import logging
from pathlib import Path

from audit_retention.config import settings


def configure_logging(stream: bool = True) -> None:
    """Configure root logging once; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return

    log_file = Path(settings.get_log_file())
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handlers = [logging.FileHandler(log_file)]
    if stream:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
