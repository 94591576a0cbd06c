from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from core.config import BACKEND_DIR


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Third-party loggers that are too chatty at DEBUG.
_NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "websockets": logging.INFO,
    "httpx": logging.WARNING,
}


def _rotating_file_handler(logs_dir: Path) -> logging.Handler:
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        logs_dir / "availability.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )


def setup_logging(*, environment: str, logs_dir: Path | None = None) -> None:
    """Configure root logging once per process.

    Development and test log DEBUG to the console. Production logs INFO to
    the console and to ``logs/availability.log`` (rotated at 10 MB).
    """

    root = logging.getLogger()
    if root.handlers:
        return

    production = (environment or "development").lower().strip() == "production"
    level = logging.INFO if production else logging.DEBUG
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if production:
        handlers.append(_rotating_file_handler(logs_dir or BACKEND_DIR / "logs"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)
    # Keep uvicorn's own loggers in step with the app.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
