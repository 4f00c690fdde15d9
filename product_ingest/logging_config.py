"""Structured logging for ingest runs: console plus JSON log files."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

from product_ingest.config import settings

SERVICE_NAME = "product-ingest"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines stamped with the record time, level and code location."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_record['timestamp'] = created.isoformat().replace('+00:00', 'Z')
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = SERVICE_NAME
        log_record['source'] = f"{record.filename}:{record.lineno}"
        if record.funcName:
            log_record['function'] = record.funcName


def _json_file_handler(path: Path, level: int) -> logging.FileHandler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(CustomJsonFormatter(JSON_FORMAT))
    return handler


def setup_logging(base_dir: str | Path | None = None) -> logging.Logger:
    """Configure the root logger for an ingest run.

    Args:
        base_dir: Directory holding the ``logs_dir`` folder. Defaults to the
                  current working directory.
    """
    logs_dir = Path(base_dir or Path.cwd()) / settings.logs_dir
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    # app.log gets everything, error.log only ERROR and above
    root.addHandler(_json_file_handler(logs_dir / "app.log", logging.DEBUG))
    root.addHandler(_json_file_handler(logs_dir / "error.log", logging.ERROR))

    return root


def attach_debug_log(path: str | Path) -> logging.Handler:
    """
    Mirror every record of a debug run into ``path`` as JSON lines.

    Returns the handler so the caller can pass it to ``detach_debug_log``.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = _json_file_handler(path, logging.DEBUG)
    logging.getLogger().addHandler(handler)
    return handler


def detach_debug_log(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()
