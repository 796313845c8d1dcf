from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

ROOT_NAME = "topicbus"
TEXT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"

_configured = False


class JsonHandler(logging.StreamHandler):
    """One JSON object per line on stdout."""
    def __init__(self, stream=None):
        super().__init__(stream=stream or sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            obj = {
                "ts": record.created,
                "lvl": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
                "filename": record.filename,
                "lineno": record.lineno,
            }
            if record.exc_info:
                obj["exc"] = self.format(record).split("\n", 1)[-1]
            self.stream.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
            self.flush()
        except Exception:  # pragma: no cover
            self.handleError(record)


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.
    - Loads ``.env`` then reads LOG_LEVEL / LOG_JSON when args are None
    - No-op on repeated calls unless force=True
    """
    global _configured
    if _configured and not force:
        return

    load_dotenv()

    lvl = level or os.getenv("LOG_LEVEL", "INFO")
    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    root = logging.getLogger()
    # replace handlers so pytest re-runs do not duplicate lines
    root.handlers.clear()
    root.setLevel(_level(lvl))

    if json_flag:
        root.addHandler(JsonHandler())
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT))
        root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    """Logger under the ``topicbus`` namespace."""
    if name == ROOT_NAME or name.startswith(ROOT_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_NAME}.{name}")


def set_level(level: str) -> None:
    logging.getLogger().setLevel(_level(level))
