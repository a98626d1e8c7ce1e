from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(*, environment: str) -> None:
    """Route generator and server logs to stderr.

    Development shows the per-attempt search trace (DEBUG); production keeps
    one line per request and per generation outcome (INFO). Does nothing when
    the root logger already has handlers, e.g. under uvicorn's own config.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level = logging.INFO if (environment or "").strip().lower() == "production" else logging.DEBUG
    logging.basicConfig(level=level, format=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
