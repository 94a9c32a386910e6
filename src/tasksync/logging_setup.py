from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - allow all tasksync logs
    - suppress third-party noise (uvicorn, httpx, ...) unless WARNING+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "tasksync" or record.name.startswith("tasksync."):
            return True
        return record.levelno >= logging.WARNING


# PUBLIC_INTERFACE
def setup_logging(
    *,
    console_level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler on stderr, filtered for third-party noise
    - Optional file handler receiving full logs for debugging

    Call this once, before the first log line. Calling it again replaces the
    handlers installed by the previous call.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove handlers from a previous call to avoid duplicates.
    for h in list(root.handlers):
        if getattr(h, "_tasksync_handler", False):
            root.removeHandler(h)
            h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    ch._tasksync_handler = True  # type: ignore[attr-defined]
    root.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(fmt)
        fh._tasksync_handler = True  # type: ignore[attr-defined]
        root.addHandler(fh)

    logging.captureWarnings(True)
