from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE = "hourbook.log"

# Handlers installed by the last setup_logging call.
_installed: list[logging.Handler] = []


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the terminal readable:
    - hourbook logs pass through at the configured level
    - third-party loggers (mcp, httpx, ...) only show ERROR+
    - captured Python warnings only show ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "hourbook" or record.name.startswith("hourbook."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure logging with:
    - Console handler: rich output on stderr, filtered
    - File handler: full logs under *log_dir*

    stdout is left alone; the MCP server speaks its protocol there. Calling it
    again replaces and closes the handlers of the previous call.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)
    while _installed:
        _installed.pop().close()

    ch = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    ch.setLevel(console_level)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(fh)
    _installed.extend([ch, fh])

    logging.captureWarnings(True)
    return log_file
