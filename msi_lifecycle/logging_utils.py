from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple

DEFAULT_LOG_PATH = "out/msi-lifecycle.log"
FALLBACK_LOG_NAME = "msi-lifecycle.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Marks the handlers installed here so a second call can find them.
_HANDLER_TAG = "_msi_lifecycle_handler"


def _open_log_file(log_path: str) -> Tuple[logging.FileHandler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback, encoding="utf-8"), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    *,
    console_level: int = logging.INFO,
    console: bool = True,
) -> str:
    """Configure root logging once per process and return the log file actually used.

    The file always receives DEBUG records: msiexec/PowerShell output captured by
    ``run_cmd``, lifecycle transitions and every check. That is what a failed pass
    is diagnosed from. The console only shows ``console_level`` and above.

    When ``log_path`` cannot be created the log goes to the working directory.
    Later calls keep the first configuration and return its path.
    """

    root = logging.getLogger()
    for h in root.handlers:
        if getattr(h, _HANDLER_TAG, False) and isinstance(h, logging.FileHandler):
            return getattr(h, _HANDLER_TAG)

    root.setLevel(logging.DEBUG)
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(fmt)
    setattr(file_handler, _HANDLER_TAG, chosen_path)
    root.addHandler(file_handler)

    if console:
        stream = logging.StreamHandler()
        stream.setLevel(console_level)
        stream.setFormatter(fmt)
        setattr(stream, _HANDLER_TAG, chosen_path)
        root.addHandler(stream)

    logging.getLogger(__name__).info("Logging to %s (requested %s)", chosen_path, log_path)
    return chosen_path
