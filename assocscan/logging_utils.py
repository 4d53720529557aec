from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Chatty during per-feature fits; kept at WARNING unless the run asks for DEBUG.
NOISY_LOGGERS = ("lifelines", "statsmodels", "gseapy", "joblib")


def _handler(h: logging.Handler, level: int, fmt: logging.Formatter) -> logging.Handler:
    h.setLevel(level)
    h.setFormatter(fmt)
    return h


def configure_logging(*, level: str = "INFO", out_dir: Path | None = None, log_file: Path | None = None) -> None:
    """
    Scan logging: stdout always, plus <out_dir>/run.log (or log_file) when given.
    Fit-library loggers are held at WARNING and their warnings routed through logging.
    """
    if log_file is None and out_dir is not None:
        log_file = out_dir / "run.log"

    root = logging.getLogger()
    root.setLevel(level)
    lvl = root.level

    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), lvl, fmt))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), lvl, fmt))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if lvl <= logging.DEBUG else logging.WARNING)

    logging.captureWarnings(True)
