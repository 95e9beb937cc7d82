from __future__ import annotations

import json
import logging
import sys


class _ExtraFormatter(logging.Formatter):
    """Render the ``eco_extra`` record attribute as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        extra = getattr(record, "eco_extra", None)
        if not isinstance(extra, str):
            record.eco_extra = json.dumps(extra or {}, default=str)
        return super().format(record)


def configure_logging(json: bool) -> None:
    """Configure application-wide logging.

    Args:
        json: Whether to emit JSON-formatted logs.
    """

    root = logging.getLogger()
    root.setLevel(logging.INFO)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler: logging.Handler = logging.StreamHandler(sys.stdout)
    formatter: logging.Formatter
    if json:
        formatter = _ExtraFormatter(
            fmt='{"level":"%(levelname)s","time":"%(asctime)s","name":"%(name)s",'
            '"message":"%(message)s","extra":%(eco_extra)s}',
        )
    else:
        formatter = logging.Formatter(
            fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        )

    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return the named logger; structured fields go in ``extra={"eco_extra": ...}``."""

    return logging.getLogger(name)
