"""Logging setup for the chunkstash CLI."""

from __future__ import annotations

import logging
import os
import re
import sys

LOGGER_NAME = "chunkstash"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CredentialMaskFilter(logging.Filter):
    """Masks credentials that may end up in backend error messages."""

    PATTERNS = [
        (re.compile(r"(aws_secret_access_key[\"']?\s*[:=]\s*[\"']?)([^\"'}\s,]+)", re.I), r"\1***"),
        (re.compile(r"(aws_access_key_id[\"']?\s*[:=]\s*[\"']?)([^\"'}\s,]+)", re.I), r"\1***"),
        (re.compile(r"(X-Amz-Signature=)([0-9a-f]+)", re.I), r"\1***"),
        (re.compile(r"(X-Amz-Credential=)([^&\s]+)", re.I), r"\1***"),
    ]

    def _mask(self, value: object) -> object:
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._mask(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._mask(arg) for arg in record.args)
        return True


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is when a record is emitted."""

    @property  # type: ignore[override]
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, _value) -> None:
        pass


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    ``level`` defaults to the CHUNKSTASH_LOG_LEVEL environment variable, then
    WARNING. Calling it again only updates the level.
    """
    if level is None:
        level = os.getenv("CHUNKSTASH_LOG_LEVEL", "WARNING")
    resolved = getattr(logging, level.upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)
    if logger.handlers:
        return logger

    handler = _StderrHandler()
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(CredentialMaskFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
