"""Logging setup shared by every module.

``get_logger(__name__)`` configures the root logger on first use from the
LOG_LEVEL (default INFO) and LOG_FILE environment variables.
"""
from __future__ import annotations

import logging
import os


_configured = False


def _ensure_configured() -> None:
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO))

    handlers = [logging.StreamHandler()]
    log_file = os.getenv('LOG_FILE')
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    _ensure_configured()
    return logging.getLogger(name)
