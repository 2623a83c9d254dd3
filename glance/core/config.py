from __future__ import annotations
from pathlib import Path
import logging
import os

"""config

Env Vars:
  GLANCE_ANNOTATIONS_DIR   (storage directory, default ~/Documents/GlanceAnnotations)
  GLANCE_SAVE_WORKERS      (background save threads, default 4)

Values are read on every call so tests and embedding applications can override them late.
"""

logger = logging.getLogger(__name__)

DEFAULT_DIR_NAME = "GlanceAnnotations"
DEFAULT_SAVE_WORKERS = 4


def default_storage_dir() -> Path:
    env_override = os.environ.get("GLANCE_ANNOTATIONS_DIR")
    if env_override:
        return Path(env_override).expanduser()
    return Path.home() / "Documents" / DEFAULT_DIR_NAME


def save_workers() -> int:
    raw = os.environ.get("GLANCE_SAVE_WORKERS")
    if raw:
        try:
            n = int(raw)
            if n >= 1:
                return n
        except ValueError:
            pass
        logger.warning("Ignoring invalid GLANCE_SAVE_WORKERS=%r", raw)
    return DEFAULT_SAVE_WORKERS
