from __future__ import annotations
from pathlib import Path
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

COLLECTION_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"


def file_stem_for(key: str) -> str:
    """File name stem for a key: path separators are not allowed in a single file name."""
    return key.replace("/", "_").replace("\\", "_")


def trailing_token(key: str) -> Optional[str]:
    """Size token of a path-derived key ('Report_pdf_102400' -> '102400'), None if absent."""
    if "_" not in key:
        return None
    token = key.rsplit("_", 1)[1]
    return token if token.isdigit() else None


def iter_collection_paths(base_dir: Path) -> List[Path]:
    """Sorted collection files in base_dir. Temp files are never included."""
    try:
        return sorted(p for p in base_dir.iterdir() if p.name.endswith(COLLECTION_SUFFIX) and p.is_file())
    except OSError as e:
        logger.warning("Cannot list annotation directory %s: %s", base_dir, e)
        return []


def find_storage_location(base_dir: Path, key: str) -> Optional[Path]:
    """Locate the collection file for key.

    Exact match on <key>.json first. Otherwise the first stored collection (in name
    order) whose trailing size token equals the key's is returned. This is a
    heuristic: two files of identical size are treated as the same document.
    """
    exact = base_dir / f"{file_stem_for(key)}{COLLECTION_SUFFIX}"
    try:
        if exact.is_file():
            return exact
    except OSError as e:
        # e.g. ENAMETOOLONG for keys built outside identity.path_key
        logger.warning("Cannot stat annotation file for %s: %s", key, e)
        return None
    token = trailing_token(key)
    if token is None:
        return None
    for path in iter_collection_paths(base_dir):
        stem = path.name[:-len(COLLECTION_SUFFIX)]
        if trailing_token(stem) == token:
            logger.debug("Fallback match for %s: %s", key, path.name)
            return path
    return None
