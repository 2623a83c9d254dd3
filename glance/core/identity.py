from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union
import hashlib
import logging
import os
import re

"""identity

Derives the storage key for a document that carries no identity of its own.

Path-based keys:    <base name, unsafe runs replaced by '_'>_<size in bytes>
                    e.g. 'Quarterly Report (final).pdf', 102400 bytes -> 'Quarterly_Report_final_pdf_102400'
Content-based keys: doc_<page count>_sha<sha256 of the text sample prefix, 16 hex chars>

Path keys are capped at MAX_KEY_BYTES (UTF-8) by shortening the name part, so
<key>.json.tmp always fits in a single file name (255 bytes on common filesystems).

The size is always the last '_' token of a path key; the lookup fallback relies on it
to find collections saved under a different name for a file of the same size.
Keys are never derived from the full file content; they are computed on every open.
"""

logger = logging.getLogger(__name__)

CONTENT_SAMPLE_CHARS = 1024
MAX_KEY_BYTES = 200
_UNSAFE_RE = re.compile(r"[^\w]+")


@dataclass(frozen=True)
class PathRef:
    path: str
    size_bytes: Optional[int] = None  # read from the filesystem when not supplied


@dataclass(frozen=True)
class ContentRef:
    page_count: int
    content_sample: str


DocumentRef = Union[PathRef, ContentRef]


def safe_name(name: str) -> str:
    return _UNSAFE_RE.sub("_", name).strip("_")


def path_key(path: str, size_bytes: int) -> str:
    suffix = f"_{int(size_bytes)}"
    budget = MAX_KEY_BYTES - len(suffix)
    base = safe_name(os.path.basename(path)).encode("utf-8")[:budget].decode("utf-8", "ignore").rstrip("_")
    return f"{base or 'document'}{suffix}"


def content_key(page_count: int, content_sample: str) -> str:
    prefix = (content_sample or "")[:CONTENT_SAMPLE_CHARS]
    digest = hashlib.sha256(prefix.encode('utf-8')).hexdigest()[:16]
    # "sha" keeps the last token non-numeric, so content keys never match by size
    return f"doc_{int(page_count)}_sha{digest}"


def resolve(ref: DocumentRef) -> Optional[str]:
    """Return the storage key for ref, or None when it cannot be derived."""
    if isinstance(ref, ContentRef):
        return content_key(ref.page_count, ref.content_sample)
    if isinstance(ref, PathRef):
        size = ref.size_bytes
        if size is None:
            try:
                size = os.stat(ref.path).st_size
            except OSError as e:
                logger.warning("Cannot read file metadata for %s: %s", ref.path, e)
                return None
        return path_key(ref.path, size)
    raise TypeError(f"Unsupported document reference: {ref!r}")
