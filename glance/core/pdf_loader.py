from __future__ import annotations
from io import BytesIO
from typing import Optional, Union
import os
try:
    from pypdf import PdfReader  # type: ignore
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Missing dependency 'pypdf'. Activate your virtual environment and run 'pip install -e .'. "
        "If already installed, ensure you're not invoking system Python instead of the venv."
    ) from e

from .identity import CONTENT_SAMPLE_CHARS, ContentRef, DocumentRef, PathRef

"""pdf_loader

Thin pypdf wrapper that gives the viewer what annotation persistence needs from a PDF:
its page count (to drop stale records on restore) and a DocumentRef.

Documents opened from a path get a PathRef (cheap, size based). Documents opened from
in-memory bytes have no path, so a ContentRef is built from the page count and the
first CONTENT_SAMPLE_CHARS characters of extracted text. Pages are read only until
the sample is full.
"""


class PDFDocument:
    def __init__(self, source: Union[str, bytes]):
        if isinstance(source, (bytes, bytearray)):
            self.path: Optional[str] = None
            self.reader = PdfReader(BytesIO(bytes(source)))
        else:
            self.path = os.fspath(source)
            self.reader = PdfReader(self.path)

    # ---- Basic Metadata ----
    def page_count(self) -> int:
        return len(self.reader.pages)

    def text_sample(self, max_chars: int = CONTENT_SAMPLE_CHARS) -> str:
        parts = []
        total = 0
        for page in self.reader.pages:
            if total >= max_chars:
                break
            text = page.extract_text() or ""
            parts.append(text)
            total += len(text)
        return "".join(parts)[:max_chars]

    # ---- Identity ----
    def path_ref(self) -> Optional[PathRef]:
        return PathRef(self.path) if self.path else None

    def content_ref(self) -> ContentRef:
        return ContentRef(page_count=self.page_count(), content_sample=self.text_sample())

    def document_ref(self) -> DocumentRef:
        return self.path_ref() or self.content_ref()
