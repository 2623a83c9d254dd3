from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union
import logging

from .annotations import AnnotationRecord, DocumentAnnotations
from .config import save_workers
from .dispatch import KeyedDispatcher
from .errors import IdentityUnresolvable, StaleReference
from .identity import DocumentRef, resolve
from .storage import AnnotationStore, ErrorCallback

logger = logging.getLogger(__name__)


class AnnotationManager:
    """Entry point used by the viewer.

    Saves and deletes are queued on background threads and never block the caller;
    loads are synchronous. No method raises on persistence problems: they are logged
    and passed to the store's on_error callback, and viewing carries on without them.
    """

    def __init__(self, store: AnnotationStore, max_workers: Optional[int] = None):
        self.store = store
        self._dispatcher = KeyedDispatcher(max_workers=max_workers or save_workers())

    @classmethod
    def open(cls, storage_dir: Union[str, Path, None] = None, on_error: Optional[ErrorCallback] = None,
             max_workers: Optional[int] = None) -> 'AnnotationManager':
        return cls(AnnotationStore.open(storage_dir, on_error=on_error), max_workers=max_workers)

    def __enter__(self) -> 'AnnotationManager':
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ---- Viewer-facing operations ----
    def save_annotation(self, record: AnnotationRecord, ref: DocumentRef, display_name: str = ""):
        key = self._key_for(ref)
        if key is None:
            return
        snapshot = record.model_copy(deep=True)
        self._submit(key, self.store.upsert, key, snapshot, display_name)

    def load_annotations(self, ref: DocumentRef, page_count: Optional[int] = None) -> List[AnnotationRecord]:
        """Saved records for ref. With page_count, records beyond the last page are skipped."""
        key = self._key_for(ref)
        if key is None:
            return []
        records = self.store.load_all(key)
        if page_count is None:
            return records
        restorable: List[AnnotationRecord] = []
        for record in records:
            if record.page_index >= page_count:
                self.store.report(StaleReference(
                    f"Skipping annotation {record.id}: page {record.page_index} of a {page_count}-page document",
                    key=key, record_id=record.id, page_index=record.page_index, page_count=page_count))
                continue
            restorable.append(record)
        return restorable

    def delete_annotation(self, record_id: str, ref: DocumentRef):
        key = self._key_for(ref)
        if key is None:
            return
        self._submit(key, self.store.delete, key, record_id)

    # ---- Maintenance ----
    def list_all_saved_documents(self) -> List[DocumentAnnotations]:
        return self.store.list_all_collections()

    def clear_all_saved_annotations(self):
        self.flush()
        self.store.clear_all()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued saves/deletes to reach disk (or fail)."""
        return self._dispatcher.flush(timeout)

    def close(self):
        if not self._dispatcher.closed:
            self._dispatcher.shutdown(wait=True)

    # ---- Internal helpers ----
    def _key_for(self, ref: DocumentRef) -> Optional[str]:
        key = resolve(ref)
        if key is None:
            self.store.report(IdentityUnresolvable(f"No document key for {ref!r}; annotations will not persist"))
        return key

    def _submit(self, key: str, fn, *args):
        try:
            self._dispatcher.submit(key, fn, *args)
        except RuntimeError:
            logger.warning("Annotation manager is closed; dropping change for %s", key)

