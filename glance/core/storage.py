from __future__ import annotations
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .annotations import AnnotationRecord, DocumentAnnotations, decode, encode, repair_truncated
from .config import default_storage_dir
from .errors import DecodeCorruption, DecodeError, PersistenceError, WriteFailure
from .lookup import COLLECTION_SUFFIX, TEMP_SUFFIX, file_stem_for, find_storage_location, iter_collection_paths

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[PersistenceError], None]


class AnnotationStore:
    """File-per-document annotation store.

    Layout: <base_dir>/<key>.json, written atomically through <key>.json.tmp.
    Every mutation of one collection file runs under that file's lock
    (read -> merge -> atomic write); different files never block each other.
    Plain reads take no lock: os.replace guarantees they see a whole file.
    """

    def __init__(self, base_dir: Union[str, Path], on_error: Optional[ErrorCallback] = None):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.on_error = on_error
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def open(cls, storage_dir: Union[str, Path, None] = None, on_error: Optional[ErrorCallback] = None) -> 'AnnotationStore':
        return cls(storage_dir or default_storage_dir(), on_error=on_error)

    # ---- Locations ----
    def path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("document key must not be empty")
        return self.base_dir / f"{file_stem_for(key)}{COLLECTION_SUFFIX}"

    def find_location(self, key: str) -> Optional[Path]:
        return find_storage_location(self.base_dir, key)

    def _lock_for(self, path: Path) -> threading.Lock:
        # Locks are never removed; the table only grows with distinct documents.
        with self._locks_guard:
            lock = self._locks.get(path.name)
            if lock is None:
                lock = threading.Lock()
                self._locks[path.name] = lock
            return lock

    # ---- Mutations ----
    def upsert(self, key: str, record: AnnotationRecord, display_name: str = ""):
        """Insert record into the collection for key, replacing any record with the same id."""
        exact = self.path_for(key)
        path = self.find_location(key) or exact
        if path != exact:
            with self._lock_for(path):
                doc = self._read(path)
                if doc is not None:
                    self._merge_and_write(path, doc, record, display_name)
                    return
            # Unreadable file of another document: left alone, this key gets its own file.
        with self._lock_for(exact):
            doc = self._read(exact)
            if doc is None:
                doc = DocumentAnnotations(document_key=key, display_name=display_name)
            self._merge_and_write(exact, doc, record, display_name)

    def _merge_and_write(self, path: Path, doc: DocumentAnnotations, record: AnnotationRecord, display_name: str):
        if display_name:
            doc.display_name = display_name
        doc.upsert(record)
        if self._write_atomic(path, doc):
            logger.debug("Saved annotation %s for %s (%d total)", record.id, doc.document_key, len(doc.annotations))

    def delete(self, key: str, record_id: str) -> bool:
        path = self.find_location(key)
        if path is None:
            return False
        with self._lock_for(path):
            doc = self._read(path)
            if doc is None or not doc.remove(record_id):
                return False
            return self._write_atomic(path, doc)

    def clear_all(self):
        targets = list(iter_collection_paths(self.base_dir))
        try:
            targets.extend(p for p in self.base_dir.iterdir() if p.name.endswith(COLLECTION_SUFFIX + TEMP_SUFFIX))
        except OSError as e:
            self.report(WriteFailure(f"Cannot list {self.base_dir}: {e}", path=str(self.base_dir)))
        for path in targets:
            with self._lock_for(path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    self.report(WriteFailure(f"Cannot remove {path}: {e}", path=str(path)))
        logger.debug("Cleared %d annotation files from %s", len(targets), self.base_dir)

    # ---- Reads ----
    def load_collection(self, key: str) -> Optional[DocumentAnnotations]:
        path = self.find_location(key)
        if path is None:
            return None
        return self._read(path)

    def load_all(self, key: str) -> List[AnnotationRecord]:
        doc = self.load_collection(key)
        return list(doc.annotations) if doc else []

    def list_all_collections(self) -> List[DocumentAnnotations]:
        out: List[DocumentAnnotations] = []
        for path in iter_collection_paths(self.base_dir):
            doc = self._read(path)
            if doc is not None:
                out.append(doc)
        return out

    # ---- Internal helpers ----
    def _read(self, path: Path) -> Optional[DocumentAnnotations]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            self.report(DecodeCorruption(f"Cannot read {path}: {e}", path=str(path)))
            return None
        try:
            return decode(raw)
        except DecodeError as first:
            text = raw.decode('utf-8', errors='replace')
            repaired = repair_truncated(text)
            if repaired is not None and repaired != text:
                try:
                    doc = decode(repaired)
                    logger.warning("Repaired truncated annotation file %s (%d records kept)", path, len(doc.annotations))
                    return doc
                except DecodeError:
                    pass
            # Left on disk for inspection; the next successful write replaces it.
            self.report(DecodeCorruption(f"Unreadable annotation file {path}: {first}", path=str(path)))
            return None

    def _write_atomic(self, path: Path, doc: DocumentAnnotations) -> bool:
        tmp = path.with_name(path.name + TEMP_SUFFIX)
        try:
            data = encode(doc)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
            return True
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            self.report(WriteFailure(f"Failed to save annotations to {path}: {e}",
                                      key=doc.document_key, path=str(path)))
            return False

    def report(self, error: PersistenceError):
        logger.warning("%s: %s", type(error).__name__, error)
        if self.on_error is not None:
            self.on_error(error)
