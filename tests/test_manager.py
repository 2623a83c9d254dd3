from glance.core import storage as storage_mod
from glance.core.annotations import AnnotationRecord, AnnotationType, Bounds
from glance.core.errors import IdentityUnresolvable, StaleReference, WriteFailure
from glance.core.identity import ContentRef, PathRef
from glance.core.manager import AnnotationManager


def _record(page_index=0, **kw):
    return AnnotationRecord(type=AnnotationType.HIGHLIGHT, bounds=Bounds(x=10, y=20, width=100, height=15),
                            page_index=page_index, **kw)


def test_highlight_survives_reopen(tmp_path):
    ref = PathRef("/docs/a.pdf", 50000)
    hl = _record(2, color=(1, 1, 0, 0.5))
    with AnnotationManager.open(tmp_path) as manager:
        manager.save_annotation(hl, ref, "a.pdf")

    reopened = AnnotationManager.open(tmp_path)
    try:
        assert reopened.load_annotations(ref) == [hl]
    finally:
        reopened.close()


def test_order_per_document_is_submission_order(tmp_path):
    k1, k2 = PathRef("/docs/one.pdf", 111), PathRef("/docs/two.pdf", 222)
    first = [_record(i) for i in range(25)]
    second = [_record(i) for i in range(25)]
    with AnnotationManager.open(tmp_path, max_workers=4) as manager:
        for a, b in zip(first, second):
            manager.save_annotation(a, k1, "one.pdf")
            manager.save_annotation(b, k2, "two.pdf")
        assert manager.flush(timeout=10)
        assert manager.load_annotations(k1) == first
        assert manager.load_annotations(k2) == second


def test_stale_page_indices_are_skipped(tmp_path):
    events = []
    ref = PathRef("/docs/shrunk.pdf", 4242)
    records = [_record(i) for i in range(9)] + [_record(50)]
    with AnnotationManager.open(tmp_path, on_error=events.append) as manager:
        for r in records:
            manager.save_annotation(r, ref)
        manager.flush()
        restored = manager.load_annotations(ref, page_count=10)
        assert restored == records[:9]
        assert len(manager.load_annotations(ref)) == 10
    stale = [e for e in events if isinstance(e, StaleReference)]
    assert len(stale) == 1 and stale[0].page_index == 50 and stale[0].page_count == 10


def test_unresolvable_document_disables_persistence(tmp_path):
    events = []
    ref = PathRef(str(tmp_path / "missing.pdf"))
    store_dir = tmp_path / "store"
    with AnnotationManager.open(store_dir, on_error=events.append) as manager:
        manager.save_annotation(_record(), ref, "missing.pdf")
        manager.flush()
        assert manager.load_annotations(ref) == []
        manager.delete_annotation("whatever", ref)
    assert list(store_dir.iterdir()) == []
    assert events and all(isinstance(e, IdentityUnresolvable) for e in events)


def test_delete_is_ordered_after_pending_save(tmp_path):
    ref = ContentRef(page_count=3, content_sample="Chapter one")
    keep, drop = _record(0), _record(1)
    with AnnotationManager.open(tmp_path) as manager:
        manager.save_annotation(keep, ref)
        manager.save_annotation(drop, ref)
        manager.delete_annotation(drop.id, ref)
        manager.flush()
        assert manager.load_annotations(ref) == [keep]


def test_saved_record_is_a_snapshot(tmp_path):
    ref = PathRef("/docs/a.pdf", 10)
    rec = _record(text="as selected")
    with AnnotationManager.open(tmp_path) as manager:
        manager.save_annotation(rec, ref)
        rec.text = "changed afterwards"
        manager.flush()
        assert manager.load_annotations(ref)[0].text == "as selected"


def test_write_failure_is_reported_not_raised(tmp_path, monkeypatch):
    events = []

    def _fail(src, dst):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(storage_mod.os, "replace", _fail)
    with AnnotationManager.open(tmp_path, on_error=events.append) as manager:
        manager.save_annotation(_record(), PathRef("/docs/a.pdf", 10))
        assert manager.flush(timeout=10)
    assert [type(e) for e in events] == [WriteFailure]


def test_list_and_clear(tmp_path):
    with AnnotationManager.open(tmp_path) as manager:
        manager.save_annotation(_record(), PathRef("/docs/a.pdf", 10), "a.pdf")
        manager.save_annotation(_record(), PathRef("/docs/b.pdf", 20), "b.pdf")
        manager.flush()
        assert sorted(d.display_name for d in manager.list_all_saved_documents()) == ["a.pdf", "b.pdf"]

        manager.save_annotation(_record(), PathRef("/docs/c.pdf", 30), "c.pdf")
        manager.clear_all_saved_annotations()
        assert manager.list_all_saved_documents() == []


def test_save_after_close_is_dropped(tmp_path):
    manager = AnnotationManager.open(tmp_path)
    manager.close()
    manager.save_annotation(_record(), PathRef("/docs/a.pdf", 10))
    manager.close()
    assert list(tmp_path.iterdir()) == []


def test_default_directory_comes_from_environment(tmp_path):
    with AnnotationManager.open() as manager:
        assert manager.store.base_dir == tmp_path / "default-annotations"


def test_very_long_file_name_round_trips(tmp_path):
    events = []
    ref = PathRef("/docs/" + "r" * 246 + ".pdf", 123456)
    rec = _record()
    with AnnotationManager.open(tmp_path, on_error=events.append) as manager:
        manager.save_annotation(rec, ref, "long.pdf")
        manager.flush()
        assert manager.load_annotations(ref) == [rec]
    assert events == []
