"""Tests for the SQLite record store."""
from datetime import datetime, timedelta, timezone

import pytest

from sendvideo.models import RecordStatus
from sendvideo.services.record_store import RecordStore, RecordStoreError


@pytest.fixture
def store(tmp_path):
    with RecordStore(tmp_path / "record.db") as s:
        yield s


class TestAdmission:
    def test_upsert_new_creates_not_uploaded(self, store):
        assert store.upsert_new("alpha_clip1.mp4") is True

        record = store.find_by_name("alpha_clip1.mp4")
        assert record.status == RecordStatus.NOT_UPLOADED
        assert record.upload_date is None
        assert record.is_local_deleted is False

    def test_upsert_new_is_idempotent(self, store):
        store.upsert_new("alpha_clip1.mp4")
        store.set_status("alpha_clip1.mp4", RecordStatus.INTERRUPTED)

        assert store.upsert_new("alpha_clip1.mp4") is False

        records = store.list_all()
        assert len(records) == 1
        assert records[0].status == RecordStatus.INTERRUPTED

    def test_known_names(self, store):
        store.upsert_new("a_1.mp4")
        store.upsert_new("b_2.mp4")
        store.mark_local_deleted("b_2.mp4")
        assert store.known_names() == {"a_1.mp4", "b_2.mp4"}

    def test_find_by_name_missing(self, store):
        assert store.find_by_name("nope_x.mp4") is None


class TestListing:
    def test_list_by_status_keeps_insertion_order(self, store):
        for name in ["c_3.mp4", "a_1.mp4", "b_2.mp4"]:
            store.upsert_new(name)

        names = [r.file_name for r in store.list_by_status(RecordStatus.NOT_UPLOADED)]
        assert names == ["c_3.mp4", "a_1.mp4", "b_2.mp4"]
        assert names == [r.file_name for r in store.list_by_status(RecordStatus.NOT_UPLOADED)]

    def test_list_by_status_excludes_locally_deleted(self, store):
        store.upsert_new("a_1.mp4")
        store.upsert_new("b_2.mp4")
        store.mark_local_deleted("a_1.mp4")

        names = [r.file_name for r in store.list_by_status(RecordStatus.NOT_UPLOADED)]
        assert names == ["b_2.mp4"]

    def test_list_all_includes_locally_deleted(self, store):
        store.upsert_new("a_1.mp4")
        store.mark_local_deleted("a_1.mp4")
        assert store.list_all()[0].is_local_deleted is True


class TestStatusTransitions:
    def test_uploaded_always_has_date(self, store):
        store.upsert_new("a_1.mp4")
        store.set_status("a_1.mp4", RecordStatus.UPLOADED)

        record = store.find_by_name("a_1.mp4")
        assert record.status == RecordStatus.UPLOADED
        assert record.upload_date is not None
        assert record.upload_date.tzinfo is not None

    def test_uploaded_with_explicit_date(self, store):
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        store.upsert_new("a_1.mp4")
        store.set_status("a_1.mp4", RecordStatus.UPLOADED, when=when)
        assert store.find_by_name("a_1.mp4").upload_date == when

    def test_other_statuses_leave_date_unset(self, store):
        store.upsert_new("a_1.mp4")
        store.set_status("a_1.mp4", RecordStatus.UPLOADING)
        store.set_status("a_1.mp4", RecordStatus.INTERRUPTED)
        record = store.find_by_name("a_1.mp4")
        assert record.status == RecordStatus.INTERRUPTED
        assert record.upload_date is None

    def test_no_record_is_uploaded_without_date(self, store):
        for i, status in enumerate(RecordStatus):
            name = f"g_{i}.mp4"
            store.upsert_new(name)
            store.set_status(name, status)
        for record in store.list_all():
            if record.status == RecordStatus.UPLOADED:
                assert record.upload_date is not None


class TestRetentionQuery:
    def test_list_uploaded_older_than(self, store):
        now = datetime(2024, 6, 20, tzinfo=timezone.utc)
        store.upsert_new("old_a.mp4")
        store.upsert_new("new_b.mp4")
        store.upsert_new("pending_c.mp4")
        store.set_status("old_a.mp4", RecordStatus.UPLOADED, when=now - timedelta(days=10))
        store.set_status("new_b.mp4", RecordStatus.UPLOADED, when=now - timedelta(days=2))

        old = store.list_uploaded_older_than(timedelta(days=7), now=now)
        assert [r.file_name for r in old] == ["old_a.mp4"]

    def test_list_uploaded_older_than_skips_locally_deleted(self, store):
        now = datetime(2024, 6, 20, tzinfo=timezone.utc)
        store.upsert_new("old_a.mp4")
        store.set_status("old_a.mp4", RecordStatus.UPLOADED, when=now - timedelta(days=10))
        store.mark_local_deleted("old_a.mp4")
        assert store.list_uploaded_older_than(timedelta(days=7), now=now) == []


class TestDurability:
    def test_records_survive_reopen(self, tmp_path):
        db = tmp_path / "sub" / "record.db"
        with RecordStore(db) as store:
            store.upsert_new("a_1.mp4")
            store.set_status("a_1.mp4", RecordStatus.UPLOADING)

        with RecordStore(db) as store:
            record = store.find_by_name("a_1.mp4")
            assert record.status == RecordStatus.UPLOADING

    def test_in_memory_store(self):
        with RecordStore(":memory:") as store:
            store.upsert_new("a_1.mp4")
            assert store.known_names() == {"a_1.mp4"}

    def test_errors_are_wrapped(self, tmp_path):
        store = RecordStore(tmp_path / "record.db")
        store.close()
        with pytest.raises(RecordStoreError):
            store.list_all()
