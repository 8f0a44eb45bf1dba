import sqlite3

import pytest

import storage
from storage import StorageError


@pytest.fixture
def db(tmp_path):
    conn = sqlite3.connect(tmp_path / "storage.db")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    storage.init_storage(conn)
    yield conn
    conn.close()


def test_upload_and_download(db):
    path = storage.upload(db, "notices", "/123-notice.pdf", b"%PDF", "application/pdf")

    assert path == "123-notice.pdf"
    stored = storage.download(db, "notices", path)
    assert stored.content == b"%PDF"
    assert stored.mime == "application/pdf"
    assert stored.size == 4


def test_upload_conflict_without_upsert(db):
    storage.upload(db, "results", "final_results/2023-2024.pdf", b"one")

    with pytest.raises(StorageError) as excinfo:
        storage.upload(db, "results", "final_results/2023-2024.pdf", b"two")
    assert excinfo.value.message == "The resource already exists"

    storage.upload(db, "results", "final_results/2023-2024.pdf", b"two", upsert=True)
    assert storage.download(db, "results", "final_results/2023-2024.pdf").content == b"two"


def test_unknown_bucket(db):
    with pytest.raises(StorageError) as excinfo:
        storage.upload(db, "missing", "a.png", b"x")
    assert excinfo.value.message == "Bucket not found"
    assert excinfo.value.bucket == "missing"

    with pytest.raises(StorageError):
        storage.remove(db, "missing", ["a.png"])


def test_empty_content_rejected(db):
    with pytest.raises(StorageError):
        storage.upload(db, "events", "events/1.png", b"")


def test_remove_reports_existing_paths(db):
    storage.upload(db, "faculty", "1-a.png", b"a")
    storage.upload(db, "faculty", "2-b.png", b"b")

    removed = storage.remove(db, "faculty", ["1-a.png", "gone.png", None])

    assert removed == ["1-a.png"]
    assert storage.download(db, "faculty", "1-a.png") is None
    assert storage.download(db, "faculty", "2-b.png") is not None


def test_list_objects_treats_prefix_literally(db):
    storage.upload(db, "academic_resources", "notes/1st_Semester/a.png", b"a")
    storage.upload(db, "academic_resources", "notes/1stXSemester/b.png", b"b")
    storage.upload(db, "academic_resources", "past_papers/1st_Semester/c.pdf", b"c")

    paths = [row["path"] for row in storage.list_objects(db, "academic_resources", "notes/1st_")]

    assert paths == ["notes/1st_Semester/a.png"]


def test_public_url():
    assert storage.public_url("site_assets", "gallery/1-my photo.png") == (
        "/storage/v1/object/public/site_assets/gallery/1-my%20photo.png"
    )


def test_path_from_public_url():
    url = storage.public_url("site_assets", "gallery/1-my photo.png")

    assert storage.path_from_public_url("site_assets", url) == "gallery/1-my photo.png"
    assert storage.path_from_public_url("faculty", url) is None
    assert storage.path_from_public_url("site_assets", "https://cdn.example.com/logo.png") is None
    assert storage.path_from_public_url("site_assets", None) is None
