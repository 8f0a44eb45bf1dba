from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

BUCKETS = (
    "academic_resources",
    "results",
    "notices",
    "events",
    "faculty",
    "students",
    "syllabus",
    "routines",
    "site_assets",
)

PUBLIC_PREFIX = "/storage/v1/object/public"

SCHEMA = """
CREATE TABLE IF NOT EXISTS storage_buckets (
    name TEXT PRIMARY KEY,
    is_public INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS storage_objects (
    bucket TEXT NOT NULL,
    path TEXT NOT NULL,
    content BLOB NOT NULL,
    mime TEXT,
    size INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (bucket, path),
    FOREIGN KEY (bucket) REFERENCES storage_buckets(name) ON DELETE CASCADE
);
"""


class StorageError(Exception):
    """Raised when an object storage operation cannot be completed."""

    def __init__(self, message: str, bucket: str | None = None, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.path = path


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    content: bytes
    mime: str
    size: int
    updated_at: str


def init_storage(db: sqlite3.Connection, buckets: tuple[str, ...] = BUCKETS) -> None:
    db.executescript(SCHEMA)
    for name in buckets:
        db.execute("INSERT OR IGNORE INTO storage_buckets (name) VALUES (?)", (name,))


def bucket_exists(db: sqlite3.Connection, bucket: str) -> bool:
    row = db.execute("SELECT 1 FROM storage_buckets WHERE name = ?", (bucket,)).fetchone()
    return row is not None


def _require_bucket(db: sqlite3.Connection, bucket: str) -> None:
    if not bucket_exists(db, bucket):
        raise StorageError("Bucket not found", bucket=bucket)


def upload(
    db: sqlite3.Connection,
    bucket: str,
    path: str,
    content: bytes,
    mime: str | None = None,
    upsert: bool = False,
) -> str:
    """Store ``content`` under ``bucket``/``path`` and return the path.

    Without ``upsert`` an existing object at the same path is a conflict, the
    way the hosted storage API behaves.
    """
    _require_bucket(db, bucket)
    path = path.strip("/")
    if not path:
        raise StorageError("Object path is required", bucket=bucket)
    if not content:
        raise StorageError("Cannot upload an empty file", bucket=bucket, path=path)

    existing = db.execute(
        "SELECT 1 FROM storage_objects WHERE bucket = ? AND path = ?",
        (bucket, path),
    ).fetchone()
    if existing and not upsert:
        raise StorageError("The resource already exists", bucket=bucket, path=path)

    db.execute(
        """
        INSERT INTO storage_objects (bucket, path, content, mime, size)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(bucket, path) DO UPDATE SET
            content = excluded.content,
            mime = excluded.mime,
            size = excluded.size,
            updated_at = CURRENT_TIMESTAMP
        """,
        (bucket, path, content, mime or "application/octet-stream", len(content)),
    )
    logger.info("Stored %s/%s (%d bytes)", bucket, path, len(content))
    return path


def remove(db: sqlite3.Connection, bucket: str, paths: list[str]) -> list[str]:
    """Delete objects and return the paths that actually existed."""
    _require_bucket(db, bucket)
    removed: list[str] = []
    for path in paths:
        if not path:
            continue
        cursor = db.execute(
            "DELETE FROM storage_objects WHERE bucket = ? AND path = ?",
            (bucket, path),
        )
        if cursor.rowcount:
            removed.append(path)
    missing = len([p for p in paths if p]) - len(removed)
    if missing:
        logger.debug("%d object(s) were already absent from %s", missing, bucket)
    return removed


def download(db: sqlite3.Connection, bucket: str, path: str) -> StoredObject | None:
    row = db.execute(
        """
        SELECT bucket, path, content, mime, size, updated_at
        FROM storage_objects
        WHERE bucket = ? AND path = ?
        """,
        (bucket, path),
    ).fetchone()
    if not row:
        return None
    return StoredObject(
        bucket=row["bucket"],
        path=row["path"],
        content=row["content"],
        mime=row["mime"] or "application/octet-stream",
        size=row["size"],
        updated_at=row["updated_at"],
    )


def list_objects(db: sqlite3.Connection, bucket: str, prefix: str = "") -> list[sqlite3.Row]:
    _require_bucket(db, bucket)
    return db.execute(
        """
        SELECT path, mime, size, updated_at
        FROM storage_objects
        WHERE bucket = ? AND path LIKE ? ESCAPE '\\'
        ORDER BY path
        """,
        (bucket, _like_prefix(prefix)),
    ).fetchall()


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


def public_url(bucket: str, path: str) -> str:
    return f"{PUBLIC_PREFIX}/{quote(bucket)}/{quote(path)}"


def path_from_public_url(bucket: str, url: str | None) -> str | None:
    """Object path behind a URL built by ``public_url``, or None for foreign URLs."""
    prefix = f"{PUBLIC_PREFIX}/{quote(bucket)}/"
    if not url or not url.startswith(prefix):
        return None
    return unquote(url[len(prefix):]) or None
