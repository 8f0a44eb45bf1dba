from __future__ import annotations

import io
import json
import logging
import os
import re
import sqlite3
import uuid
from datetime import datetime
from typing import Any

from flask import (
    Flask,
    abort,
    flash,
    g,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)
from werkzeug.utils import secure_filename

import resources
import storage
from resources import (
    CONTENT_BLOCKS,
    EXAM_NAMES,
    FACULTY_TITLES,
    GENDERS,
    ICONS,
    NOTE_SEMESTERS,
    NOTICE_CATEGORIES,
    SEMESTERS,
    SHIFTS,
    STUDENT_GROUPS,
    ValidationError,
)
from storage import StorageError

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
IS_VERCEL = bool(os.environ.get("VERCEL"))
DB_PATH = os.environ.get(
    "DATABASE_PATH",
    "/tmp/portal.db" if IS_VERCEL else os.path.join(BASE_DIR, "portal.db"),
)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", 8 * 1024 * 1024))
MAX_REQUEST_BYTES = 8 * MAX_UPLOAD_BYTES

PDF_EXTENSIONS = {".pdf"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}
ATTACHMENT_EXTENSIONS = IMAGE_EXTENSIONS | PDF_EXTENSIONS

ACADEMIC_TABS = {
    "syllabus": "Syllabus",
    "routines": "Class Routines",
    "admissions_info": "Admissions Info",
    "programming_club": "Programming Club",
    "students": "Student List",
    "exam_schedules": "Exam Schedules",
    "programs": "Academic Programs",
}

NAV_LINKS = [
    ("dashboard", "Dashboard", "admin_dashboard"),
    ("notices", "Notices", "manage_notices"),
    ("events", "Events", "manage_events"),
    ("faculty", "Teachers", "manage_faculty"),
    ("academic", "Academic", "manage_academic"),
    ("results", "Results", "manage_results"),
    ("resources", "Resources", "manage_resources"),
    ("settings", "Settings", "site_settings"),
]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = Flask(__name__)
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-change-me")
app.config["DATABASE_PATH"] = DB_PATH
app.config["MAX_UPLOAD_BYTES"] = MAX_UPLOAD_BYTES
app.config["MAX_CONTENT_LENGTH"] = MAX_REQUEST_BYTES
app.logger.setLevel(LOG_LEVEL)


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        g.db = sqlite3.connect(app.config["DATABASE_PATH"])
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA foreign_keys = ON")
    return g.db


@app.teardown_appcontext
def close_db(_error: Any) -> None:
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    db = get_db()
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS notices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            category TEXT NOT NULL CHECK(category IN ('Academic', 'Event', 'General')) DEFAULT 'General',
            content TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('published', 'draft')) DEFAULT 'draft',
            author TEXT NOT NULL DEFAULT 'Admin',
            attachments TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            date TEXT NOT NULL,
            description TEXT NOT NULL,
            image_url TEXT,
            file_path TEXT,
            status TEXT NOT NULL CHECK(status IN ('published', 'draft')) DEFAULT 'draft',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS gallery_images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            image_url TEXT NOT NULL,
            file_path TEXT NOT NULL,
            title TEXT,
            subtitle TEXT,
            batch_id TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS faculty (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            title TEXT NOT NULL,
            qualification TEXT NOT NULL DEFAULT '',
            specialization TEXT NOT NULL DEFAULT '',
            email TEXT NOT NULL DEFAULT '',
            mobile_number TEXT NOT NULL DEFAULT '',
            image_url TEXT,
            file_path TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS students (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            roll TEXT NOT NULL UNIQUE,
            semester TEXT NOT NULL,
            shift TEXT NOT NULL CHECK(shift IN ('Morning', 'Day')),
            gender TEXT NOT NULL CHECK(gender IN ('Male', 'Female')) DEFAULT 'Male',
            image_url TEXT,
            file_path TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS academic_resources (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            semester TEXT NOT NULL,
            resource_type TEXT NOT NULL CHECK(resource_type IN ('note', 'past_paper')),
            image_url TEXT NOT NULL,
            file_path TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS syllabus (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            semester TEXT NOT NULL UNIQUE,
            image_url TEXT,
            image_path TEXT,
            pdf_url TEXT,
            pdf_path TEXT
        );

        CREATE TABLE IF NOT EXISTS class_routines (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            semester TEXT NOT NULL,
            shift TEXT NOT NULL,
            student_group TEXT NOT NULL,
            image_url TEXT NOT NULL,
            file_path TEXT NOT NULL,
            UNIQUE (semester, shift, student_group)
        );

        CREATE TABLE IF NOT EXISTS site_content (
            key TEXT PRIMARY KEY,
            content TEXT NOT NULL DEFAULT '',
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS academic_programs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            icon TEXT NOT NULL DEFAULT 'school',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS final_result_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_name TEXT NOT NULL UNIQUE,
            pdf_path TEXT,
            file_name TEXT,
            updated_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS other_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            roll_number TEXT NOT NULL,
            student_name TEXT NOT NULL,
            exam_name TEXT NOT NULL,
            semester TEXT NOT NULL,
            student_group TEXT NOT NULL,
            subjects TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS site_settings (
            key TEXT PRIMARY KEY,
            value TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_notices_created ON notices(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_events_date ON events(date DESC);
        CREATE INDEX IF NOT EXISTS idx_gallery_created ON gallery_images(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_resources_semester ON academic_resources(semester, resource_type);
        """
    )
    storage.init_storage(db)
    db.commit()


def now_stamp() -> str:
    return datetime.now().isoformat(timespec="seconds")


def fetch_or_404(table: str, row_id: int) -> sqlite3.Row:
    row = get_db().execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
    if not row:
        abort(404)
    return row


def read_uploaded_file(field_name: str, allowed_extensions: set[str]) -> tuple[str | None, bytes | None, str | None, str | None]:
    uploaded = request.files.get(field_name)
    if not uploaded or not uploaded.filename:
        return None, None, None, None
    return _read_upload(uploaded, allowed_extensions)


def read_uploaded_files(field_name: str, allowed_extensions: set[str]) -> tuple[list[tuple[str, bytes, str]], str | None]:
    files: list[tuple[str, bytes, str]] = []
    for uploaded in request.files.getlist(field_name):
        if not uploaded or not uploaded.filename:
            continue
        name, blob, mime, error = _read_upload(uploaded, allowed_extensions)
        if error:
            return [], f"{uploaded.filename}: {error}"
        files.append((name, blob, mime))
    return files, None


def _read_upload(uploaded, allowed_extensions: set[str]) -> tuple[str | None, bytes | None, str | None, str | None]:
    original_name = os.path.basename(uploaded.filename.replace("\\", "/"))
    ext = os.path.splitext(secure_filename(original_name) or original_name)[1].lower()
    if ext not in allowed_extensions:
        return None, None, None, "Invalid file format. Please upload the supported format only."

    blob = uploaded.read()
    if not blob:
        return None, None, None, "Uploaded file is empty."

    limit = app.config["MAX_UPLOAD_BYTES"]
    if len(blob) > limit:
        return None, None, None, f"File too large. Max size is {limit // (1024 * 1024)} MB."

    mime = uploaded.mimetype or "application/octet-stream"
    return original_name, blob, mime, None


def store_file(bucket: str, path: str, blob: bytes, mime: str | None, upsert: bool = False) -> tuple[str, str]:
    stored_path = storage.upload(get_db(), bucket, path, blob, mime, upsert=upsert)
    return stored_path, storage.public_url(bucket, stored_path)


def discard_files(bucket: str, paths: list[str | None], context: str) -> bool:
    """Remove storage objects, reporting instead of raising on failure.

    Returns False when the cleanup failed so callers can narrate the partial
    outcome; the row change that follows still goes ahead.
    """
    targets = [path for path in paths if path]
    if not targets:
        return True
    app.logger.info("Removing %d object(s) from %s for %s", len(targets), bucket, context)
    try:
        storage.remove(get_db(), bucket, targets)
    except StorageError as exc:
        app.logger.warning("Storage cleanup failed for %s: %s", context, exc.message)
        flash(f"Some files for {context} could not be removed from storage: {exc.message}", "warning")
        return False
    return True


def storage_error_message(exc: StorageError) -> str:
    if exc.message == "Bucket not found":
        return (
            f"Configuration error: the '{exc.bucket}' storage bucket was not found. "
            "Create it before uploading files."
        )
    if exc.path:
        return f"{exc.message} ({exc.path})"
    return exc.message


def clean_name(name: str, fallback: str = "download") -> str:
    safe_name = re.sub(r"[^a-zA-Z0-9._-]+", "-", name).strip("-")
    return safe_name or fallback


def send_blob_download(file_name: str, content: bytes, mime: str | None = None, as_attachment: bool = True):
    return send_file(
        io.BytesIO(content),
        mimetype=mime or "application/octet-stream",
        as_attachment=as_attachment,
        download_name=clean_name(file_name),
    )


def render_page(template_name: str, **context: Any):
    return render_template(template_name, **context)


def render_confirm(title: str, message: str, cancel_url: str):
    return render_page(
        "confirm.html",
        page_title=title,
        title=title,
        message=message,
        action_url=request.path,
        cancel_url=cancel_url,
    )


def upsert_settings(db: sqlite3.Connection, values: dict[str, str | None]) -> None:
    db.executemany(
        """
        INSERT INTO site_settings (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        list(values.items()),
    )


def load_settings(keys: list[str]) -> dict[str, str]:
    placeholders = ", ".join("?" for _ in keys)
    rows = get_db().execute(
        f"SELECT key, value FROM site_settings WHERE key IN ({placeholders})",
        keys,
    ).fetchall()
    stored = {row["key"]: row["value"] for row in rows}
    return {key: stored.get(key) or "" for key in keys}


def notice_view(row: sqlite3.Row) -> dict[str, Any]:
    notice = dict(row)
    notice["attachments"] = resources.load_json_list(row["attachments"])
    return notice


@app.context_processor
def inject_globals() -> dict[str, Any]:
    endpoint = request.endpoint or ""
    active = "dashboard"
    for key, _label, nav_endpoint in NAV_LINKS:
        if endpoint == nav_endpoint or endpoint.startswith(f"{key}_"):
            active = key
    return {
        "nav_links": NAV_LINKS,
        "active_nav": active,
        "semesters": SEMESTERS,
    }


@app.route("/")
def index():
    return redirect(url_for("admin_dashboard"))


@app.route(f"{storage.PUBLIC_PREFIX}/<bucket>/<path:object_path>")
def storage_object(bucket: str, object_path: str):
    stored = storage.download(get_db(), bucket, object_path)
    if not stored:
        abort(404)
    return send_blob_download(object_path.split("/")[-1], stored.content, stored.mime, as_attachment=False)


@app.route("/admin")
def admin_dashboard():
    db = get_db()
    now_iso = datetime.now().strftime("%Y-%m-%dT%H:%M")
    stats = {
        "notices": db.execute("SELECT COUNT(*) AS c FROM notices").fetchone()["c"],
        "upcoming_events": db.execute(
            "SELECT COUNT(*) AS c FROM events WHERE date > ?",
            (now_iso,),
        ).fetchone()["c"],
        "faculty": db.execute("SELECT COUNT(*) AS c FROM faculty").fetchone()["c"],
        "students": db.execute("SELECT COUNT(*) AS c FROM students").fetchone()["c"],
    }
    return render_page("dashboard.html", page_title="Dashboard", stats=stats)


# --- Notices ---


@app.route("/admin/notices")
def manage_notices():
    search = request.args.get("q", "").strip()
    category = request.args.get("category", "all")
    status = request.args.get("status", "all")

    rows = get_db().execute("SELECT * FROM notices ORDER BY created_at DESC, id DESC").fetchall()
    notices = resources.filter_notices([notice_view(row) for row in rows], search, category, status)
    return render_page(
        "notices.html",
        page_title="Manage Notices",
        notices=notices,
        search=search,
        category=category,
        status=status,
        categories=NOTICE_CATEGORIES,
    )


@app.route("/admin/notices/new", methods=["GET", "POST"])
@app.route("/admin/notices/<int:notice_id>/edit", methods=["GET", "POST"])
def notices_edit(notice_id: int | None = None):
    db = get_db()
    notice = notice_view(fetch_or_404("notices", notice_id)) if notice_id is not None else None

    if request.method == "GET":
        return render_page(
            "notice_form.html",
            page_title="Edit Notice" if notice else "Create Notice",
            notice=notice,
            categories=NOTICE_CATEGORIES,
        )

    form_url = request.path
    title = request.form.get("title", "").strip()
    content = request.form.get("content", "").strip()
    category = request.form.get("category", "General")

    if not title or not content:
        flash("Title and Content cannot be empty.", "danger")
        return redirect(form_url)
    if category not in NOTICE_CATEGORIES:
        flash("Invalid notice category.", "danger")
        return redirect(form_url)

    new_files, file_error = read_uploaded_files("attachments", ATTACHMENT_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(form_url)

    existing = notice["attachments"] if notice else []
    paths_to_remove = set(request.form.getlist("remove_attachment")) & {att["path"] for att in existing}

    try:
        if paths_to_remove:
            discard_files("notices", sorted(paths_to_remove), f"notice '{title}'")

        uploaded: list[dict[str, str]] = []
        failed: list[str] = []
        base_millis = resources.now_millis()
        for offset, (name, blob, mime) in enumerate(new_files):
            try:
                path, url = store_file(
                    "notices",
                    resources.timestamped_path(name, base_millis + offset),
                    blob,
                    mime,
                )
            except StorageError as exc:
                app.logger.warning("Attachment upload failed for %s: %s", name, exc.message)
                if exc.message == "Bucket not found":
                    raise
                failed.append(f"{name} ({exc.message})")
                continue
            uploaded.append({"url": url, "path": path, "name": name, "type": resources.attachment_kind(mime)})
        if failed:
            raise StorageError(f"Failed to upload files: {', '.join(failed)}", bucket="notices")

        remaining = [att for att in existing if att["path"] not in paths_to_remove]
        final_attachments = remaining + uploaded
        attachments_json = json.dumps(final_attachments) if final_attachments else None

        if notice:
            db.execute(
                "UPDATE notices SET title = ?, category = ?, content = ?, attachments = ? WHERE id = ?",
                (title, category, content, attachments_json, notice["id"]),
            )
        else:
            db.execute(
                """
                INSERT INTO notices (title, category, content, status, author, attachments)
                VALUES (?, ?, ?, 'draft', 'Admin', ?)
                """,
                (title, category, content, attachments_json),
            )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Error saving notice: %s", exc.message)
        flash(f"Failed to save notice: {storage_error_message(exc)}", "danger")
        return redirect(form_url)

    db.commit()
    flash("Notice saved." if notice else "Notice created as draft.", "success")
    return redirect(url_for("manage_notices"))


@app.route("/admin/notices/<int:notice_id>/status", methods=["POST"])
def notices_toggle_status(notice_id: int):
    db = get_db()
    notice = fetch_or_404("notices", notice_id)
    new_status = "draft" if notice["status"] == "published" else "published"
    db.execute("UPDATE notices SET status = ? WHERE id = ?", (new_status, notice_id))
    db.commit()
    flash(f"Notice marked as {new_status}.", "info")
    return redirect(url_for("manage_notices"))


@app.route("/admin/notices/<int:notice_id>/delete", methods=["GET", "POST"])
def notices_delete(notice_id: int):
    notice = notice_view(fetch_or_404("notices", notice_id))
    if request.method == "GET":
        return render_confirm(
            "Confirm Deletion",
            f'Delete "{notice["title"]}"? This cannot be undone.',
            url_for("manage_notices"),
        )

    db = get_db()
    discard_files("notices", [att["path"] for att in notice["attachments"]], f"notice '{notice['title']}'")
    db.execute("DELETE FROM notices WHERE id = ?", (notice_id,))
    db.commit()
    app.logger.info("Deleted notice %s", notice_id)
    flash("Notice deleted.", "info")
    return redirect(url_for("manage_notices"))


# --- Events, gallery and alumni ---


@app.route("/admin/events")
def manage_events():
    db = get_db()
    tab = request.args.get("tab", "events")
    events = db.execute("SELECT * FROM events ORDER BY date DESC").fetchall()
    gallery = db.execute("SELECT * FROM gallery_images ORDER BY created_at DESC, id DESC").fetchall()
    alumni = load_settings(resources.ALUMNI_SETTING_KEYS)
    return render_page(
        "events.html",
        page_title="Manage Events",
        tab=tab,
        events=events,
        gallery=gallery,
        alumni=alumni,
    )


@app.route("/admin/events/new", methods=["GET", "POST"])
@app.route("/admin/events/<int:event_id>/edit", methods=["GET", "POST"])
def events_edit(event_id: int | None = None):
    db = get_db()
    event = fetch_or_404("events", event_id) if event_id is not None else None

    if request.method == "GET":
        return render_page(
            "event_form.html",
            page_title="Edit Event" if event else "Create Event",
            event=event,
        )

    form_url = request.path
    title = request.form.get("title", "").strip()
    date = request.form.get("date", "").strip()
    description = request.form.get("description", "").strip()

    file_name, file_blob, file_mime, file_error = read_uploaded_file("image", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(form_url)

    if not title or not date or not description:
        flash("Title, Date, and Description are required.", "danger")
        return redirect(form_url)
    if not event and not file_blob:
        flash("An image is required for a new event.", "danger")
        return redirect(form_url)

    image_url = event["image_url"] if event else None
    file_path = event["file_path"] if event else None
    try:
        if file_blob:
            if file_path:
                discard_files("events", [file_path], f"event '{title}'")
            file_path, image_url = store_file("events", resources.event_image_path(file_name), file_blob, file_mime)

        if event:
            db.execute(
                """
                UPDATE events SET title = ?, date = ?, description = ?, image_url = ?, file_path = ?
                WHERE id = ?
                """,
                (title, date, description, image_url, file_path, event["id"]),
            )
        else:
            db.execute(
                """
                INSERT INTO events (title, date, description, image_url, file_path, status)
                VALUES (?, ?, ?, ?, ?, 'draft')
                """,
                (title, date, description, image_url, file_path),
            )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Error saving event: %s", exc.message)
        flash(f"Failed to save event: {storage_error_message(exc)}", "danger")
        return redirect(form_url)

    db.commit()
    flash("Event saved.", "success")
    return redirect(url_for("manage_events"))


@app.route("/admin/events/<int:event_id>/status", methods=["POST"])
def events_toggle_status(event_id: int):
    db = get_db()
    event = fetch_or_404("events", event_id)
    new_status = "draft" if event["status"] == "published" else "published"
    db.execute("UPDATE events SET status = ? WHERE id = ?", (new_status, event_id))
    db.commit()
    flash(f"Event marked as {new_status}.", "info")
    return redirect(url_for("manage_events"))


@app.route("/admin/events/<int:event_id>/delete", methods=["GET", "POST"])
def events_delete(event_id: int):
    event = fetch_or_404("events", event_id)
    if request.method == "GET":
        return render_confirm(
            "Confirm Event Deletion",
            f'Are you sure you want to delete the event "{event["title"]}"? This action cannot be undone.',
            url_for("manage_events"),
        )

    db = get_db()
    discard_files("events", [event["file_path"]], f"event '{event['title']}'")
    db.execute("DELETE FROM events WHERE id = ?", (event_id,))
    db.commit()
    flash("Event deleted.", "info")
    return redirect(url_for("manage_events"))


@app.route("/admin/events/gallery/new", methods=["GET", "POST"])
def events_gallery_upload():
    if request.method == "GET":
        return render_page("gallery_form.html", page_title="Upload Gallery Images", image=None)

    db = get_db()
    group_title = request.form.get("group_title", "").strip()
    subtitles = request.form.getlist("subtitle")
    files, file_error = read_uploaded_files("images", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(url_for("events_gallery_upload"))
    if not files:
        flash("Please select at least one image to upload.", "danger")
        return redirect(url_for("events_gallery_upload"))
    if not group_title:
        flash("A Group Title is required.", "danger")
        return redirect(url_for("events_gallery_upload"))

    batch_id = str(uuid.uuid4())
    base_millis = resources.now_millis()
    try:
        for offset, (name, blob, mime) in enumerate(files):
            subtitle = subtitles[offset].strip() if offset < len(subtitles) else ""
            try:
                path, url = store_file(
                    "site_assets",
                    resources.gallery_image_path(name, base_millis + offset),
                    blob,
                    mime,
                )
            except StorageError as exc:
                raise StorageError(f"Failed to upload {name}: {exc.message}", bucket=exc.bucket) from exc
            db.execute(
                """
                INSERT INTO gallery_images (image_url, file_path, title, subtitle, batch_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                (url, path, group_title, subtitle, batch_id),
            )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Gallery upload failed: %s", exc.message)
        flash(f"Save failed: {storage_error_message(exc)}", "danger")
        return redirect(url_for("events_gallery_upload"))

    db.commit()
    flash(f"Uploaded {len(files)} gallery image(s).", "success")
    return redirect(url_for("manage_events", tab="gallery"))


@app.route("/admin/events/gallery/<int:image_id>/edit", methods=["GET", "POST"])
def events_gallery_edit(image_id: int):
    image = fetch_or_404("gallery_images", image_id)
    if request.method == "GET":
        return render_page("gallery_form.html", page_title="Edit Gallery Image", image=image)

    db = get_db()
    form_url = request.path
    title = request.form.get("title", "").strip()
    subtitle = request.form.get("subtitle", "").strip()
    file_name, file_blob, file_mime, file_error = read_uploaded_file("image", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(form_url)
    if not title:
        flash("Title is required.", "danger")
        return redirect(form_url)

    image_url = image["image_url"]
    file_path = image["file_path"]
    try:
        if file_blob:
            discard_files("site_assets", [file_path], f"gallery image {image_id}")
            file_path, image_url = store_file(
                "site_assets", resources.gallery_image_path(file_name), file_blob, file_mime
            )
        db.execute(
            "UPDATE gallery_images SET image_url = ?, file_path = ?, title = ?, subtitle = ? WHERE id = ?",
            (image_url, file_path, title, subtitle, image_id),
        )
    except StorageError as exc:
        db.rollback()
        flash(f"Save failed: {storage_error_message(exc)}", "danger")
        return redirect(form_url)

    db.commit()
    flash("Gallery image updated.", "success")
    return redirect(url_for("manage_events", tab="gallery"))


@app.route("/admin/events/gallery/<int:image_id>/delete", methods=["GET", "POST"])
def events_gallery_delete(image_id: int):
    image = fetch_or_404("gallery_images", image_id)
    if request.method == "GET":
        return render_confirm(
            "Confirm Image Deletion",
            f'Delete the gallery image "{image["title"] or image["file_path"]}"? This cannot be undone.',
            url_for("manage_events", tab="gallery"),
        )

    db = get_db()
    try:
        storage.remove(db, "site_assets", [image["file_path"]])
    except StorageError as exc:
        db.rollback()
        flash(f"Delete failed: {storage_error_message(exc)}", "danger")
        return redirect(url_for("manage_events", tab="gallery"))
    db.execute("DELETE FROM gallery_images WHERE id = ?", (image_id,))
    db.commit()
    flash("Gallery image deleted.", "info")
    return redirect(url_for("manage_events", tab="gallery"))


@app.route("/admin/events/alumni", methods=["POST"])
def events_alumni_save():
    db = get_db()
    current = load_settings(resources.ALUMNI_SETTING_KEYS)
    file_name, file_blob, file_mime, file_error = read_uploaded_file("display_image", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(url_for("manage_events", tab="alumni"))

    image_url = current["alumni_display_image"] or None
    try:
        if file_blob:
            previous_path = storage.path_from_public_url("site_assets", image_url)
            path, image_url = store_file(
                "site_assets", resources.alumni_image_path(file_name), file_blob, file_mime, upsert=True
            )
            if previous_path and previous_path != path:
                discard_files("site_assets", [previous_path], "the alumni display image")
        upsert_settings(
            db,
            {
                "alumni_display_image": image_url,
                "alumni_facebook_url": request.form.get("alumni_facebook_url", "").strip(),
                "alumni_whatsapp_url": request.form.get("alumni_whatsapp_url", "").strip(),
                "alumni_discord_url": request.form.get("alumni_discord_url", "").strip(),
            },
        )
    except StorageError as exc:
        db.rollback()
        flash(f"Save failed: {storage_error_message(exc)}", "danger")
        return redirect(url_for("manage_events", tab="alumni"))

    db.commit()
    flash("Alumni settings saved successfully!", "success")
    return redirect(url_for("manage_events", tab="alumni"))


# --- Faculty ---


@app.route("/admin/faculty")
def manage_faculty():
    members = get_db().execute("SELECT * FROM faculty ORDER BY name ASC").fetchall()
    return render_page(
        "faculty.html",
        page_title="Manage Teachers",
        categories=resources.categorize_faculty(members),
    )


@app.route("/admin/faculty/new", methods=["GET", "POST"])
@app.route("/admin/faculty/<int:member_id>/edit", methods=["GET", "POST"])
def faculty_edit(member_id: int | None = None):
    db = get_db()
    member = fetch_or_404("faculty", member_id) if member_id is not None else None

    if request.method == "GET":
        return render_page(
            "faculty_form.html",
            page_title="Edit Member" if member else "Add Member",
            member=member,
            default_title=request.args.get("title", "Instructor"),
            titles=FACULTY_TITLES,
        )

    form_url = request.full_path if not member else request.path
    fields = {
        key: request.form.get(key, "").strip()
        for key in ("name", "title", "qualification", "specialization", "email", "mobile_number")
    }
    file_name, file_blob, file_mime, file_error = read_uploaded_file("image", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(form_url)
    if not fields["name"]:
        flash("Name is required.", "danger")
        return redirect(form_url)
    if not fields["title"]:
        flash("Title is required.", "danger")
        return redirect(form_url)
    if not member and not file_blob:
        flash("An image is required for a new member.", "danger")
        return redirect(form_url)

    image_url = member["image_url"] if member else None
    file_path = member["file_path"] if member else None
    try:
        if file_blob:
            if file_path:
                discard_files("faculty", [file_path], f"faculty member '{fields['name']}'")
            file_path, image_url = store_file("faculty", resources.timestamped_path(file_name), file_blob, file_mime)

        values = (
            fields["name"],
            fields["title"],
            fields["qualification"],
            fields["specialization"],
            fields["email"],
            fields["mobile_number"],
            image_url,
            file_path,
        )
        if member:
            db.execute(
                """
                UPDATE faculty
                SET name = ?, title = ?, qualification = ?, specialization = ?, email = ?,
                    mobile_number = ?, image_url = ?, file_path = ?
                WHERE id = ?
                """,
                values + (member["id"],),
            )
        else:
            db.execute(
                """
                INSERT INTO faculty (name, title, qualification, specialization, email, mobile_number, image_url, file_path)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Save error: %s", exc.message)
        flash(f"Save failed: {storage_error_message(exc)}", "danger")
        return redirect(form_url)

    db.commit()
    flash(f"Saved {fields['name']}.", "success")
    return redirect(url_for("manage_faculty"))


@app.route("/admin/faculty/<int:member_id>/delete", methods=["GET", "POST"])
def faculty_delete(member_id: int):
    member = fetch_or_404("faculty", member_id)
    if request.method == "GET":
        return render_confirm(
            "Confirm Deletion",
            f'Are you sure you want to delete "{member["name"]}"? This action cannot be undone.',
            url_for("manage_faculty"),
        )

    db = get_db()
    discard_files("faculty", [member["file_path"]], f"faculty member '{member['name']}'")
    db.execute("DELETE FROM faculty WHERE id = ?", (member_id,))
    db.commit()
    flash(f"Deleted {member['name']}.", "info")
    return redirect(url_for("manage_faculty"))


# --- Academic ---


@app.route("/admin/academic")
def manage_academic():
    db = get_db()
    tab = request.args.get("tab", "syllabus")
    if tab not in ACADEMIC_TABS:
        abort(404)

    context: dict[str, Any] = {}
    if tab == "syllabus":
        rows = db.execute("SELECT * FROM syllabus").fetchall()
        context["syllabus"] = {row["semester"]: row for row in rows}
    elif tab == "routines":
        rows = db.execute("SELECT * FROM class_routines").fetchall()
        context["routines"] = {(row["semester"], row["shift"], row["student_group"]): row for row in rows}
    elif tab in CONTENT_BLOCKS:
        row = db.execute("SELECT content FROM site_content WHERE key = ?", (tab,)).fetchone()
        context["content"] = row["content"] if row else ""
        context["content_title"] = CONTENT_BLOCKS[tab]
    elif tab == "students":
        search = request.args.get("q", "").strip()
        semester = request.args.get("semester", "all")
        shift = request.args.get("shift", "all")
        rows = db.execute("SELECT * FROM students ORDER BY roll").fetchall()
        context.update(
            students=resources.filter_students(rows, search, semester, shift),
            search=search,
            semester_filter=semester,
            shift_filter=shift,
        )
    elif tab == "programs":
        context["programs"] = db.execute(
            "SELECT * FROM academic_programs ORDER BY created_at ASC, id ASC"
        ).fetchall()

    return render_page(
        "academic.html",
        page_title="Manage Academic",
        tab=tab,
        tabs=ACADEMIC_TABS,
        shifts=SHIFTS,
        groups=STUDENT_GROUPS,
        **context,
    )


@app.route("/admin/academic/syllabus", methods=["POST"])
def academic_syllabus_upload():
    db = get_db()
    semester = request.form.get("semester", "")
    kind = request.form.get("kind", "")
    back = url_for("manage_academic", tab="syllabus")
    if semester not in SEMESTERS or kind not in {"image", "pdf"}:
        flash("Choose a semester and an upload type.", "danger")
        return redirect(back)

    allowed = IMAGE_EXTENSIONS if kind == "image" else PDF_EXTENSIONS
    file_name, file_blob, file_mime, file_error = read_uploaded_file("file", allowed)
    if file_error or not file_blob:
        flash(file_error or "Select a file to upload.", "danger")
        return redirect(back)

    previous = db.execute(f"SELECT {kind}_path AS path FROM syllabus WHERE semester = ?", (semester,)).fetchone()
    path = resources.syllabus_path(semester, kind, file_name)
    try:
        path, url = store_file("syllabus", path, file_blob, file_mime, upsert=True)
        if previous and previous["path"] and previous["path"] != path:
            discard_files("syllabus", [previous["path"]], f"{semester} syllabus")
        db.execute(
            f"""
            INSERT INTO syllabus (semester, {kind}_url, {kind}_path) VALUES (?, ?, ?)
            ON CONFLICT(semester) DO UPDATE SET {kind}_url = excluded.{kind}_url, {kind}_path = excluded.{kind}_path
            """,
            (semester, url, path),
        )
    except StorageError as exc:
        db.rollback()
        flash(f"Upload failed: {storage_error_message(exc)}", "danger")
        return redirect(back)

    db.commit()
    flash(f"{semester} syllabus {kind} updated.", "success")
    return redirect(back)


@app.route("/admin/academic/routines", methods=["POST"])
def academic_routine_upload():
    db = get_db()
    semester = request.form.get("semester", "")
    shift = request.form.get("shift", "")
    group = request.form.get("group", "")
    back = url_for("manage_academic", tab="routines")
    if semester not in SEMESTERS or shift not in SHIFTS or group not in STUDENT_GROUPS:
        flash("Invalid semester, shift, or group.", "danger")
        return redirect(back)

    file_name, file_blob, file_mime, file_error = read_uploaded_file("file", IMAGE_EXTENSIONS)
    if file_error or not file_blob:
        flash(file_error or "Select an image to upload.", "danger")
        return redirect(back)

    previous = db.execute(
        "SELECT file_path FROM class_routines WHERE semester = ? AND shift = ? AND student_group = ?",
        (semester, shift, group),
    ).fetchone()
    path = resources.routine_path(semester, shift, group, file_name)
    try:
        path, url = store_file("routines", path, file_blob, file_mime, upsert=True)
        if previous and previous["file_path"] != path:
            discard_files("routines", [previous["file_path"]], f"{semester} {shift} group {group} routine")
        db.execute(
            """
            INSERT INTO class_routines (semester, shift, student_group, image_url, file_path)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(semester, shift, student_group)
            DO UPDATE SET image_url = excluded.image_url, file_path = excluded.file_path
            """,
            (semester, shift, group, url, path),
        )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Failed to upload routine: %s", exc.message)
        flash(f"Upload failed: {storage_error_message(exc)}", "danger")
        return redirect(back)

    db.commit()
    flash(f"Routine for {semester}, {shift} Shift, Group {group} updated.", "success")
    return redirect(back)


@app.route("/admin/academic/routines/<int:routine_id>/delete", methods=["GET", "POST"])
def academic_routine_delete(routine_id: int):
    routine = fetch_or_404("class_routines", routine_id)
    back = url_for("manage_academic", tab="routines")
    label = f"{routine['semester']}, {routine['shift']} Shift, Group {routine['student_group']}"
    if request.method == "GET":
        return render_confirm("Delete Routine", f"Delete the routine for {label}?", back)

    db = get_db()
    try:
        storage.remove(db, "routines", [routine["file_path"]])
    except StorageError as exc:
        db.rollback()
        app.logger.error("Failed to delete routine: %s", exc.message)
        flash(f"Deletion failed: {storage_error_message(exc)}", "danger")
        return redirect(back)

    cursor = db.execute("DELETE FROM class_routines WHERE id = ?", (routine_id,))
    if not cursor.rowcount:
        db.rollback()
        flash("The delete completed without errors, but the routine was not removed.", "danger")
        return redirect(back)
    db.commit()
    flash(f"Routine for {label} deleted.", "info")
    return redirect(back)


@app.route("/admin/academic/content/<key>", methods=["POST"])
def academic_content_save(key: str):
    if key not in CONTENT_BLOCKS:
        abort(404)
    db = get_db()
    content = request.form.get("content", "")
    db.execute(
        """
        INSERT INTO site_content (key, content, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET content = excluded.content, updated_at = excluded.updated_at
        """,
        (key, content, now_stamp()),
    )
    db.commit()
    flash(f"{CONTENT_BLOCKS[key]} saved.", "success")
    return redirect(url_for("manage_academic", tab=key))


@app.route("/admin/academic/students/new", methods=["GET", "POST"])
@app.route("/admin/academic/students/<int:student_id>/edit", methods=["GET", "POST"])
def academic_student_edit(student_id: int | None = None):
    db = get_db()
    student = fetch_or_404("students", student_id) if student_id is not None else None

    if request.method == "GET":
        return render_page(
            "student_form.html",
            page_title="Edit Student" if student else "Add Student",
            student=student,
            shifts=SHIFTS,
            genders=GENDERS,
        )

    form_url = request.path
    name = request.form.get("name", "").strip()
    roll = request.form.get("roll", "").strip()
    semester = request.form.get("semester", SEMESTERS[0])
    shift = request.form.get("shift", SHIFTS[0])
    gender = request.form.get("gender", GENDERS[0])

    if not name or not roll:
        flash("Name and Roll are required.", "danger")
        return redirect(form_url)
    if semester not in SEMESTERS or shift not in SHIFTS or gender not in GENDERS:
        flash("Invalid semester, shift, or gender.", "danger")
        return redirect(form_url)

    file_name, file_blob, file_mime, file_error = read_uploaded_file("image", IMAGE_EXTENSIONS)
    if file_error:
        flash(file_error, "danger")
        return redirect(form_url)

    existing = db.execute("SELECT id FROM students WHERE roll = ?", (roll,)).fetchone()
    if existing and (not student or existing["id"] != student["id"]):
        flash(f'Roll number "{roll}" is already assigned to another student.', "danger")
        return redirect(form_url)

    image_url = student["image_url"] if student else None
    file_path = student["file_path"] if student else None
    try:
        if file_blob:
            if file_path:
                discard_files("students", [file_path], f"student '{name}'")
            file_path, image_url = store_file("students", resources.timestamped_path(file_name), file_blob, file_mime)
        elif not student and not image_url:
            image_url = resources.default_avatar(gender)
            file_path = None

        if student:
            db.execute(
                """
                UPDATE students
                SET name = ?, roll = ?, semester = ?, shift = ?, gender = ?, image_url = ?, file_path = ?
                WHERE id = ?
                """,
                (name, roll, semester, shift, gender, image_url, file_path, student["id"]),
            )
        else:
            db.execute(
                """
                INSERT INTO students (name, roll, semester, shift, gender, image_url, file_path)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (name, roll, semester, shift, gender, image_url, file_path),
            )
    except StorageError as exc:
        db.rollback()
        flash(storage_error_message(exc), "danger")
        return redirect(form_url)
    except sqlite3.IntegrityError as exc:
        db.rollback()
        app.logger.warning("Student save rejected by constraint: %s", exc)
        flash(f'Roll number "{roll}" is already assigned to another student.', "danger")
        return redirect(form_url)

    db.commit()
    flash(f"Saved {name}.", "success")
    return redirect(url_for("manage_academic", tab="students"))


@app.route("/admin/academic/students/<int:student_id>/delete", methods=["GET", "POST"])
def academic_student_delete(student_id: int):
    student = fetch_or_404("students", student_id)
    back = url_for("manage_academic", tab="students")
    if request.method == "GET":
        return render_confirm(
            "Confirm Student Deletion",
            f'Are you sure you want to delete the student "{student["name"]}" (Roll: {student["roll"]})? '
            "This action cannot be undone.",
            back,
        )

    db = get_db()
    discard_files("students", [student["file_path"]], f"student '{student['name']}'")
    db.execute("DELETE FROM students WHERE id = ?", (student_id,))
    db.commit()
    flash(f"Deleted {student['name']}.", "info")
    return redirect(back)


@app.route("/admin/academic/programs/new", methods=["GET", "POST"])
@app.route("/admin/academic/programs/<int:program_id>/edit", methods=["GET", "POST"])
def academic_program_edit(program_id: int | None = None):
    db = get_db()
    program = fetch_or_404("academic_programs", program_id) if program_id is not None else None

    if request.method == "GET":
        return render_page(
            "program_form.html",
            page_title="Edit Program" if program else "Add Program",
            program=program,
            icons=ICONS,
        )

    title = request.form.get("title", "").strip()
    description = request.form.get("description", "").strip()
    icon = request.form.get("icon", "").strip()
    if not title or not description or not icon:
        flash("All fields are required.", "danger")
        return redirect(request.path)
    if icon not in ICONS:
        flash(f"Unknown icon: {icon}", "danger")
        return redirect(request.path)

    if program:
        db.execute(
            "UPDATE academic_programs SET title = ?, description = ?, icon = ? WHERE id = ?",
            (title, description, icon, program["id"]),
        )
    else:
        db.execute(
            "INSERT INTO academic_programs (title, description, icon) VALUES (?, ?, ?)",
            (title, description, icon),
        )
    db.commit()
    flash(f"Program '{title}' saved.", "success")
    return redirect(url_for("manage_academic", tab="programs"))


@app.route("/admin/academic/programs/<int:program_id>/delete", methods=["GET", "POST"])
def academic_program_delete(program_id: int):
    program = fetch_or_404("academic_programs", program_id)
    back = url_for("manage_academic", tab="programs")
    if request.method == "GET":
        return render_confirm(
            "Confirm Program Deletion",
            f'Are you sure you want to delete the program "{program["title"]}"? This cannot be undone.',
            back,
        )

    db = get_db()
    app.logger.info("Deleting program %r (id %s)", program["title"], program_id)
    cursor = db.execute("DELETE FROM academic_programs WHERE id = ?", (program_id,))
    if not cursor.rowcount:
        db.rollback()
        app.logger.warning("Program %s was not removed", program_id)
        flash("The delete operation completed without errors, but no rows were removed.", "danger")
        return redirect(back)
    db.commit()
    flash(f"Deleted program '{program['title']}'.", "info")
    return redirect(back)


# --- Academic resources ---


def _resource_groups() -> tuple[dict[str, list[resources.NoteGroup]], dict[str, list[resources.PastPaper]]]:
    rows = get_db().execute(
        "SELECT id, semester, resource_type, image_url, file_path FROM academic_resources ORDER BY id"
    ).fetchall()
    return resources.group_academic_resources(rows)


@app.route("/admin/resources")
def manage_resources():
    tab = request.args.get("tab", "note")
    if tab not in {"note", "past_paper"}:
        abort(404)
    notes, papers = _resource_groups()
    return render_page(
        "resources.html",
        page_title="Academic Resources",
        tab=tab,
        notes=notes,
        papers=papers,
        note_semesters=NOTE_SEMESTERS,
    )


@app.route("/admin/resources/notes", methods=["POST"])
def resources_note_upload():
    db = get_db()
    back = url_for("manage_resources", tab="note")
    semester = request.form.get("semester", "")
    title = request.form.get("title", "").strip()
    if semester not in NOTE_SEMESTERS:
        flash("Invalid semester.", "danger")
        return redirect(back)
    if not title:
        flash("Title is required.", "danger")
        return redirect(back)

    images, image_error = read_uploaded_files("images", IMAGE_EXTENSIONS)
    pdf_name, pdf_blob, pdf_mime, pdf_error = read_uploaded_file("pdf_file", PDF_EXTENSIONS)
    if image_error or pdf_error:
        flash(image_error or pdf_error, "danger")
        return redirect(back)
    if not images and not pdf_blob:
        flash("You must upload at least one image or a PDF.", "danger")
        return redirect(back)

    group_id = str(resources.now_millis())
    files = list(images)
    if pdf_blob:
        files.append((pdf_name, pdf_blob, pdf_mime))

    try:
        for name, blob, mime in files:
            path, url = store_file(
                "academic_resources",
                resources.note_file_path(semester, title, group_id, name),
                blob,
                mime,
            )
            db.execute(
                """
                INSERT INTO academic_resources (semester, resource_type, image_url, file_path)
                VALUES (?, 'note', ?, ?)
                """,
                (semester, url, path),
            )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Save failed for note group %r: %s", title, exc.message)
        flash(f"Upload failed: {storage_error_message(exc)}", "danger")
        return redirect(back)

    db.commit()
    flash(f"Note '{title}' uploaded with {len(files)} file(s).", "success")
    return redirect(back)


@app.route("/admin/resources/notes/<int:semester_index>/<group_id>/delete", methods=["GET", "POST"])
def resources_note_delete(semester_index: int, group_id: str):
    if not 0 <= semester_index < len(SEMESTERS):
        abort(404)
    semester = SEMESTERS[semester_index]
    notes, _papers = _resource_groups()
    group = next((item for item in notes.get(semester, []) if item.group_id == group_id), None)
    if group is None:
        abort(404)

    back = url_for("manage_resources", tab="note")
    if request.method == "GET":
        return render_confirm(
            "Confirm Note Group Deletion",
            f'Are you sure you want to delete "{group.title}" and all its files? This cannot be undone.',
            back,
        )

    db = get_db()
    app.logger.info("Deleting note group %r (id %s)", group.title, group.group_id)
    files = group.files
    discard_files("academic_resources", [item.file_path for item in files], f"note group '{group.title}'")

    ids = [item.id for item in files]
    placeholders = ", ".join("?" for _ in ids)
    cursor = db.execute(f"DELETE FROM academic_resources WHERE id IN ({placeholders})", ids)
    if not cursor.rowcount:
        db.rollback()
        app.logger.warning("Note group %s delete removed no rows", group.group_id)
        flash("The delete operation completed without errors, but no rows were removed.", "danger")
        return redirect(back)

    db.commit()
    app.logger.info("Deleted note group %r", group.title)
    flash(f"Deleted '{group.title}'.", "info")
    return redirect(back)


@app.route("/admin/resources/papers", methods=["POST"])
def resources_paper_upload():
    db = get_db()
    back = url_for("manage_resources", tab="past_paper")
    semester = request.form.get("semester", "")
    title = request.form.get("title", "").strip()
    if semester not in SEMESTERS:
        flash("Invalid semester.", "danger")
        return redirect(back)
    if not title:
        flash("Title is required.", "danger")
        return redirect(back)

    _name, blob, mime, file_error = read_uploaded_file("pdf_file", PDF_EXTENSIONS)
    if file_error or not blob:
        flash(file_error or "A PDF file is required.", "danger")
        return redirect(back)

    try:
        path, url = store_file("academic_resources", resources.past_paper_path(semester, title), blob, mime)
        db.execute(
            """
            INSERT INTO academic_resources (semester, resource_type, image_url, file_path)
            VALUES (?, 'past_paper', ?, ?)
            """,
            (semester, url, path),
        )
    except StorageError as exc:
        db.rollback()
        app.logger.error("Save failed for past paper %r: %s", title, exc.message)
        flash(f"Upload failed: {storage_error_message(exc)}", "danger")
        return redirect(back)

    db.commit()
    flash(f"Past paper '{title}' uploaded.", "success")
    return redirect(back)


@app.route("/admin/resources/papers/<int:resource_id>/delete", methods=["GET", "POST"])
def resources_paper_delete(resource_id: int):
    row = fetch_or_404("academic_resources", resource_id)
    if row["resource_type"] != "past_paper":
        abort(404)
    title = resources.title_from_path(row["file_path"])
    back = url_for("manage_resources", tab="past_paper")
    if request.method == "GET":
        return render_confirm(
            "Confirm Past Paper Deletion",
            f'Are you sure you want to delete "{title}"? This cannot be undone.',
            back,
        )

    db = get_db()
    app.logger.info("Deleting past paper %r (id %s)", title, resource_id)
    discard_files("academic_resources", [row["file_path"]], f"past paper '{title}'")
    db.execute("DELETE FROM academic_resources WHERE id = ?", (resource_id,))
    db.commit()
    flash(f"Deleted '{title}'.", "info")
    return redirect(back)


# --- Results ---


@app.route("/admin/results")
def manage_results():
    db = get_db()
    tab = request.args.get("tab", "final")
    if tab not in {"final", "other"}:
        abort(404)

    context: dict[str, Any] = {}
    if tab == "final":
        context["sessions"] = db.execute(
            "SELECT * FROM final_result_sessions ORDER BY session_name DESC"
        ).fetchall()
    else:
        search = request.args.get("q", "").strip()
        exam_name = request.args.get("exam_name", "all")
        semester = request.args.get("semester", "all")
        rows = []
        for row in db.execute("SELECT * FROM other_results ORDER BY id DESC").fetchall():
            result = dict(row)
            result["subjects"] = resources.load_json_list(row["subjects"])
            rows.append(result)
        context.update(
            results=resources.filter_other_results(rows, search, exam_name, semester),
            search=search,
            exam_filter=exam_name,
            semester_filter=semester,
            exam_names=EXAM_NAMES,
        )

    return render_page("results.html", page_title="Manage Results", tab=tab, **context)


@app.route("/admin/results/sessions", methods=["POST"])
def results_session_add():
    db = get_db()
    back = url_for("manage_results", tab="final")
    session_name = request.form.get("session_name", "").strip()
    if not session_name or not resources.is_valid_session_name(session_name):
        flash("Invalid format. Please use YYYY-YYYY (e.g., 2023-2024).", "danger")
        return redirect(back)

    existing = db.execute(
        "SELECT 1 FROM final_result_sessions WHERE session_name = ?",
        (session_name,),
    ).fetchone()
    if existing:
        flash(f"Session '{session_name}' already exists.", "danger")
        return redirect(back)

    db.execute("INSERT INTO final_result_sessions (session_name) VALUES (?)", (session_name,))
    db.commit()
    flash(f"Session '{session_name}' added.", "success")
    return redirect(back)


@app.route("/admin/results/sessions/<int:session_id>/pdf", methods=["GET", "POST"])
def results_session_pdf(session_id: int):
    db = get_db()
    result_session = fetch_or_404("final_result_sessions", session_id)

    if request.method == "GET":
        if not result_session["pdf_path"]:
            abort(404)
        stored = storage.download(db, "results", result_session["pdf_path"])
        if not stored:
            abort(404)
        return send_blob_download(
            result_session["file_name"] or f"{result_session['session_name']}.pdf",
            stored.content,
            "application/pdf",
        )

    back = url_for("manage_results", tab="final")
    file_name, file_blob, _mime, file_error = read_uploaded_file("pdf_file", PDF_EXTENSIONS)
    if file_error or not file_blob:
        flash(file_error or "Choose a PDF to upload.", "danger")
        return redirect(back)

    try:
        resources.validate_result_pdf(file_blob)
        path, _url = store_file(
            "results",
            resources.final_result_path(result_session["session_name"]),
            file_blob,
            "application/pdf",
            upsert=True,
        )
        db.execute(
            "UPDATE final_result_sessions SET pdf_path = ?, file_name = ?, updated_at = ? WHERE id = ?",
            (path, file_name, now_stamp(), session_id),
        )
    except ValidationError as exc:
        app.logger.info("Rejected result PDF for %s: %s", result_session["session_name"], exc)
        flash(str(exc), "danger")
        return redirect(back)
    except StorageError as exc:
        db.rollback()
        app.logger.error("File processing error: %s", exc.message)
        flash(storage_error_message(exc), "danger")
        return redirect(back)

    db.commit()
    flash(f"Upload Complete! Results for {result_session['session_name']} updated.", "success")
    return redirect(back)


@app.route("/admin/results/sessions/<int:session_id>/pdf/delete", methods=["GET", "POST"])
def results_session_pdf_delete(session_id: int):
    result_session = fetch_or_404("final_result_sessions", session_id)
    back = url_for("manage_results", tab="final")
    if not result_session["pdf_path"]:
        flash("This session has no PDF.", "info")
        return redirect(back)
    if request.method == "GET":
        return render_confirm(
            "Delete Results PDF",
            f"Are you sure you want to delete the PDF for the {result_session['session_name']} session?",
            back,
        )

    db = get_db()
    discard_files("results", [result_session["pdf_path"]], f"session {result_session['session_name']}")
    db.execute(
        "UPDATE final_result_sessions SET pdf_path = NULL, file_name = NULL, updated_at = ? WHERE id = ?",
        (now_stamp(), session_id),
    )
    db.commit()
    flash("Results PDF deleted.", "info")
    return redirect(back)


@app.route("/admin/results/sessions/<int:session_id>/delete", methods=["GET", "POST"])
def results_session_delete(session_id: int):
    result_session = fetch_or_404("final_result_sessions", session_id)
    back = url_for("manage_results", tab="final")
    if request.method == "GET":
        return render_confirm(
            "Delete Session",
            f"Are you sure you want to permanently delete the '{result_session['session_name']}' session "
            "and its results PDF? This action cannot be undone.",
            back,
        )

    db = get_db()
    discard_files("results", [result_session["pdf_path"]], f"session {result_session['session_name']}")
    db.execute("DELETE FROM final_result_sessions WHERE id = ?", (session_id,))
    db.commit()
    flash(f"Session '{result_session['session_name']}' deleted.", "info")
    return redirect(back)


@app.route("/admin/results/other/new", methods=["GET", "POST"])
@app.route("/admin/results/other/<int:result_id>/edit", methods=["GET", "POST"])
def results_other_edit(result_id: int | None = None):
    db = get_db()
    result = None
    if result_id is not None:
        result = dict(fetch_or_404("other_results", result_id))
        result["subjects"] = resources.load_json_list(result["subjects"])

    if request.method == "GET":
        return render_page(
            "other_result_form.html",
            page_title="Edit Result" if result else "Add Result",
            result=result,
            exam_names=EXAM_NAMES,
            groups=STUDENT_GROUPS,
        )

    roll_number = request.form.get("roll_number", "").strip()
    student_name = request.form.get("student_name", "").strip()
    exam_name = request.form.get("exam_name", EXAM_NAMES[0])
    semester = request.form.get("semester", SEMESTERS[0])
    student_group = request.form.get("student_group", STUDENT_GROUPS[0])

    try:
        if not roll_number or not student_name:
            raise ValidationError("Roll Number and Student Name are required.")
        if exam_name not in EXAM_NAMES or semester not in SEMESTERS or student_group not in STUDENT_GROUPS:
            raise ValidationError("Invalid exam, semester, or group.")
        subjects = resources.parse_subjects(
            request.form.getlist("subject_name"),
            request.form.getlist("marks_obtained"),
            request.form.getlist("total_marks"),
        )
    except ValidationError as exc:
        flash(str(exc), "danger")
        return redirect(request.path)

    values = (roll_number, student_name, exam_name, semester, student_group, json.dumps(subjects))
    if result:
        db.execute(
            """
            UPDATE other_results
            SET roll_number = ?, student_name = ?, exam_name = ?, semester = ?, student_group = ?, subjects = ?
            WHERE id = ?
            """,
            values + (result["id"],),
        )
    else:
        db.execute(
            """
            INSERT INTO other_results (roll_number, student_name, exam_name, semester, student_group, subjects)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            values,
        )
    db.commit()
    flash(f"Result for {student_name} saved.", "success")
    return redirect(url_for("manage_results", tab="other"))


@app.route("/admin/results/other/<int:result_id>/delete", methods=["GET", "POST"])
def results_other_delete(result_id: int):
    result = fetch_or_404("other_results", result_id)
    back = url_for("manage_results", tab="other")
    if request.method == "GET":
        return render_confirm("Confirm Delete", f"Delete result for {result['student_name']}?", back)

    db = get_db()
    db.execute("DELETE FROM other_results WHERE id = ?", (result_id,))
    db.commit()
    flash(f"Deleted result for {result['student_name']}.", "info")
    return redirect(back)


# --- Site settings ---


@app.route("/admin/settings", methods=["GET", "POST"])
def site_settings():
    db = get_db()
    settings = load_settings(resources.SETTING_KEYS)

    if request.method == "POST":
        updated = {
            key: request.form.get(key, settings[key])
            for key in resources.SETTING_KEYS
            if key not in resources.JSON_SETTING_KEYS
        }
        staged = []
        for key in resources.IMAGE_SETTING_KEYS:
            _name, blob, mime, file_error = read_uploaded_file(f"{key}_file", IMAGE_EXTENSIONS)
            if file_error:
                flash(f"{resources.format_key_label(key)}: {file_error}", "danger")
                return redirect(url_for("site_settings"))
            if blob:
                staged.append((key, blob, mime))

        try:
            for key, blob, mime in staged:
                previous_path = storage.path_from_public_url("site_assets", settings[key])
                try:
                    path, updated[key] = store_file(
                        "site_assets", resources.setting_image_path(key), blob, mime, upsert=True
                    )
                except StorageError as exc:
                    raise StorageError(f"Image upload failed for {key}: {exc.message}", bucket=exc.bucket) from exc
                if previous_path and previous_path != path:
                    discard_files("site_assets", [previous_path], resources.format_key_label(key))
            updated["department_facilities"] = resources.dump_json_list(
                resources.load_json_list(settings["department_facilities"])
            )
            updated["department_achievements"] = resources.dump_json_list(
                resources.load_json_list(settings["department_achievements"])
            )
            upsert_settings(db, updated)
        except StorageError as exc:
            db.rollback()
            app.logger.error("Failed to save settings: %s", exc.message)
            flash(f"Failed to save settings: {storage_error_message(exc)}", "danger")
            return redirect(url_for("site_settings"))

        db.commit()
        flash("Settings saved successfully.", "success")
        return redirect(url_for("site_settings"))

    facilities = resources.load_json_list(settings["department_facilities"])
    enabled_keys = {item.get("key") for item in facilities if isinstance(item, dict)}
    return render_page(
        "settings.html",
        page_title="Site Settings",
        settings=settings,
        setting_keys=[key for key in resources.SETTING_KEYS if key not in resources.JSON_SETTING_KEYS],
        image_keys=resources.IMAGE_SETTING_KEYS,
        textarea_keys=resources.TEXTAREA_SETTING_KEYS,
        label=resources.format_key_label,
        facilities=facilities,
        enabled_keys=enabled_keys,
        predefined_facilities=resources.PREDEFINED_FACILITIES,
        achievements=resources.load_json_list(settings["department_achievements"]),
        icons=ICONS,
    )


@app.route("/admin/settings/facilities", methods=["POST"])
def settings_facilities():
    db = get_db()
    back = url_for("site_settings") + "#facilities"
    facilities = resources.load_json_list(load_settings(["department_facilities"])["department_facilities"])
    action = request.form.get("action", "")

    if action == "toggle":
        key = request.form.get("key", "")
        predefined = next((item for item in resources.PREDEFINED_FACILITIES if item["key"] == key), None)
        if predefined is None:
            abort(404)
        if any(isinstance(item, dict) and item.get("key") == key for item in facilities):
            facilities = [item for item in facilities if not (isinstance(item, dict) and item.get("key") == key)]
        else:
            facilities.append(dict(predefined))
    elif action == "add":
        title = request.form.get("title", "").strip()
        icon = request.form.get("icon", "").strip()
        description = request.form.get("description", "").strip()
        if not title or not icon:
            flash("Title and Icon are required for a custom facility.", "danger")
            return redirect(back)
        facilities.append({"icon": icon, "title": title, "description": description})
    elif action == "remove":
        title = request.form.get("title", "")
        facilities = [item for item in facilities if not (isinstance(item, dict) and item.get("title") == title)]
    else:
        abort(400)

    upsert_settings(db, {"department_facilities": resources.dump_json_list(facilities)})
    db.commit()
    flash("Facilities updated.", "success")
    return redirect(back)


@app.route("/admin/settings/achievements", methods=["POST"])
def settings_achievements():
    db = get_db()
    back = url_for("site_settings") + "#achievements"
    achievements = resources.load_json_list(load_settings(["department_achievements"])["department_achievements"])
    action = request.form.get("action", "add")

    if action == "add":
        title = request.form.get("title", "").strip()
        description = request.form.get("description", "").strip()
        details = request.form.get("details", "").strip()
        if not title or not description:
            flash("Title and Description are required.", "danger")
            return redirect(back)
        achievements.append(
            {"icon": resources.ACHIEVEMENT_ICON, "title": title, "description": description, "details": details}
        )
    elif action == "remove":
        try:
            index = int(request.form.get("index", ""))
        except ValueError:
            abort(400)
        if not 0 <= index < len(achievements):
            abort(404)
        achievements.pop(index)
    else:
        abort(400)

    upsert_settings(db, {"department_achievements": resources.dump_json_list(achievements)})
    db.commit()
    flash("Achievements updated.", "success")
    return redirect(back)


@app.errorhandler(404)
def not_found(_error):
    return render_page("error.html", code=404, message="The page you requested was not found."), 404


@app.errorhandler(413)
def too_large(_error):
    return render_page(
        "error.html",
        code=413,
        message=f"Request too large. Max upload size is {app.config['MAX_UPLOAD_BYTES'] // (1024 * 1024)} MB per file.",
    ), 413


with app.app_context():
    init_db()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "5050"))
    app.run(host="0.0.0.0", port=port, debug=True)
