import io
import os
import sqlite3
import tempfile

os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(), "import.db"))
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest

from app import app as flask_app
from app import init_db

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _pdf_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _pdf_text(x: int, y: int, text: str, size: int = 10) -> str:
    return f"BT /F1 {size} Tf {x} {y} Td ({_pdf_escape(text)}) Tj ET\n"


def build_pdf(lines: list[str]) -> bytes:
    """Single page A4 PDF with one Helvetica text line per entry."""
    width, height = 595, 842
    stream = "".join(_pdf_text(50, 780 - index * 20, line, 11) for index, line in enumerate(lines))
    stream_bytes = stream.encode("latin-1", "replace")
    objects: list[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {width} {height}] "
            "/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>"
        ).encode("latin-1"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        f"<< /Length {len(stream_bytes)} >>\n".encode("latin-1") + b"stream\n" + stream_bytes + b"\nendstream",
    ]

    pdf = bytearray(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n")
    offsets = []
    for idx, obj in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf.extend(f"{idx} 0 obj\n".encode("latin-1"))
        pdf.extend(obj)
        pdf.extend(b"\nendobj\n")

    xref_start = len(pdf)
    pdf.extend(f"xref\n0 {len(objects) + 1}\n".encode("latin-1"))
    pdf.extend(b"0000000000 65535 f \n")
    for offset in offsets:
        pdf.extend(f"{offset:010d} 00000 n \n".encode("latin-1"))
    pdf.extend(
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_start}\n%%EOF\n".encode("latin-1")
    )
    return bytes(pdf)


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(
        TESTING=True,
        DATABASE_PATH=str(tmp_path / "dashboard.db"),
        MAX_UPLOAD_BYTES=8 * 1024 * 1024,
    )
    with flask_app.app_context():
        init_db()
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def query(app):
    """Run SQL against the test database on a separate connection."""

    def run(sql, params=()):
        conn = sqlite3.connect(app.config["DATABASE_PATH"])
        conn.row_factory = sqlite3.Row
        try:
            cursor = conn.execute(sql, params)
            rows = cursor.fetchall()
            conn.commit()
            return rows
        finally:
            conn.close()

    return run


@pytest.fixture
def png():
    def make(name="photo.png"):
        return (io.BytesIO(PNG_BYTES), name)

    return make


@pytest.fixture
def pdf_file():
    def make(lines=("Board result sheet",), name="result.pdf"):
        return (io.BytesIO(build_pdf(list(lines))), name)

    return make
