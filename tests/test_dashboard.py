def test_root_redirects_to_dashboard(client):
    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/admin")


def test_dashboard_counts(client, query):
    query("INSERT INTO notices (title, content) VALUES ('A', 'a'), ('B', 'b')")
    query(
        "INSERT INTO events (title, date, description) VALUES "
        "('Future', '2999-01-01T10:00', 'x'), ('Past', '2000-01-01T10:00', 'y')"
    )
    query("INSERT INTO faculty (name, title) VALUES ('T', 'Instructor')")
    query(
        "INSERT INTO students (name, roll, semester, shift) VALUES "
        "('S1', '1', '1st Semester', 'Day'), ('S2', '2', '1st Semester', 'Day'), ('S3', '3', '2nd Semester', 'Morning')"
    )

    page = client.get("/admin").data

    assert b'id="stat-notices">2<' in page
    assert b'id="stat-upcoming-events">1<' in page
    assert b'id="stat-faculty">1<' in page
    assert b'id="stat-students">3<' in page


def test_missing_storage_object_is_404(client):
    assert client.get("/storage/v1/object/public/events/events/nope.png").status_code == 404


def test_unknown_page_uses_error_template(client):
    response = client.get("/admin/nowhere")

    assert response.status_code == 404
    assert b"The page you requested was not found." in response.data


def test_oversized_upload_rejected(app, client, query, png):
    app.config["MAX_UPLOAD_BYTES"] = 8

    response = client.post(
        "/admin/faculty/new",
        data={"name": "Big", "title": "Staff", "image": png()},
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert b"File too large." in response.data
    assert query("SELECT COUNT(*) AS c FROM faculty")[0]["c"] == 0
