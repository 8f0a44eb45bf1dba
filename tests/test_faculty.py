def add_member(client, png, **data):
    payload = {
        "name": "Nusrat Jahan",
        "title": "Instructor",
        "qualification": "B.Sc in CSE",
        "specialization": "Networking",
        "email": "nusrat@example.edu",
        "mobile_number": "01700000000",
        "image": png("nusrat.png"),
    }
    payload.update(data)
    payload = {key: value for key, value in payload.items() if value is not None}
    return client.post("/admin/faculty/new", data=payload, content_type="multipart/form-data", follow_redirects=True)


def test_add_member(client, query, png):
    response = add_member(client, png)

    assert b"Saved Nusrat Jahan." in response.data
    member = query("SELECT * FROM faculty")[0]
    assert member["file_path"].endswith("-nusrat.png")
    assert member["image_url"].startswith("/storage/v1/object/public/faculty/")


def test_add_member_requires_image(client, query, png):
    response = add_member(client, png, image=None)

    assert b"An image is required for a new member." in response.data
    assert query("SELECT COUNT(*) AS c FROM faculty")[0]["c"] == 0


def test_add_member_requires_name(client, query, png):
    response = add_member(client, png, name="")

    assert b"Name is required." in response.data


def test_list_groups_members_by_category(client, png):
    add_member(client, png, name="Head Person", title="Head of Department (Day)")
    add_member(client, png, name="Junior Person", title="Junior Instructor")

    page = client.get("/admin/faculty").data.decode()

    assert page.index("Heads of Department") < page.index("Head Person") < page.index("Junior Instructors")
    assert page.index("Junior Instructors") < page.index("Junior Person")


def test_edit_member_keeps_or_replaces_image(client, query, png):
    add_member(client, png)
    member = query("SELECT * FROM faculty")[0]

    client.post(
        f"/admin/faculty/{member['id']}/edit",
        data={"name": "Nusrat J.", "title": "Guest Teacher"},
        follow_redirects=True,
    )
    kept = query("SELECT * FROM faculty")[0]
    assert kept["name"] == "Nusrat J."
    assert kept["file_path"] == member["file_path"]

    client.post(
        f"/admin/faculty/{member['id']}/edit",
        data={"name": "Nusrat J.", "title": "Guest Teacher", "image": png("new-photo.png")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    replaced = query("SELECT * FROM faculty")[0]
    assert replaced["file_path"].endswith("-new_photo.png")
    assert query("SELECT COUNT(*) AS c FROM storage_objects WHERE bucket = 'faculty'")[0]["c"] == 1


def test_delete_member(client, query, png):
    add_member(client, png)
    member_id = query("SELECT id FROM faculty")[0]["id"]

    assert b"This action cannot be undone." in client.get(f"/admin/faculty/{member_id}/delete").data
    response = client.post(f"/admin/faculty/{member_id}/delete", follow_redirects=True)

    assert b"Deleted Nusrat Jahan." in response.data
    assert query("SELECT COUNT(*) AS c FROM faculty")[0]["c"] == 0
    assert query("SELECT COUNT(*) AS c FROM storage_objects WHERE bucket = 'faculty'")[0]["c"] == 0


def test_delete_member_when_photo_cleanup_fails(client, query, png):
    add_member(client, png)
    member_id = query("SELECT id FROM faculty")[0]["id"]
    query("DELETE FROM storage_buckets WHERE name = 'faculty'")

    response = client.post(f"/admin/faculty/{member_id}/delete", follow_redirects=True)

    assert b"could not be removed from storage: Bucket not found" in response.data
    assert b"Deleted Nusrat Jahan." in response.data
    assert query("SELECT COUNT(*) AS c FROM faculty")[0]["c"] == 0


def test_edit_id_zero_is_404(client, query):
    response = client.post("/admin/faculty/0/edit", data={"name": "Ghost", "title": "Instructor"})

    assert response.status_code == 404
    assert query("SELECT COUNT(*) AS c FROM faculty")[0]["c"] == 0
