"""What the views ask of the backend, checked against a recording fake."""

CONTENT = "Sixty characters of content, padded out to the exact length."


def login(client, email="author@example.com", password="hunter22"):
    return client.post("/auth", data={"email": email, "password": password}, follow_redirects=False)


def test_create_sends_trimmed_insert_and_redirects_to_new_post(fake_backend, fake_client):
    account = fake_backend.add_account("author@example.com", "hunter22", "author")
    login(fake_client)
    assert len(CONTENT) == 60

    resp = fake_client.post(
        "/create",
        data={"title": " Hello World Today ", "content": f"  {CONTENT}  ", "image_url": ""},
        follow_redirects=False,
    )

    inserts = fake_backend.calls_named("create_post")
    assert inserts == [("create_post", {
        "title": "Hello World Today",
        "content": CONTENT,
        "image_url": None,
        "user_id": account.id,
    })]
    new_id = next(iter(fake_backend.posts))
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith(f"/post/{new_id}")


def test_invalid_form_never_reaches_backend(fake_backend, fake_client):
    fake_backend.add_account("author@example.com", "hunter22", "author")
    login(fake_client)

    resp = fake_client.post("/create", data={"title": "abcd", "content": CONTENT})
    assert resp.status_code == 400
    assert fake_backend.calls_named("create_post") == []


def test_update_is_scoped_to_post_and_account(fake_backend, fake_client):
    account = fake_backend.add_account("author@example.com", "hunter22", "author")
    post = fake_backend.add_post(account.id, "Original title", CONTENT)
    login(fake_client)

    resp = fake_client.post(
        f"/edit/{post.id}",
        data={"title": "Edited title", "content": CONTENT, "image_url": " https://img.example.com/x.png "},
    )
    assert resp.status_code == 302
    assert fake_backend.calls_named("update_post") == [("update_post", post.id, account.id, {
        "title": "Edited title",
        "content": CONTENT,
        "image_url": "https://img.example.com/x.png",
    })]


def test_delete_needs_confirmation(fake_backend, fake_client):
    account = fake_backend.add_account("author@example.com", "hunter22", "author")
    post = fake_backend.add_post(account.id, "Doomed post", CONTENT)
    login(fake_client)

    fake_client.get(f"/post/{post.id}/delete")
    fake_client.post(f"/post/{post.id}/delete", data={})
    assert fake_backend.calls_named("delete_post") == []

    resp = fake_client.post(f"/post/{post.id}/delete", data={"confirm": "yes"})
    assert fake_backend.calls_named("delete_post") == [("delete_post", post.id)]
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")
    assert post.id not in fake_backend.posts


def test_search_matches_title_or_username(fake_backend, fake_client):
    alice = fake_backend.add_account("alice@example.com", "pw123456", "AliceWrites")
    bob = fake_backend.add_account("bob@example.com", "pw123456", "bob")
    fake_backend.add_post(alice.id, "Gardening notes", CONTENT)
    fake_backend.add_post(bob.id, "Thoughts on alice in wonderland", CONTENT)
    fake_backend.add_post(bob.id, "Cooking for one", CONTENT)

    resp = fake_client.get("/?q=ALICE")
    assert fake_backend.calls_named("list_posts")[-1] == ("list_posts", 1, 9, "ALICE")
    assert b"Gardening notes" in resp.data
    assert b"Thoughts on alice in wonderland" in resp.data
    assert b"Cooking for one" not in resp.data


def test_new_search_starts_at_first_page(fake_backend, fake_client):
    fake_client.get("/?page=3")
    fake_client.get("/?q=cats")
    pages = [call[1] for call in fake_backend.calls_named("list_posts")]
    assert pages == [3, 1]


def test_list_failure_is_reported(fake_backend, fake_client):
    fake_backend.failing.add("list_posts")

    resp = fake_client.get("/")
    assert resp.status_code == 200
    assert b"Failed to load posts" in resp.data


def test_detail_failure_redirects_home(fake_backend, fake_client):
    fake_backend.failing.add("get_post")

    resp = fake_client.get("/post/post-1", follow_redirects=True)
    assert resp.request.path == "/"
    assert b"Failed to load post" in resp.data


def test_update_failure_keeps_form(fake_backend, fake_client):
    account = fake_backend.add_account("author@example.com", "hunter22", "author")
    post = fake_backend.add_post(account.id, "Original title", CONTENT)
    fake_backend.failing.add("update_post")
    login(fake_client)

    resp = fake_client.post(f"/edit/{post.id}", data={"title": "Edited title", "content": CONTENT})
    assert resp.status_code == 400
    assert b"Failed to update post" in resp.data
    assert fake_backend.posts[post.id].title == "Original title"


def test_profile_lists_only_own_posts(fake_backend, fake_client):
    account = fake_backend.add_account("author@example.com", "hunter22", "author")
    other = fake_backend.add_account("else@example.com", "hunter22", "someone")
    fake_backend.add_post(account.id, "Mine, all mine", CONTENT)
    fake_backend.add_post(other.id, "Not mine at all", CONTENT)
    login(fake_client)

    resp = fake_client.get("/profile")
    assert resp.status_code == 200
    assert b"@author" in resp.data
    assert b"Mine, all mine" in resp.data
    assert b"Not mine at all" not in resp.data
    assert fake_backend.calls_named("list_user_posts") == [("list_user_posts", account.id)]


def test_uploaded_image_becomes_image_url(fake_backend, fake_client, monkeypatch):
    import io
    import cloudinary.uploader

    uploads = []

    def fake_upload(file, **options):
        uploads.append(options["folder"])
        return {"secure_url": "https://res.cloudinary.com/demo/cover.png", "public_id": "posts/cover"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    fake_backend.add_account("author@example.com", "hunter22", "author")
    login(fake_client)

    fake_client.post(
        "/create",
        data={
            "title": "Post with a cover",
            "content": CONTENT,
            "image": (io.BytesIO(b"\x89PNG fake"), "cover.png", "image/png"),
        },
        content_type="multipart/form-data",
    )

    assert uploads == ["posts"]
    (_, fields), = fake_backend.calls_named("create_post")
    assert fields["image_url"] == "https://res.cloudinary.com/demo/cover.png"


def test_unsupported_image_type_is_a_field_error(fake_backend, fake_client):
    import io

    fake_backend.add_account("author@example.com", "hunter22", "author")
    login(fake_client)

    resp = fake_client.post(
        "/create",
        data={
            "title": "Post with a cover",
            "content": CONTENT,
            "image": (io.BytesIO(b"%PDF-1.7"), "cover.pdf", "application/pdf"),
        },
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert b'data-field="image"' in resp.data
    assert fake_backend.calls_named("create_post") == []


def test_failed_upload_reports_on_image_field(fake_backend, fake_client, monkeypatch):
    import io
    import cloudinary.uploader
    from cloudinary.exceptions import Error as CloudinaryError

    def broken_upload(file, **options):
        raise CloudinaryError("Server returned unexpected status code - 500")

    monkeypatch.setattr(cloudinary.uploader, "upload", broken_upload)
    fake_backend.add_account("author@example.com", "hunter22", "author")
    login(fake_client)

    resp = fake_client.post(
        "/create",
        data={
            "title": "Post with a cover",
            "content": CONTENT,
            "image": (io.BytesIO(b"\x89PNG fake"), "cover.png", "image/png"),
        },
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert b"Image upload failed" in resp.data
    assert fake_backend.calls_named("create_post") == []
