"""
API tests for /api/posts.

Tests cover:
- Public reads (list, pagination, search, category filter, single post)
- Authenticated create with validation and featured-image upload
- Owner-only update and delete
- Error shapes for unknown and malformed ids
"""

import re
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import auth_headers, create_post
from inkwell.core.jwt import create_access_token

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class TestCreatePost:
    def test_create_returns_201_with_owner_and_category(self, client, alice, category):
        user, token = alice

        post = create_post(client, token, category["id"], tags="python, web")

        assert post["author"] == user["id"]
        assert post["category"] == category["id"]
        assert post["slug"] == "hello"
        assert post["tags"] == ["python", "web"]
        assert post["version"] == 1
        assert post["featured_image"] is None

    def test_slugs_are_unique_and_url_safe(self, client, alice, category):
        _, token = alice
        titles = ["Hello", "Hello", "Hello!", "Héllo wörld", "???"]

        slugs = [create_post(client, token, category["id"], title=t)["slug"] for t in titles]

        assert len(set(slugs)) == len(slugs)
        assert all(SLUG_PATTERN.match(s) for s in slugs)

    def test_requires_token(self, client, category):
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"])},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "No token, authorization denied"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_rejects_garbage_token(self, client, category):
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"])},
            headers=auth_headers("not-a-jwt"),
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token"

    def test_rejects_expired_token(self, client, app, alice, category):
        user, _ = alice
        expired = create_access_token(
            app.state.settings,
            user["id"],
            user["username"],
            user["email"],
            expires_delta=timedelta(minutes=-5),
        )

        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"])},
            headers=auth_headers(expired),
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Token expired"

    def test_title_over_100_characters(self, client, alice, category):
        _, token = alice
        response = client.post(
            "/api/posts",
            data={"title": "t" * 101, "content": "This is a test body.", "category": str(category["id"])},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert "100 characters" in response.json()["error"]
        assert response.json()["detail"]["fields"][0]["field"] == "title"

    def test_content_below_minimum_length(self, client, alice, category):
        _, token = alice
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "short", "category": str(category["id"])},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert "at least 10 characters" in response.json()["error"]

    def test_missing_category(self, client, alice):
        _, token = alice
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body."},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Category is required"

    def test_unknown_category(self, client, alice, category):
        _, token = alice
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"] + 50)},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Category not found"

    def test_out_of_range_category(self, client, alice, category):
        _, token = alice
        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": "99999999999999999999"},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Category not found"


class TestFeaturedImage:
    def test_image_is_stored_and_referenced_by_filename(self, client, app, alice, category):
        _, token = alice

        response = client.post(
            "/api/posts",
            data={"title": "With image", "content": "This is a test body.", "category": str(category["id"])},
            files={"featuredImage": ("cover.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

        assert response.status_code == 201, response.text
        filename = response.json()["featured_image"]
        assert filename.endswith(".png")
        assert "/" not in filename
        stored = Path(app.state.settings.UPLOAD_DIR) / filename
        assert stored.read_bytes() == PNG_BYTES

        served = client.get(f"/uploads/{filename}")
        assert served.status_code == 200
        assert served.content == PNG_BYTES

    def test_file_too_large(self, client, app, alice, category):
        _, token = alice
        app.state.blob_store.max_bytes = 16

        response = client.post(
            "/api/posts",
            data={"title": "Big", "content": "This is a test body.", "category": str(category["id"])},
            files={"featuredImage": ("big.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "File too large"
        assert list(Path(app.state.settings.UPLOAD_DIR).glob("*")) == []

    def test_unexpected_file_field(self, client, alice, category):
        _, token = alice

        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"])},
            files={"photo": ("cover.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Too many files or invalid field name"

    def test_non_image_is_rejected(self, client, alice, category):
        _, token = alice

        response = client.post(
            "/api/posts",
            data={"title": "Hello", "content": "This is a test body.", "category": str(category["id"])},
            files={"featuredImage": ("notes.txt", b"plain text", "text/plain")},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Only image files are allowed"

    def test_invalid_fields_do_not_store_the_image(self, client, app, alice, category):
        _, token = alice

        response = client.post(
            "/api/posts",
            data={"title": "", "content": "short", "category": str(category["id"])},
            files={"featuredImage": ("cover.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        upload_dir = Path(app.state.settings.UPLOAD_DIR)
        assert not upload_dir.exists() or list(upload_dir.glob("*")) == []


class TestReadPosts:
    def test_list_paginates_six_per_page_newest_first(self, client, alice, category):
        _, token = alice
        for i in range(1, 8):
            create_post(client, token, category["id"], title=f"Post {i}")

        first = client.get("/api/posts").json()
        second = client.get("/api/posts", params={"page": 2}).json()

        assert first["total"] == 7
        assert first["total_pages"] == 2
        assert [p["title"] for p in first["posts"]] == [f"Post {i}" for i in range(7, 1, -1)]
        assert [p["title"] for p in second["posts"]] == ["Post 1"]

    def test_custom_limit(self, client, alice, category):
        _, token = alice
        for i in range(3):
            create_post(client, token, category["id"], title=f"Post {i}")

        data = client.get("/api/posts", params={"limit": 2}).json()

        assert len(data["posts"]) == 2
        assert data["total_pages"] == 2

    def test_invalid_page_is_a_validation_error(self, client):
        response = client.get("/api/posts", params={"page": 0})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_search_matches_title_and_content(self, client, alice, category):
        _, token = alice
        create_post(client, token, category["id"], title="Django tips")
        create_post(client, token, category["id"], title="Other", content="Mentions DJANGO in the body.")
        create_post(client, token, category["id"], title="Unrelated")

        data = client.get("/api/posts", params={"search": "django"}).json()

        assert {p["title"] for p in data["posts"]} == {"Django tips", "Other"}
        assert data["total"] == 2

    def test_blank_search_lists_everything(self, client, alice, category):
        _, token = alice
        create_post(client, token, category["id"])

        data = client.get("/api/posts", params={"search": "  "}).json()
        assert data["total"] == 1

    def test_category_filter(self, client, alice, category):
        _, token = alice
        other = client.post(
            "/api/categories", json={"name": "Travel"}, headers=auth_headers(token)
        ).json()
        create_post(client, token, category["id"], title="Tech post")
        create_post(client, token, other["id"], title="Travel post")

        data = client.get("/api/posts", params={"category": other["id"]}).json()

        assert [p["title"] for p in data["posts"]] == ["Travel post"]

    def test_malformed_category_filter(self, client):
        response = client.get("/api/posts", params={"category": "abc"})
        assert response.status_code == 400

    def test_get_single_post_is_public(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])

        response = client.get(f"/api/posts/{post['id']}")

        assert response.status_code == 200
        assert response.json()["slug"] == post["slug"]

    def test_get_unknown_post(self, client):
        response = client.get("/api/posts/4242")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "Post not found",
            "type": "NotFound",
            "stack": response.json()["stack"],
        }

    @pytest.mark.parametrize("raw_id", ["not-an-id", "0", "99999999999999999999"])
    def test_get_malformed_id(self, client, raw_id):
        response = client.get(f"/api/posts/{raw_id}")

        assert response.status_code == 404
        assert response.json()["error"] == "Resource not found"


class TestUpdatePost:
    def test_author_can_update_partially(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"title": "Hello again"},
            headers=auth_headers(token),
        )

        assert response.status_code == 200
        updated = response.json()
        assert updated["title"] == "Hello again"
        assert updated["content"] == post["content"]
        assert updated["slug"] == post["slug"]
        assert updated["version"] == 2

    def test_update_revalidates_present_fields(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"content": "tiny"},
            headers=auth_headers(token),
        )

        assert response.status_code == 400
        assert "at least 10 characters" in response.json()["error"]

    def test_non_author_gets_403(self, client, alice, bob, category):
        _, alice_token = alice
        _, bob_token = bob
        post = create_post(client, alice_token, category["id"])

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"title": "Hijacked"},
            headers=auth_headers(bob_token),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Not authorized to modify this post"
        assert client.get(f"/api/posts/{post['id']}").json()["title"] == "Hello"

    def test_non_author_gets_403_even_with_invalid_fields(self, client, alice, bob, category):
        _, alice_token = alice
        _, bob_token = bob
        post = create_post(client, alice_token, category["id"])

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"title": "x" * 500},
            headers=auth_headers(bob_token),
        )

        assert response.status_code == 403

    def test_update_unknown_post(self, client, alice):
        _, token = alice
        response = client.put("/api/posts/999", data={"title": "x"}, headers=auth_headers(token))
        assert response.status_code == 404

    def test_stale_version_conflicts(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])
        client.put(f"/api/posts/{post['id']}", data={"title": "First"}, headers=auth_headers(token))

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"title": "Second", "version": "1"},
            headers=auth_headers(token),
        )

        assert response.status_code == 409
        assert response.json()["detail"] == {"current_version": 2}
        assert client.get(f"/api/posts/{post['id']}").json()["title"] == "First"

    def test_rejected_update_does_not_keep_the_image(self, client, app, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])
        client.put(f"/api/posts/{post['id']}", data={"title": "First"}, headers=auth_headers(token))

        response = client.put(
            f"/api/posts/{post['id']}",
            data={"title": "Second", "version": "1"},
            files={"featuredImage": ("cover.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

        assert response.status_code == 409
        assert list(Path(app.state.settings.UPLOAD_DIR).glob("*")) == []
        assert client.get(f"/api/posts/{post['id']}").json()["featured_image"] is None

    def test_without_version_last_write_wins(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])
        client.put(f"/api/posts/{post['id']}", data={"title": "First"}, headers=auth_headers(token))
        client.put(f"/api/posts/{post['id']}", data={"title": "Second"}, headers=auth_headers(token))

        assert client.get(f"/api/posts/{post['id']}").json()["title"] == "Second"


class TestDeletePost:
    def test_author_can_delete(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])

        response = client.delete(f"/api/posts/{post['id']}", headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Post deleted"}
        assert client.get(f"/api/posts/{post['id']}").status_code == 404

    def test_non_author_gets_403_and_post_survives(self, client, alice, bob, category):
        _, alice_token = alice
        _, bob_token = bob
        post = create_post(client, alice_token, category["id"])

        response = client.delete(f"/api/posts/{post['id']}", headers=auth_headers(bob_token))

        assert response.status_code == 403
        follow_up = client.get(f"/api/posts/{post['id']}")
        assert follow_up.status_code == 200
        assert follow_up.json()["id"] == post["id"]

    def test_delete_unknown_id_is_404(self, client, alice):
        _, token = alice
        response = client.delete("/api/posts/987654", headers=auth_headers(token))

        assert response.status_code == 404
        assert response.json()["error"] == "Post not found"

    @pytest.mark.parametrize("raw_id", ["abc", "12abc", "-1", "99999999999999999999"])
    def test_delete_malformed_id_is_404(self, client, alice, raw_id):
        _, token = alice
        response = client.delete(f"/api/posts/{raw_id}", headers=auth_headers(token))

        assert response.status_code == 404
        assert response.json()["error"] == "Resource not found"

    def test_delete_requires_token(self, client, alice, category):
        _, token = alice
        post = create_post(client, token, category["id"])

        response = client.delete(f"/api/posts/{post['id']}")
        assert response.status_code == 401
