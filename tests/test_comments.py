"""
Comment endpoint tests: adding, listing and deleting comments on an
article addressed by slug, including the author-only delete rule.
"""
import pytest
from httpx import AsyncClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _register(client: AsyncClient, username: str) -> dict:
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": f"{username}@example.com",
        "password": "password123",
    }})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Token {resp.json()['user']['token']}"}


async def _create_user_and_article(client: AsyncClient, suffix: str) -> tuple[dict, str]:
    """Create a user and an article, returning (auth headers, slug)."""
    headers = await _register(client, f"user_{suffix}")
    resp = await client.post("/api/articles", headers=headers, json={"article": {
        "title": f"Article for {suffix}",
        "description": "d",
        "body": "Article content",
    }})
    assert resp.status_code == 201, resp.text
    return headers, resp.json()["article"]["slug"]


async def _comment(client: AsyncClient, headers: dict, slug: str, body: str) -> dict:
    resp = await client.post(
        f"/api/articles/{slug}/comments", headers=headers, json={"comment": {"body": body}}
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["comment"]


# ---------------------------------------------------------------------------
# Add comment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient):
    """Posting a comment returns 201 with the comment view and its author."""
    headers, slug = await _create_user_and_article(async_client, "add")

    comment = await _comment(async_client, headers, slug, "Great article!")
    assert comment["body"] == "Great article!"
    assert comment["author"]["username"] == "user_add"
    assert comment["author"]["following"] is False
    assert isinstance(comment["id"], int)
    assert comment["createdAt"] is not None


@pytest.mark.asyncio
async def test_add_comment_missing_article(async_client: AsyncClient):
    headers = await _register(async_client, "lonely")
    resp = await async_client.post(
        "/api/articles/nope/comments", headers=headers, json={"comment": {"body": "hi"}}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_add_comment_requires_auth(async_client: AsyncClient):
    _, slug = await _create_user_and_article(async_client, "anon")
    resp = await async_client.post(f"/api/articles/{slug}/comments", json={"comment": {"body": "hi"}})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_add_comment_blank_body_rejected(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "blank")
    resp = await async_client.post(
        f"/api/articles/{slug}/comments", headers=headers, json={"comment": {"body": ""}}
    )
    assert resp.status_code == 422
    assert "body" in resp.json()["errors"]


# ---------------------------------------------------------------------------
# List comments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_comments_newest_first(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "order")
    for body in ("one", "two", "three"):
        await _comment(async_client, headers, slug, body)

    resp = await async_client.get(f"/api/articles/{slug}/comments")
    assert resp.status_code == 200
    assert [c["body"] for c in resp.json()["comments"]] == ["three", "two", "one"]


@pytest.mark.asyncio
async def test_list_comments_following_is_viewer_relative(async_client: AsyncClient):
    author, slug = await _create_user_and_article(async_client, "rel")
    reader = await _register(async_client, "reader")
    await _comment(async_client, author, slug, "by the author")
    await async_client.post("/api/profiles/user_rel/follow", headers=reader)

    as_reader = await async_client.get(f"/api/articles/{slug}/comments", headers=reader)
    assert as_reader.json()["comments"][0]["author"]["following"] is True

    anon = await async_client.get(f"/api/articles/{slug}/comments")
    assert anon.json()["comments"][0]["author"]["following"] is False


@pytest.mark.asyncio
async def test_list_comments_empty(async_client: AsyncClient):
    _, slug = await _create_user_and_article(async_client, "empty")
    resp = await async_client.get(f"/api/articles/{slug}/comments")
    assert resp.json() == {"comments": []}


@pytest.mark.asyncio
async def test_list_comments_missing_article(async_client: AsyncClient):
    resp = await async_client.get("/api/articles/nope/comments")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete comment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_author_deletes_comment(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "del")
    comment = await _comment(async_client, headers, slug, "temporary")

    resp = await async_client.delete(f"/api/articles/{slug}/comments/{comment['id']}", headers=headers)
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/articles/{slug}/comments")
    assert resp.json()["comments"] == []


@pytest.mark.asyncio
async def test_other_user_cannot_delete_comment(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "guard")
    comment = await _comment(async_client, headers, slug, "mine")
    intruder = await _register(async_client, "intruder")

    resp = await async_client.delete(
        f"/api/articles/{slug}/comments/{comment['id']}", headers=intruder
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "not authorized to delete this comment"}

    resp = await async_client.get(f"/api/articles/{slug}/comments")
    assert len(resp.json()["comments"]) == 1


@pytest.mark.asyncio
async def test_delete_comment_via_other_article_is_404(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "first")
    _, other_slug = await _create_user_and_article(async_client, "second")
    comment = await _comment(async_client, headers, slug, "here")

    resp = await async_client.delete(
        f"/api/articles/{other_slug}/comments/{comment['id']}", headers=headers
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "comment not found"}


@pytest.mark.asyncio
async def test_delete_missing_comment_is_404(async_client: AsyncClient):
    headers, slug = await _create_user_and_article(async_client, "missing")
    resp = await async_client.delete(f"/api/articles/{slug}/comments/9999", headers=headers)
    assert resp.status_code == 404
