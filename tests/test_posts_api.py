import pytest
from httpx import AsyncClient

MISSING_ID = "0123456789abcdef01234567"


@pytest.fixture
def post_payload():
    def build(author: str, /, **overrides) -> dict:
        return {
            "title": "Async Python in practice",
            "content": "Event loops, tasks and cancellation.",
            "author": author,
            **overrides,
        }

    return build


@pytest.mark.asyncio
async def test_create_post_defaults(client: AsyncClient, make_user, post_payload):
    author = await make_user()
    resp = await client.post(
        "/api/posts", json=post_payload(author["id"], tags=[" Python ", "python", "ASYNC"])
    )
    assert resp.status_code == 201
    post = resp.json()["data"]
    assert post["status"] == "draft"
    assert post["category"] == "other"
    assert post["tags"] == ["python", "async"]
    assert post["views"] == 0
    assert post["likeCount"] == 0
    assert post["commentCount"] == 0
    assert post["publishedAt"] is None


@pytest.mark.asyncio
async def test_unknown_author_rejected(client: AsyncClient, post_payload):
    resp = await client.post("/api/posts", json=post_payload(MISSING_ID))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "author"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"title": "Tiny"}, "title"),
        ({"content": "short"}, "content"),
        ({"category": "gossip"}, "category"),
        ({"author": "nope"}, "author"),
    ],
)
async def test_invalid_post_rejected(client: AsyncClient, make_user, post_payload, overrides, field):
    author = await make_user()
    resp = await client.post("/api/posts", json=post_payload(author["id"], **overrides))
    assert resp.status_code == 400
    assert any(d["field"] == field for d in resp.json()["details"])


@pytest.mark.asyncio
async def test_published_at_set_once(client: AsyncClient, make_user, post_payload):
    author = await make_user()
    post = (await client.post("/api/posts", json=post_payload(author["id"]))).json()["data"]

    published = (
        await client.put(f"/api/posts/{post['id']}", json={"status": "published"})
    ).json()["data"]
    assert published["publishedAt"] is not None

    await client.put(f"/api/posts/{post['id']}", json={"status": "archived"})
    again = (
        await client.put(f"/api/posts/{post['id']}", json={"status": "published"})
    ).json()["data"]
    assert again["publishedAt"] == published["publishedAt"]


@pytest.mark.asyncio
async def test_likes_are_unique_per_user(client: AsyncClient, make_user, post_payload):
    author = await make_user()
    fan = await make_user()
    post = (await client.post("/api/posts", json=post_payload(author["id"]))).json()["data"]

    for _ in range(2):
        resp = await client.post(f"/api/posts/{post['id']}/like", json={"user": fan["id"]})
        assert resp.status_code == 200
    liked = resp.json()["data"]
    assert liked["likeCount"] == 1
    assert liked["likes"][0]["user"] == fan["id"]

    resp = await client.delete(f"/api/posts/{post['id']}/like/{fan['id']}")
    assert resp.json()["data"]["likeCount"] == 0


@pytest.mark.asyncio
async def test_comments_and_views(client: AsyncClient, make_user, post_payload):
    author = await make_user()
    post = (await client.post("/api/posts", json=post_payload(author["id"]))).json()["data"]

    resp = await client.post(
        f"/api/posts/{post['id']}/comments", json={"user": author["id"], "content": " Nice "}
    )
    assert resp.status_code == 201
    commented = resp.json()["data"]
    assert commented["commentCount"] == 1
    assert commented["comments"][0]["content"] == "Nice"

    resp = await client.post(f"/api/posts/{post['id']}/comments", json={"user": author["id"], "content": "  "})
    assert resp.status_code == 400

    await client.post(f"/api/posts/{post['id']}/views")
    viewed = (await client.post(f"/api/posts/{post['id']}/views")).json()["data"]
    assert viewed["views"] == 2


@pytest.mark.asyncio
async def test_list_filters(client: AsyncClient, make_user, post_payload):
    alice = await make_user()
    bob = await make_user()
    await client.post("/api/posts", json=post_payload(alice["id"], category="technology"))
    await client.post(
        "/api/posts", json=post_payload(bob["id"], status="published", category="business")
    )

    body = (await client.get("/api/posts", params={"status": "published"})).json()
    assert body["count"] == 1
    assert body["data"][0]["author"] == bob["id"]

    body = (await client.get("/api/posts", params={"author": alice["id"]})).json()
    assert [p["category"] for p in body["data"]] == ["technology"]

    assert (await client.get("/api/posts", params={"category": "gossip"})).status_code == 400


@pytest.mark.asyncio
async def test_missing_post(client: AsyncClient):
    resp = await client.get(f"/api/posts/{MISSING_ID}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Post not found"

    resp = await client.delete(f"/api/posts/{MISSING_ID}")
    assert resp.status_code == 404
