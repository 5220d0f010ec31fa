"""HTTP-level tests for the /users routes."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from user_registry.database.engine import get_session
from user_registry.main import app
from user_registry.models.user import Base

# ── In-memory test database ─────────────────────────────
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)


async def _test_session():
    async with _test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest_asyncio.fixture
async def client():
    """An HTTP client bound to the app with a fresh in-memory database."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.dependency_overrides[get_session] = _test_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


ALICE = {"name": "Alice Johnson", "email": "alice@example.com", "mobile": "+15551234567"}
BOB = {"name": "Bob Smith", "email": "bob@example.com", "mobile": "+15559876543"}
CAROL = {"name": "Carol Davis", "email": "carol@example.com", "mobile": "+442071234567"}


def _upload(payload) -> dict:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return {"file": ("users.json", body, "application/json")}


async def _count(client: AsyncClient) -> int:
    resp = await client.get("/users")
    assert resp.status_code == 200
    return len(resp.json())


# ──────────────────────────────────────────────────────────
# Create
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_single_user(client):
    resp = await client.post(
        "/users", json={"name": "  Alice  ", "email": " Alice@Example.COM", "mobile": "123"}
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["id"]
    assert body["name"] == "Alice"
    assert body["email"] == "alice@example.com"
    assert "createdAt" in body and "updatedAt" in body


@pytest.mark.asyncio
async def test_create_with_existing_email_any_case(client):
    await client.post("/users", json=ALICE)
    resp = await client.post("/users", json={**BOB, "email": "ALICE@example.com"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "User with this email already exists"
    assert await _count(client) == 1


@pytest.mark.asyncio
async def test_bulk_create(client):
    resp = await client.post("/users", json=[ALICE, BOB, CAROL])
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Bulk users created successfully"
    assert body["count"] == 3
    assert all(u["id"] for u in body["users"])
    assert await _count(client) == 3


@pytest.mark.asyncio
async def test_bulk_create_shared_email_persists_nothing(client):
    resp = await client.post("/users", json=[ALICE, {**BOB, "email": ALICE["email"]}])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Duplicate email addresses found in the input data"
    assert await _count(client) == 0


@pytest.mark.asyncio
async def test_create_missing_field_is_400(client):
    resp = await client.post("/users", json={"name": "Alice", "email": "a@example.com"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


@pytest.mark.asyncio
async def test_create_blank_name_is_400(client):
    resp = await client.post("/users", json={**ALICE, "name": "   "})
    assert resp.status_code == 400


# ──────────────────────────────────────────────────────────
# Read / search
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_round_trip_by_id(client):
    created = (await client.post("/users", json=ALICE)).json()
    resp = await client.get(f"/users/{created['id']}")
    assert resp.status_code == 200
    fetched = resp.json()
    assert fetched == created
    assert created["createdAt"].endswith("Z")

    listed = (await client.get("/users")).json()
    assert listed == [created]


@pytest.mark.asyncio
async def test_get_unknown_user(client):
    resp = await client.get("/users/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"message": "User not found"}


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["/users/search", "/users/search?query="])
async def test_search_without_query(client, url):
    resp = await client.get(url)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Search query is required"


@pytest.mark.asyncio
async def test_search_by_mobile_fragment(client):
    await client.post("/users", json=[ALICE, BOB, CAROL])
    resp = await client.get("/users/search", params={"query": "2071"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["users"][0]["email"] == CAROL["email"]


@pytest.mark.asyncio
async def test_search_is_case_insensitive(client):
    await client.post("/users", json=[ALICE, BOB])
    body = (await client.get("/users/search", params={"query": "SMITH"})).json()
    assert [u["name"] for u in body["users"]] == ["Bob Smith"]


# ──────────────────────────────────────────────────────────
# Update
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_update_name_only(client):
    created = (await client.post("/users", json=[ALICE, BOB])).json()["users"]
    alice_id = created[0]["id"]

    resp = await client.put(f"/users/{alice_id}", json={"name": "Alice Cooper"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Alice Cooper"
    assert body["email"] == ALICE["email"]
    assert body["mobile"] == ALICE["mobile"]


@pytest.mark.asyncio
async def test_update_mobile_taken(client):
    created = (await client.post("/users", json=[ALICE, BOB])).json()["users"]
    resp = await client.put(f"/users/{created[0]['id']}", json={"mobile": BOB["mobile"]})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Mobile number already exists for another user"


@pytest.mark.asyncio
async def test_update_unknown_user(client):
    resp = await client.put("/users/missing", json={"name": "Nobody"})
    assert resp.status_code == 404


# ──────────────────────────────────────────────────────────
# Delete
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delete_all_on_empty_collection(client):
    resp = await client.delete("/users/delete-all")
    assert resp.status_code == 200
    assert resp.json() == {"message": "All users deleted successfully", "deletedCount": 0}


@pytest.mark.asyncio
async def test_delete_all(client):
    await client.post("/users", json=[ALICE, BOB])
    resp = await client.delete("/users/delete-all")
    assert resp.json()["deletedCount"] == 2
    assert await _count(client) == 0


@pytest.mark.asyncio
async def test_delete_by_id(client):
    created = (await client.post("/users", json=ALICE)).json()
    resp = await client.delete(f"/users/{created['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "User deleted successfully"}

    resp = await client.delete(f"/users/{created['id']}")
    assert resp.status_code == 404


# ──────────────────────────────────────────────────────────
# Import
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_import_valid_file(client):
    resp = await client.post("/users/import", files=_upload([ALICE, BOB, CAROL]))
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Users imported successfully"
    assert body["count"] == 3
    assert await _count(client) == 3


@pytest.mark.asyncio
async def test_import_single_object(client):
    resp = await client.post("/users/import", files=_upload(ALICE))
    assert resp.status_code == 201
    assert resp.json()["count"] == 1


@pytest.mark.asyncio
async def test_import_numeric_mobile(client):
    resp = await client.post("/users/import", files=_upload([{**ALICE, "mobile": 5551234}]))
    assert resp.status_code == 201
    assert resp.json()["users"][0]["mobile"] == "5551234"


@pytest.mark.asyncio
async def test_import_missing_mobile_persists_nothing(client):
    entry = {k: v for k, v in BOB.items() if k != "mobile"}
    resp = await client.post("/users/import", files=_upload([ALICE, entry]))
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("Invalid data structure")
    assert await _count(client) == 0


@pytest.mark.asyncio
async def test_import_invalid_json(client):
    resp = await client.post("/users/import", files=_upload(b"[{oops"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid JSON file"


@pytest.mark.asyncio
async def test_import_without_file(client):
    resp = await client.post("/users/import")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Please upload a JSON file"


@pytest.mark.asyncio
async def test_import_conflicts_return_report(client):
    await client.post("/users", json=ALICE)
    resp = await client.post(
        "/users/import",
        files=_upload([BOB, {**CAROL, "mobile": BOB["mobile"]}, {**ALICE, "mobile": "+100"}]),
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Cannot import users due to duplicates"
    assert [d["value"] for d in body["duplicatesInFile"]["mobiles"]] == [BOB["mobile"]]
    assert len(body["duplicatesInFile"]["mobiles"][0]["entries"]) == 2
    existing = body["existingInDatabase"]["emails"]
    assert existing[0]["value"] == ALICE["email"]
    assert existing[0]["existingUser"]["email"] == ALICE["email"]
    assert await _count(client) == 1


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "healthy"
