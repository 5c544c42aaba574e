"""Tests for the HTTP API, driven through an in-memory app context."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.errors import SyncError
from backend.main import create_app
from backend.models import Card
from backend.sync.auth import SyncSession
from tests.fakes import card_row, make_card


class StubAuth:
    def __init__(self) -> None:
        self.signed_out = False

    def is_configured(self) -> bool:
        return True

    async def sign_in(self, email: str, password: str) -> SyncSession:
        if password != "secret":
            raise SyncError("Invalid login credentials")
        return SyncSession(user_id="user-1", email=email, access_token="tok")

    async def sign_out(self, session: SyncSession) -> None:
        self.signed_out = True


@pytest_asyncio.fixture
async def client(context) -> AsyncGenerator[AsyncClient, None]:
    context.auth = StubAuth()
    await context.library.ensure_standard_decks()
    app = create_app(context)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_health_check(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "sync": "offline"}


@pytest.mark.asyncio
async def test_card_crud(client) -> None:
    response = await client.post(
        "/api/cards", json={"question": "What is DNS?", "answer": "Name resolution", "category": "Network"}
    )
    assert response.status_code == 201
    card = response.json()
    assert card["next_review_label"] == "today"
    assert card["synced"] is False

    response = await client.patch(f"/api/cards/{card['id']}", json={"answer": "Domain Name System"})
    assert response.json()["answer"] == "Domain Name System"

    response = await client.get("/api/cards", params={"category": "Network"})
    assert [c["id"] for c in response.json()] == [card["id"]]

    response = await client.delete(f"/api/cards/{card['id']}")
    assert response.json() == {"id": card["id"], "removed_locally": False}

    response = await client.get(f"/api/cards/{card['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_card_validation_error(client) -> None:
    response = await client.post("/api/cards", json={"question": "", "answer": "A"})
    assert response.status_code == 400
    assert "question" in response.json()["detail"]


@pytest.mark.asyncio
async def test_review_flow(client, context) -> None:
    await context.store.put(make_card(next_review="2026-01-01"))

    due = (await client.get("/api/review/due")).json()
    assert due["total"] == 1

    preview = (await client.get("/api/review/card-1/preview")).json()
    assert [(o["name"], o["label"]) for o in preview["options"]] == [
        ("AGAIN", "1 minute"),
        ("HARD", "6 minutes"),
        ("GOOD", "10 minutes"),
        ("EASY", "4 days"),
    ]

    response = await client.post("/api/review/card-1/grade", json={"grade": 3})
    graded = response.json()
    assert graded["interval"] == 4
    assert graded["interval_label"] == "4 days"
    assert graded["card"]["review_count"] == 1
    assert graded["card"]["next_review_label"] == "in 4 days"

    assert (await client.get("/api/review/due")).json()["total"] == 0


@pytest.mark.asyncio
async def test_grade_out_of_range(client, context) -> None:
    await context.store.put(make_card())
    response = await client.post("/api/review/card-1/grade", json={"grade": 5})
    assert response.status_code == 400
    assert "0-3" in response.json()["detail"]


@pytest.mark.asyncio
async def test_decks(client) -> None:
    decks = (await client.get("/api/decks")).json()
    groups = [d["group_name"] for d in decks]
    assert groups == sorted(groups, key=["Technology", "Management", "Strategy", "Other"].index)

    response = await client.post("/api/decks", json={"name": "Linux"})
    assert response.status_code == 201
    deck = response.json()
    assert deck["group_name"] == "Other"

    assert (await client.post("/api/decks", json={"name": "Linux"})).status_code == 400

    await client.post("/api/cards", json={"question": "Q", "answer": "A", "category": "Linux"})
    response = await client.delete(f"/api/decks/{deck['id']}")
    assert response.json() == {"id": deck["id"], "cards_deleted": 1}
    assert (await client.delete(f"/api/decks/{deck['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_stats(client, context) -> None:
    await context.store.put(
        make_card(repetitions=3, review_history=[{"date": "2026-01-01", "quality": 2, "correct": True}])
    )
    stats = (await client.get("/api/stats")).json()
    assert stats["total_cards"] == 1
    assert stats["cards_mastered"] == 1
    assert stats["total_reviews"] == 1
    assert stats["accuracy"] == [{"category": "Network", "correct": 1, "total": 1, "percent": 100}]


@pytest.mark.asyncio
async def test_sign_in_sync_and_sign_out(client, context, remote) -> None:
    remote.tables["cards"]["remote-card"] = card_row("remote-card")

    response = await client.post("/api/sync/signin", json={"email": "a@b.c", "password": "secret"})
    body = response.json()
    assert body["status"] == "synced"
    assert body["signed_in"] is True
    assert body["email"] == "a@b.c"
    assert await context.store.get(Card, "remote-card") is not None
    # standard decks created before sign-in were pushed by the initial sync
    assert len(remote.tables["decks"]) > 0

    assert (await client.post("/api/sync/run")).json()["status"] == "synced"

    body = (await client.post("/api/sync/signout")).json()
    assert body == {
        "status": "offline",
        "signed_in": False,
        "email": None,
        "last_synced_at": None,
        "dirty_pending": False,
    }
    assert context.auth.signed_out


@pytest.mark.asyncio
async def test_sign_in_rejected(client) -> None:
    response = await client.post("/api/sync/signin", json={"email": "a@b.c", "password": "nope"})
    assert response.status_code == 401
    assert (await client.get("/api/sync/status")).json()["status"] == "offline"


@pytest.mark.asyncio
async def test_export_and_import(client) -> None:
    await client.post("/api/cards", json={"question": "Q", "answer": "A", "category": "Cooking"})

    response = await client.get("/api/sync/export")
    assert "attachment" in response.headers["content-disposition"]
    backup = response.json()
    assert len(backup["cards"]) == 1

    backup["cards"][0]["question"] = "Edited"
    response = await client.post("/api/sync/import", json=backup)
    assert response.json()["cards_imported"] == 1
    cards = (await client.get("/api/cards")).json()
    assert cards[0]["question"] == "Edited"

    assert (await client.post("/api/sync/import", json={"cards": "nope"})).status_code == 400
