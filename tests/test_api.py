from datetime import timedelta

import pytest
import requests
from fastapi.testclient import TestClient

from eventboard.exceptions import ServiceUnavailableError, UnauthorizedError
from eventboard.main import app
from eventboard.routers.categories import get_category_service
from eventboard.routers.events import get_event_service
from eventboard.routers.users import get_user_service
from eventboard.schemas.user import Actor, Role
from eventboard.security import CredentialService, get_credential_service


class FakeCredentialService:
    """Maps bearer tokens straight to actors"""

    def __init__(self, actors):
        self.actors = actors

    def verify(self, token):
        if token not in self.actors:
            raise UnauthorizedError("Invalid authentication credentials")
        return self.actors[token]


@pytest.fixture
def client(event_service, category_service, user_service, actors):
    """Create test client with overridden dependencies"""
    fake_credentials = FakeCredentialService(actors)

    app.dependency_overrides[get_event_service] = lambda: event_service
    app.dependency_overrides[get_category_service] = lambda: category_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_credential_service] = lambda: fake_credentials

    with TestClient(app) as test_client:
        yield test_client

    # Clean up dependency overrides
    app.dependency_overrides = {}


def auth(key):
    return {"Authorization": f"Bearer {key}"}


@pytest.fixture
def event_payload(category, clock):
    return {
        "title": "Jazz in the Park",
        "description": "An evening of live jazz by the lake",
        "date": (clock.now + timedelta(days=10)).isoformat(),
        "location": {
            "address": "Rua das Flores 100",
            "city": "Curitiba",
            "state": "PR",
        },
        "category": category.id,
        "capacity": 2,
        "price": 25.5,
        "tags": ["music"],
    }


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_create_requires_authentication(client, event_payload):
    response = client.post("/events/", json=event_payload)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "unauthorized",
        "message": "Authentication required",
    }


def test_invalid_token(client, event_payload):
    response = client.post("/events/", json=event_payload, headers=auth("nope"))
    assert response.status_code == 401


def test_create_event_api(client, event_payload, actors):
    response = client.post("/events/", json=event_payload, headers=auth("organizer"))

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == event_payload["title"]
    assert data["location"]["country"] == "Brasil"
    assert data["approvalStatus"] == "pending"
    assert data["status"] == "inactive"
    assert data["organizer"]["id"] == actors["organizer"].id
    assert data["category"]["name"] == "Music"
    assert data["price"] == 25.5
    assert data["isFullyBooked"] is False


def test_validation_error_lists_fields(client, event_payload):
    event_payload["title"] = "Hi"
    event_payload["price"] = -1

    response = client.post("/events/", json=event_payload, headers=auth("organizer"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"
    assert {error["field"] for error in body["errors"]} == {"title", "price"}


def test_malformed_body_is_422(client, event_payload):
    del event_payload["date"]
    response = client.post("/events/", json=event_payload, headers=auth("organizer"))
    assert response.status_code == 422


def test_review_flow_api(client, event_payload):
    event_id = client.post("/events/", json=event_payload, headers=auth("organizer")).json()[
        "id"
    ]

    assert client.get(f"/events/{event_id}").status_code == 403
    assert client.get("/events/pending", headers=auth("alice")).status_code == 403

    pending = client.get("/events/pending", headers=auth("admin")).json()
    assert pending["count"] == 1

    assert client.post(f"/events/{event_id}/approve", headers=auth("organizer")).status_code == 403
    approved = client.post(f"/events/{event_id}/approve", headers=auth("admin"))
    assert approved.status_code == 200
    assert approved.json()["status"] == "active"

    rejected = client.post(
        f"/events/{event_id}/reject", json={"reason": "Too late"}, headers=auth("admin")
    )
    assert rejected.status_code == 409
    assert rejected.json()["error"] == "conflict"

    status = client.get(f"/events/{event_id}/approval-status", headers=auth("organizer"))
    assert status.json()["approvalStatus"] == "approved"
    assert status.json()["approvedBy"]["name"] == "Ada Admin"


def test_participation_api(client, event_payload):
    event_payload["capacity"] = 1
    event_id = client.post("/events/", json=event_payload, headers=auth("admin")).json()["id"]

    joined = client.post(f"/events/{event_id}/participate", headers=auth("alice"))
    assert joined.status_code == 200
    assert joined.json()["success"] is True

    full = client.post(f"/events/{event_id}/participate", headers=auth("bob"))
    assert full.status_code == 409
    assert full.json()["message"] == "Event is full"

    left = client.delete(f"/events/{event_id}/participate", headers=auth("alice"))
    assert left.status_code == 200

    detail = client.get(f"/events/{event_id}").json()
    assert detail["participants"] == []


def test_search_api_aliases(client, event_payload, clock):
    client.post("/events/", json=event_payload, headers=auth("admin"))
    client.post("/events/", json=event_payload, headers=auth("organizer"))

    public = client.get("/events/").json()
    assert public["total"] == 1
    assert public["filters"]["status"] == "active"

    admin = client.get("/events/", headers=auth("admin")).json()
    assert admin["total"] == 2
    assert admin["filters"]["status"] is None

    start = (clock.now + timedelta(days=20)).isoformat()
    later = client.get("/events/", params={"startDate": start}).json()
    assert later["total"] == 0
    assert later["filters"]["dateRange"] is True

    legacy_sort = client.get("/events/", params={"sort": "date", "free": "true"}).json()
    assert legacy_sort["filters"]["sort"] == "date_asc"
    assert legacy_sort["total"] == 0


def test_unknown_event_is_404(client):
    response = client.get("/events/missing")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_category_api(client, event_payload):
    created = client.post("/categories/", json={"name": "Sports"}, headers=auth("admin"))
    assert created.status_code == 201

    assert client.post("/categories/", json={"name": "X"}, headers=auth("alice")).status_code == 403
    duplicate = client.post("/categories/", json={"name": "Sports"}, headers=auth("admin"))
    assert duplicate.status_code == 409

    names = [c["name"] for c in client.get("/categories/").json()]
    assert names == ["Music", "Sports"]

    client.post("/events/", json=event_payload, headers=auth("admin"))
    result = client.delete(
        f"/categories/{event_payload['category']}", headers=auth("admin")
    ).json()
    assert result["deleted"] is False
    assert result["eventsCount"] == 1

    stats = client.get(f"/categories/{created.json()['id']}/stats").json()
    assert stats["stats"]["eventsCount"] == 0


def test_users_api_is_admin_only(client, sample_users):
    assert client.get("/users/").status_code == 401
    assert client.get("/users/", headers=auth("alice")).status_code == 403

    listing = client.get("/users/", params={"role": "admin"}, headers=auth("admin")).json()
    assert listing["total"] == 1

    created = client.post(
        "/users/",
        json={"name": "Dora", "email": "dora@example.com", "password": "secret123"},
        headers=auth("admin"),
    )
    assert created.status_code == 201
    assert "passwordHash" not in created.json()

    stats = client.get(f"/users/{sample_users['alice'].id}/stats", headers=auth("admin"))
    assert stats.status_code == 200
    assert len(stats.json()["eventsByMonth"]) == 12

    deleted = client.delete(f"/users/{sample_users['bob'].id}", headers=auth("admin"))
    assert deleted.status_code == 200


def test_register_is_open_and_always_user(client, sample_users):
    response = client.post(
        "/users/register",
        json={
            "name": "Erin Newcomer",
            "email": "erin@example.com",
            "password": "secret123",
            "role": "admin",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["role"] == "user"
    assert data["email"] == "erin@example.com"
    assert "passwordHash" not in data

    duplicate = client.post(
        "/users/register",
        json={"name": "Erin Again", "email": "ERIN@example.com", "password": "secret123"},
    )
    assert duplicate.status_code == 409

    invalid = client.post(
        "/users/register",
        json={"name": "E", "email": "e@example.com", "password": "123"},
    )
    assert invalid.status_code == 400
    assert {error["field"] for error in invalid.json()["errors"]} == {"name", "password"}


def test_own_profile(client, sample_users):
    assert client.get("/users/me").status_code == 401

    me = client.get("/users/me", headers=auth("alice"))
    assert me.status_code == 200
    assert me.json()["id"] == sample_users["alice"].id
    assert me.json()["participatingEvents"] == []


def test_update_own_profile_keeps_role(client, sample_users):
    assert client.put("/users/me", json={"name": "Nobody"}).status_code == 401

    response = client.put(
        "/users/me",
        json={"name": "Alice Cooper", "bio": "Sings", "role": "admin"},
        headers=auth("alice"),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Alice Cooper"
    assert data["bio"] == "Sings"
    assert data["role"] == "user"

    taken = client.put(
        "/users/me", json={"email": "bob@example.com"}, headers=auth("alice")
    )
    assert taken.status_code == 409


def test_search_rejects_non_finite_price(client):
    assert client.get("/events/", params={"minPrice": "inf"}).status_code == 422
    assert client.get("/events/", params={"maxPrice": "nan"}).status_code == 422


def test_credential_service_maps_response(monkeypatch):
    class Response:
        status_code = 200

        def json(self):
            return {"id": 42, "role": "admin", "email": "ada@example.com"}

    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: Response())

    actor = CredentialService("http://auth").verify("token")
    assert actor == Actor(id="42", role=Role.ADMIN)


def test_credential_service_unreachable(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", refuse)

    with pytest.raises(ServiceUnavailableError):
        CredentialService("http://auth").verify("token")
