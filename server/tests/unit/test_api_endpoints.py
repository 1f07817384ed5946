"""Integration tests for API endpoints."""

import pytest
from sqlalchemy import select

from neverend.models import Application


@pytest.mark.asyncio
async def test_create_tour_endpoint(test_client, sample_tour_data, admin_headers):
    """Test the tour creation endpoint."""
    response = await test_client.post("/api/tours", json=sample_tour_data, headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == sample_tour_data["title"]
    assert data["date_start"] == "2025-07-10"
    assert [p["day"] for p in data["programs"]] == [1, 2]
    assert [p["price"] for p in data["prices"]] == [95000, 89000]
    assert "id" in data


@pytest.mark.asyncio
async def test_create_tour_missing_auth(test_client, sample_tour_data):
    """Test tour creation without authentication."""
    response = await test_client.post("/api/tours", json=sample_tour_data)

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authorization" in data["error"].lower()


@pytest.mark.asyncio
async def test_create_tour_bad_token(test_client, sample_tour_data):
    """Test tour creation with a token signed by someone else."""
    response = await test_client.post(
        "/api/tours",
        json=sample_tour_data,
        headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_tour_invalid_data(test_client, admin_headers):
    """Test tour creation with invalid data."""
    response = await test_client.post("/api/tours", json={"title": ""}, headers=admin_headers)

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert "violations" in data
    assert data["violations"][0]["path"] == "title"
    assert data["error"]


@pytest.mark.asyncio
async def test_list_tours_endpoint(test_client, admin_headers):
    """Test that the catalog lists active tours by start date with their prices."""
    for title, start, prices in (
        ("Март", "2025-03-01", [{"price": 500}, {"price": 300}]),
        ("Январь", "2025-01-10", []),
    ):
        await test_client.post(
            "/api/tours",
            json={"title": title, "date_start": start, "prices": prices},
            headers=admin_headers
        )
    await test_client.post("/api/tours", json={"title": "Черновик", "status": "inactive"}, headers=admin_headers)

    response = await test_client.get("/api/tours", params={"status": "active"})

    assert response.status_code == 200
    data = response.json()
    assert [t["title"] for t in data] == ["Январь", "Март"]
    assert sorted(p["price"] for p in data[1]["prices"]) == [300, 500]
    assert "programs" not in data[0]


@pytest.mark.asyncio
async def test_get_tour_endpoint(test_client, sample_tour_data, admin_headers):
    """Test reading one tour with its itinerary and inclusions."""
    created = (await test_client.post("/api/tours", json=sample_tour_data, headers=admin_headers)).json()

    response = await test_client.get(f"/api/tours/{created['id']}")

    assert response.status_code == 200
    data = response.json()
    assert [i["item"] for i in data["inclusions"]] == ["Авиабилеты", "Трансфер"]
    assert data["programs"][0]["programm"] == "Встреча в Горно-Алтайске"


@pytest.mark.asyncio
async def test_get_missing_tour(test_client):
    """Test that a missing tour is a 404 problem with an error message."""
    response = await test_client.get("/api/tours/12345")

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "Тур не найден"
    assert data["resource_type"] == "tour"


@pytest.mark.asyncio
async def test_update_tour_endpoint(test_client, sample_tour_data, admin_headers):
    """Test updating a tour replaces the supplied nested lists only."""
    created = (await test_client.post("/api/tours", json=sample_tour_data, headers=admin_headers)).json()

    response = await test_client.put(
        f"/api/tours/{created['id']}",
        json={"title": "Алтай зимой", "prices": [{"price": 70000}, {"description": "без цены"}]},
        headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Алтай зимой"
    assert [p["price"] for p in data["prices"]] == [70000]
    assert len(data["programs"]) == 2


@pytest.mark.asyncio
async def test_delete_tour_endpoint(test_client, sample_tour_data, admin_headers):
    """Test deleting a tour."""
    created = (await test_client.post("/api/tours", json=sample_tour_data, headers=admin_headers)).json()

    response = await test_client.delete(f"/api/tours/{created['id']}", headers=admin_headers)
    assert response.status_code == 204

    response = await test_client.get(f"/api/tours/{created['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_application(test_client, test_session, sample_application_data):
    """Test accepting a booking lead."""
    response = await test_client.post("/api/applications", json=sample_application_data)

    assert response.status_code == 201
    data = response.json()
    assert data["id"] > 0
    assert data["message"]

    stored = (await test_session.execute(select(Application))).scalars().all()
    assert len(stored) == 1
    assert stored[0].status == "new"
    assert stored[0].tour_id is None


@pytest.mark.asyncio
async def test_create_application_with_tour(test_client, test_session, sample_tour_data, admin_headers):
    """Test that a lead keeps a known tour and drops an unknown one."""
    tour = (await test_client.post("/api/tours", json=sample_tour_data, headers=admin_headers)).json()

    known = await test_client.post(
        "/api/applications",
        json={"name": "Анна", "phone": "+79000000000", "tour_id": str(tour["id"])}
    )
    unknown = await test_client.post(
        "/api/applications",
        json={"name": "Олег", "phone": "+79000000001", "tour_id": 9999}
    )

    assert known.status_code == 201
    assert unknown.status_code == 201

    stored = {a.name: a.tour_id for a in (await test_session.execute(select(Application))).scalars()}
    assert stored == {"Анна": tour["id"], "Олег": None}


@pytest.mark.asyncio
async def test_create_application_requires_name_and_phone(test_client):
    """Test that a lead without a phone is rejected with a readable error."""
    response = await test_client.post("/api/applications", json={"name": "Анна", "phone": "   "})

    assert response.status_code == 422
    assert "Имя и телефон обязательны" in response.json()["error"]


@pytest.mark.asyncio
async def test_create_application_idempotency(test_client, test_session, sample_application_data):
    """Test that a repeated Idempotency-Key replays the first response."""
    headers = {"Idempotency-Key": "form-submit-1"}

    first = await test_client.post("/api/applications", json=sample_application_data, headers=headers)
    second = await test_client.post("/api/applications", json=sample_application_data, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json() == first.json()

    stored = (await test_session.execute(select(Application))).scalars().all()
    assert len(stored) == 1


@pytest.mark.asyncio
async def test_idempotency_key_too_long(test_client, sample_application_data):
    """Test that an oversized Idempotency-Key is rejected."""
    response = await test_client.post(
        "/api/applications",
        json=sample_application_data,
        headers={"Idempotency-Key": "k" * 300}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_subscribe(test_client):
    """Test subscribing to new tours."""
    response = await test_client.post("/api/subscriptions", json={"email": "  Anna@Example.com "})

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "anna@example.com"
    assert data["message"]


@pytest.mark.asyncio
async def test_subscribe_twice_conflicts(test_client):
    """Test that an already subscribed email is a conflict."""
    await test_client.post("/api/subscriptions", json={"email": "anna@example.com"})

    response = await test_client.post("/api/subscriptions", json={"email": "ANNA@example.com"})

    assert response.status_code == 409
    assert response.json()["error"] == "Этот email уже подписан на новые туры"


@pytest.mark.asyncio
async def test_subscribe_invalid_email(test_client):
    """Test that a malformed email is rejected."""
    response = await test_client.post("/api/subscriptions", json={"email": "not-an-email"})

    assert response.status_code == 422
    assert "email" in response.json()["error"]
