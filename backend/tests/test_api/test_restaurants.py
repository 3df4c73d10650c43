"""Tests for restaurant staff endpoints: booking lists and statistics."""

from httpx import AsyncClient

from conftest import OTHER_CUSTOMER_ID, booking_payload


async def _create(client: AsyncClient, headers: dict, restaurant_id, **overrides) -> dict:
    response = await client.post("/api/v1/bookings", json=booking_payload(restaurant_id, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestRestaurantBookings:
    async def test_lists_every_customer(
        self,
        client: AsyncClient,
        auth_headers: dict,
        other_auth_headers: dict,
        operator_headers: dict,
        restaurant,
    ) -> None:
        await _create(client, auth_headers, restaurant.id)
        await _create(client, other_auth_headers, restaurant.id, time="20:00")

        response = await client.get(f"/api/v1/restaurants/{restaurant.id}/bookings", headers=operator_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["items"][0]["owner_id"] == OTHER_CUSTOMER_ID

    async def test_status_filter(
        self, client: AsyncClient, auth_headers: dict, operator_headers: dict, restaurant
    ) -> None:
        created = await _create(client, auth_headers, restaurant.id)
        await _create(client, auth_headers, restaurant.id, time="20:00")
        await client.post(
            f"/api/v1/bookings/{created['id']}/transition", json={"status": "confirmed"}, headers=operator_headers
        )

        response = await client.get(
            f"/api/v1/restaurants/{restaurant.id}/bookings",
            params={"status": "confirmed"},
            headers=operator_headers,
        )
        assert [b["id"] for b in response.json()["items"]] == [created["id"]]


class TestRestaurantStats:
    async def test_stats(self, client: AsyncClient, auth_headers: dict, operator_headers: dict, restaurant) -> None:
        await _create(client, auth_headers, restaurant.id, party_size=3)
        cancelled = await _create(client, auth_headers, restaurant.id, time="20:00")
        await client.post(f"/api/v1/bookings/{cancelled['id']}/cancel", json={}, headers=auth_headers)

        response = await client.get(f"/api/v1/restaurants/{restaurant.id}/stats", headers=operator_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_bookings"] == 2
        assert data["total_covers"] == 3
        assert data["by_status"]["cancelled"] == 1
        assert data["peak_hours"] == {"19": 1}

    async def test_customer_forbidden(self, client: AsyncClient, auth_headers: dict, restaurant) -> None:
        response = await client.get(f"/api/v1/restaurants/{restaurant.id}/stats", headers=auth_headers)
        assert response.status_code == 403


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "TableBook"}
