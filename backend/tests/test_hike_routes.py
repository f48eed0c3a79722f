"""
M-Hike API: Hike Endpoint Tests
=================================

What:  CRUD, search, ownership and cascade behaviour of /api/hikes.
"""

import pytest

from conftest import stored_files


async def create_hike(client, headers, payload, **overrides):
    response = await client.post("/api/hikes", json={**payload, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["hike"]


class TestCreateAndRead:

    @pytest.mark.asyncio
    async def test_create_returns_hike_with_owner(self, client, auth_headers, hike_payload):
        """A created hike comes back with its owner's details."""
        headers = await auth_headers("alice")
        response = await client.post("/api/hikes", json=hike_payload, headers=headers)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Hike created successfully"
        hike = body["hike"]
        assert body["hikeId"] == hike["hikeId"]
        assert hike["name"] == "Snowdon Ranger Path"
        assert hike["hikeDate"] == "2024-05-18"
        assert hike["parkingAvailable"] is True
        assert hike["username"] == "alice"
        assert hike["userAvatar"] == "default_avatar.png"

    @pytest.mark.asyncio
    async def test_create_requires_auth(self, client, hike_payload):
        """Creating a hike needs a token."""
        response = await client.post("/api/hikes", json=hike_payload)
        assert response.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "override, field",
        [
            ({"name": "   "}, "name"),
            ({"length": 0}, "length"),
            ({"difficultyLevel": "Extreme"}, "difficultyLevel"),
            ({"hikeDate": "not-a-date"}, "hikeDate"),
        ],
    )
    async def test_invalid_hike_is_400(self, client, auth_headers, hike_payload, override, field):
        """Each invalid field is reported by name."""
        headers = await auth_headers("alice")
        response = await client.post("/api/hikes", json={**hike_payload, **override}, headers=headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["field"] == field

    @pytest.mark.asyncio
    async def test_get_missing_hike_is_404(self, client, auth_headers):
        """An unknown hike id is a 404."""
        headers = await auth_headers("alice")
        response = await client.get("/api/hikes/999", headers=headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Hike not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["get", "delete"])
    async def test_hike_id_beyond_integer_range_is_400(self, client, auth_headers, method):
        """An id no database row can hold is a validation error, not a server error."""
        headers = await auth_headers("alice")
        response = await client.request(method, "/api/hikes/99999999999999999999", headers=headers)

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "hike_id"

    @pytest.mark.asyncio
    async def test_largest_hike_id_is_404(self, client, auth_headers):
        """The largest 64-bit id is valid input and simply matches nothing."""
        headers = await auth_headers("alice")
        response = await client.get(f"/api/hikes/{2**63 - 1}", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_mine_excludes_other_users(self, client, auth_headers, hike_payload):
        """Listing my hikes never includes another user's."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        await create_hike(client, alice, hike_payload, name="Alice One")
        await create_hike(client, alice, hike_payload, name="Alice Two")
        await create_hike(client, bob, hike_payload, name="Bob One")

        response = await client.get("/api/hikes", headers=alice)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert {h["name"] for h in body["hikes"]} == {"Alice One", "Alice Two"}


class TestOthersAndSearch:

    @pytest.mark.asyncio
    async def test_list_others_with_filters_and_pagination(
        self, client, auth_headers, hike_payload
    ):
        """Other users' hikes filter by difficulty and location and paginate."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        await create_hike(client, alice, hike_payload, name="Mine")
        await create_hike(client, bob, hike_payload, name="Easy Loop", difficultyLevel="Easy",
                          location="Lake District")
        await create_hike(client, bob, hike_payload, name="Ridge", difficultyLevel="Expert",
                          location="Cairngorms")

        everyone = (await client.get("/api/hikes/all", headers=alice)).json()
        assert {h["name"] for h in everyone["hikes"]} == {"Easy Loop", "Ridge"}

        easy = (await client.get("/api/hikes/all?difficulty=Easy", headers=alice)).json()
        assert [h["name"] for h in easy["hikes"]] == ["Easy Loop"]

        lake = (await client.get("/api/hikes/all?location=lake", headers=alice)).json()
        assert [h["name"] for h in lake["hikes"]] == ["Easy Loop"]

        page = (await client.get("/api/hikes/all?limit=1&offset=1", headers=alice)).json()
        assert page["count"] == 1

        huge = await client.get("/api/hikes/all?offset=99999999999999999999", headers=alice)
        assert huge.status_code == 400

    @pytest.mark.asyncio
    async def test_search_by_name_requires_term(self, client, auth_headers):
        """Name search without a term is rejected."""
        headers = await auth_headers("alice")
        assert (await client.get("/api/hikes/search/name", headers=headers)).status_code == 400
        assert (
            await client.get("/api/hikes/search/all/name?name=%20", headers=headers)
        ).status_code == 400

    @pytest.mark.asyncio
    async def test_search_mine_and_others_by_name(self, client, auth_headers, hike_payload):
        """Name search is case-insensitive and split by owner."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        await create_hike(client, alice, hike_payload, name="Ben Nevis")
        await create_hike(client, alice, hike_payload, name="Scafell Pike")
        await create_hike(client, bob, hike_payload, name="Ben Lomond")

        mine = (await client.get("/api/hikes/search/name?name=ben", headers=alice)).json()
        assert [h["name"] for h in mine["hikes"]] == ["Ben Nevis"]

        others = (await client.get("/api/hikes/search/all/name?name=ben", headers=alice)).json()
        assert [h["name"] for h in others["hikes"]] == ["Ben Lomond"]

    @pytest.mark.asyncio
    async def test_search_term_wildcards_are_literal(self, client, auth_headers, hike_payload):
        """A % in the search term matches only a literal percent sign."""
        headers = await auth_headers("alice")
        await create_hike(client, headers, hike_payload, name="Loop")

        response = await client.get("/api/hikes/search/name?name=%25", headers=headers)
        assert response.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_advanced_search(self, client, auth_headers, hike_payload):
        """Advanced search filters by length, date and location."""
        headers = await auth_headers("alice")
        await create_hike(client, headers, hike_payload, name="Short", length=5, hikeDate="2024-06-01")
        await create_hike(client, headers, hike_payload, name="Long", length=21, hikeDate="2024-06-02")

        by_length = await client.get("/api/hikes/search/advanced?length=21", headers=headers)
        assert [h["name"] for h in by_length.json()["hikes"]] == ["Long"]

        by_date = await client.get("/api/hikes/search/advanced?date=2024-06-01", headers=headers)
        assert [h["name"] for h in by_date.json()["hikes"]] == ["Short"]

        by_location = await client.get(
            "/api/hikes/search/advanced?location=snowdon", headers=headers
        )
        assert by_location.json()["count"] == 2


class TestUpdate:

    @pytest.mark.asyncio
    async def test_owner_updates_selected_fields(self, client, auth_headers, hike_payload):
        """Updates change only the given whitelisted fields."""
        headers = await auth_headers("alice")
        hike = await create_hike(client, headers, hike_payload)

        response = await client.put(
            f"/api/hikes/{hike['hikeId']}",
            json={"name": "Renamed", "weatherConditions": "Drizzle", "userId": 42},
            headers=headers,
        )

        assert response.status_code == 200
        updated = response.json()["hike"]
        assert updated["name"] == "Renamed"
        assert updated["weatherConditions"] == "Drizzle"
        assert updated["location"] == hike_payload["location"]
        assert updated["userId"] == hike["userId"]

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, client, auth_headers, hike_payload):
        """Only the owner may update a hike."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        hike = await create_hike(client, alice, hike_payload)

        response = await client.put(
            f"/api/hikes/{hike['hikeId']}", json={"name": "Mine now"}, headers=bob
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_empty_update_is_400(self, client, auth_headers, hike_payload):
        """An update with no fields is rejected."""
        headers = await auth_headers("alice")
        hike = await create_hike(client, headers, hike_payload)

        response = await client.put(f"/api/hikes/{hike['hikeId']}", json={}, headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "No fields to update"

    @pytest.mark.asyncio
    async def test_required_field_cannot_be_cleared(self, client, auth_headers, hike_payload):
        """A required field cannot be set to null."""
        headers = await auth_headers("alice")
        hike = await create_hike(client, headers, hike_payload)

        response = await client.put(
            f"/api/hikes/{hike['hikeId']}", json={"location": None}, headers=headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_missing_hike_is_404(self, client, auth_headers):
        """Updating an unknown hike is a 404."""
        headers = await auth_headers("alice")
        response = await client.put("/api/hikes/999", json={"name": "x"}, headers=headers)
        assert response.status_code == 404


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_cascades_and_reaps_photos(
        self, client, auth_headers, hike_payload, upload_dir, png_bytes
    ):
        """Deleting a hike removes its observations and their photo files."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        hike = await create_hike(client, alice, hike_payload)

        for headers in (alice, bob):
            created = await client.post(
                f"/api/hikes/{hike['hikeId']}/observations",
                data={"observation": "Red kite overhead"},
                files={"photo": ("kite.png", png_bytes, "image/png")},
                headers=headers,
            )
            assert created.status_code == 201
        assert len(stored_files(upload_dir)) == 2

        forbidden = await client.delete(f"/api/hikes/{hike['hikeId']}", headers=bob)
        assert forbidden.status_code == 403

        response = await client.delete(f"/api/hikes/{hike['hikeId']}", headers=alice)
        assert response.status_code == 200
        assert stored_files(upload_dir) == []

        gone = await client.get(f"/api/hikes/{hike['hikeId']}/observations", headers=alice)
        assert gone.status_code == 404
        mine = await client.get("/api/hikes/observations/mine", headers=bob)
        assert mine.json()["count"] == 0
