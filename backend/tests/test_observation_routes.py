"""
M-Hike API: Observation Endpoint Tests
========================================

What:  Observation CRUD with the photo lifecycle:
       - failed creates leave no photo behind
       - replacing photo A with B removes A and keeps B
       - deletePhoto=true clears the reference and removes the file
       - deleting the observation removes its photo
"""

import pytest

from conftest import name_of, stored_files


@pytest.fixture
def hike_for(client, hike_payload):
    async def _hike_for(headers) -> int:
        response = await client.post("/api/hikes", json=hike_payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["hikeId"]

    return _hike_for


def photo(png_bytes, name="photo.png"):
    return {"photo": (name, png_bytes, "image/png")}


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_with_photo(self, client, auth_headers, hike_for, upload_dir, png_bytes):
        """An observation with a photo stores exactly that file."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)

        response = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data={
                "observation": "Heron by the tarn",
                "observationType": "Wildlife",
                "observationTime": "2024-05-18T10:15:00",
                "latitude": "54.45",
                "longitude": "-3.21",
                "comments": "Standing very still",
            },
            files=photo(png_bytes, "heron.png"),
            headers=headers,
        )

        assert response.status_code == 201
        observation = response.json()["observation"]
        assert observation["observation"] == "Heron by the tarn"
        assert observation["observationType"] == "Wildlife"
        assert observation["latitude"] == 54.45
        assert observation["username"] == "alice"
        assert observation["photoUrl"].startswith("/uploads/heron-")
        assert stored_files(upload_dir) == [name_of(observation["photoUrl"])]

    @pytest.mark.asyncio
    async def test_observation_time_defaults_to_now(self, client, auth_headers, hike_for):
        """The observation time defaults to the current time."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)

        response = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data={"observation": "Cloud inversion"},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["observation"]["observationTime"]
        assert response.json()["observation"]["photoUrl"] is None

    @pytest.mark.asyncio
    async def test_missing_hike_removes_photo(self, client, auth_headers, upload_dir, png_bytes):
        """A create against an unknown hike removes its photo."""
        headers = await auth_headers("alice")

        response = await client.post(
            "/api/hikes/999/observations",
            data={"observation": "Lost"},
            files=photo(png_bytes),
            headers=headers,
        )

        assert response.status_code == 404
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_out_of_range_hike_id_is_400_and_keeps_no_photo(
        self, client, auth_headers, upload_dir, png_bytes
    ):
        """An id beyond the integer range is a validation error and stores no photo."""
        headers = await auth_headers("alice")

        response = await client.post(
            "/api/hikes/99999999999999999999/observations",
            data={"observation": "Nowhere"},
            files=photo(png_bytes),
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields, bad_field",
        [
            ({"observation": "ok", "latitude": "91"}, "latitude"),
            ({"observation": "ok", "longitude": "-181"}, "longitude"),
            ({"observation": "ok", "observationType": "Ghost"}, "observationType"),
            ({"observation": "ok", "latitude": "north"}, "latitude"),
            ({"comments": "no observation text"}, "observation"),
        ],
    )
    async def test_invalid_fields_remove_photo(
        self, client, auth_headers, hike_for, upload_dir, png_bytes, fields, bad_field
    ):
        """Each invalid field is reported and the photo is removed."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)

        response = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data=fields,
            files=photo(png_bytes),
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == bad_field
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_non_image_photo_rejected(self, client, auth_headers, hike_for, upload_dir):
        """A non-image photo is refused before anything is stored."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)

        response = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data={"observation": "Notes"},
            files={"photo": ("notes.txt", b"hello", "text/plain")},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "upload_rejected"
        assert stored_files(upload_dir) == []


class TestRead:

    @pytest.mark.asyncio
    async def test_list_for_hike_and_mine(self, client, auth_headers, hike_for):
        """Hike listings are newest first and my listing carries the hike name."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        hike_id = await hike_for(alice)

        for headers, text, when in (
            (alice, "Early", "2024-05-18T08:00:00"),
            (bob, "Late", "2024-05-18T17:00:00"),
        ):
            await client.post(
                f"/api/hikes/{hike_id}/observations",
                data={"observation": text, "observationTime": when},
                headers=headers,
            )

        listed = (await client.get(f"/api/hikes/{hike_id}/observations", headers=alice)).json()
        assert [o["observation"] for o in listed["observations"]] == ["Late", "Early"]

        mine = (await client.get("/api/hikes/observations/mine", headers=bob)).json()
        assert mine["count"] == 1
        assert mine["observations"][0]["hikeName"] == "Snowdon Ranger Path"
        assert mine["observations"][0]["hikeLocation"] == "Snowdonia"

    @pytest.mark.asyncio
    async def test_get_missing_observation_is_404(self, client, auth_headers):
        """An unknown observation id is a 404."""
        headers = await auth_headers("alice")
        response = await client.get("/api/hikes/observations/999", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["get", "put", "delete"])
    async def test_observation_id_beyond_integer_range_is_400(self, client, auth_headers, method):
        """Observation ids beyond the integer range are validation errors."""
        headers = await auth_headers("alice")
        response = await client.request(
            method, "/api/hikes/observations/99999999999999999999", headers=headers
        )

        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "observation_id"


class TestUpdatePhoto:

    async def _create(self, client, headers, hike_id, png_bytes, name="a.png"):
        response = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data={"observation": "Foxgloves"},
            files=photo(png_bytes, name),
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()["observation"]

    @pytest.mark.asyncio
    async def test_replace_photo_a_with_b(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """Replacing photo A with B leaves only B on disk and in the row."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)
        created = await self._create(client, headers, hike_id, png_bytes, "a.png")

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}",
            files=photo(png_bytes, "b.png"),
            headers=headers,
        )

        assert response.status_code == 200
        updated = response.json()["observation"]
        assert updated["photoUrl"].startswith("/uploads/b-")
        assert stored_files(upload_dir) == [name_of(updated["photoUrl"])]

        fetched = await client.get(
            f"/api/hikes/observations/{created['observationId']}", headers=headers
        )
        assert fetched.json()["photoUrl"] == updated["photoUrl"]

    @pytest.mark.asyncio
    async def test_delete_photo_flag_clears_reference(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """deletePhoto=true clears the reference and removes the file."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)
        created = await self._create(client, headers, hike_id, png_bytes)

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}",
            data={"deletePhoto": "true"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["observation"]["photoUrl"] is None
        assert stored_files(upload_dir) == []

    @pytest.mark.asyncio
    async def test_delete_photo_with_new_photo_is_rejected(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """deletePhoto with a new photo is refused and the old photo is kept."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)
        created = await self._create(client, headers, hike_id, png_bytes, "a.png")

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}",
            data={"deletePhoto": "true"},
            files=photo(png_bytes, "b.png"),
            headers=headers,
        )

        assert response.status_code == 400
        assert stored_files(upload_dir) == [name_of(created["photoUrl"])]

    @pytest.mark.asyncio
    async def test_text_update_keeps_photo(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """A text-only update keeps the existing photo."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)
        created = await self._create(client, headers, hike_id, png_bytes)

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}",
            data={"comments": "Seen again on the descent", "observationType": "Vegetation"},
            headers=headers,
        )

        assert response.status_code == 200
        updated = response.json()["observation"]
        assert updated["comments"] == "Seen again on the descent"
        assert updated["photoUrl"] == created["photoUrl"]
        assert stored_files(upload_dir) == [name_of(created["photoUrl"])]

    @pytest.mark.asyncio
    async def test_non_creator_update_removes_uploaded_photo(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """A forbidden update removes the photo it uploaded."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        hike_id = await hike_for(alice)
        created = await self._create(client, alice, hike_id, png_bytes, "a.png")

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}",
            files=photo(png_bytes, "intruder.png"),
            headers=bob,
        )

        assert response.status_code == 403
        assert stored_files(upload_dir) == [name_of(created["photoUrl"])]

    @pytest.mark.asyncio
    async def test_empty_update_is_400(self, client, auth_headers, hike_for, png_bytes):
        """An update with no fields is rejected."""
        headers = await auth_headers("alice")
        hike_id = await hike_for(headers)
        created = await self._create(client, headers, hike_id, png_bytes)

        response = await client.put(
            f"/api/hikes/observations/{created['observationId']}", data={}, headers=headers
        )
        assert response.status_code == 400


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_photo(
        self, client, auth_headers, hike_for, upload_dir, png_bytes
    ):
        """Only the creator can delete, and deletion removes the photo."""
        alice = await auth_headers("alice")
        bob = await auth_headers("bob")
        hike_id = await hike_for(alice)
        created = await client.post(
            f"/api/hikes/{hike_id}/observations",
            data={"observation": "Buzzard"},
            files=photo(png_bytes),
            headers=alice,
        )
        observation_id = created.json()["observationId"]

        forbidden = await client.delete(f"/api/hikes/observations/{observation_id}", headers=bob)
        assert forbidden.status_code == 403
        assert len(stored_files(upload_dir)) == 1

        response = await client.delete(f"/api/hikes/observations/{observation_id}", headers=alice)
        assert response.status_code == 200
        assert stored_files(upload_dir) == []

        missing = await client.get(f"/api/hikes/observations/{observation_id}", headers=alice)
        assert missing.status_code == 404
