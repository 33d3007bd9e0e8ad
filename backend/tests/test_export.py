"""
Export API tests
"""
import pytest
from httpx import AsyncClient

from app.services.data_store import SqlDataStore


async def register(client: AsyncClient, username: str) -> dict:
    response = await client.post("/api/auth/register", json={
        "username": username,
        "password": "testpass123",
    })
    assert response.status_code == 200
    return response.json()


async def create_export(client: AsyncClient, **body) -> dict:
    response = await client.post("/api/exports", json=body or None)
    assert response.status_code == 202
    return response.json()


class TestExportAPI:
    """Test export request endpoints"""

    @pytest.mark.asyncio
    async def test_create_export(self, auth_client: tuple[AsyncClient, dict]):
        """Test creating an export request"""
        client, user_data = auth_client

        data = await create_export(client)

        assert data["user_id"] == user_data["user_id"]
        assert data["status"] == "pending"
        assert data["format"] == "json"
        assert data["attempt_count"] == 0
        assert data["max_attempts"] == 3
        assert data["result_json"]["options"] == {
            "format": "json",
            "include_dm": False,
            "include_media": False,
        }

    @pytest.mark.asyncio
    async def test_create_activitypub_export(self, auth_client: tuple[AsyncClient, dict]):
        """Test camelCase options are accepted"""
        client, _ = auth_client

        data = await create_export(client, format="activitypub", includeDm=True, includeMedia=True)

        assert data["format"] == "activitypub"
        assert data["result_json"]["options"]["include_dm"] is True
        assert data["result_json"]["options"]["include_media"] is True

    @pytest.mark.asyncio
    async def test_unknown_format_becomes_json(self, auth_client: tuple[AsyncClient, dict]):
        client, _ = auth_client

        data = await create_export(client, format="xml")

        assert data["format"] == "json"

    @pytest.mark.asyncio
    async def test_disabled_format(self, auth_client: tuple[AsyncClient, dict], export_settings):
        """Test formats outside the configured list are rejected"""
        client, _ = auth_client
        export_settings.export_supported_formats = ["json"]

        response = await client.post("/api/exports", json={"format": "activitypub"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unauthenticated(self, client: AsyncClient):
        response = await client.post("/api/exports", json={})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_exports(self, auth_client: tuple[AsyncClient, dict]):
        """Test listing own export requests"""
        client, _ = auth_client
        first = await create_export(client)
        second = await create_export(client, format="activitypub")

        response = await client.get("/api/exports")

        assert response.status_code == 200
        assert {e["id"] for e in response.json()} == {first["id"], second["id"]}

    @pytest.mark.asyncio
    async def test_get_export(self, auth_client: tuple[AsyncClient, dict]):
        client, _ = auth_client
        created = await create_export(client)

        response = await client.get(f"/api/exports/{created['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_get_nonexistent_export(self, auth_client: tuple[AsyncClient, dict]):
        client, _ = auth_client

        response = await client.get("/api/exports/nonexistent-id")

        assert response.status_code == 404
        assert response.json()["detail"] == "export not found"

    @pytest.mark.asyncio
    async def test_get_other_users_export(self, auth_client: tuple[AsyncClient, dict]):
        """Test export requests are private to their owner"""
        client, _ = auth_client
        created = await create_export(client)
        other = await register(client, "otheruser")

        response = await client.get(
            f"/api/exports/{created['id']}",
            headers={"Authorization": f"Bearer {other['token']}"},
        )

        assert response.status_code == 403


class TestAdminRetry:
    """Test admin retry endpoint"""

    async def _failed_export(self, client: AsyncClient, test_db) -> str:
        created = await create_export(client)
        await SqlDataStore(test_db).update_export_request(created["id"], {
            "status": "failed",
            "attempt_count": 3,
            "max_attempts": 3,
            "error_message": "boom",
        })
        return created["id"]

    @pytest.mark.asyncio
    async def test_retry_requires_admin(self, auth_client: tuple[AsyncClient, dict], test_db):
        client, _ = auth_client
        export_id = await self._failed_export(client, test_db)

        response = await client.post(f"/api/admin/exports/{export_id}/retry", json={"resetAttempts": True})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_retry_exhausted_conflict(self, auth_client: tuple[AsyncClient, dict], admin_token: str, test_db):
        """Test retry without new attempts is refused"""
        client, _ = auth_client
        export_id = await self._failed_export(client, test_db)

        response = await client.post(
            f"/api/admin/exports/{export_id}/retry",
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_retry_reset_attempts(self, auth_client: tuple[AsyncClient, dict], admin_token: str, test_db):
        client, _ = auth_client
        export_id = await self._failed_export(client, test_db)

        response = await client.post(
            f"/api/admin/exports/{export_id}/retry",
            json={"resetAttempts": True},
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "id": export_id,
            "status": "pending",
            "attempt_count": 0,
            "max_attempts": 3,
            "reset_attempts": True,
        }
        detail = (await client.get(f"/api/exports/{export_id}")).json()
        assert detail["status"] == "pending"
        assert detail["error_message"] is None

    @pytest.mark.asyncio
    async def test_retry_raise_max_attempts(self, auth_client: tuple[AsyncClient, dict], admin_token: str, test_db):
        """Test max_attempts is clamped and the last error kept"""
        client, _ = auth_client
        export_id = await self._failed_export(client, test_db)

        response = await client.post(
            f"/api/admin/exports/{export_id}/retry",
            json={"max_attempts": 99},
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 200
        assert response.json()["attempt_count"] == 3
        assert response.json()["max_attempts"] == 10
        detail = (await client.get(f"/api/exports/{export_id}")).json()
        assert detail["error_message"] == "boom"

    @pytest.mark.asyncio
    async def test_retry_nonexistent(self, client: AsyncClient, admin_token: str):
        response = await client.post(
            "/api/admin/exports/missing/retry",
            headers={"Authorization": f"Bearer {admin_token}"},
        )

        assert response.status_code == 404


class TestProcessExports:
    """Test the cron-triggered queue run and artifact download"""

    @pytest.mark.asyncio
    async def test_requires_cron_secret(self, client: AsyncClient):
        response = await client.post("/internal/tasks/process-exports")
        assert response.status_code == 401

        response = await client.post("/internal/tasks/process-exports", headers={"Cron-Secret": "wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_empty_queue(self, client: AsyncClient, cron_headers: dict):
        response = await client.post("/internal/tasks/process-exports", headers=cron_headers)

        assert response.status_code == 200
        assert response.json() == {"supported": True, "processed": []}

    @pytest.mark.asyncio
    async def test_process_and_download(
        self,
        auth_client: tuple[AsyncClient, dict],
        admin_token: str,
        cron_headers: dict,
    ):
        """Test full flow: request, process, download"""
        client, _ = auth_client
        created = await create_export(client, format="activitypub", include_dm=True, include_media=True)

        response = await client.post("/internal/tasks/process-exports", headers=cron_headers)

        assert response.status_code == 200
        processed = response.json()["processed"]
        assert processed == [{"id": created["id"], "status": "completed", "attempt": 1, "max_attempts": 3}]

        detail = (await client.get(f"/api/exports/{created['id']}")).json()
        assert detail["status"] == "completed"
        assert detail["attempt_count"] == 1
        assert detail["download_url"] == f"/media/exports/testuser/{created['id']}/core.activitypub.json"
        summary = detail["result_json"]
        assert summary["artifacts"]["dm"]["status"] == "completed"
        assert summary["artifacts"]["media"]["status"] == "completed"
        assert summary["counts"]["dm_threads"] == 0

        download = await client.get(detail["download_url"])
        assert download.status_code == 200
        assert download.headers["cache-control"] == "private, max-age=0, no-store"
        assert download.headers["content-type"].startswith("application/json")
        body = download.json()
        assert body["actor"]["id"] == "https://example.com/ap/users/testuser"
        assert "password_hash" not in body["actor"]

        # others cannot download, admin can
        other = await register(client, "otheruser")
        response = await client.get(
            detail["download_url"], headers={"Authorization": f"Bearer {other['token']}"}
        )
        assert response.status_code == 403
        response = await client.get(
            detail["download_url"], headers={"Authorization": f"Bearer {admin_token}"}
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_json_export_hides_password(self, auth_client: tuple[AsyncClient, dict], cron_headers: dict):
        client, _ = auth_client
        created = await create_export(client)

        await client.post("/internal/tasks/process-exports", headers=cron_headers)

        detail = (await client.get(f"/api/exports/{created['id']}")).json()
        body = (await client.get(detail["download_url"])).json()
        assert body["profile"]["id"] == "testuser"
        assert "password_hash" not in body["profile"]

    @pytest.mark.asyncio
    async def test_storage_unavailable_then_backoff(
        self,
        auth_client: tuple[AsyncClient, dict],
        cron_headers: dict,
        export_settings,
    ):
        """Test failure is retried later, not immediately"""
        client, _ = auth_client
        export_settings.storage_path = ""
        created = await create_export(client)

        first = (await client.post("/internal/tasks/process-exports", headers=cron_headers)).json()
        second = (await client.post("/internal/tasks/process-exports", headers=cron_headers)).json()

        assert first["processed"][0]["status"] == "pending"
        assert first["processed"][0]["error"] == "media storage not configured for exports"
        assert second["processed"][0]["reason"] == "backoff"
        assert "retry_at" in second["processed"][0]

        detail = (await client.get(f"/api/exports/{created['id']}")).json()
        assert detail["status"] == "pending"
        assert detail["attempt_count"] == 1
        assert detail["error_message"] == "media storage not configured for exports"

    @pytest.mark.asyncio
    async def test_download_rejects_dot_segments(self, auth_client: tuple[AsyncClient, dict], cron_headers: dict):
        """Test a key climbing out of the caller's prefix cannot reach another user's artifact"""
        client, _ = auth_client
        created = await create_export(client)
        await client.post("/internal/tasks/process-exports", headers=cron_headers)
        other = await register(client, "mallory")
        headers = {"Authorization": f"Bearer {other['token']}"}

        for path in (
            f"/media/exports/mallory/%2E%2E/testuser/{created['id']}/core.json.json",
            f"/media/exports/mallory/../testuser/{created['id']}/core.json.json",
            f"/media/exports/mallory/./../testuser/{created['id']}/core.json.json",
            f"/media/exports/mallory//testuser/{created['id']}/core.json.json",
        ):
            response = await client.get(path, headers=headers)

            assert response.status_code in (403, 404)
            assert "profile" not in response.text

        # the owner still downloads the normal key
        owner = await client.get(f"/media/exports/testuser/{created['id']}/core.json.json")
        assert owner.status_code == 200

    @pytest.mark.asyncio
    async def test_download_missing_artifact(self, auth_client: tuple[AsyncClient, dict]):
        client, _ = auth_client

        response = await client.get("/media/exports/testuser/none/core.json.json")

        assert response.status_code == 404
