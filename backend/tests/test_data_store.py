"""
SQL data store tests
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import User, Post, Friendship, DmThread, DmMessage, MediaItem
from app.services.data_store import SqlDataStore


def export_row(request_id: str, **fields) -> dict:
    row = {
        "id": request_id,
        "user_id": "alice",
        "format": "json",
        "status": "pending",
        "attempt_count": 0,
        "max_attempts": 3,
        "requested_at": datetime.utcnow(),
    }
    row.update(fields)
    return row


class TestUserData:
    """Test user data queries"""

    @pytest.mark.asyncio
    async def test_get_user_hides_password(self, test_db: AsyncSession):
        test_db.add(User(id="alice", username="alice", display_name="Alice", password_hash="x"))
        await test_db.commit()

        user = await SqlDataStore(test_db).get_user("alice")

        assert user["display_name"] == "Alice"
        assert "password_hash" not in user
        assert await SqlDataStore(test_db).get_user("nobody") is None

    @pytest.mark.asyncio
    async def test_posts_visibility(self, test_db: AsyncSession):
        test_db.add_all([
            Post(id="p1", author_id="alice", text="public", broadcast_all=True),
            Post(id="p2", author_id="alice", text="friends", visible_to_friends=True),
            Post(id="p3", author_id="bob", text="other", broadcast_all=True),
        ])
        await test_db.commit()
        store = SqlDataStore(test_db)

        public = await store.list_posts_by_authors(["alice"])
        everything = await store.list_posts_by_authors(["alice"], True)

        assert [p["id"] for p in public] == ["p1"]
        assert {p["id"] for p in everything} == {"p1", "p2"}

    @pytest.mark.asyncio
    async def test_accepted_friends_only(self, test_db: AsyncSession):
        test_db.add_all([
            Friendship(id="f1", requester_id="alice", addressee_id="bob", status="accepted"),
            Friendship(id="f2", requester_id="alice", addressee_id="carol", status="pending"),
        ])
        await test_db.commit()

        friends = await SqlDataStore(test_db).list_friends("alice")

        assert [f["addressee_id"] for f in friends] == ["bob"]

    @pytest.mark.asyncio
    async def test_dm_and_media(self, test_db: AsyncSession):
        test_db.add_all([
            DmThread(id="t1", participants_json=["alice", "bob"]),
            DmMessage(id="m1", thread_id="t1", author_id="alice", content_html="hi"),
            DmMessage(id="m2", thread_id="t1", author_id="bob", content_html="hey"),
            MediaItem(key="k1", user_id="alice", url="/media/k1.png", content_type="image/png"),
        ])
        await test_db.commit()
        store = SqlDataStore(test_db)

        threads = await store.list_all_dm_threads()
        messages = await store.list_dm_messages("t1", 0)
        media = await store.list_media_by_user("alice")

        assert threads[0]["participants_json"] == ["alice", "bob"]
        assert {m["id"] for m in messages} == {"m1", "m2"}
        assert len(await store.list_dm_messages("t1", 1)) == 1
        assert media[0]["key"] == "k1"


class TestExportQueue:
    """Test export request persistence"""

    @pytest.mark.asyncio
    async def test_create_and_get(self, test_db: AsyncSession):
        store = SqlDataStore(test_db)

        created = await store.create_export_request(export_row("r1", result_json={"options": {"include_dm": True}}))
        fetched = await store.get_export_request("r1")

        assert created["status"] == "pending"
        assert fetched["result_json"] == {"options": {"include_dm": True}}
        assert await store.get_export_request("missing") is None

    @pytest.mark.asyncio
    async def test_list_pending(self, test_db: AsyncSession):
        """Test pending and stale processing requests are selected"""
        store = SqlDataStore(test_db, stale_after_seconds=900)
        now = datetime.utcnow()
        await store.create_export_request(export_row("pending", requested_at=now - timedelta(minutes=3)))
        await store.create_export_request(export_row(
            "stale", status="processing", processed_at=now - timedelta(hours=1),
            requested_at=now - timedelta(minutes=2),
        ))
        await store.create_export_request(export_row("running", status="processing", processed_at=now))
        await store.create_export_request(export_row("done", status="completed"))
        await store.create_export_request(export_row("failed", status="failed"))

        pending = await store.list_pending_export_requests(10)

        assert [r["id"] for r in pending] == ["pending", "stale"]
        assert len(await store.list_pending_export_requests(1)) == 1

    @pytest.mark.asyncio
    async def test_update(self, test_db: AsyncSession):
        store = SqlDataStore(test_db)
        await store.create_export_request(export_row("r1"))

        await store.update_export_request("r1", {"status": "failed", "error_message": "boom"})

        row = await store.get_export_request("r1")
        assert row["status"] == "failed"
        assert row["error_message"] == "boom"

    @pytest.mark.asyncio
    async def test_claim_once(self, test_db: AsyncSession):
        """Test a second claim with stale expectations is rejected"""
        store = SqlDataStore(test_db)
        await store.create_export_request(export_row("r1"))
        expected = {"status": "pending", "attempt_count": 0}
        patch = {"status": "processing", "attempt_count": 1, "processed_at": datetime.utcnow()}

        assert await store.claim_export_request("r1", expected, patch) is True
        assert await store.claim_export_request("r1", expected, patch) is False

        row = await store.get_export_request("r1")
        assert row["status"] == "processing"
        assert row["attempt_count"] == 1

    @pytest.mark.asyncio
    async def test_list_by_user(self, test_db: AsyncSession):
        store = SqlDataStore(test_db)
        now = datetime.utcnow()
        await store.create_export_request(export_row("old", requested_at=now - timedelta(days=1)))
        await store.create_export_request(export_row("new", requested_at=now))
        await store.create_export_request(export_row("other", user_id="bob"))

        rows = await store.list_export_requests_by_user("alice")

        assert [r["id"] for r in rows] == ["new", "old"]
