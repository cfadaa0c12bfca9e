"""Integration tests: notification dispatch and endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Notification, UserSettings
from eduhub.notifications import router as notification_router
from eduhub.notifications.service import dispatch_notifications
from tests.conftest import SERVICE_SECRET, bearer, secret_header


async def _count(db: AsyncSession, **filters) -> int:
    query = select(func.count()).select_from(Notification)
    for name, value in filters.items():
        query = query.where(getattr(Notification, name) == value)
    return (await db.execute(query)).scalar_one()


async def _seed(db: AsyncSession, user_id: str, n: int) -> list[str]:
    base = datetime.now(timezone.utc)
    rows = [
        Notification(
            user_id=user_id,
            type="system",
            title=f"Notice {i}",
            message="Body",
            read=False,
            created_at=base + timedelta(seconds=i),
        )
        for i in range(n)
    ]
    db.add_all(rows)
    await db.commit()
    return [row.id for row in rows]


class TestDispatch:
    """Integration: the dispatcher against a real database."""

    @pytest.mark.asyncio
    async def test_opted_out_user_gets_nothing(self, db_session: AsyncSession):
        """A category opt-out blocks the notification."""
        db_session.add(UserSettings(user_id="u1", course_updates=False))
        await db_session.commit()

        created = await dispatch_notifications(db_session, ["u1"], "course_published", "New course", "Go")

        assert created == []
        assert await _count(db_session) == 0

    @pytest.mark.asyncio
    async def test_user_without_settings_gets_one(self, db_session: AsyncSession):
        """No settings row means everything is allowed."""
        created = await dispatch_notifications(db_session, ["u1"], "course_published", "New course", "Go")
        await db_session.commit()
        assert len(created) == 1
        assert await _count(db_session, user_id="u1") == 1

    @pytest.mark.asyncio
    async def test_mixed_recipients(self, db_session: AsyncSession):
        """Only the allowed recipients get a row."""
        db_session.add_all([
            UserSettings(user_id="u2", email_notifications=False),
            UserSettings(user_id="u3", forum_notifications=True),
        ])
        await db_session.commit()

        created = await dispatch_notifications(db_session, ["u1", "u2", "u3", "u1"], "forum_reply", "Reply", "Hi")

        assert sorted(n.user_id for n in created) == ["u1", "u3"]

    @pytest.mark.asyncio
    async def test_single_id_accepted(self, db_session: AsyncSession):
        """A bare user id is treated as one recipient."""
        created = await dispatch_notifications(db_session, "u1", "system", "Hello", "World")
        assert [n.user_id for n in created] == ["u1"]

    @pytest.mark.asyncio
    async def test_unknown_type(self, db_session: AsyncSession):
        """Unknown notification types are rejected."""
        with pytest.raises(ValueError, match="Invalid notification type"):
            await dispatch_notifications(db_session, ["u1"], "birthday", "x", "y")


class TestCreateEndpoint:
    """Integration: POST /notifications."""

    @pytest.mark.asyncio
    async def test_service_fan_out(self, client: AsyncClient, db_session: AsyncSession):
        """The service secret may notify many users at once."""
        db_session.add(UserSettings(user_id="u2", course_updates=False))
        await db_session.commit()

        response = await client.post(
            "/notifications",
            json={
                "userIds": ["u1", "u2", "u3"],
                "type": "course_published",
                "title": "New course",
                "message": "Algebra II is live",
                "link": "/courses/c1",
                "relatedId": "c1",
                "relatedType": "course",
            },
            headers=secret_header(SERVICE_SECRET),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert {n["userId"] for n in data["notifications"]} == {"u1", "u3"}
        assert data["notifications"][0]["relatedType"] == "course"
        assert data["notifications"][0]["read"] is False

    @pytest.mark.asyncio
    async def test_all_filtered_returns_zero(self, client: AsyncClient, db_session: AsyncSession):
        """Everyone opted out: count is zero, nothing written."""
        db_session.add(UserSettings(user_id="u1", email_notifications=False))
        await db_session.commit()

        response = await client.post(
            "/notifications",
            json={"userId": "u1", "type": "system", "title": "t", "message": "m"},
            headers=bearer("u1"),
        )
        assert response.status_code == 200
        assert response.json() == {"notifications": [], "count": 0}

    @pytest.mark.asyncio
    async def test_user_cannot_notify_others(self, client: AsyncClient, db_session: AsyncSession):
        """A user token only reaches its own user."""
        response = await client.post(
            "/notifications",
            json={"userIds": ["u1", "u2"], "type": "system", "title": "t", "message": "m"},
            headers=bearer("u1"),
        )
        assert response.status_code == 403
        assert await _count(db_session) == 0

    @pytest.mark.asyncio
    async def test_requires_recipient(self, client: AsyncClient):
        """Missing userId and userIds is a 400."""
        response = await client.post(
            "/notifications",
            json={"type": "system", "title": "t", "message": "m"},
            headers=secret_header(SERVICE_SECRET),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rejects_unknown_type(self, client: AsyncClient):
        """Unknown type in the body is a 400."""
        response = await client.post(
            "/notifications",
            json={"userId": "u1", "type": "birthday", "title": "t", "message": "m"},
            headers=bearer("u1"),
        )
        assert response.status_code == 400


class TestReadEndpoints:
    """Integration: listing, reading and deleting notifications."""

    @pytest.mark.asyncio
    async def test_list_newest_first_with_unread_count(self, client: AsyncClient, db_session: AsyncSession):
        """List is newest first and carries the unread count."""
        await _seed(db_session, "u1", 3)
        await _seed(db_session, "u2", 1)

        response = await client.get("/notifications", headers=bearer("u1"))

        assert response.status_code == 200
        data = response.json()
        assert [n["title"] for n in data["notifications"]] == ["Notice 2", "Notice 1", "Notice 0"]
        assert data["unreadCount"] == 3

    @pytest.mark.asyncio
    async def test_limit_and_unread_only(self, client: AsyncClient, db_session: AsyncSession):
        """limit and unreadOnly narrow the listing."""
        ids = await _seed(db_session, "u1", 4)
        await client.patch(f"/notifications/{ids[3]}/read", headers=bearer("u1"))

        response = await client.get("/notifications?limit=2&unreadOnly=true", headers=bearer("u1"))

        titles = [n["title"] for n in response.json()["notifications"]]
        assert titles == ["Notice 2", "Notice 1"]
        assert response.json()["unreadCount"] == 3

    @pytest.mark.asyncio
    async def test_limit_out_of_range(self, client: AsyncClient):
        """limit outside 1..100 is a 400."""
        response = await client.get("/notifications?limit=500", headers=bearer("u1"))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_mark_read(self, client: AsyncClient, db_session: AsyncSession):
        """Mark a single notification as read."""
        [notification_id] = await _seed(db_session, "u1", 1)

        response = await client.patch(f"/notifications/{notification_id}/read", headers=bearer("u1"))

        assert response.json() == {"success": True}
        unread = await client.get("/notifications/unread-count", headers=bearer("u1"))
        assert unread.json() == {"unreadCount": 0}
        listed = await client.get("/notifications", headers=bearer("u1"))
        assert listed.json()["notifications"][0]["readAt"] is not None

    @pytest.mark.asyncio
    async def test_mark_read_of_other_user_is_404(self, client: AsyncClient, db_session: AsyncSession):
        """Another user's notification is not found."""
        [notification_id] = await _seed(db_session, "u2", 1)
        response = await client.patch(f"/notifications/{notification_id}/read", headers=bearer("u1"))
        assert response.status_code == 404
        assert await _count(db_session, read=False) == 1

    @pytest.mark.asyncio
    async def test_mark_all_read(self, client: AsyncClient, db_session: AsyncSession):
        """Mark all of the caller's notifications as read."""
        await _seed(db_session, "u1", 3)
        await _seed(db_session, "u2", 2)

        response = await client.patch("/notifications/read-all", headers=bearer("u1"))

        assert response.json() == {"success": True}
        assert await _count(db_session, user_id="u1", read=False) == 0
        assert await _count(db_session, user_id="u2", read=False) == 2

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, db_session: AsyncSession):
        """Delete a notification."""
        [notification_id] = await _seed(db_session, "u1", 1)

        response = await client.delete(f"/notifications/{notification_id}", headers=bearer("u1"))

        assert response.json() == {"success": True}
        assert await _count(db_session) == 0

    @pytest.mark.asyncio
    async def test_delete_other_users_is_404(self, client: AsyncClient, db_session: AsyncSession):
        """Deleting another user's notification is a 404."""
        [notification_id] = await _seed(db_session, "u2", 1)
        response = await client.delete(f"/notifications/{notification_id}", headers=bearer("u1"))
        assert response.status_code == 404
        assert await _count(db_session) == 1

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        """Read endpoints need a user token."""
        response = await client.get("/notifications")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_failed_commit_is_rolled_back(
        self, client: AsyncClient, db_session: AsyncSession, monkeypatch
    ):
        """A failed commit answers 500 and leaves the notifications unread."""
        await _seed(db_session, "u1", 2)
        committed = []
        real_commit_or_raise = notification_router.commit_or_raise

        async def tracking_commit(session):
            committed.append(session)
            await real_commit_or_raise(session)

        async def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(notification_router, "commit_or_raise", tracking_commit)
        monkeypatch.setattr(AsyncSession, "commit", failing_commit)

        response = await client.patch("/notifications/read-all", headers=bearer("u1"))

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to persist changes"}
        assert len(committed) == 1
        assert await _count(db_session, user_id="u1", read=False) == 2
