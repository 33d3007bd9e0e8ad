"""
数据访问层：导出流水线所需的窄接口（SQLAlchemy 实现）

所有查询返回普通 dict，构建器不依赖 ORM 对象。
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import (
    User,
    Post,
    Friendship,
    Reaction,
    Bookmark,
    DmThread,
    DmMessage,
    MediaItem,
    ExportRequest,
)

# 不随导出泄露的列
PRIVATE_COLUMNS = {"password_hash"}


def row_to_dict(row) -> Dict[str, Any]:
    return {
        c.name: getattr(row, c.name)
        for c in row.__table__.columns
        if c.name not in PRIVATE_COLUMNS
    }


class SqlDataStore:
    """基于 AsyncSession 的数据存储"""

    def __init__(self, db: AsyncSession, stale_after_seconds: Optional[int] = None):
        self.db = db
        self.stale_after_seconds = (
            settings.export_stale_after_seconds if stale_after_seconds is None else stale_after_seconds
        )

    async def _all(self, stmt) -> List[Dict[str, Any]]:
        # 批量 update 之后会话内的对象可能过期，强制刷新
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return [row_to_dict(r) for r in result.scalars().all()]

    # ===== 用户数据 =====

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        user = await self.db.get(User, user_id)
        return row_to_dict(user) if user else None

    async def list_posts_by_authors(self, author_ids: Iterable[str], include_all: bool = False):
        """include_all=False 时仅返回公开帖子"""
        stmt = select(Post).where(Post.author_id.in_(list(author_ids)))
        if not include_all:
            stmt = stmt.where(Post.broadcast_all.is_(True))
        return await self._all(stmt.order_by(Post.created_at.desc()))

    async def list_friends(self, user_id: str):
        stmt = (
            select(Friendship)
            .where(Friendship.requester_id == user_id, Friendship.status == "accepted")
            .order_by(Friendship.created_at)
        )
        return await self._all(stmt)

    async def list_reactions_by_user(self, user_id: str):
        return await self._all(
            select(Reaction).where(Reaction.user_id == user_id).order_by(Reaction.created_at)
        )

    async def list_bookmarks_by_user(self, user_id: str):
        return await self._all(
            select(Bookmark).where(Bookmark.user_id == user_id).order_by(Bookmark.created_at)
        )

    async def list_all_dm_threads(self):
        return await self._all(select(DmThread).order_by(DmThread.created_at))

    async def list_dm_messages(self, thread_id: str, cursor: int = 0, limit: Optional[int] = None):
        """cursor 为偏移量；limit 为空时返回剩余全部"""
        stmt = select(DmMessage).where(DmMessage.thread_id == thread_id).offset(cursor or 0)
        if limit:
            stmt = stmt.limit(limit)
        return await self._all(stmt)

    async def list_media_by_user(self, user_id: str):
        return await self._all(
            select(MediaItem).where(MediaItem.user_id == user_id).order_by(MediaItem.updated_at)
        )

    # ===== 导出请求 =====

    async def create_export_request(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = ExportRequest(**row)
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return row_to_dict(record)

    async def list_export_requests_by_user(self, user_id: str):
        return await self._all(
            select(ExportRequest)
            .where(ExportRequest.user_id == user_id)
            .order_by(ExportRequest.requested_at.desc())
        )

    async def get_export_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        record = await self.db.get(ExportRequest, request_id)
        if record is None:
            return None
        # 其他连接可能已更新该行
        await self.db.refresh(record)
        return row_to_dict(record)

    async def list_pending_export_requests(self, limit: int):
        """
        待处理请求：pending，以及 processing 状态下超过 stale 时限的中断请求
        """
        stale_before = datetime.utcnow() - timedelta(seconds=self.stale_after_seconds)
        stmt = (
            select(ExportRequest)
            .where(
                or_(
                    ExportRequest.status == "pending",
                    and_(
                        ExportRequest.status == "processing",
                        or_(ExportRequest.processed_at.is_(None), ExportRequest.processed_at < stale_before),
                    ),
                )
            )
            .order_by(ExportRequest.requested_at)
            .limit(limit)
        )
        return await self._all(stmt)

    async def update_export_request(self, request_id: str, patch: Dict[str, Any]) -> None:
        await self.db.execute(
            update(ExportRequest).where(ExportRequest.id == request_id).values(**patch)
        )
        await self.db.commit()

    async def claim_export_request(
        self,
        request_id: str,
        expected: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> bool:
        """
        条件更新：仅当 status / attempt_count 仍与读取时一致才写入

        Returns:
            是否领取成功
        """
        result = await self.db.execute(
            update(ExportRequest)
            .where(
                ExportRequest.id == request_id,
                ExportRequest.status == expected["status"],
                ExportRequest.attempt_count == expected["attempt_count"],
            )
            .values(**patch)
        )
        await self.db.commit()
        return result.rowcount == 1
