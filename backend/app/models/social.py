"""
社交数据模型：帖子、好友关系、反应、收藏
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON, Boolean
from datetime import datetime
import uuid

from app.database import Base


class Post(Base):
    """帖子表"""
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    author_id = Column(String(50), ForeignKey("users.id"), nullable=False, index=True)
    community_id = Column(String(36), nullable=True)
    text = Column(Text, default="")
    media_json = Column(JSON, default=list)  # 媒体 URL 列表
    broadcast_all = Column(Boolean, default=False)
    visible_to_friends = Column(Boolean, default=False)
    in_reply_to = Column(String(500), nullable=True)
    ap_object_id = Column(String(500), nullable=True)
    ap_activity_id = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Post {self.id[:8]}>"


class Friendship(Base):
    """好友关系表（addressee 可为远程 actor）"""
    __tablename__ = "friendships"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    requester_id = Column(String(50), ForeignKey("users.id"), nullable=False, index=True)
    addressee_id = Column(String(500), nullable=False)
    addressee_aliases = Column(JSON, default=list)
    status = Column(String(20), default="accepted")  # pending, accepted
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Friendship {self.requester_id} -> {self.addressee_id}>"


class Reaction(Base):
    """反应表"""
    __tablename__ = "reactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    post_id = Column(String(500), nullable=False)
    user_id = Column(String(500), nullable=False, index=True)
    emoji = Column(String(50), nullable=True)
    ap_activity_id = Column(String(500), nullable=True)
    ap_object_id = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Bookmark(Base):
    """收藏表"""
    __tablename__ = "bookmarks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False, index=True)
    post_id = Column(String(500), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
