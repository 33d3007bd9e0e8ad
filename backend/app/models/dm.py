"""
私信模型
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON
from datetime import datetime
import uuid

from app.database import Base


class DmThread(Base):
    """私信会话表"""
    __tablename__ = "dm_threads"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # 参与者标识（本地 handle / actor URI / handle@domain 混存）
    participants_json = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)


class DmMessage(Base):
    """私信消息表"""
    __tablename__ = "dm_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    thread_id = Column(String(36), ForeignKey("dm_threads.id"), nullable=False, index=True)
    author_id = Column(String(500), nullable=False)
    content_html = Column(Text, default="")
    raw_activity_json = Column(Text, nullable=True)  # 远程收到的原始 activity
    ap_activity_id = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
