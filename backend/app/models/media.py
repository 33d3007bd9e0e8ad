"""
媒体文件元数据模型
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Integer
from datetime import datetime

from app.database import Base


class MediaItem(Base):
    """用户上传的媒体"""
    __tablename__ = "media"

    key = Column(String(500), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False, index=True)
    url = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    content_type = Column(String(100), nullable=True)
    size = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
