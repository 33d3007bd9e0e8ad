"""
用户模型
"""
from sqlalchemy import Column, String, DateTime, Text
from datetime import datetime

from app.database import Base


class User(Base):
    """用户表（id 即 handle，用于拼接 actor URI）"""
    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=True)
    summary = Column(Text, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    password_hash = Column(String(128), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User {self.username}>"
