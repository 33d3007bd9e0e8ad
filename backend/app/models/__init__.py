"""
数据模型
"""
from app.models.user import User
from app.models.social import Post, Friendship, Reaction, Bookmark
from app.models.dm import DmThread, DmMessage
from app.models.media import MediaItem
from app.models.export import ExportRequest

__all__ = [
    "User",
    "Post",
    "Friendship",
    "Reaction",
    "Bookmark",
    "DmThread",
    "DmMessage",
    "MediaItem",
    "ExportRequest",
]
