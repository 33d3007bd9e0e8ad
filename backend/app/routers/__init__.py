"""
API 路由
"""
from app.routers import auth, export, admin, tasks, media

__all__ = [
    "auth",
    "export",
    "admin",
    "tasks",
    "media",
]
