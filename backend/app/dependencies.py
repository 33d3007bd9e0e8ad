"""
路由依赖：当前用户、管理员、数据存储、对象存储
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.user import User
from app.services.data_store import SqlDataStore
from app.utils.auth import decode_token
from app.utils.storage import LocalObjectStore, get_object_store

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """从 Bearer Token 解析当前用户"""
    user_id = decode_token(credentials.credentials) if credentials else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未登录或登录已过期",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在")
    return user


def is_admin_user(user: User) -> bool:
    return bool(settings.admin_username) and user.username == settings.admin_username


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not is_admin_user(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return user


async def get_data_store(db: AsyncSession = Depends(get_db)) -> SqlDataStore:
    return SqlDataStore(db)


def get_storage() -> Optional[LocalObjectStore]:
    return get_object_store()
