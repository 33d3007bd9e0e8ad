"""
认证工具函数（bcrypt 密码哈希 + JWT Bearer Token）
"""
from passlib.context import CryptContext
from jose import jwt, JWTError
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from app.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    创建 JWT Access Token

    Args:
        data: payload（sub 为用户 handle）
        expires_delta: 自定义过期时间，默认 jwt_expire_hours
    """
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(hours=settings.jwt_expire_hours))
    return jwt.encode(
        {**data, "exp": expire, "iat": now},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """解码 JWT Token，失败（含过期）返回 None"""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def create_token(user_id: str) -> str:
    return create_access_token(data={"sub": user_id})


def decode_token(token: str) -> Optional[str]:
    """解码 Token，返回 user_id"""
    payload = decode_access_token(token)
    return payload.get("sub") if payload else None
