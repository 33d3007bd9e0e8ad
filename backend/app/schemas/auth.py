"""
认证相关 Schema
"""
from pydantic import BaseModel, Field
from typing import Optional

# 用户名即 actor handle
USERNAME_PATTERN = r"^[a-z0-9_]{3,20}$"


class LoginRequest(BaseModel):
    """登录请求"""
    username: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=4, max_length=72)


class RegisterRequest(BaseModel):
    """注册请求"""
    username: str = Field(..., pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=4, max_length=72)
    display_name: Optional[str] = Field(None, max_length=100)


class AuthResponse(BaseModel):
    """认证响应"""
    user_id: str
    username: str
    token: str
