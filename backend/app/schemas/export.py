"""
导出相关 Schema
"""
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional, Any, Dict
from datetime import datetime

from app.services.export_service import ExportOptions

# 管理员可设置的最大尝试次数范围
MAX_ATTEMPTS_FLOOR = 1
MAX_ATTEMPTS_CEILING = 10


class ExportCreate(BaseModel):
    """创建导出请求（核心数据始终导出，私信/媒体可选）"""
    format: str = "json"
    include_dm: bool = Field(False, validation_alias=AliasChoices("include_dm", "includeDm", "dm"))
    include_media: bool = Field(False, validation_alias=AliasChoices("include_media", "includeMedia", "media"))

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v: Any) -> str:
        return "activitypub" if v == "activitypub" else "json"

    def to_options(self) -> ExportOptions:
        return ExportOptions(format=self.format, include_dm=self.include_dm, include_media=self.include_media)


class AdminRetryRequest(BaseModel):
    """管理员重试请求"""
    reset_attempts: bool = Field(False, validation_alias=AliasChoices("reset_attempts", "resetAttempts"))
    max_attempts: Optional[float] = Field(
        None,
        allow_inf_nan=False,
        validation_alias=AliasChoices("max_attempts", "maxAttempts"),
    )

    def clamped_max_attempts(self) -> Optional[int]:
        if self.max_attempts is None:
            return None
        return max(MAX_ATTEMPTS_FLOOR, min(MAX_ATTEMPTS_CEILING, int(self.max_attempts)))


class ExportRequestInfo(BaseModel):
    """导出请求信息"""
    id: str
    user_id: str
    format: str
    status: str
    attempt_count: int = 0
    max_attempts: int = 3
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_json: Optional[Dict[str, Any]] = None
    download_url: Optional[str] = None

    class Config:
        from_attributes = True


class AdminRetryResponse(BaseModel):
    id: str
    status: str
    attempt_count: int
    max_attempts: int
    reset_attempts: bool
