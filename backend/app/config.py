"""
配置管理 - 从环境变量加载所有配置
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """应用配置"""

    # ===== 实例 =====
    instance_domain: str = "example.com"  # ActivityPub URI 使用的本实例域名

    # ===== 数据库 =====
    database_url: str = "sqlite+aiosqlite:///./data/social_export.db"

    # ===== 存储 =====
    storage_path: str = "./storage"  # 对象存储根目录；为空表示未配置
    media_url_prefix: str = "/media"

    # ===== JWT =====
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24

    # ===== 权限 =====
    admin_username: Optional[str] = None  # 管理员用户名（可执行导出重试）
    cron_secret: Optional[str] = None     # 定时任务共享密钥（Cron-Secret 头）

    # ===== 导出队列 =====
    export_supported_formats: List[str] = ["json", "activitypub"]
    export_max_attempts: int = 3
    export_batch_size: int = 5
    export_retry_base_delay_ms: int = 60_000
    export_retry_max_delay_ms: int = 30 * 60_000
    export_stale_after_seconds: int = 900  # processing 超过该时长视为中断，可重新领取

    # ===== 日志 =====
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ===== 服务配置 =====
    backend_host: str = "0.0.0.0"
    backend_port: int = 8001
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# 全局配置实例
settings = Settings()
