"""
数据库连接与会话管理
"""
import os
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import settings

# 确保 SQLite 数据目录存在
if settings.database_url.startswith("sqlite"):
    _db_dir = os.path.dirname(settings.database_url.split(":///", 1)[-1])
    if _db_dir:
        os.makedirs(_db_dir, exist_ok=True)

# 创建异步引擎
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

# 创建异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# 声明基类
Base = declarative_base()


async def get_db() -> AsyncSession:
    """获取数据库会话（依赖注入用）"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """初始化数据库（创建所有表）"""
    # 必须先导入所有模型，确保都已注册到 Base.metadata
    from app import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if str(settings.database_url).startswith("sqlite"):
            await _sqlite_migrate(conn)


async def _sqlite_migrate(conn):
    """SQLite 轻量迁移：旧库的导出表缺少重试计数列"""
    async def _has_column(table: str, col: str) -> bool:
        rows = await conn.exec_driver_sql(f"PRAGMA table_info({table});")
        cols = [r[1] for r in rows.fetchall()]
        return col in cols

    async def _add_column(table: str, col_def_sql: str):
        await conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {col_def_sql};")

    if await _has_column("data_export_requests", "attempt_count") is False:
        await _add_column("data_export_requests", "attempt_count INTEGER NOT NULL DEFAULT 0")

    if await _has_column("data_export_requests", "max_attempts") is False:
        await _add_column("data_export_requests", "max_attempts INTEGER NOT NULL DEFAULT 3")
