"""
社交数据导出服务 - FastAPI 入口
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.exceptions import (
    ExportError,
    ExportForbiddenError,
    ExportNotFoundError,
    ExportNotSupportedError,
    ExportStateError,
)
from app.core.logging import setup_logging
from app.database import init_db
from app.routers import auth, export, admin, tasks, media
from app.utils.storage import ensure_dir

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()
    await init_db()

    # 对象存储根目录
    if settings.storage_path:
        ensure_dir(settings.storage_path)
    else:
        logger.warning("storage_path not configured; export artifacts cannot be written")

    yield


app = FastAPI(
    title="Social Export",
    description="用户社交数据导出（JSON / ActivityPub）",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 领域异常 -> HTTP 状态码
ERROR_STATUS_CODES = {
    ExportNotSupportedError: 501,
    ExportNotFoundError: 404,
    ExportForbiddenError: 403,
    ExportStateError: 409,
}


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError):
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code == 500:
        logger.error(f"Unhandled export error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# 注册路由
app.include_router(auth.router, prefix="/api/auth", tags=["认证"])
app.include_router(export.router, prefix="/api/exports", tags=["导出"])
app.include_router(admin.router, prefix="/api/admin", tags=["管理"])
app.include_router(tasks.router, prefix="/internal/tasks", tags=["内部任务"])
app.include_router(media.router, prefix=settings.media_url_prefix.rstrip("/"), tags=["产物下载"])


@app.get("/health")
async def health():
    """健康检查"""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug,
    )
