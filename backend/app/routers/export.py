"""
导出路由：创建 / 列表 / 查询
"""
from datetime import datetime
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from app.config import settings
from app.core.exceptions import ExportForbiddenError, ExportNotFoundError
from app.dependencies import get_current_user, get_data_store
from app.models.user import User
from app.schemas.export import ExportCreate, ExportRequestInfo
from app.services.export_service import require_capability

router = APIRouter()


async def get_owned_request(store, export_id: str, user: User) -> dict:
    """读取导出请求并校验归属"""
    require_capability(store, "get_export_request")
    request = await store.get_export_request(export_id)
    if not request:
        raise ExportNotFoundError("export not found", {"id": export_id})
    if request["user_id"] != user.id:
        raise ExportForbiddenError("forbidden", {"id": export_id})
    return request


@router.post("", response_model=ExportRequestInfo, status_code=status.HTTP_202_ACCEPTED)
async def create_export(
    req: Optional[ExportCreate] = None,
    user: User = Depends(get_current_user),
    store=Depends(get_data_store),
):
    """创建导出请求（由队列异步处理）"""
    require_capability(store, "create_export_request")
    options = (req or ExportCreate()).to_options()
    if options.format not in settings.export_supported_formats:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"不支持的导出格式: {options.format}",
        )

    return await store.create_export_request({
        "id": str(uuid.uuid4()),
        "user_id": user.id,
        "format": options.format,
        "status": "pending",
        "requested_at": datetime.utcnow(),
        "attempt_count": 0,
        "max_attempts": settings.export_max_attempts,
        "result_json": {"options": options.to_dict()},
    })


@router.get("", response_model=List[ExportRequestInfo])
async def list_exports(
    user: User = Depends(get_current_user),
    store=Depends(get_data_store),
):
    """列出当前用户的导出请求"""
    require_capability(store, "list_export_requests_by_user")
    return await store.list_export_requests_by_user(user.id)


@router.get("/{export_id}", response_model=ExportRequestInfo)
async def get_export(
    export_id: str,
    user: User = Depends(get_current_user),
    store=Depends(get_data_store),
):
    """获取导出请求（仅限本人）"""
    return await get_owned_request(store, export_id, user)
