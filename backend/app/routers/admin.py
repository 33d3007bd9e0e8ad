"""
管理员路由：导出请求重试
"""
from typing import Optional

from fastapi import APIRouter, Depends

from app.core.exceptions import ExportNotFoundError, ExportStateError
from app.dependencies import get_admin_user, get_data_store
from app.models.user import User
from app.schemas.export import AdminRetryRequest, AdminRetryResponse
from app.services.export_service import require_capability
from app.utils.backoff import normalize_attempts

router = APIRouter()


@router.post("/exports/{export_id}/retry", response_model=AdminRetryResponse)
async def retry_export(
    export_id: str,
    req: Optional[AdminRetryRequest] = None,
    admin: User = Depends(get_admin_user),
    store=Depends(get_data_store),
):
    """重置导出请求为 pending（可选清零尝试次数 / 调整最大次数）"""
    require_capability(store, "get_export_request", "update_export_request")
    current = await store.get_export_request(export_id)
    if not current:
        raise ExportNotFoundError("export not found", {"id": export_id})

    req = req or AdminRetryRequest()
    attempts, max_attempts = normalize_attempts(current)
    next_attempts = 0 if req.reset_attempts else attempts
    clamped = req.clamped_max_attempts()
    next_max_attempts = clamped if clamped is not None else max_attempts

    if next_attempts >= next_max_attempts:
        raise ExportStateError(
            "max attempts exhausted; increase max_attempts or reset attempts",
            {"attempt_count": next_attempts, "max_attempts": next_max_attempts},
        )

    await store.update_export_request(export_id, {
        "status": "pending",
        "attempt_count": next_attempts,
        "max_attempts": next_max_attempts,
        "processed_at": None,
        "download_url": None,
        "error_message": None if req.reset_attempts else current.get("error_message"),
    })

    return AdminRetryResponse(
        id=export_id,
        status="pending",
        attempt_count=next_attempts,
        max_attempts=next_max_attempts,
        reset_attempts=req.reset_attempts,
    )
