"""
内部任务路由（由外部定时任务调用）
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.config import settings
from app.core.exceptions import ExportNotSupportedError
from app.dependencies import get_data_store, get_storage
from app.services.export_service import ExportQueueProcessor

router = APIRouter()


def build_processor(store, object_store) -> ExportQueueProcessor:
    return ExportQueueProcessor(
        store,
        object_store,
        instance_domain=settings.instance_domain,
        batch_size=settings.export_batch_size,
        default_max_attempts=settings.export_max_attempts,
        retry_base_delay_ms=settings.export_retry_base_delay_ms,
        retry_max_delay_ms=settings.export_retry_max_delay_ms,
    )


@router.post("/process-exports")
async def process_exports(
    cron_secret: Optional[str] = Header(None, alias="Cron-Secret"),
    store=Depends(get_data_store),
    object_store=Depends(get_storage),
):
    """处理一批导出请求（未配置密钥时不校验）"""
    if settings.cron_secret and not hmac.compare_digest(settings.cron_secret, cron_secret or ""):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    result = await build_processor(store, object_store).run()
    if not result.supported:
        raise ExportNotSupportedError("data export not supported")
    return result.to_dict()
