"""
导出产物下载
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app.dependencies import get_current_user, get_storage, is_admin_user
from app.models.user import User
from app.services.artifacts import JSON_CONTENT_TYPE, EXPORT_CACHE_CONTROL

router = APIRouter()


@router.get("/{key:path}")
async def download_artifact(
    key: str,
    user: User = Depends(get_current_user),
    object_store=Depends(get_storage),
):
    """下载导出产物（exports/{user_id}/... 仅限本人或管理员）"""
    parts = key.split("/")
    # 拒绝 "." / ".." / 空段，归属校验只看规范 key
    if len(parts) < 3 or parts[0] != "exports" or any(p in ("", ".", "..") for p in parts):
        raise HTTPException(status_code=404, detail="文件不存在")
    if parts[1] != user.id and not is_admin_user(user):
        raise HTTPException(status_code=403, detail="forbidden")
    if object_store is None:
        raise HTTPException(status_code=404, detail="文件不存在")

    try:
        body = await object_store.get(key)
    except ValueError:
        raise HTTPException(status_code=404, detail="文件不存在")
    if body is None:
        raise HTTPException(status_code=404, detail="文件不存在")

    metadata = await object_store.get_metadata(key)
    return Response(
        content=body,
        media_type=metadata.get("contentType") or JSON_CONTENT_TYPE,
        headers={
            "Cache-Control": metadata.get("cacheControl") or EXPORT_CACHE_CONTROL,
            "Content-Disposition": f'attachment; filename="{parts[-1]}"',
        },
    )
