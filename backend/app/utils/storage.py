"""
对象存储工具（本地文件系统实现）

对象以 key 为相对路径保存在存储根目录下，元数据（contentType / cacheControl）
以 JSON 形式保存在 .meta 目录中，下载时原样回放。
"""
import json
import os
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiofiles

from app.config import settings

META_DIR = ".meta"


class LocalObjectStore:
    """基于本地目录的对象存储"""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, key: str, base: Optional[str] = None) -> str:
        """key -> 本地路径（拒绝越出根目录的 key）"""
        base = base or self.root
        path = os.path.abspath(os.path.join(base, *key.split("/")))
        if not key or path == base or os.path.commonpath([base, path]) != base:
            raise ValueError(f"invalid object key: {key!r}")
        return path

    def _meta_path(self, key: str) -> str:
        return self._path(key, os.path.join(self.root, META_DIR)) + ".json"

    async def put(self, key: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        写入对象（同一 key 覆盖写）

        Args:
            key: 对象 key（如 exports/{user}/{request}/core.json.json）
            body: 文本内容
            metadata: {contentType, cacheControl}
        """
        path = self._path(key)
        ensure_dir(os.path.dirname(path))
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(body)

        meta_path = self._meta_path(key)
        ensure_dir(os.path.dirname(meta_path))
        async with aiofiles.open(meta_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(metadata or {}))

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not os.path.isfile(path):
            return None
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def get_metadata(self, key: str) -> Dict[str, Any]:
        meta_path = self._meta_path(key)
        if not os.path.isfile(meta_path):
            return {}
        async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())


def get_object_store() -> Optional[LocalObjectStore]:
    """获取对象存储（未配置 storage_path 时返回 None）"""
    if not settings.storage_path:
        return None
    return LocalObjectStore(settings.storage_path)


def get_file_url(key: str) -> str:
    """
    获取对象的访问 URL

    Args:
        key: 对象 key

    Returns:
        可访问的 URL（/media/...）
    """
    prefix = settings.media_url_prefix.rstrip("/")
    return f"{prefix}/{quote(key, safe='/')}"


def ensure_dir(path: str):
    """确保目录存在"""
    os.makedirs(path, exist_ok=True)
