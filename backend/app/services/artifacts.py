"""
导出产物写入
"""
import json
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Dict, Optional

from app.core.exceptions import StorageUnavailableError
from app.utils.storage import get_file_url

JSON_CONTENT_TYPE = "application/json"
EXPORT_CACHE_CONTROL = "private, max-age=0, no-store"


@dataclass(frozen=True)
class ArtifactRef:
    key: str
    url: str
    contentType: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def artifact_key(user_id: str, request_id: str, name: str) -> str:
    """exports/{user_id}/{request_id}/{name}.json（同一尝试重跑覆盖同一 key）"""
    return f"exports/{user_id}/{request_id}/{name}.json"


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_json(payload: Any) -> str:
    """稳定序列化：缩进 + 键排序"""
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=_json_default)


async def put_json_artifact(object_store: Optional[Any], key: str, payload: Any) -> ArtifactRef:
    """
    序列化并写入对象存储

    Raises:
        StorageUnavailableError: 未配置对象存储
    """
    if object_store is None:
        raise StorageUnavailableError("media storage not configured for exports")
    await object_store.put(
        key,
        dump_json(payload),
        {"contentType": JSON_CONTENT_TYPE, "cacheControl": EXPORT_CACHE_CONTROL},
    )
    return ArtifactRef(key=key, url=get_file_url(key), contentType=JSON_CONTENT_TYPE)
