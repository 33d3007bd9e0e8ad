"""
ActivityPub 对象生成（Person / Note / Create）
"""
import html
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.utils.identity import get_actor_uri, get_object_uri

logger = logging.getLogger(__name__)

ACTIVITYSTREAMS_CONTEXT = "https://www.w3.org/ns/activitystreams"
SECURITY_CONTEXT = "https://w3id.org/security/v1"
PUBLIC_AUDIENCE = "https://www.w3.org/ns/activitystreams#Public"

# 根据扩展名推断附件类型
MEDIA_TYPES_BY_SUFFIX = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
}


def now_iso() -> str:
    """当前 UTC 时间（ISO 8601，毫秒精度）"""
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


def to_iso(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """去掉值为 None 的键"""
    return {k: v for k, v in data.items() if v is not None}


def load_json_list(value: Any) -> List[Any]:
    """兼容 list 或 JSON 字符串两种存储形式"""
    if isinstance(value, list):
        return value
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        logger.warning("Failed to parse JSON list: %r", value)
        return []
    return parsed if isinstance(parsed, list) else []


def generate_person_actor(user: Dict[str, Any], domain: str) -> Dict[str, Any]:
    """生成用户的 Person actor"""
    handle = user["id"]
    actor_uri = get_actor_uri(handle, domain)
    base_url = f"https://{domain}"
    icon = None
    if user.get("avatar_url"):
        icon = {"type": "Image", "mediaType": "image/jpeg", "url": user["avatar_url"]}

    return compact({
        "@context": [ACTIVITYSTREAMS_CONTEXT, SECURITY_CONTEXT],
        "type": "Person",
        "id": actor_uri,
        "preferredUsername": handle,
        "name": user.get("display_name") or handle,
        "summary": user.get("summary") or "",
        "url": f"{base_url}/@{handle}",
        "inbox": f"{actor_uri}/inbox",
        "outbox": f"{actor_uri}/outbox",
        "followers": f"{actor_uri}/followers",
        "following": f"{actor_uri}/following",
        "icon": icon,
        # 所有账号均为私密账号
        "discoverable": False,
        "manuallyApprovesFollowers": True,
    })


def _post_audience(post: Dict[str, Any], handle: str, base_url: str):
    to: List[str] = []
    cc: List[str] = []
    followers = f"{base_url}/ap/users/{handle}/followers"
    if post.get("broadcast_all"):
        to.append(PUBLIC_AUDIENCE)
        if post.get("visible_to_friends"):
            cc.append(followers)
    elif post.get("visible_to_friends"):
        to.append(followers)
    elif post.get("community_id"):
        to.append(f"{base_url}/ap/groups/{post['community_id']}/followers")
        cc.append(f"{base_url}/ap/groups/{post['community_id']}")
    return to, cc


def _post_attachments(post: Dict[str, Any]) -> List[Dict[str, Any]]:
    attachments = []
    for url in load_json_list(post.get("media_json")):
        if not isinstance(url, str) or not url.strip():
            continue
        lower = url.lower()
        media_type = "application/octet-stream"
        for suffix, candidate in MEDIA_TYPES_BY_SUFFIX.items():
            if lower.endswith(suffix):
                media_type = candidate
                break
        attachments.append({
            "type": "Image" if media_type.startswith("image") else "Video",
            "mediaType": media_type,
            "url": url,
        })
    return attachments


def generate_note_object(post: Dict[str, Any], author: Dict[str, Any], domain: str) -> Dict[str, Any]:
    """将帖子转换为 Note 对象"""
    handle = author["id"]
    base_url = f"https://{domain}"
    to, cc = _post_audience(post, handle, base_url)

    lines = [line for line in html.escape(post.get("text") or "").split("\n") if line.strip()]
    in_reply_to = post.get("in_reply_to")
    if not (isinstance(in_reply_to, str) and in_reply_to.strip()):
        in_reply_to = None

    note = {
        "@context": ACTIVITYSTREAMS_CONTEXT,
        "type": "Note",
        "id": post.get("ap_object_id") or get_object_uri(post["id"], domain),
        "attributedTo": get_actor_uri(handle, domain),
        "content": "".join(f"<p>{line}</p>" for line in lines),
        "published": to_iso(post.get("created_at")),
        "to": to,
        "cc": cc,
        "url": f"{base_url}/posts/{post['id']}",
        "inReplyTo": in_reply_to.strip() if in_reply_to else None,
    }
    attachments = _post_attachments(post)
    if attachments:
        note["attachment"] = attachments
    return compact(note)


def wrap_in_create_activity(obj: Dict[str, Any], actor_uri: str, activity_id: str) -> Dict[str, Any]:
    return compact({
        "@context": ACTIVITYSTREAMS_CONTEXT,
        "type": "Create",
        "id": activity_id,
        "actor": actor_uri,
        "object": obj,
        "published": obj.get("published") or now_iso(),
        "to": obj.get("to"),
        "cc": obj.get("cc"),
    })
