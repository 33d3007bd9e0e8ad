"""
身份解析：将各种形式的 actor / object 引用规范化为 ActivityPub URI

支持的 actor 形式：
    - 完整 URI：https://remote.example/ap/users/bob
    - handle@domain / @handle@domain
    - 本地裸 handle：alice

解析失败一律返回 None（或回退值），不抛异常：导出用户无法修复第三方的畸形标识。
"""
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

ACTOR_PATH_PATTERN = re.compile(r"/ap/users/([a-z0-9_]{3,20})/?$", re.IGNORECASE)
BARE_HANDLE_PATTERN = re.compile(r"^[a-z0-9_]{3,}$", re.IGNORECASE)

# 从 dict 形式输入中按顺序提取候选字段
ACTOR_FIELDS = ("actor", "actor_id", "user_id", "handle", "id", "addressee_id")


@dataclass
class ActorRef:
    """解析后的 actor：规范 id + 见过的全部别名"""
    id: str
    aliases: List[str] = field(default_factory=list)


def is_url(value: Any) -> bool:
    return isinstance(value, str) and (value.startswith("http://") or value.startswith("https://"))


def dedupe_strings(values: Iterable[Any]) -> List[str]:
    """去空、去重，保留首次出现顺序"""
    seen: List[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def get_actor_uri(handle: str, domain: str) -> str:
    return f"https://{domain}/ap/users/{handle}"


def get_object_uri(object_id: str, domain: str) -> str:
    return f"https://{domain}/ap/objects/{object_id}"


def get_activity_uri(activity_id: str, domain: str) -> str:
    return f"https://{domain}/ap/activities/{activity_id}"


def _hostname(value: str) -> Optional[str]:
    try:
        parts = urlsplit(value)
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not host:
        return None
    return host.lower()


def parse_actor_handle(value: Any) -> Optional[Tuple[str, Optional[str]]]:
    """
    解析 actor handle

    Returns:
        (handle, domain)，domain 为 None 表示本地用户；无法识别返回 None
    """
    trimmed = value.strip() if isinstance(value, str) else ""
    if not trimmed:
        return None

    parts = trimmed.lstrip("@").split("@")
    if len(parts) >= 2:
        handle = parts[0].strip()
        domain = "@".join(parts[1:]).strip()
        if handle and domain:
            return handle.lower(), domain.lower()

    host = _hostname(trimmed)
    if host:
        match = ACTOR_PATH_PATTERN.search(urlsplit(trimmed).path)
        if match:
            return match.group(1).lower(), host

    if BARE_HANDLE_PATTERN.match(trimmed):
        return trimmed.lower(), None

    return None


def parse_actor_uri(uri: str, local_domain: str) -> Optional[dict]:
    """解析本站风格的 actor URI（/ap/users/{handle}）"""
    host = _hostname(uri) if isinstance(uri, str) else None
    if not host:
        return None
    match = re.match(r"^/ap/users/([a-z0-9_]{3,20})$", urlsplit(uri).path)
    if not match:
        return None
    return {
        "handle": match.group(1),
        "domain": host,
        "is_local": host == (local_domain or "").lower(),
    }


def resolve_actor_ref(
    value: Any,
    local_domain: str,
    aliases: Iterable[Any] = (),
) -> Optional[ActorRef]:
    """
    将 actor 引用解析为规范 URI

    优先级：绝对 URI 原样采用 > handle@domain > 本地裸 handle
    """
    candidates: List[str] = []
    if isinstance(value, str):
        candidates.append(value)
    elif isinstance(value, dict):
        for key in ACTOR_FIELDS:
            if isinstance(value.get(key), str):
                candidates.append(value[key])

    for alias in aliases or ():
        if isinstance(alias, str):
            candidates.append(alias)

    normalized = [c.strip() for c in candidates if c.strip()]
    if not normalized:
        return None

    alias_set = dedupe_strings(normalized)

    def _result(actor_id: str) -> ActorRef:
        if actor_id not in alias_set:
            alias_set.append(actor_id)
        return ActorRef(id=actor_id, aliases=alias_set)

    for candidate in normalized:
        if is_url(candidate):
            return _result(candidate)

    parsed = [parse_actor_handle(c) for c in normalized]
    for item in parsed:
        if item and item[1]:
            return _result(get_actor_uri(item[0], item[1]))

    for item in parsed:
        if item:
            return _result(get_actor_uri(item[0], local_domain))

    return None


def resolve_object_ref(value: Any, local_domain: str) -> Optional[str]:
    """将帖子/对象引用解析为规范 URI；空值返回 None"""
    raw = value.strip() if isinstance(value, str) else ""
    if not raw:
        return None
    if is_url(raw):
        return raw
    path = raw[1:] if raw.startswith("/") else raw
    if not path.startswith("ap/objects/"):
        path = f"ap/objects/{path}"
    return f"https://{local_domain}/{path}"


def build_activity_uri_for_actor(actor_id: str, activity_id: str, local_domain: str) -> str:
    """在 actor 所在主机下生成 activity URI；actor 无法解析时回退到本地域名"""
    parsed = parse_actor_uri(actor_id, local_domain)
    if parsed:
        return get_activity_uri(activity_id, parsed["domain"])
    host = _hostname(actor_id) if isinstance(actor_id, str) else None
    return get_activity_uri(activity_id, host or local_domain)
