"""
导出内容构建器

三个构建器（核心数据 / 私信 / 媒体）均为纯函数：只处理已加载的行，不访问存储。
输出格式为封闭集合：PlainFormat（json，原始标识）与 ProtocolFormat（activitypub，
解析后的 actor / object 引用），由 get_export_format() 分派。
"""
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.utils.activitypub import (
    ACTIVITYSTREAMS_CONTEXT,
    SECURITY_CONTEXT,
    compact,
    generate_note_object,
    generate_person_actor,
    load_json_list,
    now_iso,
    to_iso,
    wrap_in_create_activity,
)
from app.utils.backoff import to_datetime
from app.utils.identity import (
    build_activity_uri_for_actor,
    dedupe_strings,
    get_activity_uri,
    get_actor_uri,
    resolve_actor_ref,
    resolve_object_ref,
)


@dataclass
class Bundle:
    """单次尝试内的导出内容（写入存储后即丢弃）"""
    payload: Dict[str, Any]
    counts: Dict[str, int]


@dataclass
class BaseUserData:
    profile: Dict[str, Any]
    posts: List[Dict[str, Any]] = field(default_factory=list)
    friends: List[Dict[str, Any]] = field(default_factory=list)
    reactions: List[Dict[str, Any]] = field(default_factory=list)
    bookmarks: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DmThreadRows:
    """已筛选的会话及其消息"""
    thread: Dict[str, Any]
    messages: List[Dict[str, Any]] = field(default_factory=list)


# ===== 私信辅助 =====

def parse_participants(value: Any) -> List[str]:
    return [str(p).strip() for p in load_json_list(value) if p and str(p).strip()]


def resolve_participants(raw: List[str], domain: str) -> List[str]:
    resolved = []
    for p in raw:
        ref = resolve_actor_ref(p, domain)
        resolved.append(ref.id if ref else p)
    return dedupe_strings(resolved)


def select_user_threads(threads: List[Dict[str, Any]], user_id: str, domain: str) -> List[Dict[str, Any]]:
    """筛选包含该用户的会话（别名精确匹配，或以 /{user_id} 结尾）"""
    aliases = {user_id, get_actor_uri(user_id, domain), f"@{user_id}@{domain}"}
    suffix = f"/{user_id}"
    selected = []
    for thread in threads or []:
        participants = resolve_participants(parse_participants(thread.get("participants_json")), domain)
        if any(p in aliases or p.endswith(suffix) for p in participants):
            selected.append(thread)
    return selected


def sort_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """按创建时间升序；时间相同保持原存储顺序"""
    return sorted(messages or [], key=lambda m: to_datetime(m.get("created_at")) or datetime.min)


def build_thread_uri(domain: str, thread_id: str) -> str:
    return f"https://{domain}/ap/dm/{thread_id}"


def build_dm_activity(message: Dict[str, Any], participants: List[str], thread_uri: str, domain: str):
    """优先原样返回已存储的原始 activity，否则由消息字段合成 Create(Note)"""
    raw = message.get("raw_activity_json")
    if raw:
        if isinstance(raw, dict):
            return raw
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            pass

    ref = resolve_actor_ref(message.get("author_id"), domain)
    actor = (ref.id if ref else None) or message.get("author_id") or (participants[0] if participants else thread_uri)
    published = to_iso(message.get("created_at")) or now_iso()
    message_id = message.get("id") or str(uuid.uuid4())
    return {
        "@context": ACTIVITYSTREAMS_CONTEXT,
        "id": message.get("ap_activity_id") or f"{thread_uri}/activities/{message_id}",
        "type": "Create",
        "actor": actor,
        "to": participants,
        "cc": participants,
        "published": published,
        "object": {
            "type": "Note",
            "id": f"{thread_uri}/messages/{message_id}",
            "attributedTo": actor,
            "content": message.get("content_html") or "",
            "context": thread_uri,
            "published": published,
            "to": participants,
            "cc": participants,
        },
    }


# ===== 媒体辅助 =====

def absolute_media_url(url: str, domain: str) -> str:
    if not url:
        return ""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{domain}{url if url.startswith('/') else '/' + url}"


def build_media_object(item: Dict[str, Any], domain: str) -> Dict[str, Any]:
    content_type = item.get("content_type") or "application/octet-stream"
    lower = content_type.lower()
    if lower.startswith("image/"):
        object_type = "Image"
    elif lower.startswith("video/"):
        object_type = "Video"
    else:
        object_type = "Document"
    return compact({
        "type": object_type,
        "mediaType": content_type,
        "url": absolute_media_url(item.get("url") or "", domain),
        "name": item.get("description") or None,
        "updated": to_iso(item.get("updated_at")),
    })


# ===== 输出格式 =====

class ExportFormat:
    """导出格式基类"""
    name = ""
    description = ""
    dm_artifact = ""
    media_artifact = ""

    @property
    def core_artifact(self) -> str:
        return f"core.{self.name}"

    def build_core(self, data: BaseUserData, domain: str, generated_at: Optional[str] = None) -> Bundle:
        raise NotImplementedError

    def build_dm(self, threads: List[DmThreadRows], domain: str, generated_at: Optional[str] = None) -> Bundle:
        raise NotImplementedError

    def build_media(self, media: List[Dict[str, Any]], domain: str, generated_at: Optional[str] = None) -> Bundle:
        raise NotImplementedError

    @staticmethod
    def _dm_counts(threads: List[DmThreadRows]) -> Dict[str, int]:
        return {
            "dm_threads": len(threads),
            "dm_messages": sum(len(t.messages) for t in threads),
        }


class PlainFormat(ExportFormat):
    """应用内 JSON：原始标识与字段"""
    name = "json"
    description = "Application JSON export with raw identifiers"
    dm_artifact = "dm"
    media_artifact = "media"

    def build_core(self, data, domain, generated_at=None):
        return Bundle(
            payload={
                "generated_at": generated_at or now_iso(),
                "profile": data.profile,
                "posts": data.posts,
                "friends": data.friends,
                "reactions": data.reactions,
                "bookmarks": data.bookmarks,
            },
            counts={
                "posts": len(data.posts),
                "friends": len(data.friends),
                "reactions": len(data.reactions),
                "bookmarks": len(data.bookmarks),
            },
        )

    def build_dm(self, threads, domain, generated_at=None):
        payload_threads = []
        for item in threads:
            payload_threads.append({
                "id": item.thread.get("id"),
                "participants": parse_participants(item.thread.get("participants_json")),
                "created_at": item.thread.get("created_at"),
                "messages": [
                    {
                        "id": msg.get("id"),
                        "author_id": msg.get("author_id"),
                        "content_html": msg.get("content_html"),
                        "created_at": msg.get("created_at"),
                        "raw_activity_json": msg.get("raw_activity_json") or None,
                    }
                    for msg in item.messages
                ],
            })
        return Bundle(
            payload={"generated_at": generated_at or now_iso(), "threads": payload_threads},
            counts=self._dm_counts(threads),
        )

    def build_media(self, media, domain, generated_at=None):
        return Bundle(
            payload={"generated_at": generated_at or now_iso(), "files": list(media or [])},
            counts={"media": len(media or [])},
        )


class ProtocolFormat(ExportFormat):
    """ActivityPub JSON-LD：activity / 类型化对象 / 已解析引用"""
    name = "activitypub"
    description = "ActivityPub JSON-LD export with resolved actor/object references"
    dm_artifact = "dm.activitypub"
    media_artifact = "media.activitypub"

    def build_core(self, data, domain, generated_at=None):
        profile = data.profile
        actor = generate_person_actor(profile, domain)
        actor_id = actor["id"]

        outbox = []
        for post in data.posts:
            note = generate_note_object(post, profile, domain)
            activity_id = post.get("ap_activity_id") or get_activity_uri(post["id"], domain)
            outbox.append(wrap_in_create_activity(note, actor_id, activity_id))

        friends = []
        for friend in data.friends:
            ref = resolve_actor_ref(
                friend.get("addressee_id") or friend.get("id") or friend.get("handle"),
                domain,
                load_json_list(friend.get("addressee_aliases")),
            )
            friends.append(ref.id if ref else None)
        friends = dedupe_strings(friends)

        reactions = []
        for reaction in data.reactions:
            ref = resolve_actor_ref(reaction.get("user_id") or actor_id, domain)
            reaction_actor = ref.id if ref else actor_id
            reactions.append(compact({
                "@context": ACTIVITYSTREAMS_CONTEXT,
                "type": "Like",
                "id": reaction.get("ap_activity_id") or build_activity_uri_for_actor(
                    reaction_actor, reaction.get("id") or str(uuid.uuid4()), domain
                ),
                "actor": reaction_actor,
                "object": self._object_ref(reaction, domain),
                "name": reaction.get("emoji") or None,
                "published": to_iso(reaction.get("created_at")),
            }))

        bookmarks = []
        for bookmark in data.bookmarks:
            bookmarks.append(compact({
                "@context": ACTIVITYSTREAMS_CONTEXT,
                "type": "Bookmark",
                "id": build_activity_uri_for_actor(actor_id, bookmark.get("id") or str(uuid.uuid4()), domain),
                "actor": actor_id,
                "object": self._object_ref(bookmark, domain),
                "published": to_iso(bookmark.get("created_at")),
            }))

        objects = dedupe_strings(
            [a["object"].get("id") for a in outbox if isinstance(a.get("object"), dict)]
            + [r.get("object") for r in reactions]
            + [b.get("object") for b in bookmarks]
        )
        actors = dedupe_strings(
            [actor_id] + friends + [r["actor"] for r in reactions] + [b["actor"] for b in bookmarks]
        )

        return Bundle(
            payload={
                "@context": [ACTIVITYSTREAMS_CONTEXT, SECURITY_CONTEXT],
                "generated_at": generated_at or now_iso(),
                "actor": actor,
                "outbox": outbox,
                "friends": friends,
                "reactions": reactions,
                "bookmarks": bookmarks,
                # 导入方先解析依赖再重放 activity
                "references": {"actors": actors, "objects": objects},
            },
            counts={
                "posts": len(data.posts),
                "friends": len(data.friends),
                "reactions": len(reactions),
                "bookmarks": len(bookmarks),
            },
        )

    @staticmethod
    def _object_ref(row: Dict[str, Any], domain: str) -> Optional[str]:
        target = row.get("ap_object_id") or row.get("post_ap_object_id") or row.get("post_id")
        return resolve_object_ref(target, domain) or row.get("post_id")

    def build_dm(self, threads, domain, generated_at=None):
        payload_threads = []
        for item in threads:
            thread_id = item.thread.get("id")
            participants = resolve_participants(parse_participants(item.thread.get("participants_json")), domain)
            thread_uri = build_thread_uri(domain, thread_id)
            payload_threads.append({
                "id": thread_id,
                "thread": thread_uri,
                "participants": participants,
                "activities": [
                    build_dm_activity(msg, participants, thread_uri, domain) for msg in item.messages
                ],
            })
        return Bundle(
            payload={
                "@context": ACTIVITYSTREAMS_CONTEXT,
                "generated_at": generated_at or now_iso(),
                "threads": payload_threads,
            },
            counts=self._dm_counts(threads),
        )

    def build_media(self, media, domain, generated_at=None):
        items = [build_media_object(item, domain) for item in media or []]
        return Bundle(
            payload={
                "@context": ACTIVITYSTREAMS_CONTEXT,
                "type": "OrderedCollection",
                "generated_at": generated_at or now_iso(),
                "totalItems": len(items),
                "orderedItems": items,
            },
            counts={"media": len(items)},
        )


EXPORT_FORMATS: Dict[str, ExportFormat] = {
    PlainFormat.name: PlainFormat(),
    ProtocolFormat.name: ProtocolFormat(),
}


def get_export_format(name: Optional[str]) -> ExportFormat:
    """未知格式回退为 json"""
    return EXPORT_FORMATS.get(name or "", EXPORT_FORMATS[PlainFormat.name])
