"""
导出队列处理

状态机：pending -> processing -> completed | pending（等待重试）| failed

每次调用处理一批到期请求（顺序执行），由外部定时任务触发：
    1. 尝试次数已耗尽 -> 直接 failed，不再消耗尝试
    2. 仍处于退避窗口 -> 保持 pending，仅在结果中报告 retry_at
    3. 否则领取请求并构建产物；异常时按剩余次数转为 pending 或 failed
单个请求的异常不会中断整批处理。
"""
import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.exceptions import ExportBuildError, ExportError, ExportNotSupportedError
from app.services.artifacts import ArtifactRef, artifact_key, put_json_artifact
from app.services.bundles import (
    BaseUserData,
    Bundle,
    DmThreadRows,
    ExportFormat,
    get_export_format,
    select_user_threads,
    sort_messages,
)
from app.utils.activitypub import now_iso
from app.utils.backoff import (
    DEFAULT_MAX_ATTEMPTS,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    normalize_attempts,
    should_backoff,
    to_datetime,
)

logger = logging.getLogger(__name__)

EXPORT_BATCH_SIZE = 5
EXHAUSTED_MESSAGE = "maximum export attempts reached"


@dataclass
class ExportOptions:
    format: str = "json"
    include_dm: bool = False
    include_media: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def parse_stored_options(request: Dict[str, Any]) -> Tuple[bool, bool]:
    """从 result_json 恢复创建时的选项：(include_dm, include_media)"""
    raw = request.get("result_json") or {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return False, False
    if not isinstance(raw, dict):
        return False, False
    options = raw.get("options") or raw.get("requested_options") or raw
    if not isinstance(options, dict):
        return False, False
    return (
        bool(_first_present(options, "include_dm", "includeDm")),
        bool(_first_present(options, "include_media", "includeMedia")),
    )


def has_capability(store: Any, *names: str) -> bool:
    return all(callable(getattr(store, name, None)) for name in names)


def require_capability(store: Any, *names: str) -> None:
    if not has_capability(store, *names):
        raise ExportNotSupportedError("data export not supported", {"missing": list(names)})


@dataclass
class ExportOutcome:
    """单个请求的处理结果"""
    id: str
    status: str
    attempt: Optional[int] = None
    max_attempts: Optional[int] = None
    reason: Optional[str] = None
    retry_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if self.retry_at:
            data["retry_at"] = self.retry_at.isoformat() + "Z"
        return data


@dataclass
class ExportQueueResult:
    supported: bool
    processed: List[ExportOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supported": self.supported,
            "processed": [o.to_dict() for o in self.processed],
        }


class ExportQueueProcessor:
    """导出队列处理器（存储与对象存储显式传入）"""

    def __init__(
        self,
        store: Any,
        object_store: Any,
        instance_domain: str,
        batch_size: int = EXPORT_BATCH_SIZE,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay_ms: int = RETRY_BASE_DELAY_MS,
        retry_max_delay_ms: int = RETRY_MAX_DELAY_MS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.object_store = object_store
        self.instance_domain = instance_domain
        self.batch_size = batch_size
        self.default_max_attempts = default_max_attempts
        self.retry_base_delay_ms = retry_base_delay_ms
        self.retry_max_delay_ms = retry_max_delay_ms
        self.clock = clock or datetime.utcnow

    async def run(self) -> ExportQueueResult:
        """处理一批到期请求"""
        if not has_capability(self.store, "list_pending_export_requests", "update_export_request"):
            return ExportQueueResult(supported=False)

        pending = await self.store.list_pending_export_requests(self.batch_size)
        logger.info(f"Processing export batch: {len(pending)} request(s)")

        result = ExportQueueResult(supported=True)
        for request in pending:
            try:
                outcome = await self.process_request(request)
            except Exception as e:
                # 状态写入失败：记录后继续处理本批其余请求
                logger.exception(f"Export {request.get('id')} could not be processed")
                attempts, max_attempts = normalize_attempts(request, self.default_max_attempts)
                outcome = ExportOutcome(
                    id=request.get("id"),
                    status=request.get("status") or "pending",
                    reason="error",
                    attempt=attempts,
                    max_attempts=max_attempts,
                    error=str(e) or type(e).__name__,
                )
            reason = f", {outcome.reason}" if outcome.reason else ""
            logger.info(
                f"Export {outcome.id} -> {outcome.status} "
                f"(attempt {outcome.attempt}/{outcome.max_attempts}{reason})"
            )
            result.processed.append(outcome)
        return result

    def _resolve_options(self, request: Dict[str, Any]) -> Tuple[ExportFormat, ExportOptions]:
        include_dm, include_media = parse_stored_options(request)
        fmt = get_export_format(request.get("format"))
        return fmt, ExportOptions(format=fmt.name, include_dm=include_dm, include_media=include_media)

    async def process_request(self, request: Dict[str, Any]) -> ExportOutcome:
        request_id = request["id"]
        fmt, options = self._resolve_options(request)
        attempts, max_attempts = normalize_attempts(request, self.default_max_attempts)
        now = self.clock()

        # 先判断耗尽，避免已耗尽请求在退避中无限循环
        if attempts >= max_attempts:
            error_message = request.get("error_message") or EXHAUSTED_MESSAGE
            await self.store.update_export_request(request_id, {
                "status": "failed",
                "processed_at": to_datetime(request.get("processed_at")) or now,
                "error_message": error_message,
                "result_json": {
                    "status": "failed",
                    "error": error_message,
                    "attempts": attempts,
                    "max_attempts": max_attempts,
                    "options": options.to_dict(),
                },
                "attempt_count": attempts,
                "max_attempts": max_attempts,
            })
            return ExportOutcome(
                id=request_id,
                status="failed",
                reason="max_attempts",
                attempt=attempts,
                max_attempts=max_attempts,
            )

        backoff = should_backoff(request, now, self.retry_base_delay_ms, self.retry_max_delay_ms)
        if backoff.wait:
            logger.debug(f"Export {request_id} backing off until {backoff.retry_at}")
            return ExportOutcome(
                id=request_id,
                status="pending",
                reason="backoff",
                attempt=attempts,
                max_attempts=max_attempts,
                retry_at=backoff.retry_at,
            )

        attempt = attempts + 1
        try:
            claimed = await self._claim(request, {
                "status": "processing",
                "attempt_count": attempt,
                "max_attempts": max_attempts,
                "processed_at": now,
                "error_message": None,
            })
            if not claimed:
                return ExportOutcome(
                    id=request_id,
                    status=request.get("status") or "pending",
                    reason="claimed",
                    attempt=attempts,
                    max_attempts=max_attempts,
                )

            summary, core = await self._build_and_store(request, fmt, options, attempt, max_attempts)

            await self.store.update_export_request(request_id, {
                "status": "completed",
                "processed_at": self.clock(),
                "download_url": core.url,
                "result_json": summary,
                "error_message": None,
                "attempt_count": attempt,
                "max_attempts": max_attempts,
            })
            return ExportOutcome(id=request_id, status="completed", attempt=attempt, max_attempts=max_attempts)

        except Exception as e:
            error_message = (e.message if isinstance(e, ExportError) else str(e)) or type(e).__name__
            next_status = "failed" if attempt >= max_attempts else "pending"
            logger.warning(
                f"Export {request_id} attempt {attempt}/{max_attempts} failed: {error_message}",
                exc_info=not isinstance(e, ExportError),
            )
            failed_at = self.clock()
            await self.store.update_export_request(request_id, {
                "status": next_status,
                "error_message": error_message,
                "processed_at": failed_at,
                "result_json": {
                    "status": "failed",
                    "error": error_message,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "failed_at": failed_at.isoformat() + "Z",
                    "will_retry": next_status == "pending",
                    "options": options.to_dict(),
                },
                "attempt_count": attempt,
                "max_attempts": max_attempts,
            })
            return ExportOutcome(
                id=request_id,
                status=next_status,
                attempt=attempt,
                max_attempts=max_attempts,
                error=error_message,
            )

    async def _claim(self, request: Dict[str, Any], patch: Dict[str, Any]) -> bool:
        """条件领取；存储不支持时退化为普通更新"""
        if has_capability(self.store, "claim_export_request"):
            expected = {
                "status": request.get("status") or "pending",
                "attempt_count": request.get("attempt_count") or 0,
            }
            return await self.store.claim_export_request(request["id"], expected, patch)
        await self.store.update_export_request(request["id"], patch)
        return True

    async def _build_and_store(
        self,
        request: Dict[str, Any],
        fmt: ExportFormat,
        options: ExportOptions,
        attempt: int,
        max_attempts: int,
    ) -> Tuple[Dict[str, Any], ArtifactRef]:
        user_id = request["user_id"]
        domain = self.instance_domain

        core = fmt.build_core(await self.load_base_user_data(user_id), domain)
        dm = await self.collect_dm_bundle(fmt, user_id) if options.include_dm else None
        media = await self.collect_media_bundle(fmt, user_id) if options.include_media else None

        async def _put(name: str, bundle: Bundle) -> ArtifactRef:
            return await put_json_artifact(
                self.object_store, artifact_key(user_id, request["id"], name), bundle.payload
            )

        core_ref = await _put(fmt.core_artifact, core)
        artifacts: Dict[str, Any] = {"core": core_ref.to_dict()}
        for label, bundle, name in (("dm", dm, fmt.dm_artifact), ("media", media, fmt.media_artifact)):
            if bundle is None:
                artifacts[label] = {"status": "skipped"}
            else:
                ref = await _put(name, bundle)
                artifacts[label] = {"status": "completed", fmt.name: ref.to_dict()}

        dm_counts = dm.counts if dm else {}
        summary = {
            "generated_at": now_iso(),
            "format": fmt.name,
            "format_description": fmt.description,
            "attempts": attempt,
            "max_attempts": max_attempts,
            "options": {"include_dm": options.include_dm, "include_media": options.include_media},
            "counts": {
                **core.counts,
                "dm_threads": dm_counts.get("dm_threads", 0),
                "dm_messages": dm_counts.get("dm_messages", 0),
                "media_files": media.counts["media"] if media else 0,
            },
            "artifacts": artifacts,
        }
        return summary, core_ref

    # ===== 数据加载 =====

    async def load_base_user_data(self, user_id: str) -> BaseUserData:
        require_capability(self.store, "get_user", "list_posts_by_authors", "list_friends")
        profile = await self.store.get_user(user_id)
        if not profile:
            raise ExportBuildError("user not found", {"user_id": user_id})
        reactions = bookmarks = []
        if has_capability(self.store, "list_reactions_by_user"):
            reactions = await self.store.list_reactions_by_user(user_id)
        if has_capability(self.store, "list_bookmarks_by_user"):
            bookmarks = await self.store.list_bookmarks_by_user(user_id)
        return BaseUserData(
            profile=profile,
            posts=list(await self.store.list_posts_by_authors([user_id], True) or []),
            friends=list(await self.store.list_friends(user_id) or []),
            reactions=list(reactions or []),
            bookmarks=list(bookmarks or []),
        )

    async def collect_dm_bundle(self, fmt: ExportFormat, user_id: str) -> Optional[Bundle]:
        """存储不支持私信时返回 None（记为 skipped）"""
        if not has_capability(self.store, "list_all_dm_threads", "list_dm_messages"):
            return None
        threads = select_user_threads(await self.store.list_all_dm_threads(), user_id, self.instance_domain)
        rows = []
        for thread in threads:
            messages = await self.store.list_dm_messages(thread["id"], 0)
            rows.append(DmThreadRows(thread=thread, messages=sort_messages(messages)))
        return fmt.build_dm(rows, self.instance_domain)

    async def collect_media_bundle(self, fmt: ExportFormat, user_id: str) -> Optional[Bundle]:
        if not has_capability(self.store, "list_media_by_user"):
            return None
        media = await self.store.list_media_by_user(user_id)
        return fmt.build_media(list(media or []), self.instance_domain)
