"""
导出重试退避策略

纯函数，无 I/O：延迟 = min(max_delay, base_delay * 2^(attempt-1))
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

DEFAULT_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_MS = 60_000
RETRY_MAX_DELAY_MS = 30 * 60_000


@dataclass
class BackoffDecision:
    """wait=True 时 retry_at 为可重试时间"""
    wait: bool
    retry_at: Optional[datetime] = None


def compute_retry_delay_ms(
    attempt_count: int,
    base_delay_ms: int = RETRY_BASE_DELAY_MS,
    max_delay_ms: int = RETRY_MAX_DELAY_MS,
) -> int:
    if attempt_count <= 0:
        return 0
    return min(max_delay_ms, base_delay_ms * 2 ** (attempt_count - 1))


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_attempts(request: Dict[str, Any], default_max: int = DEFAULT_MAX_ATTEMPTS):
    """
    规范化重试计数

    Returns:
        (attempts, max_attempts)，attempts >= 0，max_attempts >= 1
    """
    attempts = max(0, _to_int(request.get("attempt_count"), 0))
    max_attempts = _to_int(request.get("max_attempts"), default_max) or default_max
    return attempts, max(1, max_attempts)


def to_datetime(value: Any) -> Optional[datetime]:
    """解析时间戳（datetime / ISO 字符串 / 毫秒数），统一为 naive UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, timezone.utc).replace(tzinfo=None)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def should_backoff(
    request: Dict[str, Any],
    now: Optional[datetime] = None,
    base_delay_ms: int = RETRY_BASE_DELAY_MS,
    max_delay_ms: int = RETRY_MAX_DELAY_MS,
) -> BackoffDecision:
    """判断上次失败后的重试窗口是否已过"""
    attempts, _ = normalize_attempts(request)
    if attempts <= 0:
        return BackoffDecision(wait=False)
    last_attempt = to_datetime(request.get("processed_at"))
    if last_attempt is None:
        return BackoffDecision(wait=False)
    delay = compute_retry_delay_ms(attempts, base_delay_ms, max_delay_ms)
    retry_at = last_attempt + timedelta(milliseconds=delay)
    current = to_datetime(now) if now else datetime.utcnow()
    if current < retry_at:
        return BackoffDecision(wait=True, retry_at=retry_at)
    return BackoffDecision(wait=False)
