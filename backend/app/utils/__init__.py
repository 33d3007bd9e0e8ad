"""
工具函数
"""
from app.utils.auth import create_access_token, decode_access_token
from app.utils.storage import LocalObjectStore, get_object_store, get_file_url, ensure_dir
from app.utils.backoff import compute_retry_delay_ms, should_backoff, normalize_attempts
from app.utils.identity import resolve_actor_ref, resolve_object_ref, build_activity_uri_for_actor

__all__ = [
    "create_access_token",
    "decode_access_token",
    "LocalObjectStore",
    "get_object_store",
    "get_file_url",
    "ensure_dir",
    "compute_retry_delay_ms",
    "should_backoff",
    "normalize_attempts",
    "resolve_actor_ref",
    "resolve_object_ref",
    "build_activity_uri_for_actor",
]
