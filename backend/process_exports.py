#!/usr/bin/env python
"""
导出队列定时任务入口

Usage:
    python process_exports.py                          # 进程内处理一批
    python process_exports.py --limit 10               # 指定批大小
    python process_exports.py --remote http://127.0.0.1:8001
                                                       # 调用运行中服务的内部任务接口
"""
import argparse
import asyncio
import json
import logging
import os
import sys

import httpx

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.config import settings
from app.core.logging import setup_logging

logger = logging.getLogger("process_exports")


async def run_local(limit: int) -> dict:
    """直接连接数据库处理一批"""
    from app.database import AsyncSessionLocal, init_db
    from app.routers.tasks import build_processor
    from app.services.data_store import SqlDataStore
    from app.utils.storage import get_object_store

    await init_db()
    async with AsyncSessionLocal() as db:
        processor = build_processor(SqlDataStore(db), get_object_store())
        processor.batch_size = limit
        result = await processor.run()
    return result.to_dict()


async def run_remote(base_url: str) -> dict:
    """通过 HTTP 触发（携带 Cron-Secret）"""
    headers = {"Cron-Secret": settings.cron_secret} if settings.cron_secret else {}
    async with httpx.AsyncClient(base_url=base_url, timeout=300) as client:
        resp = await client.post("/internal/tasks/process-exports", headers=headers)
        resp.raise_for_status()
        return resp.json()


def main() -> int:
    parser = argparse.ArgumentParser(description="Process one batch of pending data exports")
    parser.add_argument("--limit", type=int, default=settings.export_batch_size)
    parser.add_argument("--remote", help="base URL of a running server")
    args = parser.parse_args()

    setup_logging()
    try:
        if args.remote:
            result = asyncio.run(run_remote(args.remote))
        else:
            result = asyncio.run(run_local(args.limit))
    except httpx.HTTPError as e:
        logger.error(f"Export trigger failed: {e}")
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if not result.get("supported", True):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
