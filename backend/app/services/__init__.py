"""
服务层
"""
from app.services.data_store import SqlDataStore
from app.services.export_service import ExportQueueProcessor

__all__ = [
    "SqlDataStore",
    "ExportQueueProcessor",
]
