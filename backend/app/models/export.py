"""
数据导出请求模型
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON, Integer
from datetime import datetime
import uuid

from app.database import Base


class ExportRequest(Base):
    """导出请求表"""
    __tablename__ = "data_export_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    format = Column(String(20), nullable=False, default="json")  # json, activitypub

    # 状态
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, processing, completed, failed
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)

    # 结果
    result_json = Column(JSON, nullable=True)  # 请求选项 / 完成摘要 / 失败摘要
    error_message = Column(Text, nullable=True)
    download_url = Column(String(500), nullable=True)

    # 时间
    requested_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)  # 最近一次尝试时间

    def __repr__(self):
        return f"<ExportRequest {self.id[:8]} status={self.status}>"
