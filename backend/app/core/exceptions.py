"""
导出相关异常
"""
from typing import Any, Dict, Optional


class ExportError(Exception):
    """导出异常基类"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ExportNotSupportedError(ExportError):
    """数据层未提供导出所需能力"""

    pass


class ExportNotFoundError(ExportError):
    """导出请求不存在"""

    pass


class ExportForbiddenError(ExportError):
    """访问他人的导出请求"""

    pass


class ExportStateError(ExportError):
    """非法的状态迁移（如重试时次数仍已耗尽）"""

    pass


class ExportBuildError(ExportError):
    """构建导出内容失败"""

    pass


class StorageUnavailableError(ExportBuildError):
    """对象存储未配置"""

    pass
