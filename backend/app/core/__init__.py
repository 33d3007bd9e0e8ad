"""
日志与异常等基础设施
"""
