"""传输管道异常定义。"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ConfigError",
    "TransferError",
    "SourceReadError",
]


class ConfigError(RuntimeError):
    """配置错误（未知的传输类型、缺少字段或依赖不可用）。"""


class TransferError(RuntimeError):
    """上传、删除或 CDN 刷新失败。"""

    def __init__(self, message: str, *, backend: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message)
        self.backend = backend
        self.name = name


class SourceReadError(RuntimeError):
    """本地切片文件缺失或无法读取。"""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
