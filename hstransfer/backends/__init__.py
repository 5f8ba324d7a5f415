"""上传目标端。

具体实现由 ``hstransfer.registry`` 按需导入，缺少某个 SDK 不影响其它目标端。
"""

from .base import Backend, BaseBackend, content_type_for

__all__ = ["Backend", "BaseBackend", "content_type_for"]
