"""传输类型注册表。

把配置中的 ``transfer_type`` 映射到目标端实现，并在启动时检查依赖是否可用。
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Optional, Type

from .backends.base import BaseBackend
from .config import transfer_profiles
from .errors import ConfigError

logger = logging.getLogger(__name__)

# 定义支持的传输类型
TRANSFER_TYPES: Dict[str, Dict[str, Any]] = {
    "scp": {"module": "hstransfer.backends.ssh", "class": "SCPBackend", "requires": ("paramiko", "scp")},
    "ftp": {"module": "hstransfer.backends.ftp", "class": "FTPBackend", "requires": ("ftplib",)},
    "s3": {"module": "hstransfer.backends.s3", "class": "S3Backend", "requires": ("boto3",)},
    "cf": {"module": "hstransfer.backends.cloudfiles", "class": "CloudFilesBackend", "requires": ("requests",)},
    "copy": {"module": "hstransfer.backends.local", "class": "CopyBackend", "requires": ()},
}


def is_known(transfer_type: Optional[str]) -> bool:
    return transfer_type in TRANSFER_TYPES


def probe(transfer_type: str) -> bool:
    """返回该传输类型的依赖是否可以导入，不创建实例，依赖缺失时不抛异常"""
    if not is_known(transfer_type):
        return False
    for module_name in TRANSFER_TYPES[transfer_type]["requires"]:
        try:
            importlib.import_module(module_name)
        except ImportError:
            logger.debug("Dependency %s for transfer type %s is not available", module_name, transfer_type)
            return False
    return True


def backend_class(transfer_type: str) -> Type[BaseBackend]:
    if not is_known(transfer_type):
        raise ConfigError(f"The given transfer type is not known: {transfer_type}")
    module_name = TRANSFER_TYPES[transfer_type]["module"]
    class_name = TRANSFER_TYPES[transfer_type]["class"]
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"The given transfer type is not available: {transfer_type} ({exc})") from exc
    return getattr(module, class_name)


def construct(
    transfer_type: str,
    config: Dict[str, Any],
    *,
    name: Optional[str] = None,
    default_url_prefix: str = "",
    logger: Optional[logging.Logger] = None,
) -> BaseBackend:
    """根据传输类型创建目标端实例

    Raises:
        ConfigError: 类型未知、依赖缺失或缺少必需字段
    """
    cls = backend_class(transfer_type)
    name = name or transfer_type
    return cls(
        name,
        config,
        default_url_prefix=default_url_prefix,
        logger=(logger or logging.getLogger("hstransfer.backends")).getChild(name),
    )


def build_backends(app_config: dict, *, logger: Optional[logging.Logger] = None) -> List[BaseBackend]:
    """为每个配置的传输配置段创建一个目标端实例"""
    default_url_prefix = app_config.get("url_prefix") or ""
    backends = []
    for name, section in transfer_profiles(app_config):
        backend = construct(
            section.get("transfer_type"),
            section,
            name=name,
            default_url_prefix=default_url_prefix,
            logger=logger,
        )
        backends.append(backend)
    if not backends:
        raise ConfigError("No transfer profile configured")
    return backends
