"""
传输配置模块

从 JSON 配置文件读取分段传输相关参数，提供默认值和启动前检查。
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config/config.json"
MIN_SEGMENT_LENGTH = 3

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass(frozen=True)
class EncodingProfile:
    """编码配置（同一路流的一个码率版本）"""

    name: str
    bandwidth: int


@dataclass
class TransferConfig:
    """传输配置

    每次运行固定不变的参数，由全局配置构造。
    """

    temp_dir: str
    segment_prefix: str
    index_prefix: str
    segment_length: int = 10  # 切片时长（秒）
    index_segment_count: int = 3  # 播放列表窗口大小
    delete_nth_segment_back: Optional[int] = None  # 清理深度，None 表示不清理
    encoding_profiles: List[EncodingProfile] = field(default_factory=list)

    @classmethod
    def from_app_config(cls, app_config: dict) -> 'TransferConfig':
        """从应用配置创建 TransferConfig

        Args:
            app_config: 全局配置字典

        Returns:
            TransferConfig 实例

        Raises:
            ConfigError: 缺少必需字段
        """
        for key in ("temp_dir", "segment_prefix", "index_prefix"):
            if not app_config.get(key):
                raise ConfigError(f"Missing required config key: {key}")

        config = cls(
            temp_dir=app_config["temp_dir"],
            segment_prefix=app_config["segment_prefix"],
            index_prefix=app_config["index_prefix"],
        )

        if "segment_length" in app_config:
            config.segment_length = int(app_config["segment_length"])
        if "index_segment_count" in app_config:
            config.index_segment_count = int(app_config["index_segment_count"])
        if app_config.get("delete_nth_segment_back"):
            config.delete_nth_segment_back = int(app_config["delete_nth_segment_back"])

        for name in profile_names(app_config, "encoding_profile"):
            try:
                bandwidth = int(_section(app_config, name)["bandwidth"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(f"The given encoding profile has no valid bandwidth: {name}") from exc
            config.encoding_profiles.append(EncodingProfile(name=name, bandwidth=bandwidth))
        return config

    def get_segment_path(self, profile_name: str, segment_index: int) -> str:
        """获取本地临时切片文件路径

        Args:
            profile_name: 编码配置名称
            segment_index: 切片编号

        Returns:
            切片文件路径
        """
        from .playlist import segment_file_name

        return os.path.join(self.temp_dir, segment_file_name(self.segment_prefix, profile_name, segment_index))


def profile_names(app_config: dict, key: str) -> List[str]:
    """配置项可以是单个名称或名称列表"""
    value = app_config.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def transfer_profiles(app_config: dict) -> List[Tuple[str, Dict[str, Any]]]:
    """按配置顺序返回 (名称, 传输配置段)"""
    return [(name, _section(app_config, name)) for name in profile_names(app_config, "transfer_profile")]


def _section(app_config: dict, name: str) -> Dict[str, Any]:
    section = app_config.get(name)
    if not isinstance(section, dict):
        raise ConfigError(f"Profile section not found in config: {name}")
    return section


def load_config(config_file: str = CONFIG_FILE) -> Dict[str, Any]:
    """读取 JSON 配置文件

    Raises:
        ConfigError: 文件不存在或格式错误
    """
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration file {config_file}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in configuration file {config_file}: {exc}") from exc

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file must contain a JSON object: {config_file}")
    logger.info("Loaded configuration file: %s", config_file)
    return config


def setup_logging(app_config: dict) -> logging.Logger:
    """根据配置设置 hstransfer 日志

    log_type 为 FILE 时写入按天滚动的日志文件，否则输出到 stdout。
    未知的 log_level 按 DEBUG 处理。
    """
    log = logging.getLogger("hstransfer")

    if app_config.get("log_type") == "FILE":
        try:
            handler: logging.Handler = TimedRotatingFileHandler(
                app_config["log_file"],
                when="midnight",
                interval=1,
                backupCount=3,
            )
        except (KeyError, OSError) as exc:
            raise ConfigError(f"The given log file can not be written to: {app_config.get('log_file')}") from exc
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    for existing in list(log.handlers):
        log.removeHandler(existing)
    log.addHandler(handler)
    log.setLevel(LOG_LEVELS.get(str(app_config.get("log_level", "")).upper(), logging.DEBUG))
    return log


def validate_config(app_config: dict) -> None:
    """启动前检查配置，第一个错误记录日志后抛出 ConfigError"""
    from . import registry

    def fail(message: str) -> None:
        logger.error(message)
        raise ConfigError(message)

    if app_config.get("log_type") == "FILE":
        log_file = app_config.get("log_file")
        if not log_file or not _writable_file(log_file):
            fail(f"The given log file can not be written to: {log_file}")

    temp_dir = app_config.get("temp_dir")
    if not temp_dir or not os.path.isdir(temp_dir) or not os.access(temp_dir, os.W_OK):
        fail(f"Temp directory does not exist or can not be written to: {temp_dir}")

    segment_length = _as_int(app_config.get("segment_length"))
    if segment_length is None or segment_length < MIN_SEGMENT_LENGTH:
        fail(f"Segment length can not be less than {MIN_SEGMENT_LENGTH} seconds: {app_config.get('segment_length')}")

    window_size = _as_int(app_config.get("index_segment_count"))
    if window_size is None or window_size < 1:
        fail(f"Index segment count must be a positive integer: {app_config.get('index_segment_count')}")

    retention = app_config.get("delete_nth_segment_back")
    if retention:
        depth = _as_int(retention)
        if depth is None or depth < 1:
            fail(f"delete_nth_segment_back must be a positive integer: {retention}")
        if depth <= window_size:
            logger.warning(
                "delete_nth_segment_back (%s) is not larger than index_segment_count (%s); "
                "segments still listed in playlists will be deleted",
                depth,
                window_size,
            )

    encoding_profiles = profile_names(app_config, "encoding_profile")
    if not encoding_profiles:
        fail("No encoding profile configured")
    for name in encoding_profiles:
        section = app_config.get(name)
        if not isinstance(section, dict):
            fail(f"The given encoding profile was not found in the config: {name}")
        if _as_int(section.get("bandwidth")) is None:
            fail(f"The given encoding profile has no valid bandwidth: {name}")

    tp_names = profile_names(app_config, "transfer_profile")
    if not tp_names:
        fail("No transfer profile configured")
    for name in tp_names:
        section = app_config.get(name)
        if not isinstance(section, dict):
            fail(f"The given transfer profile was not found in the config: {name}")

        transfer_type = section.get("transfer_type")
        if not registry.is_known(transfer_type):
            fail(f"The given transfer type is not known: {transfer_type}")
        if not registry.probe(transfer_type):
            fail(f"The given transfer type is not available: {transfer_type}")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _writable_file(path: str) -> bool:
    if os.path.exists(path):
        return os.access(path, os.W_OK)
    directory = os.path.dirname(os.path.abspath(path))
    return os.path.isdir(directory) and os.access(directory, os.W_OK)
