"""
HLS 分段传输模块

把直播分段器产出的切片和播放列表上传到一个或多个目标端。

核心特性：
- 单消费者 FIFO 命令队列，终止哨兵之前的命令全部处理完才退出
- 可插拔的目标端（本地复制、SCP、FTP、S3、Cloud Files）
- 滑动窗口单码率播放列表和多码率主播放列表
- 旧切片清理
- 单个目标端或单条命令失败不会中断传输线程
"""

from .commands import BuildMultiVariantIndex, Quit, ShipSegment, parse_command
from .config import EncodingProfile, TransferConfig, load_config, setup_logging, validate_config
from .errors import ConfigError, SourceReadError, TransferError
from .playlist import PlaylistGenerator, render_master_playlist, render_media_playlist
from .retention import segment_to_retire
from .worker import TransferWorker

__all__ = [
    'BuildMultiVariantIndex',
    'Quit',
    'ShipSegment',
    'parse_command',
    'EncodingProfile',
    'TransferConfig',
    'load_config',
    'setup_logging',
    'validate_config',
    'ConfigError',
    'SourceReadError',
    'TransferError',
    'PlaylistGenerator',
    'render_master_playlist',
    'render_media_playlist',
    'segment_to_retire',
    'TransferWorker',
]
