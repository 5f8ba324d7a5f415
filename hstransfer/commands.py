"""
传输命令定义

分段器（生产者）向传输队列推送的命令：
- Quit：终止哨兵
- BuildMultiVariantIndex：生成多码率主播放列表
- ShipSegment：上传一个已完成的切片及其播放列表

生产者也可以推送字符串形式的命令，格式为
``"<first_segment>,<last_segment>,<stream_end:0|1>,<profile_name>"``，
或保留字 ``quit`` / ``mr_index``。
"""

import re
from dataclasses import dataclass
from typing import Union

QUIT = "quit"
MULTIRATE_INDEX = "mr_index"

_FIELD_SEPARATOR = re.compile(r"\s*,\s*")


@dataclass(frozen=True)
class Quit:
    """终止哨兵，FIFO 保证它之前的命令全部处理完毕"""


@dataclass(frozen=True)
class BuildMultiVariantIndex:
    """生成并上传多码率主播放列表"""


@dataclass(frozen=True)
class ShipSegment:
    """上传切片 ``last_segment`` 并刷新对应的单码率播放列表"""

    first_segment: int
    last_segment: int
    stream_ended: bool
    profile_name: str

    def __post_init__(self):
        if self.first_segment < 0 or self.last_segment < 0:
            raise ValueError("segment index must not be negative")
        if not self.profile_name:
            raise ValueError("profile name must not be empty")


Command = Union[Quit, BuildMultiVariantIndex, ShipSegment]


def parse_command(text: str) -> Command:
    """解析字符串形式的命令

    Args:
        text: 生产者推送的命令字符串

    Returns:
        对应的命令对象

    Raises:
        ValueError: 格式错误
    """
    value = text.strip()
    if value == QUIT:
        return Quit()
    if value == MULTIRATE_INDEX:
        return BuildMultiVariantIndex()

    fields = _FIELD_SEPARATOR.split(value)
    if len(fields) != 4:
        raise ValueError(f"Malformed transfer command: {text!r}")

    first_segment, last_segment, stream_end, profile_name = fields
    try:
        first = int(first_segment)
        last = int(last_segment)
        ended = int(stream_end)
    except ValueError as exc:
        raise ValueError(f"Malformed transfer command: {text!r}") from exc

    if ended not in (0, 1):
        raise ValueError(f"Stream end flag must be 0 or 1: {text!r}")

    return ShipSegment(
        first_segment=first,
        last_segment=last,
        stream_ended=ended == 1,
        profile_name=profile_name,
    )
