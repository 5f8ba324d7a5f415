"""旧切片清理策略。"""

from typing import Optional

from .playlist import segment_file_name


def segment_to_retire(last_segment: int, retention_depth: int, segment_prefix: str, profile_name: str) -> Optional[str]:
    """返回落后最新切片 ``retention_depth`` 个位置的切片文件名

    编号小于 0 的切片不存在，返回 None。删除从未创建过的切片不算错误，
    因此 0 号等不存在的文件名照常返回。
    """
    index = last_segment - retention_depth
    if index < 0:
        return None
    return segment_file_name(segment_prefix, profile_name, index)
