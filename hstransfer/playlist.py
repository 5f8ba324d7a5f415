"""
HLS 播放列表生成器

生成滑动窗口的单码率播放列表和多码率主播放列表。
播放列表只在内存中生成，上传后即丢弃，不写入本地文件。
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .config import EncodingProfile

PLAYLIST_SUFFIX = ".m3u8"
SEGMENT_SUFFIX = ".ts"


def segment_file_name(segment_prefix: str, profile_name: str, segment_index: int) -> str:
    """切片文件名，如 ``stream_720p-00007.ts``"""
    return f"{segment_prefix}_{profile_name}-{segment_index:05d}{SEGMENT_SUFFIX}"


def index_file_name(index_prefix: str, profile_name: str) -> str:
    """单码率播放列表文件名"""
    return f"{index_prefix}_{profile_name}{PLAYLIST_SUFFIX}"


def multi_index_file_name(index_prefix: str) -> str:
    """多码率主播放列表文件名"""
    return index_file_name(index_prefix, "multi")


@dataclass(frozen=True)
class PlaylistWindow:
    """滑动窗口

    列出不超过 ``last_segment`` 的最近 ``window_size`` 个切片，
    且不早于 ``first_segment``。
    """

    window_size: int
    first_segment: int
    last_segment: int

    @property
    def media_sequence(self) -> int:
        """窗口中第一个切片的序号"""
        if self.last_segment >= self.window_size:
            return self.last_segment - (self.window_size - 1)
        return 1

    @property
    def segment_indices(self) -> List[int]:
        oldest = self.last_segment - self.window_size
        return [
            index
            for index in range(self.first_segment, self.last_segment + 1)
            if index > oldest
        ]


class PlaylistGenerator:
    """HLS 播放列表生成器

    持有每次运行固定的参数（窗口大小、切片时长、文件名前缀），
    按命令生成播放列表内容。
    """

    def __init__(self, window_size: int, segment_duration: int, segment_prefix: str, index_prefix: str):
        """初始化播放列表生成器

        Args:
            window_size: 播放列表中的切片数量
            segment_duration: 切片时长（秒）
            segment_prefix: 切片文件名前缀
            index_prefix: 播放列表文件名前缀
        """
        self.window_size = window_size
        self.segment_duration = segment_duration
        self.segment_prefix = segment_prefix
        self.index_prefix = index_prefix

    def generate_media_playlist(
        self,
        profile_name: str,
        url_prefix: str,
        first_segment: int,
        last_segment: int,
        stream_ended: bool,
    ) -> bytes:
        return render_media_playlist(
            self.window_size,
            self.segment_duration,
            self.segment_prefix,
            profile_name,
            url_prefix,
            first_segment,
            last_segment,
            stream_ended,
        )

    def generate_master_playlist(self, profiles: Sequence[EncodingProfile], url_prefix_for_playlists: str) -> bytes:
        return render_master_playlist(self.index_prefix, profiles, url_prefix_for_playlists)


def render_media_playlist(
    window_size: int,
    segment_duration: int,
    segment_prefix: str,
    profile_name: str,
    url_prefix: str,
    first_segment: int,
    last_segment: int,
    stream_ended: bool,
) -> bytes:
    """生成单码率滑动窗口播放列表

    窗口之外的旧切片在目标端仍然存在，直到被清理策略删除。

    Args:
        window_size: 播放列表中的切片数量
        segment_duration: 切片时长（秒）
        segment_prefix: 切片文件名前缀
        profile_name: 编码配置名称
        url_prefix: 切片 URL 前缀（每个目标端可能不同）
        first_segment: 本次推流的第一个切片编号
        last_segment: 最新完成的切片编号
        stream_ended: 推流是否已结束

    Returns:
        m3u8 播放列表内容
    """
    window = PlaylistWindow(window_size, first_segment, last_segment)

    lines = [
        "#EXTM3U",
        f"#EXT-X-TARGETDURATION:{segment_duration}",
        f"#EXT-X-MEDIA-SEQUENCE:{window.media_sequence}",
    ]

    for segment_index in window.segment_indices:
        lines.append(f"#EXTINF:{segment_duration},")
        lines.append(url_prefix + segment_file_name(segment_prefix, profile_name, segment_index))

    # 结束标记让播放器停止轮询
    if stream_ended:
        lines.append("#EXT-X-ENDLIST")

    return _encode(lines)


def render_master_playlist(
    index_prefix: str,
    profiles: Iterable[EncodingProfile],
    url_prefix_for_playlists: str,
) -> bytes:
    """生成多码率主播放列表

    条目顺序与配置顺序一致，播放器可能默认选择第一个条目。

    Args:
        index_prefix: 播放列表文件名前缀
        profiles: 按配置顺序排列的编码配置
        url_prefix_for_playlists: 播放列表 URL 前缀

    Returns:
        m3u8 播放列表内容
    """
    lines = ["#EXTM3U"]
    for profile in profiles:
        lines.append(f"#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH={profile.bandwidth}")
        lines.append(url_prefix_for_playlists + index_file_name(index_prefix, profile.name))
    return _encode(lines)


def _encode(lines: List[str]) -> bytes:
    return ("\n".join(lines) + "\n").encode("utf-8")
