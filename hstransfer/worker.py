"""
传输线程

负责把分段器产出的切片和播放列表上传到所有目标端：
- 单消费者 FIFO 命令队列
- 每条命令依次分发到每个目标端，单个目标端失败不影响其它目标端
- 单条命令失败只记录日志，继续处理下一条命令
"""

import io
import logging
import os
import queue
import threading
from typing import BinaryIO, Callable, List, Optional, Sequence, Union

from .backends.base import Backend
from .commands import BuildMultiVariantIndex, Command, Quit, ShipSegment, parse_command
from .config import TransferConfig
from .errors import SourceReadError
from .playlist import PlaylistGenerator, index_file_name, multi_index_file_name, segment_file_name
from .registry import build_backends
from .retention import segment_to_retire

_logger = logging.getLogger(__name__)

QueueItem = Union[Command, str]


class TransferWorker:
    """传输线程

    命令只能由生产者通过 ``submit`` 推入；目标端实例只在传输线程中使用。
    """

    def __init__(
        self,
        config: TransferConfig,
        backends: Sequence[Backend],
        logger: Optional[logging.Logger] = None,
    ):
        """初始化传输线程

        Args:
            config: 传输配置
            backends: 目标端实例，按配置顺序
            logger: 日志对象，默认使用模块日志
        """
        self.config = config
        self.backends: List[Backend] = list(backends)
        self.playlist_generator = PlaylistGenerator(
            config.index_segment_count,
            config.segment_length,
            config.segment_prefix,
            config.index_prefix,
        )
        self._log = logger or _logger
        self._queue: "queue.Queue[QueueItem]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, app_config: dict, logger: Optional[logging.Logger] = None) -> 'TransferWorker':
        """根据全局配置创建传输线程（尚未启动）

        Raises:
            ConfigError: 配置错误
        """
        return cls(
            TransferConfig.from_app_config(app_config),
            build_backends(app_config, logger=logger),
            logger=logger,
        )

    # ------------------------------------------------------------------
    # 生产者接口
    # ------------------------------------------------------------------
    def submit(self, item: QueueItem) -> None:
        """推入命令，可在多个线程中并发调用"""
        self._queue.put(item)

    def __lshift__(self, item: QueueItem) -> 'TransferWorker':
        self.submit(item)
        return self

    def start(self) -> None:
        """启动传输线程"""
        if self.is_alive:
            return
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="TransferThread"
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """推入终止哨兵并等待线程退出

        哨兵之前推入的命令会全部处理完。
        """
        self.submit(Quit())
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # 传输线程
    # ------------------------------------------------------------------
    def _run(self) -> None:
        self._log.info("Transfer thread started")
        while True:
            item = self._queue.get()
            try:
                command = parse_command(item) if isinstance(item, str) else item
                if isinstance(command, Quit):
                    break
                self._log.info("Transfer initiated with value = *%s*", command)
                self.process(command)
                self._log.info("Transfer done")
            except Exception:  # pylint: disable=broad-except
                self._log.exception("Error running transfer: %r", item)
            finally:
                self._queue.task_done()
        self._log.info("Transfer thread terminated")

    def process(self, command: Command) -> None:
        """同步处理单条命令"""
        if isinstance(command, BuildMultiVariantIndex):
            self._transfer_multirate_index()
        elif isinstance(command, ShipSegment):
            self._transfer_segment(command)
        else:
            raise ValueError(f"Unknown transfer command: {command!r}")

    def _transfer_multirate_index(self) -> None:
        destination_name = multi_index_file_name(self.config.index_prefix)
        self._log.debug("Creating multirate index")
        for backend in self.backends:
            content = self.playlist_generator.generate_master_playlist(
                self.config.encoding_profiles,
                backend.url_prefix_for_playlists,
            )
            self._attempt(backend, "upload", destination_name, lambda: backend.create_file(destination_name, io.BytesIO(content)))

    def _transfer_segment(self, command: ShipSegment) -> None:
        # 先上传切片，播放列表里的引用才不会指向不存在的文件
        source_path = self.config.get_segment_path(command.profile_name, command.last_segment)
        destination_name = segment_file_name(self.config.segment_prefix, command.profile_name, command.last_segment)

        try:
            source = open(source_path, "rb")
        except OSError as exc:
            raise SourceReadError(f"Can not read segment {source_path}: {exc}", path=source_path) from exc

        with source:
            self._fan_out(destination_name, source)

        # 无论上传是否成功都删除本地临时文件，不做重试
        try:
            os.remove(source_path)
        except OSError as exc:
            self._log.warning("Failed to remove temporary segment %s: %s", source_path, exc)

        index_name = index_file_name(self.config.index_prefix, command.profile_name)
        self._log.debug("Creating index %s", index_name)
        for backend in self.backends:
            content = self.playlist_generator.generate_media_playlist(
                command.profile_name,
                backend.url_prefix,
                command.first_segment,
                command.last_segment,
                command.stream_ended,
            )
            uploaded = self._attempt(backend, "upload", index_name, lambda: backend.create_file(index_name, io.BytesIO(content)))
            if uploaded and backend.supports_invalidate:
                self._attempt(backend, "invalidate", index_name, lambda: backend.invalidate(index_name))

        depth = self.config.delete_nth_segment_back
        if depth:
            retired = segment_to_retire(command.last_segment, depth, self.config.segment_prefix, command.profile_name)
            if retired is not None:
                self._log.debug("Deleting old segment %s", retired)
                for backend in self.backends:
                    self._attempt(backend, "delete", retired, lambda: backend.try_delete_file(retired))

    def _fan_out(self, destination_name: str, source: BinaryIO) -> None:
        for backend in self.backends:
            self._attempt(backend, "upload", destination_name, lambda: self._rewind_and_create(backend, destination_name, source))

    def _rewind_and_create(self, backend: Backend, destination_name: str, source: BinaryIO) -> None:
        # 同一份数据依次交给每个目标端，每次都从头读取；源文件损坏只影响当前目标端
        source.seek(0)
        backend.create_file(destination_name, source)

    def _attempt(self, backend: Backend, action: str, name: str, call: Callable[[], None]) -> bool:
        try:
            call()
        except Exception as exc:  # pylint: disable=broad-except
            self._log.error(
                "Transfer %s of %s failed on %s (%s): %s",
                action,
                name,
                backend.name,
                backend.transfer_type,
                exc,
            )
            return False
        return True
