"""Upload backend protocol definitions."""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Dict, Optional, Protocol, Tuple

from ..errors import ConfigError, TransferError

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/MP2T"


def content_type_for(name: str) -> str:
    """Return the MIME type a player expects for the given file name."""
    if name.endswith(".m3u8"):
        return PLAYLIST_CONTENT_TYPE
    return SEGMENT_CONTENT_TYPE


class Backend(Protocol):
    """Protocol that all upload destinations should implement."""

    name: str
    transfer_type: str
    url_prefix: str
    url_prefix_for_playlists: str
    supports_invalidate: bool

    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        """Store ``content`` (read from its current position to EOF) under ``destination_name``."""

    def try_delete_file(self, name: str) -> None:
        """Delete ``name``; a missing file is not an error."""

    def invalidate(self, name: str) -> None:
        """Purge ``name`` from the CDN cache. Only called when ``supports_invalidate`` is set."""


class BaseBackend:
    """Shared configuration handling for the concrete backends.

    Subclasses list the config keys they need in ``REQUIRED_KEYS``.
    """

    transfer_type = ""
    REQUIRED_KEYS: Tuple[str, ...] = ()

    def __init__(
        self,
        name: str,
        config: Dict[str, Any],
        *,
        default_url_prefix: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        missing = [key for key in self.REQUIRED_KEYS if config.get(key) in (None, "")]
        if missing:
            raise ConfigError(
                f"Transfer profile {name} ({self.transfer_type}) is missing: {', '.join(missing)}"
            )

        self.name = name
        self.config = config
        self.url_prefix = config.get("url_prefix") or default_url_prefix
        self.url_prefix_for_playlists = config.get("url_prefix_for_playlists") or self.url_prefix
        self.supports_invalidate = False
        self._logger = logger or logging.getLogger(__name__).getChild(name)

    # ------------------------------------------------------------------
    # 协议方法实现
    # ------------------------------------------------------------------
    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        raise NotImplementedError

    def try_delete_file(self, name: str) -> None:
        raise NotImplementedError

    def invalidate(self, name: str) -> None:
        raise TransferError(
            f"{self.transfer_type} backend {self.name} does not support invalidation",
            backend=self.name,
            name=name,
        )

    # ------------------------------------------------------------------
    # 内部工具方法
    # ------------------------------------------------------------------
    def _error(self, action: str, name: str, exc: BaseException) -> TransferError:
        return TransferError(
            f"{self.transfer_type} {action} failed for {name} on {self.name}: {exc}",
            backend=self.name,
            name=name,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


__all__ = [
    "Backend",
    "BaseBackend",
    "content_type_for",
    "PLAYLIST_CONTENT_TYPE",
    "SEGMENT_CONTENT_TYPE",
]
