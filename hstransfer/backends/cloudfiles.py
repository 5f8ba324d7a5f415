"""Rackspace Cloud Files 目标端（带 CDN）。

使用 Cloud Files v1 REST 接口：每次操作前重新认证，
取得存储地址、CDN 管理地址和 token。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional
from urllib.parse import quote

import requests

from .base import BaseBackend, content_type_for

DEFAULT_AUTH_URL = "https://identity.api.rackspacecloud.com/v1.0"
DEFAULT_TIMEOUT = 30


@dataclass
class _CloudFilesSession:
    storage_url: str
    cdn_management_url: Optional[str]
    token: str


class CloudFilesBackend(BaseBackend):
    """上传到 Cloud Files 容器，并通过 CDN 管理接口刷新缓存。"""

    transfer_type = "cf"
    REQUIRED_KEYS = ("username", "api_key", "container", "key_prefix")

    def __init__(self, name: str, config: Dict[str, Any], *, session: Optional[requests.Session] = None, **kwargs: Any) -> None:
        super().__init__(name, config, **kwargs)
        self._http = session or requests.Session()
        self._auth_url = config.get("auth_url") or DEFAULT_AUTH_URL
        self._timeout = int(config.get("timeout", DEFAULT_TIMEOUT))
        self.supports_invalidate = True

    # ------------------------------------------------------------------
    # 协议方法实现
    # ------------------------------------------------------------------
    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        try:
            auth = self._authenticate()
            response = self._http.put(
                self._object_url(auth.storage_url, destination_name),
                data=content,
                headers={
                    "X-Auth-Token": auth.token,
                    "Content-Type": content_type_for(destination_name),
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise self._error("upload", destination_name, exc) from exc
        self._logger.debug("Uploaded %s to container %s", destination_name, self.config["container"])

    def try_delete_file(self, name: str) -> None:
        try:
            auth = self._authenticate()
            response = self._http.delete(
                self._object_url(auth.storage_url, name),
                headers={"X-Auth-Token": auth.token},
                timeout=self._timeout,
            )
            if response.status_code == 404:
                return
            response.raise_for_status()
        except requests.RequestException as exc:
            raise self._error("delete", name, exc) from exc
        self._logger.debug("Deleted %s from container %s", name, self.config["container"])

    def invalidate(self, name: str) -> None:
        try:
            auth = self._authenticate()
            if not auth.cdn_management_url:
                raise requests.RequestException("no CDN management URL returned by auth")
            response = self._http.delete(
                self._object_url(auth.cdn_management_url, name),
                headers={"X-Auth-Token": auth.token},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise self._error("invalidate", name, exc) from exc
        self._logger.debug("Purged %s from CDN", name)

    # ------------------------------------------------------------------
    # 内部工具方法
    # ------------------------------------------------------------------
    def _authenticate(self) -> _CloudFilesSession:
        response = self._http.get(
            self._auth_url,
            headers={
                "X-Auth-User": self.config["username"],
                "X-Auth-Key": self.config["api_key"],
            },
            timeout=self._timeout,
        )
        response.raise_for_status()

        storage_url = response.headers.get("X-Storage-Url")
        token = response.headers.get("X-Auth-Token")
        if not storage_url or not token:
            raise requests.RequestException("Cloud Files auth response is missing storage URL or token")
        return _CloudFilesSession(
            storage_url=storage_url.rstrip("/"),
            cdn_management_url=(response.headers.get("X-CDN-Management-Url") or "").rstrip("/") or None,
            token=token,
        )

    def _object_url(self, base_url: str, name: str) -> str:
        key = f"{self.config['key_prefix']}/{name}"
        return f"{base_url}/{quote(self.config['container'])}/{quote(key)}"
