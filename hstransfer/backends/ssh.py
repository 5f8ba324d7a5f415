"""SCP 目标端。

每次上传都新建 SSH 连接，空闲超时断开不会影响后续上传。
"""

from __future__ import annotations

import contextlib
import posixpath
from typing import BinaryIO, Iterator

import paramiko
from scp import SCPClient, SCPException

from .base import BaseBackend


class SCPBackend(BaseBackend):
    """通过 SCP 上传到远程目录。"""

    transfer_type = "scp"
    REQUIRED_KEYS = ("remote_host", "user_name", "directory")

    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        remote_path = self._remote_path(destination_name)
        try:
            with self._connection() as client:
                with SCPClient(client.get_transport()) as scp:
                    scp.putfo(content, remote_path)
        except (paramiko.SSHException, SCPException, OSError) as exc:
            raise self._error("upload", destination_name, exc) from exc
        self._logger.debug("Uploaded %s to %s:%s", destination_name, self.config["remote_host"], remote_path)

    def try_delete_file(self, name: str) -> None:
        remote_path = self._remote_path(name)
        try:
            with self._connection() as client:
                sftp = client.open_sftp()
                try:
                    sftp.remove(remote_path)
                finally:
                    sftp.close()
        except FileNotFoundError:
            return
        except (paramiko.SSHException, OSError) as exc:
            raise self._error("delete", name, exc) from exc
        self._logger.debug("Deleted %s:%s", self.config["remote_host"], remote_path)

    def _remote_path(self, name: str) -> str:
        return posixpath.join(self.config["directory"], name)

    @contextlib.contextmanager
    def _connection(self) -> Iterator[paramiko.SSHClient]:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.config["remote_host"],
                port=int(self.config.get("port", 22)),
                username=self.config["user_name"],
                password=self.config.get("password"),
                key_filename=self.config.get("key_filename"),
            )
            yield client
        finally:
            client.close()
