"""FTP 目标端。

每次上传都新建 FTP 连接。
"""

from __future__ import annotations

import contextlib
import ftplib
from typing import BinaryIO, Iterator

from .base import BaseBackend


class FTPBackend(BaseBackend):
    """通过 FTP 上传到远程目录。"""

    transfer_type = "ftp"
    REQUIRED_KEYS = ("remote_host", "user_name", "password", "directory")

    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        try:
            with self._connection() as ftp:
                ftp.storbinary(f"STOR {destination_name}", content)
        except ftplib.all_errors as exc:
            raise self._error("upload", destination_name, exc) from exc
        self._logger.debug("Uploaded %s to ftp://%s", destination_name, self.config["remote_host"])

    def try_delete_file(self, name: str) -> None:
        try:
            with self._connection() as ftp:
                ftp.delete(name)
        except ftplib.error_perm as exc:
            # 550: 文件不存在
            if str(exc).startswith("550"):
                return
            raise self._error("delete", name, exc) from exc
        except ftplib.all_errors as exc:
            raise self._error("delete", name, exc) from exc
        self._logger.debug("Deleted %s on ftp://%s", name, self.config["remote_host"])

    @contextlib.contextmanager
    def _connection(self) -> Iterator[ftplib.FTP]:
        ftp = ftplib.FTP()
        try:
            ftp.connect(self.config["remote_host"], int(self.config.get("port", 21)))
            ftp.login(self.config["user_name"], self.config["password"])
            ftp.set_pasv(bool(self.config.get("passive", True)))
            ftp.cwd(self.config["directory"])
            yield ftp
            ftp.quit()
        finally:
            ftp.close()
