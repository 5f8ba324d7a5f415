"""本地目录复制目标端。"""

from __future__ import annotations

import os
import shutil
from typing import BinaryIO

from .base import BaseBackend


class CopyBackend(BaseBackend):
    """把文件写入本地（或挂载的）目录。"""

    transfer_type = "copy"
    REQUIRED_KEYS = ("directory",)

    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        path = os.path.join(self.config["directory"], destination_name)
        try:
            os.makedirs(self.config["directory"], exist_ok=True)
            with open(path, "wb") as f:
                shutil.copyfileobj(content, f)
        except OSError as exc:
            raise self._error("copy", destination_name, exc) from exc
        self._logger.debug("Copied %s to %s", destination_name, path)

    def try_delete_file(self, name: str) -> None:
        path = os.path.join(self.config["directory"], name)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise self._error("delete", name, exc) from exc
        self._logger.debug("Deleted %s", path)
