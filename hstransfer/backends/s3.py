"""Amazon S3 目标端，可选 CloudFront 刷新。"""

from __future__ import annotations

import time
from typing import Any, BinaryIO, Dict

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseBackend, content_type_for


class S3Backend(BaseBackend):
    """上传到 S3 存储桶。

    配置了 ``cloudfront_distribution_id`` 时支持 CDN 刷新。
    """

    transfer_type = "s3"
    REQUIRED_KEYS = ("aws_api_key", "aws_api_secret", "bucket_name", "key_prefix")

    def __init__(self, name: str, config: Dict[str, Any], **kwargs: Any) -> None:
        super().__init__(name, config, **kwargs)
        session = boto3.Session(
            aws_access_key_id=config["aws_api_key"],
            aws_secret_access_key=config["aws_api_secret"],
            region_name=config.get("region"),
        )
        self._s3 = session.client("s3")
        self._acl = config.get("acl", "public-read")
        self._distribution_id = config.get("cloudfront_distribution_id")
        self._cloudfront = session.client("cloudfront") if self._distribution_id else None
        self.supports_invalidate = self._cloudfront is not None

    def create_file(self, destination_name: str, content: BinaryIO) -> None:
        key = self._key(destination_name)
        content_type = content_type_for(destination_name)
        self._logger.debug("Content type: %s", content_type)
        params = {"Bucket": self.config["bucket_name"], "Key": key, "ContentType": content_type}
        if self._acl:
            params["ACL"] = self._acl
        # upload_fileobj 上传后会关闭文件对象，而同一份切片还要交给其它目标端
        try:
            self._s3.put_object(Body=content.read(), **params)
        except (BotoCoreError, ClientError) as exc:
            raise self._error("upload", destination_name, exc) from exc
        self._logger.debug("Uploaded s3://%s/%s", self.config["bucket_name"], key)

    def try_delete_file(self, name: str) -> None:
        # S3 删除不存在的 key 同样返回成功
        try:
            self._s3.delete_object(Bucket=self.config["bucket_name"], Key=self._key(name))
        except (BotoCoreError, ClientError) as exc:
            raise self._error("delete", name, exc) from exc

    def invalidate(self, name: str) -> None:
        if self._cloudfront is None:
            super().invalidate(name)
            return
        try:
            self._cloudfront.create_invalidation(
                DistributionId=self._distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": 1, "Items": ["/" + self._key(name)]},
                    "CallerReference": f"{name}-{time.time_ns()}",
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._error("invalidate", name, exc) from exc
        self._logger.debug("Invalidated /%s on %s", self._key(name), self._distribution_id)

    def _key(self, name: str) -> str:
        return f"{self.config['key_prefix']}/{name}"
