"""S3 implementation of RemoteStore.

Maps the collection/data-object hierarchy onto an S3 (or S3-compatible,
e.g. Cloudflare R2) bucket:

- a data object ``/run1/a/x.bam`` is the key ``{prefix}run1/a/x.bam``;
- a collection is marked by a zero-byte ``{prefix}run1/a/`` key;
- AVUs live in a JSON sidecar object ``{key}.avus.json``;
- the local MD5 is stored in the object's user metadata and, for
  single-part uploads, cross-checked against the ETag.
"""

import json
from pathlib import Path
from typing import Any

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from data_publisher.lib.store.base import (
    AVU,
    AVU_SIDECAR_SUFFIX,
    DataObject,
    StoreError,
    check_object_name,
    merge_avus,
    normalize_remote_path,
)

_MULTIPART_THRESHOLD = 25 * 1024 * 1024
_MULTIPART_CHUNKSIZE = 25 * 1024 * 1024

_MD5_METADATA_KEY = "md5"


def create_s3_client(
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    *,
    endpoint_url: str | None = None,
    region_name: str = "auto",
) -> Any:
    """Create a boto3 S3 client.

    Applies the checksum workaround needed by S3-compatible services such
    as R2 for boto3 v1.36.0+.

    Args:
        access_key_id: Access key; None defers to the boto3 credential chain.
        secret_access_key: Secret key.
        endpoint_url: Custom endpoint for S3-compatible storage.
        region_name: Region name.

    Returns:
        Configured boto3 S3 client.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=region_name,
        config=config,
    )


def _is_not_found(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound")


class S3Store:
    """Bucket-backed remote store.

    Args:
        client: boto3 S3 client.
        bucket: Bucket name.
        prefix: Key prefix under which the store's root lives.
    """

    def __init__(self, client: Any, bucket: str, prefix: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""

    @property
    def bucket(self) -> str:
        return self._bucket

    def validate(self) -> None:
        """Verify bucket access before publishing.

        Raises:
            StoreError: If the bucket does not exist or access is denied.
        """
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError as exc:
            code = exc.response["Error"]["Code"]
            if code == "404":
                raise StoreError(self._bucket, "bucket not found") from exc
            if code in ("403", "401"):
                raise StoreError(self._bucket, "access denied; check S3 credentials") from exc
            raise
        logger.debug("Bucket s3://{} is accessible", self._bucket)

    def _key(self, path: str) -> str:
        return self._prefix + normalize_remote_path(path).lstrip("/")

    def _collection_key(self, path: str) -> str:
        key = self._key(path)
        if not key or key.endswith("/"):
            return key
        return key + "/"

    def _path(self, key: str) -> str:
        return "/" + key[len(self._prefix) :]

    def _head(self, key: str) -> dict[str, Any] | None:
        try:
            return self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise

    def collection_exists(self, path: str) -> bool:
        key = self._collection_key(path)
        if not key:
            return True
        response = self._client.list_objects_v2(Bucket=self._bucket, Prefix=key, MaxKeys=1)
        return response.get("KeyCount", 0) > 0

    def create_collection(self, path: str) -> None:
        key = self._collection_key(path)
        if not key:
            return
        if self._head(key.rstrip("/")) is not None:
            raise StoreError(path, "a data object already exists at this path")
        self._client.put_object(Bucket=self._bucket, Key=key, Body=b"")
        logger.debug("Created collection s3://{}/{}", self._bucket, key)

    def object_exists(self, path: str) -> bool:
        return self._head(self._key(path)) is not None

    def put_object(self, local_path: Path, remote_path: str, checksum: str | None = None) -> DataObject:
        """Upload ``local_path`` to the object key for ``remote_path``.

        Uses a 25 MB multipart threshold for large files.
        """
        remote_path = check_object_name(normalize_remote_path(remote_path))
        key = self._key(remote_path)
        transfer_config = TransferConfig(
            multipart_threshold=_MULTIPART_THRESHOLD,
            multipart_chunksize=_MULTIPART_CHUNKSIZE,
            max_concurrency=4,
            use_threads=True,
        )
        extra_args: dict[str, Any] = {}
        if checksum:
            extra_args["Metadata"] = {_MD5_METADATA_KEY: checksum}

        try:
            file_size = local_path.stat().st_size
            logger.debug("Uploading {} ({} bytes) to s3://{}/{}", local_path.name, file_size, self._bucket, key)
            self._client.upload_file(str(local_path), self._bucket, key, Config=transfer_config, ExtraArgs=extra_args)
            head = self._client.head_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError, OSError) as exc:
            raise StoreError(remote_path, f"upload failed: {exc}") from exc

        return DataObject(store=self, path=remote_path, checksum=self._reported_checksum(head))

    @staticmethod
    def _reported_checksum(head: dict[str, Any]) -> str | None:
        etag = head.get("ETag", "").strip('"')
        if etag and "-" not in etag:
            return etag.lower()
        return head.get("Metadata", {}).get(_MD5_METADATA_KEY)

    def add_metadata(self, path: str, avu: AVU) -> bool:
        if not self.object_exists(path):
            raise StoreError(path, "no such data object")
        avus = self.get_metadata(path)
        if avu in avus:
            return False
        avus.append(avu)
        self._put_sidecar(path, avus)
        return True

    def replace_metadata(self, path: str, avus: list[AVU]) -> None:
        if not self.object_exists(path):
            raise StoreError(path, "no such data object")
        self._put_sidecar(path, merge_avus(self.get_metadata(path), avus))

    def _put_sidecar(self, path: str, avus: list[AVU]) -> None:
        body = json.dumps([a.to_dict() for a in avus], indent=2).encode("utf-8")
        self._client.put_object(
            Bucket=self._bucket,
            Key=self._key(path) + AVU_SIDECAR_SUFFIX,
            Body=body,
            ContentType="application/json",
        )

    def get_metadata(self, path: str) -> list[AVU]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._key(path) + AVU_SIDECAR_SUFFIX)
        except ClientError as exc:
            if _is_not_found(exc):
                return []
            raise
        raw = json.loads(response["Body"].read().decode("utf-8"))
        return [AVU.from_dict(item) for item in raw]

    def list_collection(self, path: str, recursive: bool = False) -> list[str]:
        prefix = self._collection_key(path) or self._prefix
        paginator = self._client.get_paginator("list_objects_v2")
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix}
        if not recursive:
            kwargs["Delimiter"] = "/"

        paths = []
        for page in paginator.paginate(**kwargs):
            for item in page.get("Contents", []):
                key = item["Key"]
                if key.endswith("/") or key.endswith(AVU_SIDECAR_SUFFIX):
                    continue
                paths.append(self._path(key))
        return sorted(paths)
