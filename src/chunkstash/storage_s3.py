"""S3 backend adapter for AWS S3, MinIO and other S3-compatible services."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from chunkstash.config import StashConfig
from chunkstash.errors import BackendError, ObjectExistsError, ObjectNotFoundError

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_PRECONDITION_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}
_TRANSIENT_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "500",
    "502",
    "503",
    "504",
}


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def _is_transient(err: ClientError) -> bool:
    if _error_code(err) in _TRANSIENT_CODES:
        return True
    status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return isinstance(status, int) and status >= 500


class S3Backend:
    """Objects stored under ``s3://bucket/prefix/``.

    The boto3 client's own retries are turned off; retrying is done by the
    engine so that attempt limits and deadlines apply uniformly. Conditional
    writes use ``IfNoneMatch="*"``; endpoints that reject it can be opened
    with ``s3_conditional_writes=False`` to fall back to list-then-put.
    """

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str = "",
        config: StashConfig | None = None,
        client: Any = None,
    ) -> None:
        cfg = config or StashConfig()
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.cache_namespace = f"s3:{cfg.s3_endpoint_url or 'aws'}/{bucket}/{self.prefix}"
        self.supports_conditional_put = cfg.s3_conditional_writes

        if client is None:
            session = boto3.Session(region_name=cfg.s3_region)
            client = session.client(
                "s3",
                region_name=cfg.s3_region,
                endpoint_url=cfg.s3_endpoint_url,
                config=BotoConfig(
                    connect_timeout=cfg.s3_request_timeout_s,
                    read_timeout=cfg.s3_request_timeout_s,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
        self._s3 = client

    # --- Key helpers ---

    def _k(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def _strip(self, key: str) -> str:
        if self.prefix:
            return key[len(self.prefix) + 1 :]
        return key

    def _wrap(self, operation: str, name: str, err: Exception) -> BackendError:
        if isinstance(err, ClientError):
            return BackendError(operation, f"{name}: {err}", transient=_is_transient(err))
        # BotoCoreError covers connection failures and read timeouts.
        return BackendError(operation, f"{name}: {err}", transient=True)

    # --- Adapter contract ---

    def put(self, name: str, data: bytes) -> None:
        try:
            self._s3.put_object(Bucket=self.bucket, Key=self._k(name), Body=data)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("put", name, e) from e

    def put_if_absent(self, name: str, data: bytes) -> None:
        try:
            self._s3.put_object(
                Bucket=self.bucket,
                Key=self._k(name),
                Body=data,
                IfNoneMatch="*",
            )
        except ParamValidationError as e:
            raise BackendError(
                "put_if_absent",
                "S3 endpoint does not support conditional write preconditions",
                transient=False,
            ) from e
        except ClientError as e:
            if _error_code(e) in _PRECONDITION_CODES:
                raise ObjectExistsError(name) from e
            raise self._wrap("put_if_absent", name, e) from e
        except BotoCoreError as e:
            raise self._wrap("put_if_absent", name, e) from e

    def get(self, name: str) -> bytes:
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=self._k(name))
            return resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(name) from e
            raise self._wrap("get", name, e) from e
        except BotoCoreError as e:
            raise self._wrap("get", name, e) from e

    def delete(self, name: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=self._k(name))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return
            raise self._wrap("delete", name, e) from e
        except BotoCoreError as e:
            raise self._wrap("delete", name, e) from e

    def list(self, prefix: str) -> list[str]:
        names: list[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self._k(prefix)):
                for obj in page.get("Contents", []) or []:
                    key = obj.get("Key")
                    if isinstance(key, str):
                        names.append(self._strip(key))
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("list", prefix, e) from e
        return sorted(names)

    def storage_info(self) -> dict[str, object]:
        return {
            "backend": "s3",
            "bucket": self.bucket,
            "prefix": self.prefix,
            "conditional_put": self.supports_conditional_put,
        }

    def close(self) -> None:
        close = getattr(self._s3, "close", None)
        if callable(close):
            close()


__all__ = ["S3Backend"]
