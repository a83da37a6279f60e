import io
import logging
from dataclasses import dataclass
from typing import Any, Tuple

import orjson
import urllib3
from minio import Minio
from minio.error import MinioException, S3Error

from ..config import settings
from ..errors import PayloadFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayloadReference:
    """A payload that already lives in the blob store."""

    uri: str


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    if not uri.startswith("s3://"):
        raise ValueError(f"Invalid S3 URI '{uri}'. Must start with 's3://'")
    parts = uri[5:].split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid S3 URI '{uri}'. Expected 's3://bucket/key'")
    return parts[0], parts[1]


class PayloadStore:
    """Stores operation payloads as JSON objects and fetches them back by URI."""

    def __init__(self, client: Minio | None = None, bucket: str | None = None, prefix: str | None = None):
        self.client = client if client is not None else self._build_client()
        self.bucket = bucket or settings.payload_bucket
        self.prefix = (prefix if prefix is not None else settings.payload_prefix).strip("/")

    @staticmethod
    def _build_client() -> Minio:
        timeout = urllib3.Timeout(connect=settings.s3_timeout_seconds, read=settings.s3_timeout_seconds)
        return Minio(
            settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            secure=settings.s3_secure,
            http_client=urllib3.PoolManager(timeout=timeout, retries=False),
        )

    def key_for(self, operation_id: str) -> str:
        name = f"{operation_id}.json"
        return f"{self.prefix}/{name}" if self.prefix else name

    def put(self, operation_id: str, payload: Any) -> PayloadReference:
        data = orjson.dumps(payload)
        key = self.key_for(operation_id)
        self.client.put_object(
            self.bucket,
            key,
            io.BytesIO(data),
            length=len(data),
            content_type="application/json",
        )
        uri = f"s3://{self.bucket}/{key}"
        logger.debug("Stored payload for %s at %s", operation_id, uri)
        return PayloadReference(uri)

    def fetch(self, uri: str) -> bytes:
        try:
            bucket, key = parse_s3_uri(uri)
        except ValueError as exc:
            raise PayloadFetchError(uri, str(exc)) from exc

        response = None
        try:
            response = self.client.get_object(bucket, key)
            return response.read()
        except S3Error as exc:
            raise PayloadFetchError(uri, exc.message or exc.code) from exc
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as exc:
            raise PayloadFetchError(uri, str(exc)) from exc
        finally:
            if response is not None:
                response.close()
                response.release_conn()
