#!/usr/bin/env python3
"""
Handle for one object in the bucket.

Cheap to construct; holds no payload. Every method is a single round trip with no
retry of its own.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError

from studio_storage.error_handling import ObjectNotFoundError, StorageError, classify_client_error, is_not_found
from .abstract import S3Api

logger = logging.getLogger("studio_storage.object")

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass
class ObjectMetadata:
    content_type: Optional[str]
    size: int
    metadata: Dict[str, str] = field(default_factory=dict)


class S3Object:
    def __init__(self, bucket: str, key: str, client: S3Api, profile: Optional[str] = None):
        if not bucket:
            raise ValueError("bucket is required")
        key = key.lstrip("/")
        if not key:
            raise ValueError("key is required")
        self.bucket = bucket
        self.key = key
        self.client = client
        self.profile = profile

    @property
    def name(self) -> str:
        return self.key

    def __repr__(self) -> str:
        return f"S3Object(bucket={self.bucket!r}, key={self.key!r}, profile={self.profile!r})"

    def exists(self) -> bool:
        """HEAD probe. Only a not-found answer means False; anything else is raised."""
        try:
            self.client.head_object(Bucket=self.bucket, Key=self.key)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

    def get_metadata(self) -> ObjectMetadata:
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            if is_not_found(e):
                raise ObjectNotFoundError(f"Object not found: {self.key}") from e
            logger.error("head_object failed for %s: %s", self.key, e)
            raise StorageError(f"Failed to read metadata for {self.key}", reason=classify_client_error(e)) from e
        except BotoCoreError as e:
            logger.error("head_object failed for %s: %s", self.key, e)
            raise StorageError(f"Failed to read metadata for {self.key}", reason=classify_client_error(e)) from e
        return ObjectMetadata(
            content_type=resp.get("ContentType"),
            size=int(resp.get("ContentLength") or 0),
            metadata=dict(resp.get("Metadata") or {}),
        )

    def set_metadata(self, metadata: Dict[str, str], content_type: Optional[str] = None) -> None:
        """Replace the object's user metadata (S3 needs a self-copy for that)."""
        if content_type is None:
            content_type = self.get_metadata().content_type
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=self.key,
                CopySource={"Bucket": self.bucket, "Key": self.key},
                Metadata=metadata,
                MetadataDirective="REPLACE",
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("copy_object failed for %s: %s", self.key, e)
            raise StorageError(f"Failed to update metadata for {self.key}", reason=classify_client_error(e)) from e

    def open_read_stream(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """
        Lazily stream the object body.

        Nothing is requested until the first iteration, so transport errors reach
        whoever consumes the stream.
        """
        resp = self.client.get_object(Bucket=self.bucket, Key=self.key)
        body = resp["Body"]
        try:
            for chunk in body.iter_chunks(chunk_size):
                if chunk:
                    yield chunk
        finally:
            body.close()
