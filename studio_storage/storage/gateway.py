#!/usr/bin/env python3
"""
Object storage service: the only storage entry point the API layer uses.

Logical paths:
  /objects/{entity_id}   object stored at {private_object_dir}{entity_id}
  /uploads/{name}        degraded-mode upload kept on local disk

Operations that talk to S3 walk the configured client profiles in order and stop at
the first one that succeeds. Attempts never run in parallel.
"""
from __future__ import annotations
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar
from urllib.parse import quote, unquote, urlparse

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import Counter

from studio_storage.config import split_csv
from studio_storage.error_handling import (
    InvalidAclPolicyError,
    ObjectNotFoundError,
    StorageConfigError,
    StorageError,
    StudioStorageError,
    classify_client_error,
)
from studio_storage.policy.acl import (
    ACL_POLICY_METADATA_KEY,
    ObjectAclPolicy,
    ObjectPermission,
    can_access,
    get_object_acl_policy,
    set_object_acl_policy,
)
from .clients import S3ClientProfile
from .local_fallback import LocalUploadStore
from .s3_object import S3Object

logger = logging.getLogger("studio_storage.gateway")

T = TypeVar("T")

OBJECTS_PREFIX = "/objects/"
UPLOAD_URL_TTL_SEC = 900
DEFAULT_CACHE_TTL_SEC = 3600

ATTEMPTS_TOTAL = Counter(
    "studio_storage_attempts_total",
    "S3 calls per client profile and outcome",
    ["operation", "profile", "outcome"],
)
LOCAL_FALLBACK_TOTAL = Counter(
    "studio_storage_local_fallback_total",
    "Uploads written to local disk because every client profile failed",
)


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    object_path: str
    expires_in: int = UPLOAD_URL_TTL_SEC


class ObjectStorageService:
    def __init__(
        self,
        bucket: Optional[str],
        profiles: Sequence[S3ClientProfile],
        private_object_dir: str = "private/",
        public_object_search_paths: str = "public/",
        local_store: Optional[LocalUploadStore] = None,
        default_allow: bool = True,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        if not bucket:
            raise StorageConfigError("AWS_S3_BUCKET_NAME is required for S3 integration")
        if not profiles:
            raise StorageConfigError("At least one S3 client profile is required")
        self.bucket = bucket
        self.profiles: List[S3ClientProfile] = list(profiles)
        self._private_object_dir = private_object_dir
        self._public_object_search_paths = public_object_search_paths
        self.local_store = local_store
        self.default_allow = default_allow
        self.region = region or "us-east-1"
        self.endpoint_url = endpoint_url

    # --- layout -----------------------------------------------------------------------

    def get_public_object_search_paths(self) -> List[str]:
        return split_csv(self._public_object_search_paths)

    def get_private_object_dir(self) -> str:
        d = (self._private_object_dir or "").strip().strip("/")
        return f"{d or 'private'}/"

    def _object_path_for_key(self, key: str) -> str:
        private_dir = self.get_private_object_dir()
        if not key.startswith(private_dir):
            raise ValueError(f"Key {key!r} is outside {private_dir!r}")
        return f"{OBJECTS_PREFIX}{key[len(private_dir):]}"

    def _key_for_object_path(self, object_path: str) -> Optional[str]:
        if not object_path.startswith(OBJECTS_PREFIX):
            return None
        entity_id = object_path[len(OBJECTS_PREFIX):]
        parts = entity_id.split("/")
        if not entity_id or any(p in ("", ".", "..") for p in parts):
            return None
        return f"{self.get_private_object_dir()}{entity_id}"

    def _new_upload_key(self) -> str:
        return f"{self.get_private_object_dir()}uploads/{uuid.uuid4()}"

    # --- fallback loop ----------------------------------------------------------------

    def _try_profiles(self, operation: str, attempt: Callable[[S3ClientProfile], T]) -> T:
        failures: List[str] = []
        reasons: List[str] = []
        last_exc: Optional[BaseException] = None
        for profile in self.profiles:
            try:
                result = attempt(profile)
            except (ClientError, BotoCoreError) as e:
                reason = classify_client_error(e)
                ATTEMPTS_TOTAL.labels(operation, profile.name, reason).inc()
                logger.warning("%s failed via %s (%s): %s", operation, profile.name, reason, e)
                failures.append(f"{profile.name}: {reason}")
                reasons.append(reason)
                last_exc = e
                continue
            ATTEMPTS_TOTAL.labels(operation, profile.name, "ok").inc()
            return result
        raise StorageError(
            f"{operation} failed with every configured S3 client ({', '.join(failures)})",
            reason=reasons[0],
            attempts=failures,
        ) from last_exc

    # --- lookups ----------------------------------------------------------------------

    def _probe_profiles(self, key: str) -> Optional[S3Object]:
        """
        Existence probe of key through each profile in order.

        Returns the object bound to the first profile that finds it. None when no profile
        finds it and at least one answered "not found". When no profile could answer at
        all the failures are raised as a StorageError.
        """
        failures: List[str] = []
        reasons: List[str] = []
        last_exc: Optional[BaseException] = None
        answered = False
        for profile in self.profiles:
            obj = S3Object(self.bucket, key, profile.client, profile.name)
            try:
                if obj.exists():
                    ATTEMPTS_TOTAL.labels("exists", profile.name, "ok").inc()
                    return obj
                ATTEMPTS_TOTAL.labels("exists", profile.name, "not_found").inc()
                answered = True
            except (ClientError, BotoCoreError) as e:
                reason = classify_client_error(e)
                ATTEMPTS_TOTAL.labels("exists", profile.name, reason).inc()
                logger.warning("existence probe for %s failed via %s (%s): %s", key, profile.name, reason, e)
                failures.append(f"{profile.name}: {reason}")
                reasons.append(reason)
                last_exc = e
        if answered:
            return None
        raise StorageError(
            f"exists failed with every configured S3 client ({', '.join(failures)})",
            reason=reasons[0],
            attempts=failures,
        ) from last_exc

    def search_public_object(self, file_path: str) -> Optional[S3Object]:
        """First match of file_path under the public search paths, or None."""
        for search_path in self.get_public_object_search_paths():
            key = f"{search_path.rstrip('/')}/{file_path.lstrip('/')}"
            obj = self._probe_profiles(key)
            if obj is not None:
                return obj
        return None

    def get_object_entity_file(self, object_path: str) -> S3Object:
        key = self._key_for_object_path(object_path)
        if key is None:
            raise ObjectNotFoundError()
        try:
            obj = self._probe_profiles(key)
        except StorageError:
            # every profile errored; nothing confirmed the object exists
            raise ObjectNotFoundError() from None
        if obj is None:
            raise ObjectNotFoundError()
        return obj

    # --- uploads ----------------------------------------------------------------------

    def get_object_entity_upload_url(self) -> UploadTicket:
        """Presigned PUT URL for a fresh private object, valid for 15 minutes."""
        key = self._new_upload_key()

        def presign(profile: S3ClientProfile) -> str:
            return profile.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=UPLOAD_URL_TTL_SEC,
            )

        try:
            url = self._try_profiles("presign_upload", presign)
        except StorageError as e:
            logger.error("presigned URL generation impossible: %s", e)
            raise StorageError(
                "Failed to generate upload URL: no configured S3 client can presign requests",
                reason=e.reason,
                attempts=e.attempts,
            ) from e
        return UploadTicket(upload_url=url, object_path=self._object_path_for_key(key))

    def upload_buffer(
        self,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        acl_policy: Optional[ObjectAclPolicy] = None,
    ) -> str:
        """
        Upload data in one put_object call and return its logical path.

        When every profile fails and a local store is configured, the bytes are kept on
        local disk instead and a /uploads/ path is returned.
        """
        key = self._new_upload_key()
        metadata = {}
        if filename:
            metadata["original-name"] = quote(os.path.basename(filename))
        if acl_policy is not None:
            metadata[ACL_POLICY_METADATA_KEY] = acl_policy.to_metadata_value()

        def put(profile: S3ClientProfile):
            return profile.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
                Metadata=metadata,
            )

        try:
            self._try_profiles("upload", put)
        except StorageError as e:
            if self.local_store is None:
                raise
            LOCAL_FALLBACK_TOTAL.inc()
            logger.warning("upload of %s failed remotely (%s); falling back to local disk", filename, e.reason)
            return self.local_store.save(data, filename)
        logger.info("uploaded %d bytes to %s", len(data), key)
        return self._object_path_for_key(key)

    # --- URL normalization ------------------------------------------------------------

    def _addressing_for_host(self, host: str) -> Optional[str]:
        """Addressing style ("virtual" or "path") when host serves our bucket, else None."""
        if self.endpoint_url:
            endpoint_host = urlparse(self.endpoint_url).hostname or ""
            if host == endpoint_host:
                return "path"
            if host == f"{self.bucket}.{endpoint_host}":
                return "virtual"
        if not host.endswith(".amazonaws.com"):
            return None
        if host.startswith((f"{self.bucket}.s3.", f"{self.bucket}.s3-")):
            return "virtual"
        if host.startswith(("s3.", "s3-")):
            return "path"
        return None

    def normalize_object_entity_path(self, raw_path: str) -> str:
        """
        Map an S3 URL of a private object back to its /objects/ path.

        Anything that does not look like such a URL (including URLs of other buckets)
        is returned unchanged.
        """
        try:
            parsed = urlparse(raw_path)
        except ValueError:
            return raw_path
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return raw_path
        style = self._addressing_for_host(parsed.hostname)
        if style is None:
            return raw_path

        key = unquote(parsed.path).lstrip("/")
        if style == "path":
            if not key.startswith(f"{self.bucket}/"):
                return raw_path
            key = key[len(self.bucket) + 1:]

        private_dir = self.get_private_object_dir()
        if key.startswith(private_dir) and len(key) > len(private_dir):
            return f"{OBJECTS_PREFIX}{key[len(private_dir):]}"
        return raw_path

    def external_url_for(self, object_path: str) -> str:
        key = self._key_for_object_path(object_path)
        if key is None:
            raise ValueError(f"Not an object path: {object_path!r}")
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quote(key)}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    # --- access control ---------------------------------------------------------------

    def try_set_object_entity_acl_policy(self, raw_path: str, acl_policy: ObjectAclPolicy) -> str:
        """
        Attach acl_policy to the object behind raw_path and return the normalized path.

        Paths outside /objects/ (local uploads, foreign URLs) are returned untouched.
        """
        normalized = self.normalize_object_entity_path(raw_path)
        if not normalized.startswith(OBJECTS_PREFIX):
            return normalized
        obj = self.get_object_entity_file(normalized)
        set_object_acl_policy(obj, acl_policy)
        logger.info("set ACL policy on %s owner=%s visibility=%s", normalized, acl_policy.owner, acl_policy.visibility)
        return normalized

    def can_access_object_entity(
        self,
        obj: S3Object,
        user_id: Optional[str] = None,
        requested_permission: ObjectPermission = ObjectPermission.READ,
    ) -> bool:
        try:
            policy = get_object_acl_policy(obj)
        except InvalidAclPolicyError as e:
            # unreadable policy: same configured decision as a missing one
            logger.warning("%s; applying default decision allow=%s", e, self.default_allow)
            return self.default_allow
        return can_access(user_id, policy, requested_permission, default_allow=self.default_allow)

    # --- downloads --------------------------------------------------------------------

    def download_object(
        self,
        obj: S3Object,
        cache_ttl_sec: int = DEFAULT_CACHE_TTL_SEC,
        is_public: Optional[bool] = None,
    ) -> Response:
        """
        Stream obj as an HTTP response.

        is_public forces the Cache-Control visibility; by default it comes from the
        object's ACL policy.

        Metadata and the first chunk are fetched before any header is sent, so failures
        up to that point become a 500. Later failures can only be logged.
        """
        try:
            meta = obj.get_metadata()
            if is_public is None:
                is_public = self._is_public(meta.metadata)
            stream = obj.open_read_stream()
            first = next(stream, b"")
        except (StudioStorageError, ClientError, BotoCoreError) as e:
            logger.error("error downloading %s: %s", obj.key, e)
            return JSONResponse(status_code=500, content={"error": "Error downloading file"})

        def body():
            try:
                if first:
                    yield first
                yield from stream
            except (ClientError, BotoCoreError, OSError) as e:
                logger.error("stream of %s interrupted after headers were sent: %s", obj.key, e)

        headers = {
            "Content-Length": str(meta.size),
            "Cache-Control": f"{'public' if is_public else 'private'}, max-age={cache_ttl_sec}",
        }
        return StreamingResponse(
            body(),
            media_type=meta.content_type or "application/octet-stream",
            headers=headers,
        )

    def _is_public(self, metadata: dict) -> bool:
        raw = metadata.get(ACL_POLICY_METADATA_KEY)
        if not raw:
            return self.default_allow
        try:
            return ObjectAclPolicy.from_metadata_value(raw).visibility == "public"
        except ValueError:
            logger.warning("ignoring malformed ACL policy metadata; serving as private")
            return False
