"""
Error taxonomy for the storage layer.

Route handlers translate these into HTTP statuses; see studio_storage.api.server.
"""
from __future__ import annotations
from typing import List, Optional

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")
# a 404 status with one of these codes is about the bucket, not the key
BUCKET_LEVEL_CODES = ("NoSuchBucket",)

_REASON_BY_CODE = {
    "AccessDenied": "access_denied",
    "AllAccessDisabled": "access_denied",
    "403": "access_denied",
    "NoSuchBucket": "bucket_missing",
    "InvalidAccessKeyId": "bad_credentials",
    "SignatureDoesNotMatch": "bad_credentials",
    "ExpiredToken": "bad_credentials",
    "InvalidToken": "bad_credentials",
}


class StudioStorageError(Exception):
    pass


class ObjectNotFoundError(StudioStorageError):
    def __init__(self, message: str = "Object not found"):
        super().__init__(message)


class StorageError(StudioStorageError):
    """
    Raised when every configured client profile failed.

    reason is the classified cause of the first (primary) profile's failure (see
    classify_client_error), attempts holds one "profile: reason" entry per profile tried.
    """
    def __init__(self, message: str, reason: str = "unknown", attempts: Optional[List[str]] = None):
        super().__init__(message)
        self.reason = reason
        self.attempts = attempts or []


class StorageConfigError(StorageError):
    def __init__(self, message: str):
        super().__init__(message, reason="configuration")


class AccessDeniedError(StudioStorageError):
    pass


class UnknownAccessGroupError(StudioStorageError):
    pass


class InvalidAclPolicyError(StudioStorageError):
    pass


def error_code(exc: BaseException) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def is_not_found(exc: BaseException) -> bool:
    if not isinstance(exc, ClientError):
        return False
    code = error_code(exc)
    if code in NOT_FOUND_CODES:
        return True
    if code in BUCKET_LEVEL_CODES:
        return False
    return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") == 404


def classify_client_error(exc: BaseException) -> str:
    """Map a boto3/botocore failure to a short operator-facing reason."""
    if isinstance(exc, NoCredentialsError):
        return "missing_credentials"
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return "unreachable"
    if isinstance(exc, ClientError):
        reason = _REASON_BY_CODE.get(error_code(exc) or "")
        if reason:
            return reason
        return "not_found" if is_not_found(exc) else "unknown"
    return "unknown"
