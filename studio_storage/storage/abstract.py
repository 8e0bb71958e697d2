#!/usr/bin/env python3
"""
The slice of the boto3 S3 client API the storage layer relies on.

Anything implementing these methods (a boto3 client, a test fake) can back an
S3ClientProfile.
"""
from __future__ import annotations
from typing import Any, Dict, Protocol


class S3Api(Protocol):
    def head_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]:
        ...

    def get_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]:
        ...

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, **kwargs: Any) -> Dict[str, Any]:
        ...

    def copy_object(self, *, Bucket: str, Key: str, CopySource: Dict[str, str], **kwargs: Any) -> Dict[str, Any]:
        ...

    def generate_presigned_url(self, ClientMethod: str, Params: Dict[str, Any], ExpiresIn: int = 3600) -> str:
        ...
