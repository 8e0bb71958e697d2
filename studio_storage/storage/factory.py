#!/usr/bin/env python3
"""
Object storage service factory.

Builds an ObjectStorageService from configuration (studio_storage.config.cfg):
one S3 client profile per entry of OBJECT_STORE_ADDRESSING, in order, plus the
local-disk fallback store.
"""
from __future__ import annotations
from typing import Optional

from studio_storage import config
from studio_storage.error_handling import StorageConfigError

from .clients import build_client_profiles
from .gateway import ObjectStorageService
from .local_fallback import LocalUploadStore


def create_object_storage_service(cfg: Optional[config.Config] = None) -> ObjectStorageService:
    cfg = cfg or config.cfg
    if not cfg.AWS_S3_BUCKET_NAME:
        raise StorageConfigError("AWS_S3_BUCKET_NAME environment variable is required for S3 integration")
    return ObjectStorageService(
        bucket=cfg.AWS_S3_BUCKET_NAME,
        profiles=build_client_profiles(cfg),
        private_object_dir=cfg.PRIVATE_OBJECT_DIR,
        public_object_search_paths=cfg.PUBLIC_OBJECT_SEARCH_PATHS,
        local_store=LocalUploadStore(cfg.LOCAL_UPLOAD_DIR),
        default_allow=cfg.acl_default_allow,
        region=cfg.AWS_REGION,
        endpoint_url=cfg.OBJECT_STORE_ENDPOINT,
    )
