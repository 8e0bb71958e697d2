#!/usr/bin/env python3
"""
S3 client profiles.

A profile is one boto3 client configuration (addressing style, endpoint, timeouts).
The gateway holds an ordered list of them and tries each in turn until one succeeds;
some regions and S3-compatible providers only answer virtual-hosted requests,
others only path-style ones.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

import boto3
from botocore.config import Config as BotoConfig

from studio_storage.config import Config
from .abstract import S3Api

ADDRESSING_STYLES = ("virtual", "path", "auto")


@dataclass(frozen=True)
class S3ClientProfile:
    name: str
    client: S3Api


def create_s3_client(
    addressing_style: str,
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    access_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    connect_timeout: float = 5.0,
    read_timeout: float = 30.0,
):
    if addressing_style not in ADDRESSING_STYLES:
        raise ValueError(f"Unsupported addressing style: {addressing_style}")
    session_kwargs = {}
    if access_key and secret_key:
        session_kwargs["aws_access_key_id"] = access_key
        session_kwargs["aws_secret_access_key"] = secret_key
    boto_cfg = BotoConfig(
        signature_version="s3v4",
        s3={"addressing_style": addressing_style},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        # one attempt per profile; falling through to the next profile is the retry
        retries={"total_max_attempts": 1},
    )
    return boto3.client("s3", region_name=region, endpoint_url=endpoint_url, config=boto_cfg, **session_kwargs)


def build_client_profiles(cfg: Config) -> List[S3ClientProfile]:
    profiles = []
    for style in cfg.addressing_styles:
        client = create_s3_client(
            style,
            region=cfg.AWS_REGION,
            endpoint_url=cfg.OBJECT_STORE_ENDPOINT,
            access_key=cfg.AWS_ACCESS_KEY_ID,
            secret_key=cfg.AWS_SECRET_ACCESS_KEY,
            connect_timeout=cfg.OBJECT_STORE_CONNECT_TIMEOUT,
            read_timeout=cfg.OBJECT_STORE_READ_TIMEOUT,
        )
        profiles.append(S3ClientProfile(name=f"{style}-style", client=client))
    return profiles
