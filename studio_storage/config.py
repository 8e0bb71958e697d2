#!/usr/bin/env python3
"""
studio-storage config adapter: unify env + optional YAML config.

Usage:
  from studio_storage.config import cfg
  print(cfg.AWS_S3_BUCKET_NAME, cfg.PRIVATE_OBJECT_DIR)
"""
from __future__ import annotations
import os
import yaml
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional


def _config_paths() -> List[Path]:
    paths = [
        Path(os.environ["STUDIO_STORAGE_CONFIG"]) if os.environ.get("STUDIO_STORAGE_CONFIG") else None,
        Path("config.yaml"),
        Path("config.yml"),
    ]
    return [p for p in paths if p is not None]


def _load_yaml(path: Path) -> dict:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return {}


def _env(name: str, default: Optional[str] = None):
    return field(default_factory=lambda: os.environ.get(name, default))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.environ.get(name, default)))


def _env_float(name: str, default: float):
    return field(default_factory=lambda: float(os.environ.get(name, default)))


def split_csv(value: Optional[str]) -> List[str]:
    """Comma-separated list, trimmed, blanks dropped, first occurrence wins."""
    out: List[str] = []
    for part in (value or "").split(","):
        part = part.strip()
        if part and part not in out:
            out.append(part)
    return out


@dataclass
class Config:
    # object store
    AWS_S3_BUCKET_NAME: Optional[str] = _env("AWS_S3_BUCKET_NAME")
    AWS_REGION: str = _env("AWS_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID: Optional[str] = _env("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: Optional[str] = _env("AWS_SECRET_ACCESS_KEY")
    OBJECT_STORE_ENDPOINT: Optional[str] = _env("OBJECT_STORE_ENDPOINT")
    # addressing styles tried in order, e.g. "virtual,path"
    OBJECT_STORE_ADDRESSING: str = _env("OBJECT_STORE_ADDRESSING", "virtual,path")
    OBJECT_STORE_CONNECT_TIMEOUT: float = _env_float("OBJECT_STORE_CONNECT_TIMEOUT", 5.0)
    OBJECT_STORE_READ_TIMEOUT: float = _env_float("OBJECT_STORE_READ_TIMEOUT", 30.0)
    # layout inside the bucket
    PRIVATE_OBJECT_DIR: str = _env("PRIVATE_OBJECT_DIR", "private/")
    PUBLIC_OBJECT_SEARCH_PATHS: str = _env("PUBLIC_OBJECT_SEARCH_PATHS", "public/")
    # degraded-mode uploads
    LOCAL_UPLOAD_DIR: str = _env("LOCAL_UPLOAD_DIR", "uploads")
    # access control: "allow" or "deny" when an object carries no policy
    ACL_DEFAULT_DECISION: str = _env("ACL_DEFAULT_DECISION", "allow")
    # upload validation
    MAX_UPLOAD_BYTES: int = _env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    ALLOWED_UPLOAD_TYPES: str = _env("ALLOWED_UPLOAD_TYPES", "image/jpeg,image/png,image/webp")
    # general
    STUDIO_LOG_LEVEL: str = _env("STUDIO_LOG_LEVEL", "INFO")
    # raw loaded yaml (if any)
    _raw: Optional[dict] = None

    @property
    def acl_default_allow(self) -> bool:
        return str(self.ACL_DEFAULT_DECISION).strip().lower() != "deny"

    @property
    def addressing_styles(self) -> List[str]:
        return split_csv(self.OBJECT_STORE_ADDRESSING)

    @property
    def allowed_upload_types(self) -> List[str]:
        return split_csv(self.ALLOWED_UPLOAD_TYPES)


def _merge_from_yaml(cfg: Config) -> Config:
    for p in _config_paths():
        if p.exists():
            raw = _load_yaml(p)
            known = {f.name for f in fields(cfg)}
            # map known keys
            for k, v in raw.items():
                if k in known and not k.startswith("_"):
                    setattr(cfg, k, v)
            cfg._raw = raw
            break
    return cfg


def load_config() -> Config:
    return _merge_from_yaml(Config())


# Single shared config object
cfg = load_config()
