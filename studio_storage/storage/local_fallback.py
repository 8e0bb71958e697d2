#!/usr/bin/env python3
"""
Local-disk upload store used when no S3 profile accepts an upload.

Degraded mode: files land on the instance that handled the request and are served
from /uploads/{name} by that instance only.
"""
from __future__ import annotations
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger("studio_storage.local_fallback")

LOCAL_URL_PREFIX = "/uploads/"


def _safe_suffix(filename: Optional[str]) -> str:
    suffix = Path(os.path.basename(filename or "")).suffix.lower()
    if not suffix or len(suffix) > 10 or not suffix[1:].isalnum():
        return ""
    return suffix


class LocalUploadStore:
    def __init__(self, root_dir: Path | str):
        self.root_dir = Path(root_dir).resolve()

    def save(self, data: bytes, filename: Optional[str] = None) -> str:
        """Write data under a fresh unique name; return its /uploads/ path."""
        self.root_dir.mkdir(parents=True, exist_ok=True)
        name = f"{uuid.uuid4().hex}{_safe_suffix(filename)}"
        path = self.root_dir / name
        path.write_bytes(data)
        logger.warning("stored %d bytes on local disk as %s (degraded mode)", len(data), path)
        return f"{LOCAL_URL_PREFIX}{name}"

    def resolve(self, name: str) -> Optional[Path]:
        """Map a stored file name back to a path; None for unknown or traversal attempts."""
        if not name or os.path.basename(name) != name or name.startswith("."):
            return None
        path = (self.root_dir / name).resolve()
        if path.parent != self.root_dir or not path.is_file():
            return None
        return path
