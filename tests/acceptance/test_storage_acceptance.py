#!/usr/bin/env python3
"""
Acceptance tests that validate the storage service against a real bucket (S3 or MinIO).

Expect environment variables (set by CI or a local MinIO dev stack):
  AWS_S3_BUCKET_NAME=studio-dev
  OBJECT_STORE_ENDPOINT=http://localhost:9000   (MinIO only)
  AWS_ACCESS_KEY_ID=minioadmin
  AWS_SECRET_ACCESS_KEY=minioadmin
"""
import os

import pytest

from studio_storage.error_handling import ObjectNotFoundError
from studio_storage.policy.acl import ObjectAclPolicy

pytestmark = pytest.mark.skipif(not os.environ.get("AWS_S3_BUCKET_NAME"), reason="No AWS_S3_BUCKET_NAME configured")


@pytest.fixture(scope="module")
def live_service():
    from studio_storage.storage.factory import create_object_storage_service
    return create_object_storage_service()


def test_upload_buffer_resolve_roundtrip(live_service):
    data = os.urandom(2048)
    path = live_service.upload_buffer(data, filename="hello.png", content_type="image/png")
    assert path.startswith("/objects/uploads/")

    obj = live_service.get_object_entity_file(path)
    assert obj.exists()
    meta = obj.get_metadata()
    assert meta.size == 2048
    assert meta.content_type == "image/png"
    assert b"".join(obj.open_read_stream()) == data


def test_acl_policy_persisted(live_service):
    path = live_service.upload_buffer(b"acl", filename="acl.png", content_type="image/png")
    policy = ObjectAclPolicy(owner="acceptance-user", visibility="private")
    assert live_service.try_set_object_entity_acl_policy(live_service.external_url_for(path), policy) == path
    obj = live_service.get_object_entity_file(path)
    assert live_service.can_access_object_entity(obj, "acceptance-user")
    assert not live_service.can_access_object_entity(obj, None)


def test_missing_object(live_service):
    with pytest.raises(ObjectNotFoundError):
        live_service.get_object_entity_file("/objects/uploads/definitely-not-there")
