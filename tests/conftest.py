# tests/conftest.py
import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from studio_storage.storage.clients import S3ClientProfile
from studio_storage.storage.gateway import ObjectStorageService
from studio_storage.storage.local_fallback import LocalUploadStore

BUCKET = "studio-bucket"

_STATUS_BY_CODE = {"404": 404, "NoSuchKey": 404, "NoSuchBucket": 404, "AccessDenied": 403,
                   "InvalidAccessKeyId": 403, "SignatureDoesNotMatch": 403}


def client_error(code: str, operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code},
         "ResponseMetadata": {"HTTPStatusCode": _STATUS_BY_CODE.get(code, 500)}},
        operation,
    )


class FakeBody:
    def __init__(self, data: bytes):
        self.data = data
        self.closed = False

    def iter_chunks(self, chunk_size=1024):
        for i in range(0, len(self.data), chunk_size):
            yield self.data[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeS3Client:
    """
    In-memory stand-in for a boto3 S3 client.

    store maps (bucket, key) -> {"body", "content_type", "metadata"} and may be shared
    between several fakes to model two profiles pointing at the same bucket.
    fail: error code (or exception) raised by every call; fail_ops: same, per operation.
    """

    def __init__(self, store=None, fail=None, fail_ops=None):
        self.store = store if store is not None else {}
        self.fail = fail
        self.fail_ops = fail_ops or {}
        self.calls = []

    def _enter(self, op):
        self.calls.append(op)
        err = self.fail_ops.get(op, self.fail)
        if err is None:
            return
        if isinstance(err, Exception):
            raise err
        raise client_error(err, op)

    def _get(self, bucket, key, op, missing_code):
        obj = self.store.get((bucket, key))
        if obj is None:
            raise client_error(missing_code, op)
        return obj

    def head_object(self, *, Bucket, Key):
        self._enter("HeadObject")
        obj = self._get(Bucket, Key, "HeadObject", "404")
        return {"ContentType": obj["content_type"], "ContentLength": len(obj["body"]),
                "Metadata": dict(obj["metadata"])}

    def get_object(self, *, Bucket, Key):
        self._enter("GetObject")
        obj = self._get(Bucket, Key, "GetObject", "NoSuchKey")
        return {"Body": FakeBody(obj["body"]), "ContentType": obj["content_type"],
                "ContentLength": len(obj["body"])}

    def put_object(self, *, Bucket, Key, Body, ContentType="binary/octet-stream", Metadata=None, **kwargs):
        self._enter("PutObject")
        self.store[(Bucket, Key)] = {"body": bytes(Body), "content_type": ContentType,
                                     "metadata": dict(Metadata or {})}
        return {"ETag": '"fake"'}

    def copy_object(self, *, Bucket, Key, CopySource, Metadata=None, MetadataDirective="COPY",
                    ContentType=None, **kwargs):
        self._enter("CopyObject")
        src = self._get(CopySource["Bucket"], CopySource["Key"], "CopyObject", "NoSuchKey")
        metadata = dict(Metadata or {}) if MetadataDirective == "REPLACE" else dict(src["metadata"])
        self.store[(Bucket, Key)] = {"body": src["body"], "content_type": ContentType or src["content_type"],
                                     "metadata": metadata}
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn=3600):
        self._enter("GeneratePresignedUrl")
        return (f"https://{Params['Bucket']}.s3.us-east-1.amazonaws.com/{Params['Key']}"
                f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake")


def put_fake_object(store, key, body=b"data", content_type="image/png", metadata=None, bucket=BUCKET):
    store[(bucket, key)] = {"body": body, "content_type": content_type, "metadata": dict(metadata or {})}


@pytest.fixture
def s3_store():
    return {}


@pytest.fixture
def make_service(tmp_path):
    def _make(*clients, **kwargs):
        profiles = [S3ClientProfile(name=f"profile-{i}", client=c) for i, c in enumerate(clients)]
        kwargs.setdefault("local_store", LocalUploadStore(tmp_path / "uploads"))
        return ObjectStorageService(bucket=BUCKET, profiles=profiles, **kwargs)
    return _make


@pytest.fixture
def fake_clients(s3_store):
    return FakeS3Client(s3_store), FakeS3Client(s3_store)


@pytest.fixture
def service(make_service, fake_clients):
    return make_service(*fake_clients)


@pytest.fixture
def api_client(service):
    from studio_storage.api import server

    server.app.dependency_overrides[server.get_storage_service] = lambda: service
    try:
        with TestClient(server.app) as c:
            yield c
    finally:
        server.app.dependency_overrides.clear()
