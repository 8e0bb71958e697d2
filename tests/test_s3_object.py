import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from studio_storage.error_handling import ObjectNotFoundError, StorageError
from studio_storage.storage.s3_object import S3Object

from .conftest import BUCKET, FakeS3Client, put_fake_object


def test_key_never_starts_with_slash(s3_store):
    obj = S3Object(BUCKET, "/private/a.png", FakeS3Client(s3_store))
    assert obj.key == "private/a.png"
    assert obj.name == "private/a.png"


def test_bucket_and_key_required(s3_store):
    with pytest.raises(ValueError):
        S3Object("", "a", FakeS3Client(s3_store))
    with pytest.raises(ValueError):
        S3Object(BUCKET, "/", FakeS3Client(s3_store))


def test_exists(s3_store):
    put_fake_object(s3_store, "private/a.png")
    client = FakeS3Client(s3_store)
    assert S3Object(BUCKET, "private/a.png", client).exists() is True
    assert S3Object(BUCKET, "private/b.png", client).exists() is False


def test_exists_propagates_non_404_errors(s3_store):
    put_fake_object(s3_store, "private/a.png")
    client = FakeS3Client(s3_store, fail="AccessDenied")
    with pytest.raises(ClientError):
        S3Object(BUCKET, "private/a.png", client).exists()

    client = FakeS3Client(s3_store, fail=EndpointConnectionError(endpoint_url="https://s3.invalid"))
    with pytest.raises(EndpointConnectionError):
        S3Object(BUCKET, "private/a.png", client).exists()


def test_get_metadata(s3_store):
    put_fake_object(s3_store, "private/a.png", body=b"x" * 10, content_type="image/png",
                    metadata={"original-name": "cat.png"})
    meta = S3Object(BUCKET, "private/a.png", FakeS3Client(s3_store)).get_metadata()
    assert meta.content_type == "image/png"
    assert meta.size == 10
    assert meta.metadata == {"original-name": "cat.png"}


def test_get_metadata_errors(s3_store):
    with pytest.raises(ObjectNotFoundError):
        S3Object(BUCKET, "private/missing", FakeS3Client(s3_store)).get_metadata()

    put_fake_object(s3_store, "private/a.png")
    with pytest.raises(StorageError) as exc:
        S3Object(BUCKET, "private/a.png", FakeS3Client(s3_store, fail="InvalidAccessKeyId")).get_metadata()
    assert exc.value.reason == "bad_credentials"


def test_read_stream_is_lazy(s3_store):
    put_fake_object(s3_store, "private/a.png", body=b"abcdef")
    client = FakeS3Client(s3_store)
    stream = S3Object(BUCKET, "private/a.png", client).open_read_stream(chunk_size=4)
    assert client.calls == []
    assert list(stream) == [b"abcd", b"ef"]
    assert client.calls == ["GetObject"]


def test_read_stream_errors_surface_on_iteration(s3_store):
    client = FakeS3Client(s3_store)
    stream = S3Object(BUCKET, "private/missing", client).open_read_stream()
    with pytest.raises(ClientError):
        next(stream)


def test_set_metadata_keeps_content_type(s3_store):
    put_fake_object(s3_store, "private/a.webp", content_type="image/webp", metadata={"a": "1"})
    S3Object(BUCKET, "private/a.webp", FakeS3Client(s3_store)).set_metadata({"b": "2"})
    stored = s3_store[(BUCKET, "private/a.webp")]
    assert stored["metadata"] == {"b": "2"}
    assert stored["content_type"] == "image/webp"


def test_set_metadata_failure_is_storage_error(s3_store):
    put_fake_object(s3_store, "private/a.webp")
    client = FakeS3Client(s3_store, fail_ops={"CopyObject": "AccessDenied"})
    with pytest.raises(StorageError) as exc:
        S3Object(BUCKET, "private/a.webp", client).set_metadata({"b": "2"})
    assert exc.value.reason == "access_denied"


def test_missing_bucket_surfaces_as_storage_error(s3_store):
    client = FakeS3Client(s3_store, fail="NoSuchBucket")
    obj = S3Object(BUCKET, "private/a.png", client)
    with pytest.raises(ClientError):
        obj.exists()
    with pytest.raises(StorageError) as exc:
        obj.get_metadata()
    assert exc.value.reason == "bucket_missing"
