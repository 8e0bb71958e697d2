from .clients import S3ClientProfile  # noqa: F401
from .gateway import ObjectStorageService, UploadTicket  # noqa: F401
from .s3_object import ObjectMetadata, S3Object  # noqa: F401
