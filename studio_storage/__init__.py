"""
studio-storage: S3-backed object storage for the image studio.

    from studio_storage.storage.factory import create_object_storage_service
    service = create_object_storage_service()
    ticket = service.get_object_entity_upload_url()
"""

__version__ = "0.1.0"
