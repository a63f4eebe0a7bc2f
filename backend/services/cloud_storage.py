"""Object store adapter using Apache Libcloud."""

import asyncio
import logging
from pathlib import Path
from threading import Lock
from urllib.parse import quote, unquote
from libcloud.storage.types import Provider, ObjectDoesNotExistError, ContainerDoesNotExistError
from libcloud.storage.providers import get_driver
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from shared.errors import ObjectStoreError


logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192  # 8KB chunks


class CloudStorageService:
    """Blob storage for attachment bytes, one instance per bucket.

    Libcloud drivers are blocking, so the public coroutine methods run them in a
    worker thread and translate every driver failure into ObjectStoreError.
    """

    def __init__(self, bucket_name, provider_name='local', access_key=None, secret_key=None,
                 region='us-east-1', local_path='./local_storage', public_base_url=''):
        self.provider_name = provider_name
        self.bucket_name = bucket_name
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.local_path = Path(local_path)
        self.public_base_url = public_base_url.rstrip('/')

        if provider_name != 'local' and not all([self.access_key, self.secret_key]):
            raise ValueError("Cloud storage configuration incomplete. Check environment variables.")

        self.driver = self._get_driver()
        self.container = self._get_container()

        logger.info(f"Cloud storage initialized with provider: {self.provider_name}, bucket: {self.bucket_name}")

    @classmethod
    def from_config(cls, config, bucket_name):
        """Build a service for ``bucket_name`` from a ConfigManager."""
        return cls(
            bucket_name=bucket_name,
            provider_name=config.storage_provider,
            access_key=config.storage_access_key,
            secret_key=config.storage_secret_key,
            region=config.storage_region,
            local_path=config.storage_local_path,
            public_base_url=config.storage_public_base_url,
        )

    def _get_driver(self):
        """Get the appropriate libcloud driver based on provider."""
        provider_map = {
            's3': Provider.S3,
            'gcs': Provider.GOOGLE_STORAGE,
            'azure': Provider.AZURE_BLOBS,
            'minio': Provider.S3,  # MinIO uses S3 driver
            'local': Provider.LOCAL,
        }

        if self.provider_name not in provider_map:
            raise ValueError(f"Unsupported provider: {self.provider_name}")

        provider = provider_map[self.provider_name]

        if self.provider_name == 'local':
            self.local_path.mkdir(parents=True, exist_ok=True)
            return get_driver(provider)(key=str(self.local_path))

        kwargs = {
            'key': self.access_key,
            'secret': self.secret_key,
        }
        if self.provider_name == 's3':
            kwargs['region'] = self.region

        return get_driver(provider)(**kwargs)

    def _get_container(self):
        """Get or create the storage container/bucket."""
        try:
            return self.driver.get_container(container_name=self.bucket_name)
        except ContainerDoesNotExistError:
            logger.info(f"Creating container: {self.bucket_name}")
            return self.driver.create_container(container_name=self.bucket_name)

    def public_reference(self, key):
        """Public URL for ``key``. Pure and deterministic: no driver call is made."""
        return f"{self.public_base_url}/{self.bucket_name}/{quote(key)}"

    def key_from_public_reference(self, url):
        """Recover the object key from a URL built by public_reference.

        Returns:
            str or None: The key, or None if ``url`` does not point into this bucket
        """
        if not url:
            return None
        parts = url.split(f"/{self.bucket_name}/", 1)
        if len(parts) != 2 or not parts[1]:
            return None
        return unquote(parts[1])

    async def put(self, key, data, overwrite=False, progress=None):
        """Write ``data`` at ``key``.

        Args:
            key: Object key
            data: Asset bytes
            overwrite: When False an existing object at ``key`` is never replaced
            progress: Optional callable(sent_bytes, total_bytes), called from the worker thread

        Raises:
            ObjectStoreError: If the key already exists or the upload fails
        """
        await asyncio.to_thread(self._put, key, data, overwrite, progress)

    def _put(self, key, data, overwrite, progress):
        if not overwrite and self._exists(key):
            raise ObjectStoreError(f"The resource already exists: {key}")
        try:
            self._upload_object(data, key, progress)
        except Exception as e:
            logger.error(f"Failed to upload {key}: {e}")
            raise ObjectStoreError(str(e)) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _upload_object(self, data, object_name, progress=None):
        """Upload bytes using a chunked stream so progress can be reported."""
        total = len(data)

        def chunk_iterator():
            """Generator that yields chunks and reports bytes sent."""
            sent = 0
            view = memoryview(data)
            while sent < total:
                chunk = bytes(view[sent:sent + CHUNK_SIZE])
                sent += len(chunk)
                yield chunk
                if progress is not None:
                    progress(sent, total)

        logger.info(f"Uploading {total} bytes to {object_name} (streaming)")
        return self.driver.upload_object_via_stream(
            iterator=chunk_iterator(),
            container=self.container,
            object_name=object_name
        )

    async def exists(self, key):
        return await asyncio.to_thread(self._exists, key)

    def _exists(self, key):
        try:
            self.driver.get_object(self.container.name, key)
            return True
        except ObjectDoesNotExistError:
            return False
        except Exception as e:
            raise ObjectStoreError(str(e)) from e

    async def remove(self, keys):
        """Delete every key in ``keys``; an already missing object counts as removed.

        All keys are attempted even if one fails.

        Raises:
            ObjectStoreError: Naming the keys that could not be deleted
        """
        await asyncio.to_thread(self._remove, list(keys))

    def _remove(self, keys):
        failed = []
        for key in keys:
            try:
                obj = self.driver.get_object(self.container.name, key)
            except ObjectDoesNotExistError:
                logger.warning(f"Object already absent, nothing to delete: {key}")
                continue
            except Exception as e:
                logger.error(f"Failed to look up {key} for deletion: {e}")
                failed.append(key)
                continue

            try:
                if self.driver.delete_object(obj):
                    logger.info(f"Deleted object: {key}")
                else:
                    logger.error(f"Storage driver refused to delete {key}")
                    failed.append(key)
            except Exception as e:
                logger.error(f"Failed to delete object {key}: {e}")
                failed.append(key)

        if failed:
            raise ObjectStoreError(f"Failed to delete: {', '.join(failed)}")

    async def list_keys(self, prefix=None):
        """List object keys in the bucket, optionally under ``prefix``."""
        return await asyncio.to_thread(self._list_keys, prefix)

    def _list_keys(self, prefix):
        try:
            objects = self.driver.list_container_objects(self.container, prefix=prefix)
        except Exception as e:
            raise ObjectStoreError(str(e)) from e
        return sorted(obj.name for obj in objects)


# One instance per bucket
_cloud_storage = {}
_cloud_storage_lock = Lock()


def get_cloud_storage(config, bucket_name):
    """Get or create the storage service for ``bucket_name`` (thread-safe)."""
    if bucket_name not in _cloud_storage:
        with _cloud_storage_lock:
            # Double-check pattern for thread safety
            if bucket_name not in _cloud_storage:
                try:
                    _cloud_storage[bucket_name] = CloudStorageService.from_config(config, bucket_name)
                except Exception as e:
                    logger.error(f"Failed to initialize cloud storage for {bucket_name}: {e}")
                    raise
    return _cloud_storage[bucket_name]
