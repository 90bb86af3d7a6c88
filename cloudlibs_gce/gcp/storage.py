# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Cloud Storage backed object store.

Values are stored with a content type inferred from their shape and decoded
by that content type when read back:

- bytes or a binary file object -> ``application/octet-stream`` -> bytes
- str                           -> ``text/plain``               -> str
- anything else                 -> ``application/json``         -> parsed JSON

The google-cloud-storage SDK is blocking, so every call runs in the
default executor.
"""

from __future__ import annotations

import asyncio
import functools
import io
import json
import logging
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import storage

from cloudlibs_gce.exceptions import InvalidUriError, ObjectNotFoundError, StorageError
from cloudlibs_gce.gcp.interfaces import ObjectStore, StoredValue
from cloudlibs_gce.gcp.resources import StoredObject
from cloudlibs_gce.utils.logger import logger as default_logger

OCTET_STREAM = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"

GS_PREFIX = "gs://"

T = TypeVar("T")


def parse_gs_uri(uri: str) -> Tuple[str, str]:
    """Split ``gs://bucket/[folder/]file`` into ``(bucket, key)``.

    Raises:
        InvalidUriError: If the URI is not a gsutil link to an object
    """
    if not uri.startswith(GS_PREFIX):
        raise InvalidUriError(uri, "Invalid URI. URI should be a gsutil.")

    parts = uri[len(GS_PREFIX):].split("/")
    if len(parts) < 2 or parts[1] == "":
        raise InvalidUriError(uri, "Invalid URI. Format should be gs://bucket/filename")

    return parts[0], "/".join(parts[1:])


def encode_value(value: Any) -> Tuple[Any, str]:
    """Pick the payload and content type for a value."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value), OCTET_STREAM
    if isinstance(value, io.IOBase):
        return value, OCTET_STREAM
    if isinstance(value, str):
        return value, TEXT_CONTENT_TYPE
    return json.dumps(value), JSON_CONTENT_TYPE


def decode_value(data: bytes, content_type: Optional[str]) -> StoredValue:
    """Decode downloaded bytes according to their content type."""
    if content_type == OCTET_STREAM:
        return data
    if content_type == JSON_CONTENT_TYPE:
        return json.loads(data)
    return data.decode("utf-8")


class CloudStorageStore(ObjectStore):
    """ObjectStore over one Cloud Storage bucket.

    Example:
        >>> store = CloudStorageStore(storage.Client(), "my-bucket")
        >>> await store.put("instances/bigip-1", {"isPrimary": True})
        >>> await store.get("instances/bigip-1")
        {'isPrimary': True}
    """

    def __init__(
        self,
        client: storage.Client,
        bucket_name: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.bucket_name = bucket_name
        self.logger = logger or default_logger

    @classmethod
    def create(
        cls,
        bucket_name: str,
        credentials_info: Optional[dict] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "CloudStorageStore":
        """Build a store with explicit credentials, or the VM's default ones."""
        if credentials_info:
            from google.oauth2 import service_account

            credentials = service_account.Credentials.from_service_account_info(
                credentials_info
            )
            client = storage.Client(
                project=credentials_info.get("project_id"), credentials=credentials
            )
        else:
            client = storage.Client()
        return cls(client, bucket_name, logger=logger)

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    def _bucket(self, bucket: Optional[str] = None) -> storage.Bucket:
        return self.client.bucket(bucket or self.bucket_name)

    async def get(self, key: str, bucket: Optional[str] = None) -> StoredValue:
        bucket_name = bucket or self.bucket_name
        try:
            blob = await self._run(self._bucket(bucket).get_blob, key)
            if blob is None:
                raise ObjectNotFoundError(key, bucket_name)
            data = await self._run(blob.download_as_bytes)
        except gcloud_exceptions.NotFound as e:
            raise ObjectNotFoundError(key, bucket_name) from e
        except gcloud_exceptions.GoogleAPIError as e:
            self.logger.info(f"getData error: {e}")
            raise StorageError(f"Error reading {bucket_name}/{key}: {e}") from e
        return decode_value(data, blob.content_type)

    async def put(self, key: str, value: Any) -> None:
        payload, content_type = encode_value(value)
        blob = self._bucket().blob(key)
        try:
            if content_type == OCTET_STREAM and not isinstance(payload, bytes):
                await self._run(blob.upload_from_file, payload, content_type=content_type)
            else:
                await self._run(blob.upload_from_string, payload, content_type=content_type)
        except gcloud_exceptions.GoogleAPIError as e:
            self.logger.info(f"putData error: {e}")
            raise StorageError(f"Error writing {self.bucket_name}/{key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._run(self._bucket().delete_blob, key)
        except gcloud_exceptions.NotFound as e:
            raise ObjectNotFoundError(key, self.bucket_name) from e
        except gcloud_exceptions.GoogleAPIError as e:
            raise StorageError(f"Error deleting {self.bucket_name}/{key}: {e}") from e

    async def list_by_prefix(self, prefix: str) -> List[StoredObject]:
        def _list() -> List[StoredObject]:
            blobs = self.client.list_blobs(self.bucket_name, prefix=prefix)
            return [StoredObject(name=blob.name, updated_at=blob.updated) for blob in blobs]

        try:
            return await self._run(_list)
        except gcloud_exceptions.GoogleAPIError as e:
            raise StorageError(f"Error listing {self.bucket_name}/{prefix}: {e}") from e


def _sort_key(obj: StoredObject) -> float:
    return obj.updated_at.timestamp() if obj.updated_at else 0.0


async def delete_oldest_objects(
    store: ObjectStore,
    folder: str,
    max_copies: int,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Delete all but the newest ``max_copies`` objects under ``folder``.

    Objects with equal timestamps keep their listing order.

    Returns:
        Keys that were deleted
    """
    logger = logger or default_logger
    logger.debug("deleting oldest objects")

    objects = await store.list_by_prefix(folder)
    if len(objects) <= max_copies:
        return []

    objects.sort(key=_sort_key)
    to_delete = [obj.name for obj in objects[: len(objects) - max_copies]]
    await asyncio.gather(*(store.delete(name) for name in to_delete))
    return to_delete


async def newest_object(store: ObjectStore, folder: str) -> Optional[StoredObject]:
    """The most recently updated object under ``folder``, if any."""
    objects = await store.list_by_prefix(folder)
    if not objects:
        return None
    return max(objects, key=_sort_key)
