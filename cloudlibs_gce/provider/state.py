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
Persisted cluster state.

The provider owns this keyspace in the storage bucket:

    credentials/primary   JSON credentials written by the elected primary
    instances/<id>        one InstanceRecord per cluster member
    public_keys/<id>      key material for each member
    backup/<filename>     configuration backups, pruned to a retention count
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from cloudlibs_gce.exceptions import CloudProviderError, ObjectNotFoundError
from cloudlibs_gce.gcp.interfaces import ObjectStore, StoredValue
from cloudlibs_gce.gcp.storage import delete_oldest_objects, newest_object
from cloudlibs_gce.models import InstanceRecord
from cloudlibs_gce.utils.logger import logger as default_logger

CREDENTIALS_KEY = "credentials/primary"
INSTANCES_FOLDER = "instances/"
PUBLIC_KEYS_FOLDER = "public_keys/"
BACKUP_FOLDER = "backup/"


class ClusterStateStore:
    """Typed access to the cluster keyspace of an ObjectStore."""

    def __init__(self, store: ObjectStore, logger: Optional[logging.Logger] = None) -> None:
        self.store = store
        self.logger = logger or default_logger

    # ==================== Instances ====================

    async def load_instances(self) -> Dict[str, InstanceRecord]:
        """Load every persisted instance record, keyed by instance id."""
        try:
            objects = await self.store.list_by_prefix(INSTANCES_FOLDER)
            keys = [obj.name for obj in objects if obj.name != INSTANCES_FOLDER]
            contents = await asyncio.gather(*(self.store.get(key) for key in keys))
        except CloudProviderError as e:
            self.logger.info(f"Unable to get file instances from db: {e}")
            raise

        instances: Dict[str, InstanceRecord] = {}
        for key, data in zip(keys, contents):
            instance_id = key[len(INSTANCES_FOLDER):]
            instances[instance_id] = InstanceRecord.from_dict(data, instance_id=instance_id)
        return instances

    async def get_instance(self, instance_id: str) -> InstanceRecord:
        data = await self.store.get(INSTANCES_FOLDER + instance_id)
        return InstanceRecord.from_dict(data, instance_id=instance_id)

    async def put_instance(self, instance_id: str, instance: InstanceRecord) -> None:
        await self.store.put(INSTANCES_FOLDER + instance_id, instance.to_dict())

    async def delete_instance(self, instance_id: str) -> None:
        await self.store.delete(INSTANCES_FOLDER + instance_id)

    async def delete_instances(self, instance_ids: List[str]) -> List[BaseException]:
        """Delete records and public keys of instances, best effort.

        Returns:
            Errors of the deletions that failed
        """
        deletions = []
        for instance_id in instance_ids:
            deletions.append(self.store.delete(INSTANCES_FOLDER + instance_id))
            deletions.append(self.store.delete(PUBLIC_KEYS_FOLDER + instance_id))
        results = await asyncio.gather(*deletions, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            self.logger.debug(f"Ignoring delete error: {error}")
        return errors

    # ==================== Credentials and keys ====================

    async def get_credentials(self) -> Dict[str, Any]:
        return await self.store.get(CREDENTIALS_KEY)

    async def put_credentials(self, credentials: Dict[str, Any]) -> None:
        await self.store.put(CREDENTIALS_KEY, credentials)

    async def get_public_key(self, instance_id: str) -> StoredValue:
        return await self.store.get(PUBLIC_KEYS_FOLDER + instance_id)

    async def put_public_key(self, instance_id: str, public_key: str) -> None:
        await self.store.put(PUBLIC_KEYS_FOLDER + instance_id, public_key)

    # ==================== Backups ====================

    async def store_backup(self, path: str, max_copies: int) -> List[str]:
        """Upload a backup file, then prune old backups.

        Pruning covers every object in the backup folder, whatever its name.

        Args:
            path: Local file to upload
            max_copies: Backups to keep

        Returns:
            Keys of the pruned backups
        """
        key = BACKUP_FOLDER + os.path.basename(path)
        with open(path, "rb") as backup_file:
            await self.store.put(key, backup_file)
        return await delete_oldest_objects(self.store, BACKUP_FOLDER, max_copies, self.logger)

    async def get_latest_backup(self) -> Optional[bytes]:
        latest = await newest_object(self.store, BACKUP_FOLDER)
        if latest is None:
            self.logger.debug("No UCS found in storage")
            return None
        try:
            return await self.store.get(latest.name)
        except ObjectNotFoundError:
            return None

    async def delete_backup(self, filename: str) -> None:
        await self.store.delete(BACKUP_FOLDER + filename)
