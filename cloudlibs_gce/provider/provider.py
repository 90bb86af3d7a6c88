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
Google Compute Engine cloud provider.

GceCloudProvider is the entry point a cluster manager drives on every
cycle:

    >>> provider = GceCloudProvider()
    >>> await provider.init(ProviderOptions(storage_bucket="bkt", instance_group="grp"))
    >>> instances = await provider.get_instances()
    >>> primary_id = await provider.elect_primary(instances)
    >>> handle = await provider.primary_elected(primary_id)

Cluster state lives in a Cloud Storage bucket, control messages go over
Pub/Sub, and inventory and tags come from the Compute API.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from cloudlibs_gce.config import ProviderOptions
from cloudlibs_gce.exceptions import CloudProviderError, ConfigurationError
from cloudlibs_gce.failover.appliance import BigIpClient
from cloudlibs_gce.gcp.compute import ComputeClient
from cloudlibs_gce.gcp.interfaces import MessageBus, ObjectStore, StoredValue
from cloudlibs_gce.gcp.pubsub import PubSubClient
from cloudlibs_gce.gcp.session import GcpSession, ServiceAccountTokenSource
from cloudlibs_gce.gcp.storage import CloudStorageStore, parse_gs_uri
from cloudlibs_gce.models import InstanceRecord, MaxAgeExpiryPolicy, VmAddresses
from cloudlibs_gce.provider.election import elect_primary
from cloudlibs_gce.provider.inventory import InstanceReconciler, LicenseRevoker, get_vms_by_tag
from cloudlibs_gce.provider.messaging import (
    ClusterChannels,
    ClusterMessage,
    ClusterMessenger,
    MessageAction,
)
from cloudlibs_gce.provider.state import ClusterStateStore
from cloudlibs_gce.provider.transition import PrimaryTransitionManager, TransitionHandle
from cloudlibs_gce.utils.logger import logger as default_logger
from cloudlibs_gce.utils.network import region_from_zone, zone_from_metadata_zone

# Builds a client for the device at (host, user, password, port)
BigIpFactory = Callable[[str, str, str, int], BigIpClient]


class GceCloudProvider:
    """Cluster provider for BIG-IP instances on Google Compute Engine.

    Every backend can be injected; whatever is not injected is built by
    ``init()`` from the options.

    Attributes:
        options: Options given to ``init()``
        region: Region instances are searched in
        instance_id: This instance's id, once looked up
        instances_to_revoke: Purged records whose licenses are not revoked yet
    """

    def __init__(
        self,
        session: Optional[GcpSession] = None,
        store: Optional[ObjectStore] = None,
        compute: Optional[ComputeClient] = None,
        bus: Optional[MessageBus] = None,
        revoker: Optional[LicenseRevoker] = None,
        bigip_factory: Optional[BigIpFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or default_logger
        self.session = session
        self.store = store
        self.compute = compute
        self.bus = bus
        self.revoker = revoker
        self.bigip_factory: BigIpFactory = bigip_factory or self._default_bigip_factory

        self.options = ProviderOptions()
        self.region: Optional[str] = None
        self.zone: Optional[str] = None
        self.instance_id: Optional[str] = None
        self.instances_to_revoke: List[InstanceRecord] = []

        self._state: Optional[ClusterStateStore] = None
        self._messenger: Optional[ClusterMessenger] = None
        self._transitions: Optional[PrimaryTransitionManager] = None

    def _default_bigip_factory(self, host: str, user: str, password: str, port: int) -> BigIpClient:
        return BigIpClient(host, user, password, port=port, logger=self.logger)

    # ==================== Lifecycle ====================

    async def init(self, options: Optional[ProviderOptions] = None) -> None:
        """Validate options and build the backends.

        Raises:
            ConfigurationError: If options are missing or inconsistent
            ValidationError: If the credentials secret cannot be decoded
            MetadataError: If the region must be looked up and cannot be
        """
        self.options = options or ProviderOptions()
        self.options.validate()
        self.instances_to_revoke = []

        credentials = self.options.decode_secret()
        if credentials:
            self.logger.debug("Got credentials from provider options")
        else:
            self.logger.debug("No provider credentials - assuming we are running in Google Cloud")

        if self.session is None:
            if credentials:
                token_source = ServiceAccountTokenSource(credentials)
                self.session = GcpSession(
                    token_source=token_source,
                    project_id=credentials.get("project_id"),
                    logger=self.logger,
                )
            else:
                self.session = GcpSession(
                    service_account=self.options.service_account or "default",
                    logger=self.logger,
                )

        if self.compute is None:
            self.compute = ComputeClient(self.session, logger=self.logger)
        if self.bus is None:
            self.bus = PubSubClient(self.session, logger=self.logger)

        # gs:// URIs may name any bucket, so storage is set up even without a state bucket
        store_injected = self.store is not None
        if not store_injected:
            self.store = CloudStorageStore.create(
                self.options.storage_bucket or "", credentials, logger=self.logger
            )
        if store_injected or self.options.storage_bucket:
            self._state = ClusterStateStore(self.store, logger=self.logger)

        self.region = self.options.region
        if not self.region:
            zone = await self._get_zone()
            self.region = region_from_zone(zone)
            self.logger.debug(f"region: {self.region}")

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()

    async def __aenter__(self) -> "GceCloudProvider":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ==================== Internal wiring ====================

    @property
    def state(self) -> ClusterStateStore:
        if self._state is None:
            raise ConfigurationError("storageBucket is required for cluster state")
        return self._state

    @property
    def instance_group(self) -> str:
        if not self.options.instance_group:
            raise ConfigurationError("instanceGroup is required")
        return self.options.instance_group

    async def _get_zone(self) -> str:
        if self.zone is None:
            metadata_zone = await self.session.metadata.get("instance/zone")
            self.zone = zone_from_metadata_zone(metadata_zone)
        return self.zone

    async def _get_messenger(self) -> ClusterMessenger:
        if self._messenger is None:
            instance_id = await self.get_instance_id()
            channels = ClusterChannels(self.instance_group, instance_id)
            self._messenger = ClusterMessenger(self.bus, channels, logger=self.logger)
        return self._messenger

    async def _get_transitions(self) -> PrimaryTransitionManager:
        if self._transitions is None:
            messenger = await self._get_messenger()
            self._transitions = PrimaryTransitionManager(
                messenger,
                self.state,
                inventory=self.compute,
                tagger=self.compute,
                instance_id=messenger.channels.instance_id,
                instance_group=self.instance_group,
                logger=self.logger,
            )
        return self._transitions

    # ==================== Identity and inventory ====================

    async def get_instance_id(self) -> str:
        """This instance's id. The VM name is used so it matches VM listings."""
        if self.instance_id is None:
            self.instance_id = await self.session.metadata.get("instance/name")
        return self.instance_id

    async def get_instances(
        self, external_tag: Optional[Mapping[str, str]] = None
    ) -> Dict[str, InstanceRecord]:
        """Reconcile live inventory with persisted state.

        Args:
            external_tag: Also include instances outside the group with
                this label, ``{"key": ..., "value": ...}``

        Returns:
            Instance records keyed by instance id
        """
        zone = await self._get_zone()
        reconciler = InstanceReconciler(
            self.compute,
            self.state,
            self.instance_group,
            MaxAgeExpiryPolicy(self.options.max_instance_age),
            revoker=self.revoker,
            logger=self.logger,
        )
        result = await reconciler.reconcile(zone, self.region, external_tag)
        if self.revoker is None:
            self.instances_to_revoke = result.stale
        return result.instances

    async def elect_primary(self, instances: Mapping[str, InstanceRecord]) -> Optional[str]:
        return elect_primary(instances, logger=self.logger)

    async def get_vms_by_tag(self, tag: Mapping[str, str]) -> List[VmAddresses]:
        """VMs in this region carrying a label.

        Raises:
            ValidationError: If the tag lacks a key or value
        """
        return await get_vms_by_tag(self.compute, tag, self.region)

    async def get_nics_by_tag(self, tag: Optional[Mapping[str, str]] = None) -> List[Any]:
        """Only external static addresses can be labeled here, so labeled NICs are not supported."""
        return []

    async def revoke_licenses(self, instances: Optional[List[InstanceRecord]] = None) -> None:
        """Revoke licenses of instances.

        By default this revokes the records a reconciliation purged while no
        revoker was attached. Failures are logged and ignored.
        """
        pending = instances is None
        instances = self.instances_to_revoke if pending else instances
        if not instances or self.revoker is None:
            return
        self.logger.debug("Revoking licenses of non-primaries that are not known to GCE")
        try:
            await self.revoker.revoke(instances)
        except Exception as e:
            self.logger.info(f"Error revoking licenses: {e}")
            return
        if pending:
            self.instances_to_revoke = []

    # ==================== Primary role ====================

    async def primary_elected(self, primary_id: str) -> TransitionHandle:
        transitions = await self._get_transitions()
        return await transitions.primary_elected(primary_id)

    async def tag_primary_instance(
        self, primary_id: str, instances: Iterable[str]
    ) -> List[str]:
        """Move the ``<instanceGroup>-primary`` network tag to the primary.

        Returns:
            Names of the VMs whose tags changed
        """
        zone = await self._get_zone()
        transitions = await self._get_transitions()
        return await transitions.tag_primary_instance(primary_id, list(instances), zone)

    async def primary_invalidated(self, instance_id: str) -> None:
        """Forget a primary that is no longer valid. It may already be gone."""
        try:
            await self.state.delete_instance(instance_id)
        except CloudProviderError as e:
            self.logger.debug(f"Ignoring error deleting invalid primary {instance_id}: {e}")

    async def put_instance(self, instance_id: str, instance: InstanceRecord) -> None:
        try:
            await self.state.put_instance(instance_id, instance)
        except CloudProviderError as e:
            self.logger.info(f"putInstance error: {e}")
            raise

    async def get_primary_status(self) -> Dict[str, Any]:
        """This instance's view of the primary, ``{}`` if it has none."""
        instance_id = await self.get_instance_id()
        try:
            instance = await self.state.get_instance(instance_id)
        except CloudProviderError as e:
            self.logger.info(f"Error getting primary status: {e}")
            raise
        if instance.primary_status is None:
            return {}
        return instance.primary_status.to_dict()

    # ==================== Credentials and keys ====================

    async def put_primary_credentials(self, username: str, password: str) -> None:
        try:
            await self.state.put_credentials({"username": username, "password": password})
        except CloudProviderError as e:
            raise CloudProviderError(f"Unable to store primary credentials: {e}") from e
        self.logger.debug("Wrote credentials")

    async def get_primary_credentials(
        self, mgmt_ip: str, mgmt_port: Optional[int] = None
    ) -> Dict[str, Any]:
        """Read the primary's credentials and check them against the primary.

        Raises:
            StorageError: If no credentials are stored
            ApplianceError: If the primary rejects them
        """
        try:
            credentials = await self.state.get_credentials()
            bigip = self.bigip_factory(
                mgmt_ip,
                credentials["username"],
                credentials["password"],
                mgmt_port or self.options.mgmt_port,
            )
            try:
                await bigip.ready()
            finally:
                await bigip.close()
        except CloudProviderError as e:
            self.logger.info(f"Error getting primary credentials: {e}")
            raise
        self.logger.debug("Validated credentials.")
        return credentials

    async def put_public_key(self, instance_id: str, public_key: str) -> None:
        await self.state.put_public_key(instance_id, public_key)

    async def get_public_key(self, instance_id: str) -> StoredValue:
        return await self.state.get_public_key(instance_id)

    # ==================== Messaging ====================

    async def send_message(
        self,
        action: MessageAction,
        to_instance_id: Optional[str] = None,
        from_instance_id: Optional[str] = None,
        data: Any = None,
    ) -> None:
        messenger = await self._get_messenger()
        await messenger.send_message(action, to_instance_id, from_instance_id, data)

    async def get_messages(
        self,
        actions: Iterable[MessageAction],
        to_instance_id: Optional[str] = None,
    ) -> List[ClusterMessage]:
        messenger = await self._get_messenger()
        try:
            return await messenger.get_messages(actions, to_instance_id)
        except CloudProviderError as e:
            self.logger.info(f"Error getting messages: {e}")
            raise

    # ==================== Backups and data ====================

    async def store_ucs(self, path: str, max_copies: int, prefix: Optional[str] = None) -> List[str]:
        """Upload a UCS backup and keep only the newest ``max_copies``.

        Every backup in the backup folder counts toward ``max_copies``.
        ``prefix`` names the autosave series of the caller and does not
        narrow pruning.

        Returns:
            Keys of the backups that were pruned
        """
        try:
            return await self.state.store_backup(path, max_copies)
        except (CloudProviderError, OSError) as e:
            raise CloudProviderError(f"storeUcs: {e}") from e

    async def get_stored_ucs(self) -> Optional[bytes]:
        return await self.state.get_latest_backup()

    async def delete_stored_ucs(self, filename: str) -> None:
        await self.state.delete_backup(filename)

    async def get_data_from_uri(self, uri: str) -> StoredValue:
        """Read an object addressed as ``gs://bucket/[folder/]file``.

        Raises:
            InvalidUriError: If the URI is not a well formed gs:// URI
        """
        bucket, key = parse_gs_uri(uri)
        if self.store is None:
            raise ConfigurationError("Storage is not configured")
        return await self.store.get(key, bucket=bucket)
