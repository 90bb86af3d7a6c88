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
Instance inventory reconciliation.

Each cycle merges three sources into one ``instanceId -> InstanceRecord``
map:

1. The live instance group, filtered to alive states
2. Instances outside the group that carry an external label (optional)
3. The records persisted in cluster state

Persisted records the cloud no longer reports are purged unless they belong
to a primary that has not expired; a primary briefly missing from the
control plane keeps its role. Purging is best effort and never fails the
cycle, while a failed inventory query does.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from cloudlibs_gce.exceptions import CloudProviderError, ValidationError
from cloudlibs_gce.gcp.interfaces import InventorySource
from cloudlibs_gce.gcp.resources import Vm
from cloudlibs_gce.models import ExpiryPolicy, InstanceRecord, VmAddresses
from cloudlibs_gce.provider.state import ClusterStateStore
from cloudlibs_gce.utils.logger import logger as default_logger
from cloudlibs_gce.utils.network import region_from_zone


class LicenseRevoker(ABC):
    """Releases the licenses held by instances that left the cluster."""

    @abstractmethod
    async def revoke(self, instances: List[InstanceRecord]) -> None:
        """Revoke licenses of the given instances."""


def vm_addresses(vm: Vm) -> Optional[VmAddresses]:
    """Addresses of a VM's first interface, or None if it has no interface."""
    if not vm.network_interfaces:
        return None
    nic = vm.network_interfaces[0]
    return VmAddresses(id=vm.name, private_ip=nic.network_ip, public_ip=nic.nat_ip)


def label_filter(tag: Mapping[str, str]) -> str:
    """Compute API filter for a label. Labels are always lower case.

    Raises:
        ValidationError: If the tag lacks a key or value
    """
    if not tag or not tag.get("key") or not tag.get("value"):
        raise ValidationError("Tag with key and value must be provided")
    return f"labels.{tag['key'].lower()} eq {tag['value'].lower()}"


async def get_vms_by_tag(
    inventory: InventorySource,
    tag: Mapping[str, str],
    region: Optional[str] = None,
) -> List[VmAddresses]:
    """Find VMs carrying a label, optionally restricted to one region."""
    vms = await inventory.list_vms(label_filter(tag))
    found = []
    for vm in vms:
        if region and region_from_zone(vm.zone) != region:
            continue
        addresses = vm_addresses(vm)
        if addresses:
            found.append(addresses)
    return found


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass.

    Attributes:
        instances: The authoritative instance map
        stale: Records purged in this pass
        cleanup_errors: Best-effort cleanup failures that were ignored
    """
    instances: Dict[str, InstanceRecord] = field(default_factory=dict)
    stale: List[InstanceRecord] = field(default_factory=list)
    cleanup_errors: List[BaseException] = field(default_factory=list)


class InstanceReconciler:
    """Builds the instance map for one cycle.

    Example:
        >>> reconciler = InstanceReconciler(compute, state, "my-group", is_expired)
        >>> result = await reconciler.reconcile("us-west1-a", "us-west1")
        >>> sorted(result.instances)
        ['bigip-1', 'bigip-2']
    """

    def __init__(
        self,
        inventory: InventorySource,
        state: ClusterStateStore,
        instance_group: str,
        is_expired: ExpiryPolicy,
        revoker: Optional[LicenseRevoker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.inventory = inventory
        self.state = state
        self.instance_group = instance_group
        self.is_expired = is_expired
        self.revoker = revoker
        self.logger = logger or default_logger

    async def reconcile(
        self,
        zone: str,
        region: str,
        external_tag: Optional[Mapping[str, str]] = None,
    ) -> ReconciliationResult:
        """Run one pass.

        Args:
            zone: Zone of the instance group
            region: Region external instances must be in
            external_tag: Label of instances outside the group to include

        Raises:
            CloudProviderError: If any inventory query fails
        """
        try:
            return await self._reconcile(zone, region, external_tag)
        except CloudProviderError as e:
            self.logger.info(f"Error getting instances: {e}")
            raise

    async def _reconcile(
        self,
        zone: str,
        region: str,
        external_tag: Optional[Mapping[str, str]],
    ) -> ReconciliationResult:
        result = ReconciliationResult()
        instances = result.instances

        members = await self.inventory.list_group_instances(zone, self.instance_group)
        self.logger.debug(f"all instances from gce: {members}")
        live_ids = [member.name for member in members if member.is_alive]
        self.logger.debug(f"instance ids with good status: {live_ids}")

        external_ids = set()
        if external_tag:
            external_vms = await get_vms_by_tag(self.inventory, external_tag, region)
            self.logger.debug(f"external vms: {external_vms}")
            for vm in external_vms:
                external_ids.add(vm.id)
                instances[vm.id] = InstanceRecord.from_vm(
                    vm.id, vm.private_ip, vm.public_ip, external=True
                )

        persisted = await self.state.load_instances()
        self.logger.debug(f"instances in db: {list(persisted)}")

        live = set(live_ids)
        ids_to_delete = []
        for instance_id, instance in persisted.items():
            if instance_id in live or instance_id in external_ids:
                instance.provider_visible = True
                if instance_id in external_ids:
                    instance.external = True
                instances[instance_id] = instance
            elif instance.is_primary and not self.is_expired(instance):
                instance.provider_visible = False
                instances[instance_id] = instance
            else:
                ids_to_delete.append(instance_id)
                result.stale.append(instance)

        missing = [
            instance_id for instance_id in live_ids
            if instance_id not in persisted and instance_id not in instances
        ]
        missing_vms = await asyncio.gather(
            *(self.inventory.get_vm(zone, instance_id) for instance_id in missing)
        )
        for vm in missing_vms:
            addresses = vm_addresses(vm)
            if addresses is None:
                continue
            instances[addresses.id] = InstanceRecord.from_vm(
                addresses.id, addresses.private_ip, addresses.public_ip
            )

        if ids_to_delete:
            self.logger.debug(f"Deleting non-primaries that are not in GCE: {ids_to_delete}")
            result.cleanup_errors = await self._cleanup(ids_to_delete, result.stale)

        return result

    async def _cleanup(
        self, ids_to_delete: List[str], stale: List[InstanceRecord]
    ) -> List[BaseException]:
        async def revoke() -> List[BaseException]:
            if self.revoker is None:
                return []
            try:
                await self.revoker.revoke(stale)
            except Exception as e:
                self.logger.info(f"Error revoking licenses: {e}")
                return [e]
            return []

        delete_errors, revoke_errors = await asyncio.gather(
            self.state.delete_instances(ids_to_delete), revoke()
        )
        return delete_errors + revoke_errors
