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
Failover network remediation.

When this device goes active for a traffic group, the cloud network still
routes that group's floating addresses to the previous owner. Remediation
moves them here:

- Alias IP ranges are removed from peer NICs, then added to the NIC of the
  same name on this VM. Every removal finishes before any addition starts,
  so an address is never attached to two interfaces by this procedure.
- Forwarding rules whose address is owned here are pointed at this VM's
  target instance.

Both steps only touch resources that are out of place, so running
remediation again after it succeeded issues no updates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from cloudlibs_gce.exceptions import FailoverError
from cloudlibs_gce.gcp.interfaces import InventorySource, NetworkControlPlane
from cloudlibs_gce.gcp.resources import ForwardingRule, NetworkInterface, TargetInstance, Vm
from cloudlibs_gce.gcp.session import MetadataClient
from cloudlibs_gce.failover.appliance import BigIpClient, get_traffic_group_addresses
from cloudlibs_gce.provider.inventory import label_filter
from cloudlibs_gce.utils.logger import logger as default_logger
from cloudlibs_gce.utils.network import match_ips, region_from_zone, zone_from_metadata_zone
from cloudlibs_gce.utils.retry import RetryConfig, RetryHandler

# Forwarding rule updates report "resource not ready" for 30s or more
NIC_RETRY = RetryConfig(max_retries=4, interval=15.0)
FORWARDING_RULE_RETRY = RetryConfig(max_retries=4, interval=60.0)


@dataclass
class NicUpdate:
    """A NIC whose alias IP ranges must be replaced."""
    vm_name: str
    zone: str
    nic: NetworkInterface


@dataclass
class NicUpdatePlan:
    """NIC updates, in the order they must be applied."""
    disassociate: List[NicUpdate] = field(default_factory=list)
    associate: List[NicUpdate] = field(default_factory=list)


@dataclass
class ForwardingRuleUpdate:
    """A forwarding rule to retarget."""
    rule: str
    target: str


@dataclass
class FailoverReport:
    """What a failover run changed."""
    disassociated: int = 0
    associated: int = 0
    forwarding_rules: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "disassociated": self.disassociated,
            "associated": self.associated,
            "forwardingRules": self.forwarding_rules,
            "skipped": self.skipped,
        }


def _split_vms(my_name: str, vms: Iterable[Vm]) -> Tuple[Vm, List[Vm]]:
    mine = []
    theirs = []
    for vm in vms:
        (mine if vm.name == my_name else theirs).append(vm)
    if not mine:
        raise FailoverError(f"Unable to locate our VM in the deployment: {my_name}")
    return mine[0], theirs


def plan_nic_updates(
    my_name: str,
    vms: Sequence[Vm],
    owned: Sequence[Any],
    default_zone: str = "",
) -> NicUpdatePlan:
    """Work out which NICs to change so this VM carries the owned addresses.

    Peer NICs are changed in place: matching alias ranges are removed from
    their ``alias_ip_ranges``. This VM's NICs get those ranges appended to
    the NIC with the same name.

    Args:
        my_name: Name of this VM
        vms: Live VMs of the deployment, including this one
        owned: Addresses this device is active for
        default_zone: Zone used for VMs that do not report one

    Raises:
        FailoverError: If this VM is not in ``vms``
        ValidationError: If an address or range cannot be parsed
    """
    my_vm, their_vms = _split_vms(my_name, vms)
    plan = NicUpdatePlan()
    moved = {}

    for vm in their_vms:
        for nic in vm.network_interfaces:
            if not nic.alias_ip_ranges:
                continue
            matching = match_ips(nic.alias_ip_ranges, owned)
            if not matching:
                continue
            matching_cidrs = {entry["ipCidrRange"] for entry in matching}
            nic.alias_ip_ranges = [
                entry for entry in nic.alias_ip_ranges
                if entry["ipCidrRange"] not in matching_cidrs
            ]
            moved.setdefault(nic.name, []).extend(matching)
            plan.disassociate.append(NicUpdate(vm.name, vm.zone or default_zone, nic))

    for nic in my_vm.network_interfaces:
        if nic.name not in moved:
            continue
        nic.alias_ip_ranges.extend(dict(entry) for entry in moved[nic.name])
        plan.associate.append(NicUpdate(my_vm.name, my_vm.zone or default_zone, nic))

    return plan


def plan_forwarding_rule_updates(
    my_name: str,
    rules: Iterable[ForwardingRule],
    target_instances: Iterable[TargetInstance],
    owned: Sequence[Any],
) -> List[ForwardingRuleUpdate]:
    """Forwarding rules for owned addresses that do not target this VM yet.

    Raises:
        FailoverError: If no target instance points at this VM
    """
    mine = [target for target in target_instances if target.instance_name == my_name]
    if not mine:
        raise FailoverError(f"Unable to locate our target instance: {my_name}")
    my_target = mine[0]

    updates = []
    for rule in rules:
        if not rule.ip_address or not match_ips([rule.ip_address], owned):
            continue
        if my_target.name not in rule.target:
            updates.append(ForwardingRuleUpdate(rule.name, my_target.self_link))
    return updates


class FailoverRemediator:
    """Applies NIC and forwarding rule updates with bounded retries.

    Example:
        >>> remediator = FailoverRemediator(compute)
        >>> report = await remediator.run("bigip-2", "us-west1-a", vms, rules, targets, owned)
        >>> report.associated
        1
    """

    def __init__(
        self,
        network: NetworkControlPlane,
        nic_retry: Optional[RetryConfig] = None,
        rule_retry: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.network = network
        self.logger = logger or default_logger
        self.nic_retry = RetryHandler(nic_retry or NIC_RETRY, logger=self.logger)
        self.rule_retry = RetryHandler(rule_retry or FORWARDING_RULE_RETRY, logger=self.logger)

    async def _update_nic(self, update: NicUpdate) -> None:
        self.logger.info(f"Updating NIC: {update.nic.name} for VM: {update.vm_name}")
        await self.nic_retry.execute_with_retry(
            self.network.update_network_interface, update.zone, update.vm_name, update.nic
        )

    async def _update_rule(self, region: str, update: ForwardingRuleUpdate) -> None:
        self.logger.info(f"Updating forwarding rule: {update.rule} to target: {update.target}")
        await self.rule_retry.execute_with_retry(
            self.network.set_forwarding_rule_target, region, update.rule, update.target
        )

    async def update_nics(self, plan: NicUpdatePlan) -> None:
        """Apply every disassociation, then every association.

        The first failed update fails the batch. Updates already running
        are left to finish.
        """
        self.logger.debug(f"disassociate: {[(u.vm_name, u.nic.name) for u in plan.disassociate]}")
        self.logger.debug(f"associate: {[(u.vm_name, u.nic.name) for u in plan.associate]}")
        try:
            await asyncio.gather(*(self._update_nic(u) for u in plan.disassociate))
            self.logger.info("Disassociate NICs successful")
            await asyncio.gather(*(self._update_nic(u) for u in plan.associate))
            self.logger.info("Associate NICs successful")
        except Exception as e:
            self.logger.error(f"Error updating NICs: {e}")
            raise

    async def update_forwarding_rules(
        self, region: str, updates: Sequence[ForwardingRuleUpdate]
    ) -> None:
        self.logger.debug(f"fwdRulesToUpdate: {[(u.rule, u.target) for u in updates]}")
        try:
            await asyncio.gather(*(self._update_rule(region, u) for u in updates))
            self.logger.info("Update forwarding rules successful")
        except Exception as e:
            self.logger.error(f"Error updating forwarding rules: {e}")
            raise

    async def run(
        self,
        my_name: str,
        zone: str,
        vms: Sequence[Vm],
        rules: Sequence[ForwardingRule],
        target_instances: Sequence[TargetInstance],
        owned: Sequence[Any],
    ) -> FailoverReport:
        """Move owned addresses to this VM.

        NIC and forwarding rule remediation run concurrently. With no owned
        addresses both are skipped.

        Raises:
            FailoverError: If this VM or its target instance is missing
            RetryExhaustedError: If an update kept failing
        """
        report = FailoverReport()
        if not owned:
            self.logger.info("No traffic group address(es) exist, skipping")
            report.skipped = True
            return report

        plan = plan_nic_updates(my_name, vms, owned, default_zone=zone)
        rule_updates = plan_forwarding_rule_updates(my_name, rules, target_instances, owned)

        await asyncio.gather(
            self.update_nics(plan),
            self.update_forwarding_rules(region_from_zone(zone), rule_updates),
        )

        report.disassociated = len(plan.disassociate)
        report.associated = len(plan.associate)
        report.forwarding_rules = len(rule_updates)
        return report


async def perform_failover(
    metadata: MetadataClient,
    bigip: BigIpClient,
    inventory: InventorySource,
    network: NetworkControlPlane,
    tag: dict,
    remediator: Optional[FailoverRemediator] = None,
    logger: Optional[logging.Logger] = None,
) -> FailoverReport:
    """Collect live state from the metadata server, the device and the cloud, then remediate.

    Args:
        metadata: Metadata server client of this VM
        bigip: Client of the local device
        inventory: Source of the deployment's VMs
        network: Network control plane to read rules from and update
        tag: Deployment label, ``{"key": ..., "value": ...}``
    """
    logger = logger or default_logger
    remediator = remediator or FailoverRemediator(network, logger=logger)

    logger.info("Performing failover")
    instance_name, metadata_zone, hostname, stats, virtual_addresses = await asyncio.gather(
        metadata.get("instance/name"),
        metadata.get("instance/zone"),
        bigip.get_hostname(),
        bigip.get_traffic_group_stats(),
        bigip.get_virtual_addresses(),
    )
    zone = zone_from_metadata_zone(metadata_zone)
    region = region_from_zone(zone)

    logger.debug("Getting GCP resources")
    vms, rules, target_instances = await asyncio.gather(
        inventory.list_vms(label_filter(tag)),
        network.list_forwarding_rules(region),
        network.list_target_instances(zone),
    )

    owned = get_traffic_group_addresses(hostname, stats, virtual_addresses, logger=logger)
    logger.debug("Updating GCP resources")
    report = await remediator.run(instance_name, zone, vms, rules, target_instances, owned)
    logger.info("Failover Complete")
    return report
