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
Primary role transitions.

When a primary is elected, the transition manager:

1. Provisions this instance's messaging channels for its new role
2. Clears ``isPrimary`` on every other persisted record
3. Optionally moves the ``<group>-primary`` network tag to the new primary

Steps 1 and 2 run as background tasks so the caller is not held up by
them. They are exposed on a ``TransitionHandle`` which the caller can
await when it needs completion.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from cloudlibs_gce.exceptions import CloudProviderError
from cloudlibs_gce.gcp.interfaces import InstanceTagger, InventorySource
from cloudlibs_gce.provider.messaging import ClusterMessenger
from cloudlibs_gce.provider.state import ClusterStateStore
from cloudlibs_gce.utils.logger import logger as default_logger


def primary_tag(instance_group: str) -> str:
    """Network tag that marks the primary of an instance group."""
    return f"{instance_group}-primary"


class TransitionHandle:
    """Background work started by a role transition.

    Attributes:
        primary_id: The newly elected primary
        provisioning: Task creating topics and subscriptions
        demotion: Task clearing the flag on former primaries; resolves to
            the ids that were demoted
    """

    def __init__(
        self,
        primary_id: str,
        provisioning: "asyncio.Task[None]",
        demotion: "asyncio.Task[List[str]]",
    ) -> None:
        self.primary_id = primary_id
        self.provisioning = provisioning
        self.demotion = demotion

    @property
    def done(self) -> bool:
        return self.provisioning.done() and self.demotion.done()

    async def wait(self) -> List[str]:
        """Wait for all background work.

        Returns:
            Ids of the demoted instances

        Raises:
            CloudProviderError: The first failure of the demotion writes
        """
        await asyncio.gather(self.provisioning, return_exceptions=True)
        return await self.demotion


class PrimaryTransitionManager:
    """Applies the outcome of an election.

    Example:
        >>> manager = PrimaryTransitionManager(messenger, state, compute, compute, "bigip-1", "grp")
        >>> handle = await manager.primary_elected("bigip-1")
        >>> await handle.wait()
        []
    """

    def __init__(
        self,
        messenger: ClusterMessenger,
        state: ClusterStateStore,
        inventory: InventorySource,
        tagger: InstanceTagger,
        instance_id: str,
        instance_group: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.messenger = messenger
        self.state = state
        self.inventory = inventory
        self.tagger = tagger
        self.instance_id = instance_id
        self.instance_group = instance_group
        self.logger = logger or default_logger

    def _watch(self, task: asyncio.Task, description: str) -> None:
        def _done(finished: asyncio.Task) -> None:
            if finished.cancelled():
                self.logger.info(f"{description} cancelled")
                return
            error = finished.exception()
            if error is not None:
                self.logger.info(f"{description} failed: {error}")

        task.add_done_callback(_done)

    async def primary_elected(self, primary_id: str) -> TransitionHandle:
        """Start the transition to a new primary.

        Args:
            primary_id: Id of the elected instance

        Returns:
            Handle on the background provisioning and demotion work

        Raises:
            CloudProviderError: If persisted state cannot be loaded
        """
        provisioning = asyncio.create_task(
            self.messenger.ensure_channels(self.instance_id == primary_id)
        )
        self._watch(provisioning, "Channel provisioning")

        try:
            instances = await self.state.load_instances()
        except CloudProviderError as e:
            self.logger.info(f"primaryElected error: {e}")
            raise

        demote_ids = [
            instance_id
            for instance_id, instance in instances.items()
            if instance_id != primary_id and instance.is_primary
        ]

        async def demote() -> List[str]:
            updates = []
            for instance_id in demote_ids:
                instance = instances[instance_id]
                instance.is_primary = False
                updates.append(self.state.put_instance(instance_id, instance))
            await asyncio.gather(*updates)
            if demote_ids:
                self.logger.debug(f"Demoted former primaries: {demote_ids}")
            return demote_ids

        demotion = asyncio.create_task(demote())
        self._watch(demotion, "Demotion of former primaries")

        return TransitionHandle(primary_id, provisioning, demotion)

    async def tag_primary_instance(
        self, primary_id: str, instance_ids: Iterable[str], zone: str
    ) -> List[str]:
        """Move the primary network tag to ``primary_id``.

        The tag is added to the primary if it lacks it and removed from
        every other instance that carries it.

        Returns:
            Names of the VMs whose tags were changed
        """
        tag = primary_tag(self.instance_group)
        vms = await asyncio.gather(
            *(self.inventory.get_vm(zone, name) for name in instance_ids)
        )

        updates = []
        changed = []
        for vm in vms:
            tags = list(vm.tags)
            has_tag = tag in tags
            if vm.name == primary_id and not has_tag:
                self.logger.debug(f"Tagging Primary Instance as: {vm.name}")
                tags.append(tag)
            elif vm.name != primary_id and has_tag:
                self.logger.debug(f"Removing Primary tag from: {vm.name}")
                tags.remove(tag)
            else:
                continue
            changed.append(vm.name)
            updates.append(self.tagger.set_tags(zone, vm.name, tags, vm.tags_fingerprint))

        await asyncio.gather(*updates)
        return changed
