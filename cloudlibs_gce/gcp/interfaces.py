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
Capability interfaces for the cloud services the provider depends on.

The reconciliation, election, transition and failover logic only talk to
these interfaces. The REST and SDK backed clients in this package implement
them, and tests substitute in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from cloudlibs_gce.gcp.resources import (
    ForwardingRule,
    GroupMember,
    NetworkInterface,
    StoredObject,
    TargetInstance,
    Vm,
)

StoredValue = Union[bytes, str, Dict[str, Any], List[Any]]


class InventorySource(ABC):
    """Read access to the live instance inventory."""

    @abstractmethod
    async def list_group_instances(self, zone: str, group: str) -> List[GroupMember]:
        """List the members of an instance group with their status."""

    @abstractmethod
    async def get_vm(self, zone: str, name: str) -> Vm:
        """Get full metadata for one instance."""

    @abstractmethod
    async def list_vms(self, label_filter: str) -> List[Vm]:
        """List instances in every zone matching a filter expression."""


class InstanceTagger(ABC):
    """Network tag updates on instances."""

    @abstractmethod
    async def set_tags(
        self, zone: str, name: str, tags: List[str], fingerprint: Optional[str]
    ) -> None:
        """Replace an instance's network tags and wait for completion."""


class NetworkControlPlane(ABC):
    """Mutations of live network state used during failover."""

    @abstractmethod
    async def update_network_interface(
        self, zone: str, vm_name: str, nic: NetworkInterface
    ) -> None:
        """Replace a NIC's alias IP ranges and wait for completion."""

    @abstractmethod
    async def list_forwarding_rules(self, region: str) -> List[ForwardingRule]:
        """List regional forwarding rules."""

    @abstractmethod
    async def list_target_instances(self, zone: str) -> List[TargetInstance]:
        """List zonal target instances."""

    @abstractmethod
    async def set_forwarding_rule_target(self, region: str, rule: str, target: str) -> None:
        """Point a forwarding rule at a new target and wait for completion."""


class ObjectStore(ABC):
    """Key/value blob storage with content-type aware values."""

    @abstractmethod
    async def get(self, key: str, bucket: Optional[str] = None) -> StoredValue:
        """Get a value, decoded by its stored content type.

        Raises:
            ObjectNotFoundError: If the key does not exist
        """

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store a value, overwriting any existing one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value. May raise if the key does not exist."""

    @abstractmethod
    async def list_by_prefix(self, prefix: str) -> List[StoredObject]:
        """List objects whose key starts with ``prefix``."""


class MessageBus(ABC):
    """Topic/subscription publish and pull messaging."""

    @abstractmethod
    async def create_topic(self, name: str) -> None:
        """Create a topic; creating an existing topic is not an error."""

    @abstractmethod
    async def create_subscription(
        self, topic: str, name: str, retention_duration: Optional[str] = None
    ) -> None:
        """Create a subscription on a topic."""

    @abstractmethod
    async def get_topics(self) -> List[str]:
        """Fully qualified names of every topic in the project."""

    @abstractmethod
    async def get_subscriptions(self, topic: str) -> List[str]:
        """Fully qualified names of every subscription on a topic."""

    @abstractmethod
    async def publish(self, topic: str, message: Any) -> None:
        """Publish a string or JSON-serializable message."""

    @abstractmethod
    async def pull(self, subscription: str) -> List[Any]:
        """Pull and acknowledge at most one batch of messages."""
