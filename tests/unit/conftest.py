# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""In-memory backends shared by the unit tests."""

import copy
import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from cloudlibs_gce.exceptions import ComputeError, ObjectNotFoundError
from cloudlibs_gce.gcp.interfaces import (
    InstanceTagger,
    InventorySource,
    MessageBus,
    NetworkControlPlane,
    ObjectStore,
)
from cloudlibs_gce.gcp.resources import (
    ForwardingRule,
    GroupMember,
    NetworkInterface,
    StoredObject,
    TargetInstance,
    Vm,
)


class FakeObjectStore(ObjectStore):
    """Dictionary backed ObjectStore that records deletions."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[Optional[str], str], Tuple[Any, datetime]] = {}
        self.deleted: List[str] = []
        self.puts: List[str] = []
        self.fail_deletes: set = set()

    def seed(self, key: str, value: Any, updated_at: Optional[datetime] = None,
             bucket: Optional[str] = None) -> None:
        self.objects[(bucket, key)] = (value, updated_at or datetime.now(timezone.utc))

    async def get(self, key: str, bucket: Optional[str] = None) -> Any:
        if (bucket, key) not in self.objects:
            raise ObjectNotFoundError(key, bucket)
        return copy.deepcopy(self.objects[(bucket, key)][0])

    async def put(self, key: str, value: Any) -> None:
        if isinstance(value, io.IOBase):
            value = value.read()
        self.puts.append(key)
        self.objects[(None, key)] = (copy.deepcopy(value), datetime.now(timezone.utc))

    async def delete(self, key: str) -> None:
        if key in self.fail_deletes or (None, key) not in self.objects:
            raise ObjectNotFoundError(key)
        del self.objects[(None, key)]
        self.deleted.append(key)

    async def list_by_prefix(self, prefix: str) -> List[StoredObject]:
        return [
            StoredObject(name=key, updated_at=updated_at)
            for (bucket, key), (_, updated_at) in self.objects.items()
            if bucket is None and key.startswith(prefix)
        ]


class FakeMessageBus(MessageBus):
    """Pub/Sub look-alike with fully qualified resource names."""

    project = "projects/test-project"

    def __init__(self) -> None:
        self.topics: List[str] = []
        self.subscriptions: Dict[str, List[str]] = {}
        self.queues: Dict[str, List[Any]] = {}
        self.published: List[Tuple[str, Any]] = []
        self.created_topics: List[str] = []
        self.created_subscriptions: List[Tuple[str, str, Optional[str]]] = []

    async def create_topic(self, name: str) -> None:
        self.created_topics.append(name)
        self.topics.append(f"{self.project}/topics/{name}")

    async def create_subscription(self, topic: str, name: str,
                                  retention_duration: Optional[str] = None) -> None:
        self.created_subscriptions.append((topic, name, retention_duration))
        self.subscriptions.setdefault(topic, []).append(f"{self.project}/subscriptions/{name}")
        self.queues.setdefault(name, [])

    async def get_topics(self) -> List[str]:
        return list(self.topics)

    async def get_subscriptions(self, topic: str) -> List[str]:
        return list(self.subscriptions.get(topic, []))

    async def publish(self, topic: str, message: Any) -> None:
        self.published.append((topic, message))
        for full_name in self.subscriptions.get(topic, []):
            self.queues[full_name.rsplit("/", 1)[-1]].append(copy.deepcopy(message))

    async def pull(self, subscription: str) -> List[Any]:
        messages = self.queues.get(subscription, [])
        self.queues[subscription] = []
        return messages


class FakeCompute(InventorySource, InstanceTagger, NetworkControlPlane):
    """Compute API look-alike that records every mutation."""

    def __init__(self) -> None:
        self.members: List[GroupMember] = []
        self.vms: Dict[str, Vm] = {}
        self.labeled_vms: List[Vm] = []
        self.forwarding_rules: List[ForwardingRule] = []
        self.target_instances: List[TargetInstance] = []
        self.tag_updates: List[Tuple[str, List[str], Optional[str]]] = []
        self.nic_updates: List[Tuple[str, str, List[str]]] = []
        self.rule_updates: List[Tuple[str, str, str]] = []
        self.list_filters: List[str] = []
        self.nic_failures = 0
        self.fail_group_listing = False

    def add_vm(self, name: str, ip: Optional[str], status: str = "RUNNING",
               zone: str = "us-west1-a", tags: Optional[List[str]] = None,
               aliases: Optional[List[str]] = None, nat_ip: Optional[str] = None) -> Vm:
        nics = []
        if ip is not None:
            nics.append(NetworkInterface(
                name="nic0",
                network_ip=ip,
                nat_ip=nat_ip,
                alias_ip_ranges=[{"ipCidrRange": alias} for alias in aliases or []],
                fingerprint=f"fp-{name}",
            ))
        vm = Vm(name=name, zone=zone, status=status, network_interfaces=nics,
                tags=list(tags or []), tags_fingerprint=f"tags-{name}")
        self.vms[name] = vm
        self.members.append(GroupMember(name=name, status=status))
        return vm

    async def list_group_instances(self, zone: str, group: str) -> List[GroupMember]:
        if self.fail_group_listing:
            raise ComputeError("listInstances failed", status=500)
        return list(self.members)

    async def get_vm(self, zone: str, name: str) -> Vm:
        return copy.deepcopy(self.vms[name])

    async def list_vms(self, label_filter: str) -> List[Vm]:
        self.list_filters.append(label_filter)
        return copy.deepcopy(self.labeled_vms)

    async def set_tags(self, zone: str, name: str, tags: List[str],
                       fingerprint: Optional[str]) -> None:
        self.tag_updates.append((name, list(tags), fingerprint))
        self.vms[name].tags = list(tags)

    async def update_network_interface(self, zone: str, vm_name: str,
                                       nic: NetworkInterface) -> None:
        if self.nic_failures:
            self.nic_failures -= 1
            raise ComputeError("resource is not ready", status=400)
        self.nic_updates.append(
            (vm_name, nic.name, [r["ipCidrRange"] for r in nic.alias_ip_ranges])
        )

    async def list_forwarding_rules(self, region: str) -> List[ForwardingRule]:
        return list(self.forwarding_rules)

    async def list_target_instances(self, zone: str) -> List[TargetInstance]:
        return list(self.target_instances)

    async def set_forwarding_rule_target(self, region: str, rule: str, target: str) -> None:
        self.rule_updates.append((region, rule, target))


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def bus():
    return FakeMessageBus()


@pytest.fixture
def compute():
    return FakeCompute()
