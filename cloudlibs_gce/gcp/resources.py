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
Typed views of the Compute Engine and Cloud Storage resources the provider
works with.

Only the fields the provider reads or writes are modeled. Each type can be
built from the REST representation returned by the Compute API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from cloudlibs_gce.utils.network import resource_name


class VmStatus(str, Enum):
    """Compute Engine instance lifecycle states."""
    PROVISIONING = "PROVISIONING"
    STAGING = "STAGING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    SUSPENDING = "SUSPENDING"
    SUSPENDED = "SUSPENDED"
    REPAIRING = "REPAIRING"
    TERMINATED = "TERMINATED"


# Instances in these states count as cluster members
ALIVE_STATUSES = frozenset({VmStatus.PROVISIONING, VmStatus.STAGING, VmStatus.RUNNING})


@dataclass
class NetworkInterface:
    """A VM network interface and its alias IP ranges.

    Attributes:
        name: Interface name, e.g. ``nic0``
        network_ip: Primary private address
        nat_ip: External address of the first access config, if any
        alias_ip_ranges: Alias ranges as ``{"ipCidrRange": ...}`` dicts
        fingerprint: Fingerprint required to update the interface
    """
    name: str
    network_ip: Optional[str] = None
    nat_ip: Optional[str] = None
    alias_ip_ranges: List[Dict[str, Any]] = field(default_factory=list)
    fingerprint: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "NetworkInterface":
        access_configs = data.get("accessConfigs") or []
        nat_ip = access_configs[0].get("natIP") if access_configs else None
        return cls(
            name=data.get("name", ""),
            network_ip=data.get("networkIP"),
            nat_ip=nat_ip,
            alias_ip_ranges=[dict(r) for r in data.get("aliasIpRanges") or []],
            fingerprint=data.get("fingerprint"),
        )

    def to_update_body(self) -> Dict[str, Any]:
        """Body for ``instances.updateNetworkInterface``."""
        body: Dict[str, Any] = {"aliasIpRanges": [dict(r) for r in self.alias_ip_ranges]}
        if self.fingerprint:
            body["fingerprint"] = self.fingerprint
        return body


@dataclass
class Vm:
    """A Compute Engine instance."""
    name: str
    zone: str = ""
    status: Optional[str] = None
    network_interfaces: List[NetworkInterface] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    tags_fingerprint: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def is_alive(self) -> bool:
        return self.status in {s.value for s in ALIVE_STATUSES}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Vm":
        tags = data.get("tags") or {}
        return cls(
            name=data.get("name", ""),
            zone=resource_name(data.get("zone", "")) if data.get("zone") else "",
            status=data.get("status"),
            network_interfaces=[
                NetworkInterface.from_api(nic) for nic in data.get("networkInterfaces") or []
            ],
            tags=list(tags.get("items") or []),
            tags_fingerprint=tags.get("fingerprint"),
            labels=dict(data.get("labels") or {}),
        )


@dataclass
class GroupMember:
    """An entry of an instance group listing."""
    name: str
    status: Optional[str] = None

    @property
    def is_alive(self) -> bool:
        return self.status in {s.value for s in ALIVE_STATUSES}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GroupMember":
        return cls(name=resource_name(data.get("instance", "")), status=data.get("status"))


@dataclass
class ForwardingRule:
    """A regional forwarding rule."""
    name: str
    ip_address: str
    target: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ForwardingRule":
        return cls(
            name=data.get("name", ""),
            ip_address=data.get("IPAddress", ""),
            target=data.get("target", ""),
        )


@dataclass
class TargetInstance:
    """A zonal target instance pointing at one VM."""
    name: str
    instance: str
    self_link: str

    @property
    def instance_name(self) -> str:
        return resource_name(self.instance)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TargetInstance":
        return cls(
            name=data.get("name", ""),
            instance=data.get("instance", ""),
            self_link=data.get("selfLink", ""),
        )


@dataclass
class StoredObject:
    """Listing entry for an object in storage."""
    name: str
    updated_at: Optional[datetime] = None
