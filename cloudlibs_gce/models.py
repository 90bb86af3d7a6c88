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
Cluster data model.

InstanceRecord is the unit of cluster state: one record per cluster member,
persisted as JSON under ``instances/<instanceId>``. Records are written by
this provider and by the cluster manager, so fields this module does not
know about are carried through unchanged.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional


class PrimaryStatusCode(str, Enum):
    """What an instance thinks of the current primary."""
    OK = "OK"
    NOT_EXTERNAL = "NOT_EXTERNAL"
    NOT_IN_CLOUD_LIST = "NOT_IN_CLOUD_LIST"
    VERSION_NOT_UP_TO_DATE = "VERSION_NOT_UP_TO_DATE"
    UNKNOWN = "UNKNOWN"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored ISO-8601 timestamp (``Z`` suffix allowed)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


@dataclass
class PrimaryStatus:
    """An instance's view of who the primary is."""
    instance_id: Optional[str] = None
    status: Optional[PrimaryStatusCode] = None
    last_update: Optional[datetime] = None
    last_status_change: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "instanceId": self.instance_id,
            "status": self.status.value if self.status else None,
            "lastUpdate": format_timestamp(self.last_update),
            "lastStatusChange": format_timestamp(self.last_status_change),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrimaryStatus":
        """Create from dictionary."""
        status = data.get("status")
        return cls(
            instance_id=data.get("instanceId"),
            status=PrimaryStatusCode(status) if status else None,
            last_update=parse_timestamp(data.get("lastUpdate")),
            last_status_change=parse_timestamp(data.get("lastStatusChange")),
        )


_KNOWN_KEYS = {
    "instanceId",
    "isPrimary",
    "hostname",
    "privateIp",
    "publicIp",
    "mgmtIp",
    "providerVisible",
    "external",
    "versionOk",
    "lastUpdate",
    "primaryStatus",
}


@dataclass
class InstanceRecord:
    """One cluster member as known to the provider.

    Attributes:
        instance_id: Unique id (the VM name)
        is_primary: Whether this member is the elected primary
        private_ip: Address used for election ordering
        public_ip: NAT address, if any
        mgmt_ip: Management address
        provider_visible: Whether the cloud currently reports this member
        external: Member outside the managed group (for example BYOL)
        version_ok: Set by the cluster manager after a version check
        last_update: When the record was last refreshed
        primary_status: This member's view of the primary
        extra: Fields written by other parties, carried through unchanged
    """
    instance_id: str = ""
    is_primary: bool = False
    hostname: Optional[str] = None
    private_ip: Optional[str] = None
    public_ip: Optional[str] = None
    mgmt_ip: Optional[str] = None
    provider_visible: bool = False
    external: bool = False
    version_ok: bool = False
    last_update: Optional[datetime] = None
    primary_status: Optional[PrimaryStatus] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_vm(
        cls,
        instance_id: str,
        private_ip: Optional[str],
        public_ip: Optional[str] = None,
        external: bool = False,
    ) -> "InstanceRecord":
        """Create a record for an instance the cloud reports."""
        return cls(
            instance_id=instance_id,
            private_ip=private_ip,
            public_ip=public_ip,
            mgmt_ip=private_ip,
            provider_visible=True,
            external=external,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted JSON form."""
        data = dict(self.extra)
        data.update({
            "instanceId": self.instance_id,
            "isPrimary": self.is_primary,
            "hostname": self.hostname,
            "privateIp": self.private_ip,
            "publicIp": self.public_ip,
            "mgmtIp": self.mgmt_ip,
            "providerVisible": self.provider_visible,
            "external": self.external,
            "versionOk": self.version_ok,
            "lastUpdate": format_timestamp(self.last_update),
        })
        if self.primary_status is not None:
            data["primaryStatus"] = self.primary_status.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], instance_id: Optional[str] = None) -> "InstanceRecord":
        """Create from the persisted JSON form."""
        primary_status = data.get("primaryStatus")
        return cls(
            instance_id=instance_id or data.get("instanceId") or "",
            is_primary=bool(data.get("isPrimary", False)),
            hostname=data.get("hostname"),
            private_ip=data.get("privateIp"),
            public_ip=data.get("publicIp"),
            mgmt_ip=data.get("mgmtIp"),
            provider_visible=bool(data.get("providerVisible", False)),
            external=bool(data.get("external", False)),
            version_ok=bool(data.get("versionOk", False)),
            last_update=parse_timestamp(data.get("lastUpdate")),
            primary_status=PrimaryStatus.from_dict(primary_status) if primary_status else None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


# Decides whether a persisted record is too old to keep
ExpiryPolicy = Callable[[InstanceRecord], bool]


class MaxAgeExpiryPolicy:
    """Records whose last update is older than ``max_age`` seconds are expired.

    A record that was never updated is expired.
    """

    def __init__(self, max_age: float, clock: Callable[[], float] = time.time) -> None:
        self.max_age = max_age
        self._clock = clock

    def __call__(self, instance: InstanceRecord) -> bool:
        if instance.last_update is None:
            return True
        age = self._clock() - instance.last_update.timestamp()
        return age > self.max_age


@dataclass
class VmAddresses:
    """Identity and first-interface addresses of a VM."""
    id: str
    private_ip: Optional[str]
    public_ip: Optional[str] = None
